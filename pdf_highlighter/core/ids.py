import itertools
import uuid
from typing import Callable

IdGenerator = Callable[[], str]


def uuid_id() -> str:
    return uuid.uuid4().hex


class CounterIdGenerator:
    """Monotonic ids: `<prefix>1`, `<prefix>2`, ... Unique per instance."""

    def __init__(self, prefix: str = "h", start: int = 1):
        self.prefix = prefix
        self._counter = itertools.count(start)

    def __call__(self) -> str:
        return f"{self.prefix}{next(self._counter)}"
