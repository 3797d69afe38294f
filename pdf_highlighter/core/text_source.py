from typing import Dict, List, Optional, Protocol, Sequence

from pdf_highlighter.core.types import PageText, TextRun


class TextSource(Protocol):
    """Per-page text runs of one document, pages numbered 1..num_pages."""

    num_pages: int

    async def get_page_text(self, page_number: int) -> PageText:
        ...


def make_run(text: str, transform: Sequence[float], width: float) -> TextRun:
    if len(transform) != 6:
        raise ValueError(f"Transform must have 6 entries, got {len(transform)}")
    return {"text": text, "transform": [float(v) for v in transform], "width": float(width)}


class StaticTextSource:
    """In-memory text source, e.g. runs sent by a client that already extracted them."""

    def __init__(self, pages: Sequence[List[TextRun]], page_sizes: Optional[Dict[int, Sequence[float]]] = None,
                 default_size: Sequence[float] = (612.0, 792.0)):
        self._pages = [list(runs) for runs in pages]
        self._sizes = dict(page_sizes or {})
        self._default_size = tuple(default_size)
        self.num_pages = len(self._pages)

    async def get_page_text(self, page_number: int) -> PageText:
        if page_number < 1 or page_number > self.num_pages:
            raise IndexError(f"Page {page_number} out of range (1-{self.num_pages})")
        width, height = self._sizes.get(page_number, self._default_size)
        return {
            "pageNumber": page_number,
            "width": float(width),
            "height": float(height),
            "runs": self._pages[page_number - 1],
        }
