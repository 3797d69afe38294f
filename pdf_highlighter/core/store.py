"""
Highlight bookkeeping: the per-document partition and the active highlight list.
"""

import copy
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from pdf_highlighter.core.errors import DuplicateId, NotFound
from pdf_highlighter.core.ids import IdGenerator, uuid_id
from pdf_highlighter.core.types import ContentPatch, Highlight, Position, PositionPatch

logger = logging.getLogger(__name__)

_POSITION_FIELDS = ("boundingRect", "rects", "pageNumber", "usePdfCoordinates")
_CONTENT_FIELDS = ("text", "image")


class DocumentPartition:
    """Document id (source locator) -> ordered highlight list."""

    def __init__(self, initial: Optional[Dict[str, List[Highlight]]] = None):
        self._entries: Dict[str, List[Highlight]] = {}
        for document_id, highlights in (initial or {}).items():
            self._entries[document_id] = list(highlights)

    def get(self, document_id: str) -> Optional[List[Highlight]]:
        return self._entries.get(document_id)

    def ensure(self, document_id: str) -> List[Highlight]:
        """Return the entry for `document_id`, creating an empty one on first use."""
        return self._entries.setdefault(document_id, [])

    def put(self, document_id: str, highlights: Iterable[Highlight]) -> None:
        self._entries[document_id] = list(highlights)

    def documents(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)


def merge_position(position: Position, patch: PositionPatch) -> Position:
    merged = dict(position)
    for field in _POSITION_FIELDS:
        if field in patch:
            merged[field] = copy.deepcopy(patch[field])
    return merged


def merge_content(content: dict, patch: ContentPatch) -> dict:
    merged = dict(content)
    for field in _CONTENT_FIELDS:
        if field in patch:
            merged[field] = patch[field]
    return merged


def check_position(position: Position) -> None:
    """Stored positions are intrinsic-frame and every rect sits on the position's page."""
    if not position.get("usePdfCoordinates"):
        raise ValueError("Display-frame position; convert it with to_intrinsic before storing")
    page = position.get("pageNumber")
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise ValueError(f"pageNumber must be a positive integer, got {page!r}")
    for rect in [position["boundingRect"], *position["rects"]]:
        if rect["pageNumber"] != page:
            raise ValueError(f"Rect on page {rect['pageNumber']} in a position on page {page}")


class HighlightStore:
    """
    Owns the document partition and the active document's highlight list.

    Every mutation acts on the active list; `flush()` writes it back into the
    partition. Newest highlights sit at the front.
    """

    def __init__(self, partition: Optional[DocumentPartition] = None, id_generator: Optional[IdGenerator] = None):
        self.partition = partition if partition is not None else DocumentPartition()
        self.id_generator: IdGenerator = id_generator or uuid_id
        self._active: List[Highlight] = []

    @property
    def highlights(self) -> List[Highlight]:
        return self._active

    def __len__(self) -> int:
        return len(self._active)

    def _index_of(self, highlight_id: str) -> int:
        for i, h in enumerate(self._active):
            if h["id"] == highlight_id:
                return i
        return -1

    def __contains__(self, highlight_id: object) -> bool:
        return any(h["id"] == highlight_id for h in self._active)

    def get(self, highlight_id: str) -> Highlight:
        i = self._index_of(highlight_id)
        if i < 0:
            raise NotFound(highlight_id)
        return self._active[i]

    def next_id(self) -> str:
        return self.id_generator()

    # --- partition swap ---

    def load(self, highlights: Sequence[Highlight]) -> None:
        self._active = list(highlights)

    def flush(self, document_id: str) -> None:
        self.partition.put(document_id, self._active)
        logger.debug(f"Flushed {len(self._active)} highlights for {document_id}")

    # --- mutations ---

    def add(self, highlight: Highlight) -> None:
        check_position(highlight["position"])
        if highlight["id"] in self:
            raise DuplicateId(highlight["id"])
        self._active.insert(0, highlight)
        logger.debug(f"Added highlight {highlight['id']}")

    def prepend(self, highlights: Sequence[Highlight]) -> None:
        """Insert a batch at the front, keeping its order. All-or-nothing."""
        seen = {h["id"] for h in self._active}
        for h in highlights:
            check_position(h["position"])
            if h["id"] in seen:
                raise DuplicateId(h["id"])
            seen.add(h["id"])
        self._active[:0] = list(highlights)

    def update(
        self,
        highlight_id: str,
        position_patch: Optional[PositionPatch] = None,
        content_patch: Optional[ContentPatch] = None,
    ) -> Highlight:
        i = self._index_of(highlight_id)
        if i < 0:
            raise NotFound(highlight_id)
        original = self._active[i]
        merged: Highlight = dict(original)
        merged["position"] = merge_position(original["position"], position_patch or {})
        check_position(merged["position"])
        merged["content"] = merge_content(original["content"], content_patch or {})
        self._active[i] = merged
        logger.debug(f"Updated highlight {highlight_id}")
        return merged

    def remove(self, highlight_id: str) -> None:
        i = self._index_of(highlight_id)
        if i < 0:
            raise NotFound(highlight_id)
        del self._active[i]
        logger.debug(f"Removed highlight {highlight_id}")

    def remove_ids(self, ids: Iterable[str]) -> int:
        doomed = set(ids)
        before = len(self._active)
        self._active = [h for h in self._active if h["id"] not in doomed]
        return before - len(self._active)

    def reset_all(self) -> None:
        self._active = []

    # --- export / import ---

    def export_snapshot(self) -> List[Highlight]:
        return self._active

    def import_merge(self, incoming: Iterable[dict], dedupe_on_content: bool = False) -> int:
        """
        Append incoming records whose id is not already present.

        Records without an id get a fresh one first, so re-importing an
        id-less file appends a second copy unless `dedupe_on_content` is set,
        in which case an id-less record whose position and content equal an
        existing record's is dropped too. Existing records are never touched.
        Display-frame records raise ValueError and nothing is imported.
        """
        incoming = list(incoming)
        for record in incoming:
            check_position(record["position"])
        existing_ids = {h["id"] for h in self._active}
        existing_shapes = [(h["position"], h["content"]) for h in self._active] if dedupe_on_content else []
        appended: List[Highlight] = []
        for record in incoming:
            record = dict(record)
            if not record.get("id"):
                if dedupe_on_content and (record["position"], record["content"]) in existing_shapes:
                    continue
                record["id"] = self.next_id()
            if record["id"] in existing_ids:
                continue
            existing_ids.add(record["id"])
            if dedupe_on_content:
                existing_shapes.append((record["position"], record["content"]))
            appended.append(record)
        self._active.extend(appended)
        logger.info(f"Imported {len(appended)} highlights")
        return len(appended)
