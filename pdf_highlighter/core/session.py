"""
Session controller: which document is active, and routing of edits and searches.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from pdf_highlighter.core.bbox import display_rect_to_intrinsic, to_intrinsic
from pdf_highlighter.core.page_range import parse_page_numbers
from pdf_highlighter.core.search import DEFAULT_SEARCH_COLOR, PdfSearch, SearchOutcome
from pdf_highlighter.core.store import HighlightStore
from pdf_highlighter.core.text_source import TextSource
from pdf_highlighter.core.types import (
    ContentPatch,
    Highlight,
    NewHighlight,
    PageViewport,
    PositionPatch,
)

logger = logging.getLogger(__name__)


def _close_source(source) -> None:
    close = getattr(source, "close", None)
    if callable(close):
        close()


class HighlightSession:
    """
    Exactly one document is active at a time. Its highlights live in the
    store's active list and are written back to the partition on every swap
    and on close.
    """

    def __init__(
        self,
        document_id: str,
        store: Optional[HighlightStore] = None,
        text_source: Optional[TextSource] = None,
        search: Optional[PdfSearch] = None,
        scroll_handler: Optional[Callable[[Highlight], None]] = None,
    ):
        self.store = store if store is not None else HighlightStore()
        self.search_state = search if search is not None else PdfSearch()
        self.scroll_handler = scroll_handler
        self.last_scroll_target: Optional[Highlight] = None
        self.active_document_id = document_id
        self.text_source = text_source
        self.store.load(self.store.partition.ensure(document_id))

    @property
    def highlights(self) -> List[Highlight]:
        return self.store.highlights

    # --- document lifecycle ---

    def load_document(self, document_id: str, text_source: Optional[TextSource] = None) -> List[Highlight]:
        previous = self.active_document_id
        self.flush()
        if document_id == previous and text_source is None:
            return self.store.highlights
        if text_source is not self.text_source:
            _close_source(self.text_source)
        self.text_source = text_source
        if document_id == previous:
            return self.store.highlights

        # search ids belong to the document we are leaving
        self.search_state.reset()
        self.active_document_id = document_id
        self.store.load(self.store.partition.ensure(document_id))
        logger.info(f"Switched document {previous} -> {document_id} ({len(self.store)} highlights)")
        return self.store.highlights

    def flush(self) -> None:
        self.store.flush(self.active_document_id)

    def close(self) -> None:
        self.flush()
        _close_source(self.text_source)
        self.text_source = None

    # --- manual edits ---

    def add_highlight(self, highlight: NewHighlight, viewport: Optional[PageViewport] = None) -> Highlight:
        """Store a user selection. Display-frame positions need the viewport they were captured at."""
        position = highlight["position"]
        if not position["usePdfCoordinates"]:
            if viewport is None:
                raise ValueError("A display-frame position needs its viewport to be stored")
            position = to_intrinsic(position, viewport)
        record: Highlight = dict(highlight, position=position, id=self.store.next_id())
        self.store.add(record)
        return record

    def update_highlight(
        self,
        highlight_id: str,
        position_patch: Optional[PositionPatch] = None,
        content_patch: Optional[ContentPatch] = None,
    ) -> Highlight:
        return self.store.update(highlight_id, position_patch, content_patch)

    def remove_highlight(self, highlight_id: str) -> None:
        self.store.remove(highlight_id)

    def reset_highlights(self) -> None:
        self.store.reset_all()
        self.search_state.reset()

    # --- search ---

    async def search(
        self,
        query: str,
        color: str = DEFAULT_SEARCH_COLOR,
        page_range: Optional[str] = None,
    ) -> SearchOutcome:
        if self.text_source is None:
            raise RuntimeError(f"No text source attached for {self.active_document_id}")
        pages = None
        if page_range is not None:
            pages = parse_page_numbers(self.text_source.num_pages, page_range)
        return await self.search_state.search_text(
            query,
            color,
            self.text_source,
            self.store,
            scroll_to=self.on_scroll_requested,
            page_numbers=pages,
        )

    def clear_search_highlights(self) -> int:
        return self.search_state.clear_search_highlights(self.store)

    @property
    def has_search_highlights(self) -> bool:
        return self.search_state.has_search_highlights

    # --- export / import ---

    def import_highlights(
        self,
        records: Iterable[Dict],
        dedupe_on_content: bool = False,
        viewport: Optional[PageViewport] = None,
    ) -> int:
        """Merge records into the active document. Display-frame records need `viewport`."""
        if viewport is not None:
            records = [dict(r, position=to_intrinsic(r["position"], viewport)) for r in records]
        return self.store.import_merge(records, dedupe_on_content=dedupe_on_content)

    def export_highlights(self) -> List[Highlight]:
        return self.store.export_snapshot()

    # --- rendering surface callbacks ---

    def on_highlight_geometry_changed(
        self,
        highlight_id: str,
        new_display_rect: Dict,
        viewport: PageViewport,
        image: Optional[str] = None,
    ) -> Highlight:
        page = self.store.get(highlight_id)["position"]["pageNumber"]
        rect = display_rect_to_intrinsic(new_display_rect, viewport, page)
        content_patch: ContentPatch = {"image": image} if image is not None else {}
        return self.store.update(
            highlight_id,
            {"boundingRect": rect, "rects": [dict(rect)], "usePdfCoordinates": True},
            content_patch,
        )

    def on_scroll_requested(self, highlight: Highlight) -> None:
        self.last_scroll_target = highlight
        if self.scroll_handler is not None:
            self.scroll_handler(highlight)
