"""
Text search over a document's extracted runs.

Each match becomes a single-rect highlight in the intrinsic (PDF) frame. Runs
only carry an overall width, so glyph positions inside a run are estimated
with a uniform character width.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Pattern, Set, Tuple

from pdf_highlighter.core.bbox import make_rect
from pdf_highlighter.core.errors import PageExtractionFailure
from pdf_highlighter.core.store import HighlightStore
from pdf_highlighter.core.text_source import TextSource
from pdf_highlighter.core.types import Highlight, NewHighlight, Rect, TextRun

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_COLOR = "#ff6b6b"
SEARCH_MARKER_EMOJI = "🔍"
FALLBACK_FONT_SIZE = 12.0


@dataclass
class SearchOutcome:
    """Result of one search invocation."""

    query: str
    highlights: List = field(default_factory=list)
    failed_pages: List[PageExtractionFailure] = field(default_factory=list)
    literal_fallback: bool = False
    scroll_target: Optional[Highlight] = None

    @property
    def matched(self) -> bool:
        return bool(self.highlights)

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "total_matches": len(self.highlights),
            "literal_fallback": self.literal_fallback,
            "failed_pages": [f.page_number for f in self.failed_pages],
            "highlights": self.highlights,
        }


def compile_query(query: str) -> Tuple[Pattern, bool]:
    """Compile `query` as a regex, or as escaped literal text if it is not one."""
    try:
        return re.compile(query), False
    except re.error as e:
        logger.info(f"Query {query!r} is not a valid pattern ({e}); matching it literally")
        return re.compile(re.escape(query)), True


def font_size_of(transform) -> float:
    b, d = transform[1], transform[3]
    if b != 0:
        return abs(b)
    if d != 0:
        return abs(d)
    return FALLBACK_FONT_SIZE


def match_rect(run: TextRun, start: int, length: int, page_number: int) -> Rect:
    """Rectangle around run.text[start:start + length], anchored at the run origin."""
    n = len(run["text"])
    run_width = run["width"]
    e, f = run["transform"][4], run["transform"][5]

    char_width = run_width / n
    match_start = (start / n) * run_width
    match_width = (length / n) * run_width
    font_size = font_size_of(run["transform"])

    x1 = e + match_start - char_width * 0.5
    x2 = e + match_start + match_width + char_width * 1.0
    y1 = f - font_size * 0.2
    y2 = f + font_size * 0.8
    return make_rect(x1, y1, x2, y2, page_number)


def _candidate(text: str, rect: Rect, page_number: int, color: str) -> NewHighlight:
    return {
        "content": {"text": text},
        "position": {
            "boundingRect": rect,
            "rects": [dict(rect)],
            "pageNumber": page_number,
            "usePdfCoordinates": True,
        },
        "comment": {
            "text": f"Match: {text}",
            "emoji": SEARCH_MARKER_EMOJI,
            "color": color,
        },
    }


def matches_in_runs(pattern: Pattern, runs: Iterable[TextRun], page_number: int, color: str) -> List[NewHighlight]:
    found: List[NewHighlight] = []
    for run in runs:
        text = run.get("text") or ""
        if not text:
            continue
        for m in pattern.finditer(text):
            matched = m.group(0)
            if not matched:
                continue
            rect = match_rect(run, m.start(), len(matched), page_number)
            logger.debug(f"Match {matched!r} on page {page_number}: {rect}")
            found.append(_candidate(matched, rect, page_number, color))
    return found


async def find_matches(
    query: str,
    color: str,
    source: TextSource,
    page_numbers: Optional[Iterable[int]] = None,
) -> SearchOutcome:
    """Scan pages one at a time, ascending. A page that fails to load is skipped."""
    pattern, literal = compile_query(query)
    outcome = SearchOutcome(query=query, literal_fallback=literal)
    pages = sorted(set(page_numbers)) if page_numbers is not None else range(1, source.num_pages + 1)

    logger.debug(f"Searching {query!r} over {len(pages)} pages")
    for page_number in pages:
        try:
            page = await source.get_page_text(page_number)
        except Exception as e:
            failure = PageExtractionFailure(page_number, e)
            logger.warning(f"{failure}; skipping page")
            outcome.failed_pages.append(failure)
            continue
        outcome.highlights.extend(matches_in_runs(pattern, page["runs"], page_number, color))
    return outcome


class PdfSearch:
    """Runs searches against a store and remembers the last batch of search highlights."""

    def __init__(self):
        self._batch: Set[str] = set()

    @property
    def search_highlight_ids(self) -> Set[str]:
        return set(self._batch)

    @property
    def has_search_highlights(self) -> bool:
        return bool(self._batch)

    def reset(self) -> None:
        self._batch = set()

    async def search_text(
        self,
        query: str,
        color: str,
        source: TextSource,
        store: HighlightStore,
        scroll_to: Optional[Callable[[Highlight], None]] = None,
        page_numbers: Optional[Iterable[int]] = None,
    ) -> SearchOutcome:
        if not query:
            return SearchOutcome(query=query)

        outcome = await find_matches(query, color, source, page_numbers)
        with_ids: List[Highlight] = [dict(h, id=store.next_id()) for h in outcome.highlights]
        outcome.highlights = with_ids

        if not with_ids:
            self._batch = set()
            logger.info(f"No matches found for: {query}")
            return outcome

        store.prepend(with_ids)
        self._batch = {h["id"] for h in with_ids}
        outcome.scroll_target = with_ids[0]
        if scroll_to is not None:
            scroll_to(with_ids[0])
        return outcome

    def clear_search_highlights(self, store: HighlightStore) -> int:
        if not self._batch:
            return 0
        removed = store.remove_ids(self._batch)
        self._batch = set()
        logger.debug(f"Cleared {removed} search highlights")
        return removed
