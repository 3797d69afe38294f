import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Sequence

import pdfplumber

from pdf_highlighter.core.bbox import extract_text_from_bbox, rect_to_plumber_box
from pdf_highlighter.core.types import Highlight, PageText, TextRun

logger = logging.getLogger(__name__)

# Gap (points) between two glyphs on one baseline that still counts as the same run.
X_TOLERANCE = 3.0
BASELINE_TOLERANCE = 0.5


def _same_run(prev: Dict, ch: Dict) -> bool:
    if prev.get("fontname") != ch.get("fontname") or prev.get("size") != ch.get("size"):
        return False
    pm, cm = prev["matrix"], ch["matrix"]
    if tuple(pm[:4]) != tuple(cm[:4]):
        return False
    if abs(float(pm[5]) - float(cm[5])) > BASELINE_TOLERANCE:
        return False
    gap = float(ch["x0"]) - float(prev["x1"])
    return -BASELINE_TOLERANCE <= gap <= X_TOLERANCE


def _to_run(chars: List[Dict]) -> TextRun:
    first, last = chars[0], chars[-1]
    return {
        "text": "".join(c["text"] for c in chars),
        "transform": [float(v) for v in first["matrix"]],
        "width": float(last["x1"]) - float(first["x0"]),
    }


def runs_from_chars(chars: Sequence[Dict]) -> List[TextRun]:
    """Group pdfplumber chars (content-stream order) into runs sharing one transform."""
    runs: List[TextRun] = []
    current: List[Dict] = []
    for ch in chars:
        if not ch.get("text"):
            continue
        if current and not _same_run(current[-1], ch):
            runs.append(_to_run(current))
            current = []
        current.append(ch)
    if current:
        runs.append(_to_run(current))
    return runs


def page_text_from_plumber(pl_page, page_number: int) -> PageText:
    return {
        "pageNumber": page_number,
        "width": float(pl_page.width),
        "height": float(pl_page.height),
        "runs": runs_from_chars(pl_page.chars),
    }


class PdfPlumberTextSource:
    """TextSource reading runs from a PDF file, one page per call."""

    def __init__(self, pdf_path: Path):
        self.pdf_path = Path(pdf_path)
        try:
            with pdfplumber.open(self.pdf_path) as pdf:
                self.num_pages = len(pdf.pages)
        except Exception as e:
            logger.error(f"pdfplumber failed to open {self.pdf_path}: {e}")
            raise

    def _read_page(self, page_number: int) -> PageText:
        if page_number < 1 or page_number > self.num_pages:
            raise IndexError(f"Page {page_number} out of range (1-{self.num_pages})")
        with pdfplumber.open(self.pdf_path) as pdf:
            return page_text_from_plumber(pdf.pages[page_number - 1], page_number)

    async def get_page_text(self, page_number: int) -> PageText:
        return await asyncio.to_thread(self._read_page, page_number)


def _text_under(pl_page, highlight: Highlight) -> str:
    page_h = float(pl_page.height)
    rects = highlight["position"]["rects"] or [highlight["position"]["boundingRect"]]
    spans = [extract_text_from_bbox(pl_page, rect_to_plumber_box(r, page_h)) for r in rects]
    return " ".join(s for s in spans if s).strip()


def fill_highlight_text(pdf_path: Path, highlights: List[Highlight]) -> List[Highlight]:
    """Set content.text from the words under each intrinsic-frame highlight that has none."""
    pending = [
        h for h in highlights
        if not h["content"].get("text") and not h["content"].get("image") and h["position"]["usePdfCoordinates"]
    ]
    if not pending:
        return highlights
    try:
        with pdfplumber.open(pdf_path) as pdf:
            for h in pending:
                page_index = h["position"]["pageNumber"] - 1
                if page_index < 0 or page_index >= len(pdf.pages):
                    continue
                text = _text_under(pdf.pages[page_index], h)
                if text:
                    h["content"]["text"] = text
    except Exception as e:
        logger.error(f"pdfplumber text mapping failed for {pdf_path}: {e}")
        raise
    return highlights


def read_highlight_text(pdf_path: Path, highlight: Highlight) -> str:
    """Text currently under one intrinsic-frame highlight."""
    page_index = highlight["position"]["pageNumber"] - 1
    with pdfplumber.open(pdf_path) as pdf:
        if page_index < 0 or page_index >= len(pdf.pages):
            raise ValueError(f"Page {page_index + 1} out of range (1-{len(pdf.pages)})")
        return _text_under(pdf.pages[page_index], highlight)
