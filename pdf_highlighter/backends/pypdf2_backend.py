from pathlib import Path
from typing import List, Optional
import logging
import PyPDF2

from pdf_highlighter.core.bbox import make_rect, union_rects
from pdf_highlighter.core.page_range import parse_page_numbers
from pdf_highlighter.core.types import NewHighlight, Rect

logger = logging.getLogger(__name__)

EMBEDDED_MARKER_EMOJI = "📝"


def _get_popup_contents(obj) -> str:
    popup = obj.get("/Popup")
    if popup is None:
        return ""
    return popup.get_object().get("/Contents", "") or ""


def _color_hex(obj) -> Optional[str]:
    """/C with three components in 0..1 -> #rrggbb. Other colour spaces are ignored."""
    c = obj.get("/C")
    if not c or len(c) != 3:
        return None
    return "#" + "".join(f"{max(0, min(255, round(float(v) * 255))):02x}" for v in c)


def _quad_rects(obj, page_number: int) -> List[Rect]:
    rects: List[Rect] = []
    quads = obj.get("/QuadPoints")
    if quads is not None and len(quads) >= 8:
        for i in range(0, len(quads) - 7, 8):
            xs = [float(quads[i + k]) for k in (0, 2, 4, 6)]
            ys = [float(quads[i + k]) for k in (1, 3, 5, 7)]
            rects.append(make_rect(min(xs), min(ys), max(xs), max(ys), page_number))
        return rects
    rect = obj.get("/Rect")
    if rect and len(rect) >= 4:
        x0, y0, x1, y1 = (float(v) for v in rect[:4])
        rects.append(make_rect(min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1), page_number))
    return rects


def read_embedded_highlights(pdf_path: Path, page_range: Optional[str] = None) -> List[NewHighlight]:
    """
    /Highlight annotations stored in the PDF as intrinsic-frame records.

    Rects come straight from /QuadPoints (or /Rect) in PDF user space; the
    annotation note becomes the comment. content.text is left empty for the
    pdfplumber backend to fill in.
    """
    items: List[NewHighlight] = []
    try:
        with open(pdf_path, "rb") as f:
            reader = PyPDF2.PdfReader(f)
            for page_number in parse_page_numbers(len(reader.pages), page_range):
                page = reader.pages[page_number - 1]
                if "/Annots" not in page:
                    continue
                for annot in page["/Annots"]:
                    obj = annot.get_object()
                    subtype = str(obj.get("/Subtype", "")).lstrip("/").lower()
                    if subtype != "highlight":
                        continue
                    rects = _quad_rects(obj, page_number)
                    if not rects:
                        continue

                    note = obj.get("/Contents", "") or obj.get("/RC", "") or _get_popup_contents(obj) or ""
                    comment = {"text": str(note), "emoji": EMBEDDED_MARKER_EMOJI}
                    color = _color_hex(obj)
                    if color:
                        comment["color"] = color

                    items.append({
                        "position": {
                            "boundingRect": union_rects(rects),
                            "rects": rects,
                            "pageNumber": page_number,
                            "usePdfCoordinates": True,
                        },
                        "content": {},
                        "comment": comment,
                    })
    except Exception as e:
        logger.error(f"PyPDF2 extraction failed for {pdf_path}: {e}")
        raise
    return items
