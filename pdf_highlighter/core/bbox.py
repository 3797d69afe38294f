import copy
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pdf_highlighter.core.types import PageViewport, Position, Rect

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

# --- Rect helpers ---

def make_rect(x1: float, y1: float, x2: float, y2: float, page_number: int) -> Rect:
    """The only way a Rect is built: width/height always come from the corners."""
    if int(page_number) < 1:
        raise ValueError(f"Page numbers start at 1, got {page_number}")
    return {
        "x1": x1,
        "x2": x2,
        "y1": y1,
        "y2": y2,
        "width": x2 - x1,
        "height": y2 - y1,
        "pageNumber": int(page_number),
    }


def normalize_rect(rect: Dict, page_number: Optional[int] = None) -> Rect:
    """Order the corners and recompute width/height for a rect from outside."""
    x1, x2 = sorted((float(rect["x1"]), float(rect["x2"])))
    y1, y2 = sorted((float(rect["y1"]), float(rect["y2"])))
    page = page_number if page_number is not None else rect["pageNumber"]
    return make_rect(x1, y1, x2, y2, page)


def union_rects(rects: Sequence[Rect]) -> Rect:
    if not rects:
        raise ValueError("union_rects() needs at least one rect")
    page = rects[0]["pageNumber"]
    if any(r["pageNumber"] != page for r in rects):
        raise ValueError("Cannot union rects from different pages")
    return make_rect(
        min(r["x1"] for r in rects),
        min(r["y1"] for r in rects),
        max(r["x2"] for r in rects),
        max(r["y2"] for r in rects),
        page,
    )


# --- Coordinate helpers ---

def pypdf_to_plumber_y(page_height: float, y_pdf: float) -> float:
    """Convert PDF user-space Y (origin bottom-left, y up) to
    pdfplumber Y (origin top-left, y down). The map is its own inverse."""
    return float(page_height) - float(y_pdf)


def plumber_box_to_rect(box: Sequence[float], page_height: float, page_number: int) -> Rect:
    """[x0, top, x1, bottom] in pdfplumber space -> intrinsic Rect."""
    x0, top, x1, bottom = (float(v) for v in box)
    return make_rect(
        x0,
        pypdf_to_plumber_y(page_height, bottom),
        x1,
        pypdf_to_plumber_y(page_height, top),
        page_number,
    )


def rect_to_plumber_box(rect: Rect, page_height: float) -> List[float]:
    """Intrinsic Rect -> [x0, top, x1, bottom] in pdfplumber space."""
    return [
        rect["x1"],
        pypdf_to_plumber_y(page_height, rect["y2"]),
        rect["x2"],
        pypdf_to_plumber_y(page_height, rect["y1"]),
    ]


# --- Intrinsic <-> display frame ---

def _check_viewport(viewport: PageViewport) -> Tuple[float, float, float, int]:
    width = float(viewport["width"])
    height = float(viewport["height"])
    scale = float(viewport["scale"])
    rotation = int(viewport.get("rotation", 0)) % 360
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid page size: {width}x{height}")
    if scale <= 0:
        raise ValueError(f"Invalid render scale: {scale}")
    if rotation % 90:
        raise ValueError(f"Rotation must be a multiple of 90 degrees, got {viewport['rotation']}")
    return width, height, scale, rotation


def _forward(viewport: PageViewport) -> Callable[[float, float], Point]:
    w, h, s, rotation = _check_viewport(viewport)
    if rotation == 0:
        return lambda x, y: (s * x, s * (h - y))
    if rotation == 90:
        return lambda x, y: (s * y, s * x)
    if rotation == 180:
        return lambda x, y: (s * (w - x), s * y)
    return lambda x, y: (s * (h - y), s * (w - x))


def _inverse(viewport: PageViewport) -> Callable[[float, float], Point]:
    w, h, s, rotation = _check_viewport(viewport)
    if rotation == 0:
        return lambda dx, dy: (dx / s, h - dy / s)
    if rotation == 90:
        return lambda dx, dy: (dy / s, dx / s)
    if rotation == 180:
        return lambda dx, dy: (w - dx / s, dy / s)
    return lambda dx, dy: (w - dy / s, h - dx / s)


def _map_rect(rect: Rect, fn: Callable[[float, float], Point]) -> Rect:
    ax, ay = fn(rect["x1"], rect["y1"])
    bx, by = fn(rect["x2"], rect["y2"])
    return make_rect(min(ax, bx), min(ay, by), max(ax, bx), max(ay, by), rect["pageNumber"])


def _map_position(position: Position, fn: Callable[[float, float], Point], intrinsic: bool) -> Position:
    return {
        "boundingRect": _map_rect(position["boundingRect"], fn),
        "rects": [_map_rect(r, fn) for r in position["rects"]],
        "pageNumber": position["pageNumber"],
        "usePdfCoordinates": intrinsic,
    }


def to_display(position: Position, viewport: PageViewport) -> Position:
    """Intrinsic-frame position -> pixel rects of a render at `viewport`."""
    if not position["usePdfCoordinates"]:
        return copy.deepcopy(position)
    return _map_position(position, _forward(viewport), intrinsic=False)


def to_intrinsic(position: Position, viewport: PageViewport) -> Position:
    """Display-frame position captured at `viewport` -> intrinsic frame."""
    if position["usePdfCoordinates"]:
        return copy.deepcopy(position)
    return _map_position(position, _inverse(viewport), intrinsic=True)


def display_rect_to_intrinsic(rect: Dict, viewport: PageViewport, page_number: Optional[int] = None) -> Rect:
    return _map_rect(normalize_rect(rect, page_number), _inverse(viewport))


# --- Text extraction within bbox ---

def _intersects(bbox, w) -> bool:
    x0, top, x1, bottom = bbox
    return not (w["x1"] <= x0 or w["x0"] >= x1 or w["bottom"] <= top or w["top"] >= bottom)


def _text_from_words_grouped(bbox: List[float], words: List[Dict], line_tol: float = 3.0) -> str:
    inside = [w for w in words if _intersects(bbox, w)]
    if not inside:
        return ""
    inside.sort(key=lambda w: (w["top"], w["x0"]))
    lines: List[List[Dict]] = []
    for w in inside:
        if lines and abs(w["top"] - lines[-1][-1]["top"]) <= line_tol:
            lines[-1].append(w)
        else:
            lines.append([w])
    line_texts = [" ".join(w["text"] for w in line) for line in lines]
    return " ".join(t.strip() for t in line_texts if t.strip())


def extract_text_from_bbox(pl_page, bbox: List[float]) -> str:
    """Best-effort text under a pdfplumber area [x0, top, x1, bottom].
    1) page.within_bbox + extract_text (pdfminer layout order)
    2) fallback to word grouping (y, then x) with line tolerance
    """
    pad = 1.0
    x0 = max(float(bbox[0]) - pad, 0)
    top = max(float(bbox[1]) - pad, 0)
    x1 = min(float(bbox[2]) + pad, float(pl_page.width))
    bottom = min(float(bbox[3]) + pad, float(pl_page.height))
    try:
        cropped = pl_page.within_bbox((x0, top, x1, bottom))
        text = cropped.extract_text()
        if text:
            return " ".join(s.strip() for s in text.splitlines() if s.strip())
    except ValueError as e:
        logger.debug(f"within_bbox failed, falling back to word grouping: {e}")
    words = pl_page.extract_words() or []
    return _text_from_words_grouped([x0, top, x1, bottom], words)
