"""
JSON export/import of highlight lists.

The file is a JSON array of highlight records using the record field names
unchanged (`boundingRect`, `usePdfCoordinates`, `pageNumber`, ...). Imported
records may omit `id`.
"""

import datetime
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pdf_highlighter.core.bbox import normalize_rect
from pdf_highlighter.core.errors import InvalidHighlightDocument

logger = logging.getLogger(__name__)


def dumps_highlights(highlights: Sequence[Dict[str, Any]]) -> str:
    return json.dumps(list(highlights), indent=2, ensure_ascii=False)


def _require(record: Dict[str, Any], key: str, kind, where: str):
    value = record.get(key)
    if not isinstance(value, kind):
        raise InvalidHighlightDocument(f"{where}: '{key}' is missing or malformed")
    return value


def parse_highlight(record: Any, where: str = "highlight") -> Dict[str, Any]:
    """Validate one record and normalize every rect in it."""
    if not isinstance(record, dict):
        raise InvalidHighlightDocument(f"{where}: expected an object")
    position = _require(record, "position", dict, where)
    content = _require(record, "content", dict, where)
    comment = _require(record, "comment", dict, where)

    page = position.get("pageNumber")
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise InvalidHighlightDocument(f"{where}: 'pageNumber' must be a positive integer")
    try:
        bounding = normalize_rect(_require(position, "boundingRect", dict, where), page)
        rects = [normalize_rect(r, page) for r in _require(position, "rects", list, where)]
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidHighlightDocument(f"{where}: bad rect ({e})") from e

    parsed: Dict[str, Any] = {
        "position": {
            "boundingRect": bounding,
            "rects": rects,
            "pageNumber": page,
            "usePdfCoordinates": bool(position.get("usePdfCoordinates", False)),
        },
        "content": {k: str(content[k]) for k in ("text", "image") if content.get(k) is not None},
        "comment": {
            "text": str(comment.get("text", "")),
            "emoji": str(comment.get("emoji", "")),
        },
    }
    if comment.get("color") is not None:
        parsed["comment"]["color"] = str(comment["color"])
    if record.get("id"):
        parsed["id"] = str(record["id"])
    return parsed


def loads_highlights(text: str) -> List[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidHighlightDocument(f"Invalid highlights file: {e}") from e
    if not isinstance(data, list):
        raise InvalidHighlightDocument("Invalid highlights file: expected a JSON array")
    return [parse_highlight(item, f"highlight #{i}") for i, item in enumerate(data)]


def write_highlights(path: Path, highlights: Sequence[Dict[str, Any]]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(dumps_highlights(highlights))
    logger.info(f"Exported {len(highlights)} highlights to {path}")
    return path


def read_highlights(path: Path) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        return loads_highlights(f.read())


def export_file_name(document_name: str, day: Optional[datetime.date] = None) -> str:
    """`highlights-<name>-<YYYY-MM-DD>.json` with the name made filesystem-safe."""
    day = day or datetime.date.today()
    stem = Path(document_name).stem or "document"
    safe = re.sub(r"[^\w.-]+", "_", stem).strip("_") or "document"
    return f"highlights-{safe}-{day.isoformat()}.json"
