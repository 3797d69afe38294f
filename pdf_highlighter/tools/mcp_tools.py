import json
import logging
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from pdf_highlighter.core import paths as _paths
from pdf_highlighter.core.bbox import make_rect, normalize_rect
from pdf_highlighter.core.errors import HighlightError
from pdf_highlighter.core.paths import (
    ALLOWED_EXTENSIONS,
    HIGHLIGHT_FILE_EXTENSIONS,
    find_file,
    resolve_output_path,
)
from pdf_highlighter.core.serialization import export_file_name, read_highlights, write_highlights
from pdf_highlighter.core.session import HighlightSession
from pdf_highlighter.core.store import DocumentPartition, HighlightStore
from pdf_highlighter.backends.pdfplumber_backend import (
    PdfPlumberTextSource,
    fill_highlight_text,
    read_highlight_text as backend_read_highlight_text,
)
from pdf_highlighter.backends.pypdf2_backend import read_embedded_highlights

logger = logging.getLogger(__name__)

mcp = FastMCP("PDF Highlighter")

# Highlights of every document opened during this server's lifetime.
_store = HighlightStore(DocumentPartition())
_session: Optional[HighlightSession] = None

_TOOL_ERRORS = (HighlightError, ValueError, OSError, RuntimeError)


def _dump(data) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _active_session() -> HighlightSession:
    if _session is None:
        raise RuntimeError("No document is open. Call open_document first.")
    return _session


def _active_path() -> Path:
    return Path(_active_session().active_document_id)


def shutdown() -> None:
    """Flush the active document's highlights and release its text source."""
    if _session is not None:
        _session.close()
        logger.info("Highlight session closed")


# ---------- Documents ----------
@mcp.tool()
async def open_document(file_path: str) -> str:
    """Open a PDF and make it the active document.

    The highlights of the previously active document are kept and come back
    when that document is opened again.
    """
    global _session
    path = find_file(file_path)
    if not path:
        return (
            "Error: Could not find file '{file}'. Provide an absolute path or place the file within the configured accessible directories."
        ).format(file=file_path)
    try:
        source = PdfPlumberTextSource(path)
    except Exception as e:
        return f"Error: {e}"

    document_id = str(path)
    if _session is None:
        _session = HighlightSession(document_id, store=_store, text_source=source)
    else:
        _session.load_document(document_id, text_source=source)
    return _dump({
        "document_id": document_id,
        "file_name": path.name,
        "total_pages": source.num_pages,
        "total_highlights": len(_session.highlights),
    })


@mcp.tool()
async def list_documents(limit: int = 50) -> str:
    """List PDFs in the accessible directories (most recent first) and which have highlights."""
    docs = _paths.list_documents(limit)
    for doc in docs:
        entry = _store.partition.get(doc["document_id"])
        if _session is not None and doc["document_id"] == _session.active_document_id:
            entry = _session.highlights
        doc["highlights"] = len(entry or [])
        doc["active"] = _session is not None and doc["document_id"] == _session.active_document_id
    return _dump({"total_documents": len(docs), "documents": docs})


# ---------- Search ----------
@mcp.tool()
async def search_text(query: str, color: Optional[str] = None, page_range: Optional[str] = None) -> str:
    """Highlight every match of `query` in the active document.

    `query` is a regular expression; if it does not compile it is matched as
    literal text. A new search replaces the set of highlights that
    `clear_search_highlights` removes. `page_range`: `first`, `last`, `N`,
    `S-E`, or omit for all pages.
    """
    try:
        outcome = await _active_session().search(query, color or _paths.SEARCH_COLOR, page_range)
    except _TOOL_ERRORS as e:
        return f"Error: {e}"
    if not outcome.matched:
        failed = f" ({len(outcome.failed_pages)} pages could not be read)" if outcome.failed_pages else ""
        return f"No matches found for: {query}{failed}"
    result = outcome.to_dict()
    result["scroll_to"] = outcome.scroll_target["id"]
    return _dump(result)


@mcp.tool()
async def clear_search_highlights() -> str:
    """Remove the highlights created by the most recent search. Manual highlights stay."""
    try:
        removed = _active_session().clear_search_highlights()
    except _TOOL_ERRORS as e:
        return f"Error: {e}"
    return _dump({"removed": removed, "total_highlights": len(_active_session().highlights)})


# ---------- Highlights ----------
@mcp.tool()
async def add_highlight(
    page_number: int,
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    comment: str = "",
    emoji: str = "",
    color: Optional[str] = None,
    text: Optional[str] = None,
) -> str:
    """Add a highlight over a rectangle given in PDF points (origin bottom-left).

    When `text` is omitted the words under the rectangle are used.
    """
    try:
        session = _active_session()
        source = session.text_source
        if source is not None and not 1 <= page_number <= source.num_pages:
            raise ValueError(f"Page {page_number} out of range (1-{source.num_pages})")
        rect = normalize_rect(make_rect(x1, y1, x2, y2, page_number))
        new = {
            "position": {"boundingRect": rect, "rects": [dict(rect)], "pageNumber": page_number, "usePdfCoordinates": True},
            "content": {"text": text} if text else {},
            "comment": {"text": comment, "emoji": emoji},
        }
        if color:
            new["comment"]["color"] = color
        if not text:
            fill_highlight_text(_active_path(), [new])
        record = session.add_highlight(new)
    except _TOOL_ERRORS as e:
        return f"Error: {e}"
    return _dump(record)


@mcp.tool()
async def update_highlight(
    highlight_id: str,
    x1: Optional[float] = None,
    y1: Optional[float] = None,
    x2: Optional[float] = None,
    y2: Optional[float] = None,
    text: Optional[str] = None,
    image: Optional[str] = None,
) -> str:
    """Move a highlight's bounding rectangle (PDF points) and/or replace its text or image.

    Coordinates left out keep their current value; the comment is never changed.
    """
    try:
        session = _active_session()
        current = session.store.get(highlight_id)["position"]["boundingRect"]
        position_patch = {}
        if any(v is not None for v in (x1, y1, x2, y2)):
            position_patch["boundingRect"] = normalize_rect({
                "x1": current["x1"] if x1 is None else x1,
                "y1": current["y1"] if y1 is None else y1,
                "x2": current["x2"] if x2 is None else x2,
                "y2": current["y2"] if y2 is None else y2,
                "pageNumber": current["pageNumber"],
            })
        content_patch = {}
        if text is not None:
            content_patch["text"] = text
        if image is not None:
            content_patch["image"] = image
        record = session.update_highlight(highlight_id, position_patch, content_patch)
    except _TOOL_ERRORS as e:
        return f"Error: {e}"
    return _dump(record)


@mcp.tool()
async def remove_highlight(highlight_id: str) -> str:
    """Delete one highlight from the active document."""
    try:
        _active_session().remove_highlight(highlight_id)
    except _TOOL_ERRORS as e:
        return f"Error: {e}"
    return f"Removed highlight {highlight_id}."


@mcp.tool()
async def reset_highlights() -> str:
    """Delete every highlight of the active document."""
    try:
        session = _active_session()
        count = len(session.highlights)
        session.reset_highlights()
    except _TOOL_ERRORS as e:
        return f"Error: {e}"
    return f"Removed {count} highlights from '{_active_path().name}'."


@mcp.tool()
async def list_highlights(search_only: bool = False) -> str:
    """Highlights of the active document, newest first."""
    try:
        session = _active_session()
    except _TOOL_ERRORS as e:
        return f"Error: {e}"
    items = session.highlights
    if search_only:
        ids = session.search_state.search_highlight_ids
        items = [h for h in items if h["id"] in ids]
    return _dump({
        "document_id": session.active_document_id,
        "total_highlights": len(items),
        "has_search_highlights": session.has_search_highlights,
        "highlights": items,
    })


@mcp.tool()
async def read_highlight_text(highlight_id: str) -> str:
    """Text currently lying under a highlight's rectangles."""
    try:
        highlight = _active_session().store.get(highlight_id)
        text = backend_read_highlight_text(_active_path(), highlight)
    except _TOOL_ERRORS as e:
        return f"Error: {e}"
    return _dump({"id": highlight_id, "text": text})


# ---------- Export / import ----------
@mcp.tool()
async def export_highlights(file_name: Optional[str] = None) -> str:
    """Write the active document's highlights to a JSON file.

    Defaults to `highlights-<document>-<date>.json` next to the PDF.
    """
    try:
        session = _active_session()
        highlights = session.export_highlights()
        if not highlights:
            return "No highlights to export."
        pdf_path = _active_path()
        target = resolve_output_path(file_name or export_file_name(pdf_path.name), default_dir=pdf_path.parent)
        if target is None:
            return f"Error: Cannot write '{file_name}'. Use a .json name inside the accessible directories."
        write_highlights(target, highlights)
    except _TOOL_ERRORS as e:
        return f"Error: {e}"
    return _dump({"path": str(target), "total_highlights": len(highlights)})


@mcp.tool()
async def import_highlights(file_name: str, dedupe_on_content: bool = False) -> str:
    """Merge highlights from a JSON file into the active document.

    Highlights whose id already exists are skipped; records without an id get
    a new one. Set `dedupe_on_content` to also skip id-less records that
    duplicate an existing highlight's position and content.
    """
    path = find_file(file_name, HIGHLIGHT_FILE_EXTENSIONS)
    if not path:
        return f"Error: Could not find file '{file_name}'."
    try:
        records = read_highlights(path)
        added = _active_session().import_highlights(records, dedupe_on_content=dedupe_on_content)
    except _TOOL_ERRORS as e:
        return f"Error: {e}"
    return _dump({"file_name": path.name, "read": len(records), "imported": added})


@mcp.tool()
async def import_pdf_annotations(page_range: Optional[str] = None, dedupe_on_content: bool = True) -> str:
    """Import /Highlight annotations stored inside the active PDF, with the text they cover."""
    try:
        pdf_path = _active_path()
        records = fill_highlight_text(pdf_path, read_embedded_highlights(pdf_path, page_range))
        added = _active_session().import_highlights(records, dedupe_on_content=dedupe_on_content)
    except _TOOL_ERRORS as e:
        return f"Error: {e}"
    if not records:
        return f"No highlight annotations found in '{pdf_path.name}' (scope: {page_range or 'all'})."
    return _dump({"file_name": pdf_path.name, "found": len(records), "imported": added})


@mcp.tool()
async def show_accessible_directories() -> str:
    """Return the current directory/configuration constraints as JSON."""
    info = {
        "accessible_directories": _paths.SEARCH_DIRECTORIES,
        "directory_count": len(_paths.SEARCH_DIRECTORIES),
        "max_file_size_mb": _paths.MAX_FILE_SIZE // (1024 * 1024),
        "allowed_extensions": ALLOWED_EXTENSIONS + HIGHLIGHT_FILE_EXTENSIONS,
        "search_color": _paths.SEARCH_COLOR,
    }
    return _dump(info)
