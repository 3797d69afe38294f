import argparse
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pdf_highlighter.core.search import DEFAULT_SEARCH_COLOR

logger = logging.getLogger(__name__)

# Limits and filters
MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB
ALLOWED_EXTENSIONS = [".pdf"]
HIGHLIGHT_FILE_EXTENSIONS = [".json"]

# Used when no directory is passed on the command line
DEFAULT_SEARCH_DIRECTORIES = [
    os.path.expanduser("~/Downloads"),
    os.path.expanduser("~/Desktop"),
    os.path.expanduser("~/Documents"),
    os.getcwd(),
]

# Set by setup_search_directories() at startup
SEARCH_DIRECTORIES: List[str] = []
SEARCH_COLOR: str = DEFAULT_SEARCH_COLOR


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse CLI arguments: accessible directories, limits, logging and search colour."""
    parser = argparse.ArgumentParser(
        description="PDF Highlighter MCP Server - highlights, comments and text search for PDFs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "\nExamples:\n"
            "  python main.py ~/Downloads ~/Documents\n"
            "  python main.py --allow-dir ~/Work --allow-dir /shared/pdfs\n"
            "  python main.py ~/Papers --search-color '#ffd54f' --log-level DEBUG\n"
        ),
    )

    parser.add_argument(
        "directories",
        nargs="*",
        help="Accessible directories for PDFs and highlight files (space-separated)",
    )
    parser.add_argument(
        "--allow-dir",
        action="append",
        dest="allowed_dirs",
        help="Allow one more directory (repeatable)",
    )
    parser.add_argument(
        "--max-file-size",
        type=int,
        default=100 * 1024 * 1024,
        help="Maximum file size in bytes (default: 100MB)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--search-color",
        default=DEFAULT_SEARCH_COLOR,
        help=f"Default colour for search highlights (default: {DEFAULT_SEARCH_COLOR})",
    )

    return parser.parse_args(argv)


def _is_within(base: str, target: str) -> bool:
    base = os.path.join(os.path.realpath(base), "")  # ensure trailing separator
    target = os.path.realpath(target)
    return target.startswith(base) or target == base[:-1]


def setup_search_directories(args) -> None:
    """Configure SEARCH_DIRECTORIES, MAX_FILE_SIZE and SEARCH_COLOR from parsed args.
    Falls back to DEFAULT_SEARCH_DIRECTORIES when none are provided.
    """
    global MAX_FILE_SIZE, SEARCH_COLOR

    MAX_FILE_SIZE = int(args.max_file_size)
    SEARCH_COLOR = getattr(args, "search_color", None) or DEFAULT_SEARCH_COLOR

    provided: List[str] = []
    if getattr(args, "directories", None):
        provided.extend(args.directories)
    if getattr(args, "allowed_dirs", None):
        provided.extend(args.allowed_dirs)

    if not provided:
        logger.info("No directories given; using the default search directories.")
        provided = list(DEFAULT_SEARCH_DIRECTORIES)

    validated: List[str] = []
    for d in provided:
        real_path = os.path.realpath(os.path.abspath(os.path.expanduser(d)))
        if not os.path.isdir(real_path):
            logger.warning(f"Not a directory, skipped: {d} -> {real_path}")
            continue
        if not os.access(real_path, os.R_OK):
            logger.warning(f"Unreadable directory, skipped: {d} -> {real_path}")
            continue
        if real_path not in validated:
            validated.append(real_path)

    # mutate in place: other modules hold a reference to this list
    SEARCH_DIRECTORIES.clear()
    SEARCH_DIRECTORIES.extend(validated)
    logger.info(f"Configured {len(SEARCH_DIRECTORIES)} accessible directories")


def _expand(file_path: str) -> str:
    if file_path.startswith("~"):
        return os.path.expanduser(file_path)
    return os.path.abspath(file_path)


def validate_and_resolve_path(file_path: str, extensions: Iterable[str] = ALLOWED_EXTENSIONS) -> Optional[Path]:
    """Validate an existing file inside the allowed directories and return its absolute Path."""
    real_path = os.path.realpath(_expand(file_path))

    # inside an allowed directory, no ".." components
    is_safe = any(_is_within(allowed, real_path) for allowed in SEARCH_DIRECTORIES)
    if not is_safe or ".." in Path(file_path).parts:
        logger.warning(f"Security risk detected (outside allowed directories): {file_path}")
        return None

    resolved = Path(real_path)
    if not resolved.is_file():
        return None
    if resolved.suffix.lower() not in extensions:
        logger.warning(f"Disallowed file extension: {file_path}")
        return None
    if resolved.stat().st_size > MAX_FILE_SIZE:
        logger.warning(f"File too large: {file_path}")
        return None
    return resolved


def find_file(file_name: str, extensions: Iterable[str] = ALLOWED_EXTENSIONS) -> Optional[Path]:
    """Absolute path, exact name, or case-insensitive substring match inside the allowed directories."""
    extensions = list(extensions)
    if os.path.isabs(file_name) or file_name.startswith("~"):
        return validate_and_resolve_path(file_name, extensions)

    for directory in SEARCH_DIRECTORIES:
        dir_path = Path(directory)
        path = validate_and_resolve_path(str(dir_path / file_name), extensions)
        if path:
            return path
        # Fuzzy match
        for ext in extensions:
            for candidate in sorted(dir_path.glob(f"*{ext}")):
                if file_name.lower() in candidate.name.lower():
                    path = validate_and_resolve_path(str(candidate), extensions)
                    if path:
                        return path

    logger.warning(f"File not found: {file_name}")
    return None


def resolve_output_path(file_name: str, default_dir: Optional[Path] = None) -> Optional[Path]:
    """Where an exported highlight file may be written: inside an allowed directory, .json only."""
    if os.path.isabs(file_name) or file_name.startswith("~"):
        candidate = Path(_expand(file_name))
    else:
        base = default_dir or (Path(SEARCH_DIRECTORIES[0]) if SEARCH_DIRECTORIES else None)
        if base is None:
            return None
        candidate = Path(base) / file_name

    if ".." in Path(file_name).parts:
        logger.warning(f"Security risk detected (path traversal): {file_name}")
        return None
    real_parent = os.path.realpath(candidate.parent)
    if not any(_is_within(allowed, real_parent) for allowed in SEARCH_DIRECTORIES):
        logger.warning(f"Security risk detected (outside allowed directories): {file_name}")
        return None
    if candidate.suffix.lower() not in HIGHLIGHT_FILE_EXTENSIONS:
        logger.warning(f"Disallowed file extension: {file_name}")
        return None
    return Path(real_parent) / candidate.name


def list_documents(limit: int = 50) -> List[Dict]:
    """PDFs directly inside each allowed directory, most recent first."""
    limit_clamped = max(1, min(int(limit), 200))
    found: List[Dict] = []
    for directory in SEARCH_DIRECTORIES:
        files = [p for p in Path(directory).glob("*.pdf") if p.is_file()]
        files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        for pdf in files[:limit_clamped]:
            found.append({
                "name": pdf.name,
                "document_id": str(pdf.resolve()),
                "directory": directory,
                "size_mb": round(pdf.stat().st_size / 1024**2, 2),
            })
    return found
