#!/usr/bin/env python3
"""
PDF Highlighter MCP Server
Highlights with comments, regex/text search that turns matches into
highlights, and JSON export/import, kept per PDF for the life of the server.
"""

import logging
import sys

from pdf_highlighter.core import paths as _paths
from pdf_highlighter.tools import mcp_tools

# --- Basic Configuration ---
# stderr only: stdout carries the MCP stdio transport
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
)
logger = logging.getLogger("PDFHighlighter")


def run(argv=None):
    args = _paths.parse_arguments(argv)
    logging.getLogger().setLevel(getattr(logging, args.log_level))
    _paths.setup_search_directories(args)

    if not _paths.SEARCH_DIRECTORIES:
        logger.error("No valid directories found! Server cannot operate.")
        sys.exit(1)

    logger.info("Starting PDF Highlighter MCP Server...")
    logger.info(f"Accessible directories: {_paths.SEARCH_DIRECTORIES}")
    logger.info(f"Maximum file size: {_paths.MAX_FILE_SIZE // (1024 * 1024)} MB")

    try:
        mcp_tools.mcp.run()
    finally:
        mcp_tools.shutdown()


if __name__ == "__main__":
    run()
