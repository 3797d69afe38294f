"""
Shared fixtures and record builders for the test suite.
"""

import pytest

from pdf_highlighter.core.bbox import make_rect
from pdf_highlighter.core.ids import CounterIdGenerator
from pdf_highlighter.core.store import DocumentPartition, HighlightStore
from pdf_highlighter.core.text_source import StaticTextSource, make_run


def make_highlight(highlight_id=None, page=1, x1=10.0, y1=20.0, x2=50.0, y2=32.0, text="sample", comment="note"):
    rect = make_rect(x1, y1, x2, y2, page)
    record = {
        "position": {
            "boundingRect": rect,
            "rects": [dict(rect)],
            "pageNumber": page,
            "usePdfCoordinates": True,
        },
        "content": {"text": text},
        "comment": {"text": comment, "emoji": "💬"},
    }
    if highlight_id is not None:
        record["id"] = highlight_id
    return record


@pytest.fixture
def store() -> HighlightStore:
    return HighlightStore(DocumentPartition(), id_generator=CounterIdGenerator("id-"))


@pytest.fixture
def cat_source() -> StaticTextSource:
    """Three pages; the only run with 'cat' is on page 3."""
    return StaticTextSource([
        [make_run("nothing here", [10, 0, 0, 10, 72, 700], 60)],
        [],
        [make_run("the cat sat", [1, 0, 0, 1, 100, 200], 66)],
    ])


@pytest.fixture
def highlight_factory():
    return make_highlight
