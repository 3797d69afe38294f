"""Tests for page range parsing"""

import pytest

from pdf_highlighter.core.page_range import parse_page_numbers


@pytest.mark.parametrize("page_range, expected", [
    (None, [1, 2, 3, 4, 5]),
    ("all", [1, 2, 3, 4, 5]),
    ("first", [1]),
    ("last", [5]),
    ("3", [3]),
    ("2-4", [2, 3, 4]),
    ("4-", [4, 5]),
    ("-2", [1, 2]),
    ("3-99", [3, 4, 5]),
    (" LAST ", [5]),
])
def test_valid(page_range, expected):
    assert parse_page_numbers(5, page_range) == expected


@pytest.mark.parametrize("page_range", ["0", "6", "x", "4-2", "7-9", "1-b"])
def test_invalid(page_range):
    with pytest.raises(ValueError):
        parse_page_numbers(5, page_range)


def test_empty_document():
    assert parse_page_numbers(0, "first") == []
