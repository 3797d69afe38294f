"""Tests for match geometry and the search batch"""

import asyncio
import logging

import pytest

from pdf_highlighter.core.search import (
    FALLBACK_FONT_SIZE,
    SEARCH_MARKER_EMOJI,
    PdfSearch,
    compile_query,
    find_matches,
    font_size_of,
    match_rect,
)
from pdf_highlighter.core.text_source import StaticTextSource, make_run


class _FlakySource:
    """Page 2 fails, page 1 is slow; results must still come back in page order."""

    num_pages = 3

    def __init__(self):
        self.calls = []

    async def get_page_text(self, page_number):
        self.calls.append(page_number)
        if page_number == 1:
            await asyncio.sleep(0.01)
        if page_number == 2:
            raise OSError("broken content stream")
        return {
            "pageNumber": page_number,
            "width": 612.0,
            "height": 792.0,
            "runs": [make_run(f"page {page_number} text", [12, 0, 0, 12, 72, 700], 90)],
        }


class TestGeometry:
    def test_worked_example(self):
        run = make_run("the cat sat", [1, 0, 0, 1, 100, 200], 66)
        rect = match_rect(run, 4, 3, page_number=3)

        char_width = 66 / 11
        match_start = (4 / 11) * 66
        match_width = (3 / 11) * 66
        assert rect["x1"] == 100 + match_start - char_width * 0.5
        assert rect["x1"] == pytest.approx(121)
        assert rect["x2"] == 100 + match_start + match_width + char_width * 1.0
        assert rect["y1"] == 200 - 1 * 0.2
        assert rect["y2"] == 200 + 1 * 0.8
        assert rect["width"] == rect["x2"] - rect["x1"]
        assert rect["height"] == rect["y2"] - rect["y1"]
        assert rect["pageNumber"] == 3

    @pytest.mark.parametrize("transform, expected", [
        ([1, 9, 0, 1, 0, 0], 9),
        ([1, -7, 0, 1, 0, 0], 7),
        ([1, 0, 0, 1, 0, 0], 1),
        ([1, 0, 0, -14, 0, 0], 14),
        ([1, 0, 0, 0, 0, 0], FALLBACK_FONT_SIZE),
    ])
    def test_font_size(self, transform, expected):
        assert font_size_of(transform) == expected


class TestCompileQuery:
    def test_regex(self):
        pattern, literal = compile_query(r"c.t")
        assert literal is False
        assert pattern.search("cut")

    def test_invalid_regex_falls_back(self, caplog):
        with caplog.at_level(logging.INFO):
            pattern, literal = compile_query("a(")
        assert literal is True
        assert pattern.search("xa(y").group(0) == "a("
        assert not pattern.search("a")
        assert "literally" in caplog.text


class TestFindMatches:
    @pytest.mark.asyncio
    async def test_cat_example(self, cat_source):
        outcome = await find_matches("cat", "#00ff00", cat_source)
        assert len(outcome.highlights) == 1
        h = outcome.highlights[0]
        assert h["content"] == {"text": "cat"}
        assert h["position"]["pageNumber"] == 3
        assert h["position"]["usePdfCoordinates"] is True
        assert h["position"]["rects"] == [h["position"]["boundingRect"]]
        assert h["position"]["boundingRect"]["x1"] == pytest.approx(121)
        assert h["comment"] == {"text": "Match: cat", "emoji": SEARCH_MARKER_EMOJI, "color": "#00ff00"}
        assert "id" not in h

    @pytest.mark.asyncio
    async def test_all_non_overlapping_matches(self):
        source = StaticTextSource([[make_run("aaaa", [1, 0, 0, 1, 0, 0], 40)]])
        outcome = await find_matches("aa", "red", source)
        xs = [h["position"]["boundingRect"]["x1"] for h in outcome.highlights]
        assert xs == [0 - 5.0, 20 - 5.0]

    @pytest.mark.asyncio
    async def test_empty_matches_and_runs_are_skipped(self):
        source = StaticTextSource([[make_run("", [1, 0, 0, 1, 0, 0], 0), make_run("abc", [1, 0, 0, 1, 0, 0], 30)]])
        outcome = await find_matches("x*", "red", source)
        assert outcome.highlights == []

    @pytest.mark.asyncio
    async def test_literal_fallback_is_reported(self):
        source = StaticTextSource([[make_run("f(a(b)", [1, 0, 0, 1, 0, 0], 60)]])
        outcome = await find_matches("a(", "red", source)
        assert outcome.literal_fallback is True
        assert [h["content"]["text"] for h in outcome.highlights] == ["a("]

    @pytest.mark.asyncio
    async def test_failed_page_is_skipped_in_order(self):
        source = _FlakySource()
        outcome = await find_matches("text", "red", source)
        assert source.calls == [1, 2, 3]
        assert [h["position"]["pageNumber"] for h in outcome.highlights] == [1, 3]
        assert [f.page_number for f in outcome.failed_pages] == [2]
        assert isinstance(outcome.failed_pages[0].cause, OSError)

    @pytest.mark.asyncio
    async def test_page_subset(self, cat_source):
        outcome = await find_matches("t", "red", cat_source, page_numbers=[3, 1])
        assert {h["position"]["pageNumber"] for h in outcome.highlights} == {1, 3}
        assert outcome.highlights[0]["position"]["pageNumber"] == 1


class TestPdfSearch:
    @pytest.mark.asyncio
    async def test_search_prepends_and_scrolls(self, store, cat_source, highlight_factory):
        store.add(highlight_factory("manual"))
        scrolled = []
        search = PdfSearch()

        outcome = await search.search_text("cat", "#ff0000", cat_source, store, scroll_to=scrolled.append)

        assert outcome.matched
        assert [h["id"] for h in store.highlights] == ["id-1", "manual"]
        assert scrolled == [outcome.highlights[0]]
        assert outcome.scroll_target is outcome.highlights[0]
        assert search.search_highlight_ids == {"id-1"}

    @pytest.mark.asyncio
    async def test_no_matches(self, store, cat_source):
        scrolled = []
        search = PdfSearch()
        outcome = await search.search_text("dog", "#ff0000", cat_source, store, scroll_to=scrolled.append)
        assert not outcome.matched
        assert outcome.scroll_target is None
        assert scrolled == []
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_empty_query_is_ignored(self, store, cat_source):
        search = PdfSearch()
        await search.search_text("cat", "red", cat_source, store)
        outcome = await search.search_text("", "red", cat_source, store)
        assert not outcome.matched
        assert search.has_search_highlights

    @pytest.mark.asyncio
    async def test_new_search_replaces_batch(self, store, cat_source):
        search = PdfSearch()
        await search.search_text("cat", "red", cat_source, store)
        await search.search_text("sat", "red", cat_source, store)
        assert search.search_highlight_ids == {"id-2"}

        assert search.clear_search_highlights(store) == 1
        assert [h["content"]["text"] for h in store.highlights] == ["cat"]

    @pytest.mark.asyncio
    async def test_clear_keeps_manual_and_is_idempotent(self, store, cat_source, highlight_factory):
        search = PdfSearch()
        store.add(highlight_factory("manual"))
        await search.search_text("the|sat", "red", cat_source, store)
        assert len(store) == 3

        assert search.clear_search_highlights(store) == 2
        after_first = list(store.highlights)
        assert search.clear_search_highlights(store) == 0
        assert store.highlights == after_first
        assert [h["id"] for h in store.highlights] == ["manual"]
        assert not search.has_search_highlights

    @pytest.mark.asyncio
    async def test_results_keep_match_order(self, store):
        source = StaticTextSource([
            [make_run("b a", [1, 0, 0, 1, 0, 0], 30)],
            [make_run("a", [1, 0, 0, 1, 0, 0], 10)],
        ])
        search = PdfSearch()
        outcome = await search.search_text("[ab]", "red", source, store)
        assert [(h["position"]["pageNumber"], h["content"]["text"]) for h in store.highlights] == [
            (1, "b"), (1, "a"), (2, "a"),
        ]
        assert outcome.scroll_target["content"]["text"] == "b"
