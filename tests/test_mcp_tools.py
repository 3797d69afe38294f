"""Tests for the MCP tool functions, run against in-memory text sources"""

import json
import os

import pytest

from pdf_highlighter.core import paths as _paths
from pdf_highlighter.core.ids import CounterIdGenerator
from pdf_highlighter.core.store import DocumentPartition, HighlightStore
from pdf_highlighter.core.text_source import StaticTextSource, make_run
from pdf_highlighter.tools import mcp_tools


@pytest.fixture
def workspace(tmp_path, monkeypatch, cat_source):
    root = os.path.realpath(tmp_path)
    for name in ("paper.pdf", "other.pdf"):
        with open(os.path.join(root, name), "wb") as f:
            f.write(b"%PDF-1.4\n")

    monkeypatch.setattr(_paths, "SEARCH_DIRECTORIES", [root])
    monkeypatch.setattr(mcp_tools, "_store", HighlightStore(DocumentPartition(), id_generator=CounterIdGenerator("t")))
    monkeypatch.setattr(mcp_tools, "_session", None)

    sources = {"paper.pdf": cat_source, "other.pdf": StaticTextSource([[make_run("cat", [1, 0, 0, 1, 0, 0], 30)]])}
    monkeypatch.setattr(mcp_tools, "PdfPlumberTextSource", lambda path: sources[path.name])
    return root


async def _open(name):
    return json.loads(await mcp_tools.open_document(name))


class TestWithoutDocument:
    @pytest.mark.asyncio
    async def test_tools_report_missing_document(self, workspace):
        assert (await mcp_tools.list_highlights()).startswith("Error: No document is open")
        assert (await mcp_tools.search_text("cat")).startswith("Error:")
        assert (await mcp_tools.remove_highlight("x")).startswith("Error:")

    @pytest.mark.asyncio
    async def test_unknown_file(self, workspace):
        assert (await mcp_tools.open_document("missing.pdf")).startswith("Error: Could not find file")

    @pytest.mark.asyncio
    async def test_accessible_directories(self, workspace):
        info = json.loads(await mcp_tools.show_accessible_directories())
        assert info["accessible_directories"] == [workspace]
        assert ".json" in info["allowed_extensions"]


class TestSearchTools:
    @pytest.mark.asyncio
    async def test_search_and_clear(self, workspace):
        opened = await _open("paper.pdf")
        assert opened["total_pages"] == 3

        result = json.loads(await mcp_tools.search_text("cat", color="#00ff00"))
        assert result["total_matches"] == 1
        assert result["scroll_to"] == "t1"
        assert result["highlights"][0]["comment"]["color"] == "#00ff00"

        listed = json.loads(await mcp_tools.list_highlights(search_only=True))
        assert listed["has_search_highlights"] is True
        assert [h["id"] for h in listed["highlights"]] == ["t1"]

        cleared = json.loads(await mcp_tools.clear_search_highlights())
        assert cleared == {"removed": 1, "total_highlights": 0}

    @pytest.mark.asyncio
    async def test_default_color_and_no_match(self, workspace, monkeypatch):
        monkeypatch.setattr(_paths, "SEARCH_COLOR", "#123456")
        await _open("paper.pdf")
        assert (await mcp_tools.search_text("dog")) == "No matches found for: dog"
        result = json.loads(await mcp_tools.search_text("sat"))
        assert result["highlights"][0]["comment"]["color"] == "#123456"

    @pytest.mark.asyncio
    async def test_bad_page_range(self, workspace):
        await _open("paper.pdf")
        assert (await mcp_tools.search_text("cat", page_range="9")).startswith("Error:")


class TestHighlightTools:
    @pytest.mark.asyncio
    async def test_add_update_remove(self, workspace):
        await _open("paper.pdf")
        added = json.loads(await mcp_tools.add_highlight(1, 50, 40, 10, 20, comment="why", text="given"))
        assert added["id"] == "t1"
        rect = added["position"]["boundingRect"]
        assert (rect["x1"], rect["y1"], rect["x2"], rect["y2"]) == (10, 20, 50, 40)

        updated = json.loads(await mcp_tools.update_highlight("t1", x2=80, text="changed"))
        assert updated["position"]["boundingRect"]["x2"] == 80
        assert updated["position"]["boundingRect"]["width"] == 70
        assert updated["content"]["text"] == "changed"
        assert updated["comment"]["text"] == "why"

        assert (await mcp_tools.remove_highlight("t1")) == "Removed highlight t1."
        assert (await mcp_tools.remove_highlight("t1")) == "Error: Highlight not found: t1"

    @pytest.mark.asyncio
    async def test_page_outside_document(self, workspace):
        await _open("paper.pdf")
        assert (await mcp_tools.add_highlight(0, 10, 20, 50, 40, text="x")).startswith("Error:")
        assert (await mcp_tools.add_highlight(99, 10, 20, 50, 40, text="x")).startswith("Error: Page 99 out of range")
        assert json.loads(await mcp_tools.list_highlights())["total_highlights"] == 0

    @pytest.mark.asyncio
    async def test_documents_keep_their_highlights(self, workspace):
        await _open("paper.pdf")
        await mcp_tools.add_highlight(1, 10, 20, 50, 40, text="on paper")
        await _open("other.pdf")
        assert json.loads(await mcp_tools.list_highlights())["total_highlights"] == 0

        docs = {d["name"]: d for d in json.loads(await mcp_tools.list_documents())["documents"]}
        assert docs["paper.pdf"]["highlights"] == 1
        assert docs["other.pdf"]["active"] is True

        reopened = await _open("paper.pdf")
        assert reopened["total_highlights"] == 1

    @pytest.mark.asyncio
    async def test_reset(self, workspace):
        await _open("paper.pdf")
        await mcp_tools.search_text("t")
        assert (await mcp_tools.reset_highlights()) == "Removed 4 highlights from 'paper.pdf'."
        assert json.loads(await mcp_tools.list_highlights())["has_search_highlights"] is False


class TestExportImport:
    @pytest.mark.asyncio
    async def test_export_then_import_into_other_document(self, workspace):
        await _open("paper.pdf")
        assert (await mcp_tools.export_highlights()) == "No highlights to export."
        await mcp_tools.add_highlight(1, 10, 20, 50, 40, text="kept")

        exported = json.loads(await mcp_tools.export_highlights("saved.json"))
        assert exported["path"] == os.path.join(workspace, "saved.json")

        await _open("other.pdf")
        imported = json.loads(await mcp_tools.import_highlights("saved.json"))
        assert imported == {"file_name": "saved.json", "read": 1, "imported": 1}
        again = json.loads(await mcp_tools.import_highlights("saved.json"))
        assert again["imported"] == 0

    @pytest.mark.asyncio
    async def test_default_export_name(self, workspace):
        await _open("paper.pdf")
        await mcp_tools.add_highlight(1, 10, 20, 50, 40, text="kept")
        exported = json.loads(await mcp_tools.export_highlights())
        assert os.path.basename(exported["path"]).startswith("highlights-paper-")

    @pytest.mark.asyncio
    async def test_export_outside_directories(self, workspace):
        await _open("paper.pdf")
        await mcp_tools.add_highlight(1, 10, 20, 50, 40, text="kept")
        assert (await mcp_tools.export_highlights("../escape.json")).startswith("Error: Cannot write")
        assert (await mcp_tools.export_highlights("notes.txt")).startswith("Error: Cannot write")

    @pytest.mark.asyncio
    async def test_import_invalid_file(self, workspace):
        await _open("paper.pdf")
        with open(os.path.join(workspace, "broken.json"), "w", encoding="utf-8") as f:
            f.write('{"not": "a list"}')
        assert (await mcp_tools.import_highlights("broken.json")).startswith("Error:")
