"""GFM tables: reading cells from source and rendering padded rows."""

import pytest

from mdmapper import Settings, TableBlock, TableCell, TableContent, parse_markdown, serialize_blocks
from mdmapper.markdown.tables import read_table, render_table, split_row


def cells(row: list[TableCell]) -> list[str]:
    return [cell.text for cell in row]


# === 1. PARSING ===


class TestParsing:
    def test_headers_and_rows(self):
        block = parse_markdown("| a | b |\n| --- | --- |\n| 1 | 2 |")[0]
        assert isinstance(block, TableBlock)
        assert cells(block.content.headers) == ["a", "b"]
        assert [cells(row) for row in block.content.rows] == [["1", "2"]]
        assert block.content.alignments == [None, None]

    def test_alignments(self):
        block = parse_markdown("| L | C | R |\n|:--|:-:|--:|\n| a | b | c |")[0]
        assert block.content.alignments == ["left", "center", "right"]

    def test_ragged_rows(self):
        """Short rows are padded, long rows keep their extra cells."""
        block = parse_markdown("| a | b |\n| --- | --- |\n| 1 |\n| 1 | 2 | 3 |")[0]
        assert [cells(row) for row in block.content.rows] == [["1", ""], ["1", "2", "3"]]

    def test_escaped_pipe_stays_in_cell(self):
        block = parse_markdown("| a \\| b | c |\n| --- | --- |")[0]
        assert cells(block.content.headers) == ["a \\| b", "c"]

    def test_source_kept(self):
        text = "| a | b |\n| --- | --- |\n| 1 | 2 |"
        assert parse_markdown(text)[0].content.source == text

    def test_table_in_list_item(self):
        block = parse_markdown("- item\n\n  | a | b |\n  | - | - |\n  | 1 | 2 |")[0]
        table = block.children[0].children[0]
        assert isinstance(table, TableBlock)
        assert cells(table.content.headers) == ["a", "b"]
        assert table.content.source is None


class TestSplitRow:
    @pytest.mark.parametrize(
        "line,expected",
        [
            ("| a | b |", ["a", "b"]),
            ("a | b", ["a", "b"]),
            ("| a |  |", ["a", ""]),
            ("| `x\\|y` | z |", ["`x\\|y`", "z"]),
        ],
    )
    def test_split(self, line, expected):
        assert split_row(line) == expected

    def test_not_a_table(self):
        assert read_table(["| a | b |", "| --- |"]) is None
        assert read_table(["| a |"]) is None


# === 2. SERIALIZATION ===


class TestRendering:
    def test_padded_columns(self):
        table = TableContent(
            headers=[TableCell(text="Name"), TableCell(text="n")],
            rows=[[TableCell(text="x"), TableCell(text="12345")]],
        )
        assert render_table(table) == "| Name | n     |\n| ---- | ----- |\n| x    | 12345 |"

    def test_alignment_tokens(self):
        text = "| Left | Center | Right |\n|:-----|:------:|------:|\n| a | b | c |"
        output = serialize_blocks(parse_markdown(text), Settings(preserve_formatting=False))
        assert output == "| Left | Center | Right |\n| :--- | :----: | ----: |\n| a    | b      | c     |"

    def test_ragged_rows_widen_table(self):
        text = "| a | b |\n| --- | --- |\n| 1 |\n| 1 | 2 | 3 |"
        output = serialize_blocks(parse_markdown(text), Settings(preserve_formatting=False))
        assert output == "| a   | b   |     |\n| --- | --- | --- |\n| 1   |     |     |\n| 1   | 2   | 3   |"

    def test_preserve_keeps_source(self):
        text = "|a|b|\n|-|-|\n|1|2|"
        assert serialize_blocks(parse_markdown(text)) == text

    def test_edited_table_is_rerendered(self):
        """A stale source is ignored once the cells no longer match it."""
        block = parse_markdown("| a | b |\n| --- | --- |\n| 1 | 2 |")[0]
        content = block.content.model_copy(update={"rows": [[TableCell(text="9"), TableCell(text="2")]]})
        edited = block.model_copy(update={"content": content})
        assert serialize_blocks([edited]) == "| a   | b   |\n| --- | --- |\n| 9   | 2   |"

