"""Serializer behavior: Block forest -> Markdown text."""

import pytest

from mdmapper import (
    BLOCK_TYPES,
    CodeBlock,
    CodeContent,
    HeadingBlock,
    HeadingContent,
    ImageBlock,
    ImageContent,
    InvalidBlockError,
    LinkBlock,
    LinkContent,
    ListBlock,
    ListContent,
    ListItemBlock,
    ListItemContent,
    ParagraphBlock,
    ParagraphContent,
    Settings,
    SourceRange,
    TaskItemBlock,
    TaskItemContent,
    TaskListBlock,
    flatten_blocks,
    parse_markdown,
    serialize_blocks,
)
from mdmapper.markdown.serializer import (
    BlockSerializer,
    escape_closing_hashes,
    escape_continuation_lines,
    escape_markdown_text,
    needs_escaping,
    prefix_lines,
    wrap_text,
)

# === HELPERS ===

NOWHERE = SourceRange(start=0, end=0)


def paragraph(text: str) -> ParagraphBlock:
    return ParagraphBlock(content=ParagraphContent(text=text), source_range=NOWHERE)


def code(code_text: str, language: str = "", fence: str | None = "```") -> CodeBlock:
    return CodeBlock(content=CodeContent(language=language, code=code_text, fence=fence), source_range=NOWHERE)


def bullet_list(*texts: str, marker: str = "-") -> ListBlock:
    items = [ListItemBlock(content=ListItemContent(text=t), source_range=NOWHERE) for t in texts]
    return ListBlock(content=ListContent(marker=marker), source_range=NOWHERE, children=items)


def reformat(markdown: str, **settings) -> str:
    return serialize_blocks(parse_markdown(markdown), Settings(**settings))


# === 1. DISPATCH ===


class TestDispatch:
    def test_every_block_type_has_a_handler(self):
        """Adding a block type without a serializer handler fails here."""
        assert BlockSerializer(Settings()).handled_types == set(BLOCK_TYPES)

    def test_empty_forest(self):
        assert serialize_blocks([]) == ""

    def test_blocks_separated_by_blank_line(self):
        assert serialize_blocks([paragraph("a"), paragraph("b")]) == "a\n\nb"


# === 2. LEAF BLOCKS ===


class TestHeadings:
    @pytest.mark.parametrize("level", [1, 2, 3])
    def test_atx(self, level):
        block = HeadingBlock(content=HeadingContent(level=level, text="Hi"), source_range=NOWHERE)
        assert serialize_blocks([block]) == "#" * level + " Hi"

    def test_empty_heading(self):
        block = HeadingBlock(content=HeadingContent(level=2, text=""), source_range=NOWHERE)
        assert serialize_blocks([block]) == "##"

    def test_multiline_text_uses_setext(self):
        block = HeadingBlock(content=HeadingContent(level=1, text="a\nb"), source_range=NOWHERE)
        assert serialize_blocks([block]) == "a\nb\n==="

    def test_multiline_level_three_joined(self):
        block = HeadingBlock(content=HeadingContent(level=3, text="a\nb"), source_range=NOWHERE)
        assert serialize_blocks([block]) == "### a b"

    @pytest.mark.parametrize(
        "text, expected",
        [("#", "# \\#"), ("C #", "# C \\#"), ("Title ##", "# Title #\\#"), ("C#", "# C#")],
    )
    def test_trailing_hashes_escaped(self, text, expected):
        """A trailing '#' run would be read back as the closing sequence."""
        block = HeadingBlock(content=HeadingContent(level=1, text=text), source_range=NOWHERE)
        assert serialize_blocks([block]) == expected

    def test_hash_only_heading_is_stable(self):
        first = reformat("# # # ")
        assert first == "# \\#"
        assert reformat(first) == first

    def test_setext_heading_with_trailing_hashes(self):
        first = reformat("text   ##\n---")
        assert first == "## text   #\\#"
        assert parse_markdown(first)[0].content.text == "text   #\\#"
        assert reformat(first) == first


class TestCode:
    def test_fence_and_language(self):
        assert serialize_blocks([code("x = 1", "python")]) == "```python\nx = 1\n```"

    def test_fence_lengthened_past_inner_backticks(self):
        """Code containing the fence gets a longer one."""
        output = serialize_blocks([code("```\nx\n```", "md")])
        assert output == "````md\n```\nx\n```\n````"

    def test_tilde_fence_kept(self):
        assert serialize_blocks([code("x", fence="~~~")]) == "~~~\nx\n~~~"

    def test_info_string_starting_with_fence_char(self):
        """'~~~' glued to a '~~~x' info string would read as a longer fence."""
        assert serialize_blocks([code("code", "~~~x", fence="~~~")]) == "~~~ ~~~x\ncode\n~~~"
        assert reformat("~~~ ~~~x\ncode\n~~~") == "~~~ ~~~x\ncode\n~~~"
        assert parse_markdown("~~~ ~~~x\ncode\n~~~")[0].content.language == "~~~x"

    def test_indented_code_written_fenced(self):
        assert serialize_blocks([code("x", fence=None)]) == "```\nx\n```"

    def test_empty_code(self):
        assert serialize_blocks([code("")]) == "```\n```"

    def test_front_matter_only_at_document_start(self):
        front = code("k: v", "yaml", fence="---")
        assert serialize_blocks([front, paragraph("a")]) == "---\nk: v\n---\n\na"
        assert serialize_blocks([paragraph("a"), front]) == "a\n\n```yaml\nk: v\n```"


class TestLinksAndImages:
    def test_link(self):
        block = LinkBlock(content=LinkContent(text="docs", href="http://x.com"), source_range=NOWHERE)
        assert serialize_blocks([block]) == "[docs](http://x.com)"

    def test_link_with_space_in_destination(self):
        block = LinkBlock(content=LinkContent(text="a", href="my file.md"), source_range=NOWHERE)
        assert serialize_blocks([block]) == "[a](<my file.md>)"

    def test_image_title_escaped(self):
        block = ImageBlock(content=ImageContent(src="x.png", alt="a", title='say "hi"'), source_range=NOWHERE)
        output = serialize_blocks([block])
        assert output == '![a](x.png "say \\"hi\\"")'
        assert parse_markdown(output)[0].content.title == 'say "hi"'


# === 3. CONTAINERS ===


class TestLists:
    def test_ordered_numbering(self):
        assert reformat("3. a\n4. b\n5. c") == "3. a\n4. b\n5. c"

    def test_marker_preserved(self):
        assert reformat("* a\n* b") == "* a\n* b"
        assert reformat("1) a") == "1) a"

    def test_marker_normalized_without_preserve(self):
        assert reformat("* a\n* b", preserve_formatting=False) == "- a\n- b"
        assert reformat("1) a", preserve_formatting=False) == "1. a"

    def test_nested_indent_follows_marker_width(self):
        assert reformat("10. a\n    - b") == "10. a\n    - b"

    def test_adjacent_lists_get_distinct_markers(self):
        """Two sibling lists must not merge into one when re-read."""
        output = serialize_blocks([bullet_list("a"), bullet_list("b")])
        assert output == "- a\n\n* b"
        assert [b.type for b in parse_markdown(output)] == ["list", "list"]

    def test_task_items(self):
        items = [
            TaskItemBlock(content=TaskItemContent(checked=True, text="done"), source_range=NOWHERE),
            TaskItemBlock(content=TaskItemContent(text="todo"), source_range=NOWHERE),
        ]
        block = TaskListBlock(source_range=NOWHERE, children=items)
        assert serialize_blocks([block]) == "- [x] done\n- [ ] todo"

    def test_item_with_paragraph_child(self):
        assert reformat("- item\n\n  more") == "- item\n\n  more"

    def test_item_without_text(self):
        assert reformat("-\n  > q") == "-\n  > q"

    def test_lazy_underline_stays_text(self):
        """A lazy '===' line indented under the marker would underline a heading."""
        first = reformat("- a\nb\n===")
        assert first == "- a\n  b\n  \\==="
        item = parse_markdown(first)[0].children[0]
        assert item.content.text == "a\nb\n\\==="
        assert item.children is None
        assert reformat(first) == first

    def test_lazy_delimiter_row_stays_text(self):
        """Indented under the marker, a lazy '|---|' line would complete a table header."""
        first = reformat("1. |---|:-:|\n|---|:-:|")
        assert first == "1. |---|:-:|\n   \\|---|:-:|"
        assert [b.type for b in flatten_blocks(parse_markdown(first))] == ["list", "listItem"]
        assert reformat(first) == first


class TestQuotes:
    def test_blank_lines_keep_marker(self):
        assert reformat("> a\n>\n> b") == "> a\n>\n> b"

    def test_nested_quotes(self):
        assert reformat("> outer\n> > inner") == "> outer\n>\n> > inner"


# === 4. FORMATTING SETTINGS ===


class TestWrapping:
    def test_wrap_when_not_preserving(self):
        text = "one two three four five six seven eight"
        output = reformat(text, wrap_width=20, preserve_formatting=False)
        assert output == "one two three four\nfive six seven eight"

    def test_wrap_off_by_default(self):
        text = "one two three four five six seven eight"
        assert reformat(text, wrap_width=20) == text

    def test_never_starts_line_with_block_syntax(self):
        output = wrap_text("alpha beta - gamma", 10)
        assert output == "alpha beta -\ngamma"
        assert all(not line.startswith("-") for line in output.split("\n"))

    def test_wrapped_paragraph_reparses_as_paragraph(self):
        text = "word " * 30 + "1. not a list # nor heading"
        output = reformat(text, wrap_width=12, preserve_formatting=False)
        assert [b.type for b in parse_markdown(output)] == ["paragraph"]


class TestHelpers:
    def test_prefix_lines(self):
        assert prefix_lines("a\n\nb", "> ") == "> a\n>\n> b"
        assert prefix_lines("a\n\nb", "  ", "") == "  a\n\n  b"


class TestEscaping:
    def test_needs_escaping(self):
        assert not needs_escaping("plain words")
        assert needs_escaping("1. item")
        assert needs_escaping("a_b")

    def test_escape_markdown_text(self):
        assert escape_markdown_text("1. *a*") == "1\\. \\*a\\*"
        assert escape_markdown_text("plain") == "plain"

    def test_escaped_text_reads_as_paragraph(self):
        for text in ("# not a heading", "- not a list", "1. not ordered"):
            assert parse_markdown(escape_markdown_text(text))[0].type == "paragraph"

    def test_escape_closing_hashes(self):
        assert escape_closing_hashes("a ##  ") == "a #\\#"
        assert escape_closing_hashes("C#") == "C#"
        assert escape_closing_hashes("a #\\#") == "a #\\#"

    def test_escape_continuation_lines(self):
        text = "===\n===\n|-|-|\n  ---\n---x\n:-"
        assert escape_continuation_lines(text) == "===\n\\===\n\\|-|-|\n  \\---\n---x\n\\:-"


# === 5. INPUT VALIDATION ===


class TestDictInput:
    def test_camel_case_dicts_accepted(self):
        data = [{"type": "heading", "content": {"level": 2, "text": "Hi"}, "sourceRange": {"start": 0, "end": 5}}]
        assert serialize_blocks(data) == "## Hi"

    def test_invalid_dict_raises(self):
        data = [{"type": "bogus", "content": {}, "sourceRange": {"start": 0, "end": 1}}]
        with pytest.raises(InvalidBlockError) as excinfo:
            serialize_blocks(data)
        assert excinfo.value.problems
        assert excinfo.value.to_dict()["error"] == "InvalidBlockError"
