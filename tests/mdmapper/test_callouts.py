"""Callouts: typed blockquotes in admonition and emoji form."""

import pytest

from mdmapper import (
    CalloutBlock,
    CalloutContent,
    QuoteBlock,
    Settings,
    SourceRange,
    configure_settings,
    parse_markdown,
    serialize_blocks,
)
from mdmapper.markdown.dialects import callout_header_line, match_callout_header

EMOJI = {
    "note": "\u2139\ufe0f",
    "info": "\U0001f4a1",
    "tip": "\U0001f4dd",
    "warning": "\u26a0\ufe0f",
    "danger": "\u274c",
}


def callout(type_: str, title: str | None = None, text: str = "") -> CalloutBlock:
    return CalloutBlock(content=CalloutContent(type=type_, title=title, text=text), source_range=SourceRange(start=0, end=0))


# === 1. PARSING ===


class TestAdmonitionParsing:
    @pytest.mark.parametrize("tag", ["NOTE", "TIP", "WARNING", "DANGER", "INFO", "note", "Tip"])
    def test_known_tags(self, tag):
        block = parse_markdown(f"> [!{tag}]\n> Body")[0]
        assert isinstance(block, CalloutBlock)
        assert block.content.type == tag.lower()
        assert block.content.title is None
        assert block.content.text == "Body"

    def test_title_on_header_line(self):
        block = parse_markdown("> [!WARNING] Be careful\n> Really.")[0]
        assert block.content.title == "Be careful"
        assert block.content.text == "Really."

    def test_multiline_body(self):
        block = parse_markdown("> [!NOTE]\n> one\n>\n> two")[0]
        assert block.content.text == "one\n\ntwo"

    def test_unknown_tag_stays_quote(self):
        block = parse_markdown("> [!INVALID]\n> text")[0]
        assert isinstance(block, QuoteBlock)
        assert block.content.text == "[!INVALID]\ntext"

    def test_callout_nested_in_quote(self):
        block = parse_markdown("> outer\n> > [!TIP] inner")[0]
        assert isinstance(block, QuoteBlock)
        assert block.children[1].type == "callout"
        assert block.children[1].content.title == "inner"


class TestEmojiParsing:
    @pytest.mark.parametrize("type_", sorted(EMOJI))
    def test_each_emoji(self, type_):
        block = parse_markdown(f"> {EMOJI[type_]} {type_.capitalize()}: Title\n> Body")[0]
        assert block.content.type == type_
        assert block.content.title == "Title"
        assert block.content.text == "Body"

    def test_emoji_decides_type(self):
        """The emoji wins over the word after it."""
        block = parse_markdown("> \u26a0\ufe0f Note: careful")[0]
        assert block.content.type == "warning"

    def test_variation_selector_optional(self):
        block = parse_markdown("> \u26a0 warning: careful")[0]
        assert block.content.type == "warning"

    def test_emoji_without_type_word_is_quote(self):
        block = parse_markdown("> \U0001f4a1 just an idea")[0]
        assert isinstance(block, QuoteBlock)


class TestHeaderMatching:
    def test_returns_style(self):
        assert match_callout_header("[!TIP] x").style == "admonition"
        assert match_callout_header(f"{EMOJI['tip']} tip: x").style == "emoji"

    def test_plain_line(self):
        assert match_callout_header("Just text") is None


# === 2. SERIALIZATION ===


class TestSerialization:
    def test_admonition_default(self):
        assert serialize_blocks([callout("tip", text="Hi")]) == "> [!TIP]\n> Hi"

    def test_title_and_body(self):
        assert serialize_blocks([callout("danger", "Stop", "Now")]) == "> [!DANGER] Stop\n> Now"

    def test_header_only(self):
        assert serialize_blocks([callout("note")]) == "> [!NOTE]"

    def test_blank_body_lines_prefixed(self):
        assert serialize_blocks([callout("info", text="a\n\nb")]) == "> [!INFO]\n> a\n>\n> b"

    @pytest.mark.parametrize("type_", sorted(EMOJI))
    def test_emoji_header(self, type_):
        assert callout_header_line(type_, None, "emoji") == f"{EMOJI[type_]} {type_}:"

    def test_emoji_from_process_settings(self):
        """configure_settings switches the style for later serialize calls."""
        configure_settings({"calloutsStyle": "emoji"})
        output = serialize_blocks(parse_markdown("> [!TIP]\n> Hi"))
        assert output == f"> {EMOJI['tip']} tip:\n> Hi"
        assert "[!TIP]" not in output

    def test_explicit_settings_win(self):
        configure_settings(callouts_style="emoji")
        output = serialize_blocks([callout("tip", text="Hi")], Settings())
        assert output == "> [!TIP]\n> Hi"

    @pytest.mark.parametrize("style", ["admonition", "emoji"])
    def test_style_roundtrip(self, style):
        """Either style reads back as the same callout."""
        original = callout("warning", "Careful", "Body text")
        output = serialize_blocks([original], Settings(callouts_style=style))
        reparsed = parse_markdown(output)[0]
        assert reparsed.content == original.content
