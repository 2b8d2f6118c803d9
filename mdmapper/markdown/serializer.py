"""Serialize a Block forest back to Markdown.

Output is canonical rather than byte-identical: re-parsing it yields the same
blocks, and serializing those again yields the same text.
"""

import re
from collections.abc import Callable, Sequence
from typing import Any

from loguru import logger
from pydantic import ValidationError

from mdmapper.config import Settings, resolve_settings
from mdmapper.exceptions import InvalidBlockError
from mdmapper.markdown.dialects import TOGGLE_LIST_MARKER, callout_header_line
from mdmapper.markdown.parser import has_front_matter
from mdmapper.markdown.tables import read_table, render_table, same_table
from mdmapper.models import (
    Block,
    BlockListAdapter,
    CalloutBlock,
    CodeBlock,
    HeadingBlock,
    ImageBlock,
    LinkBlock,
    ListBlock,
    ListItemBlock,
    ParagraphBlock,
    QuoteBlock,
    TableBlock,
    TaskItemBlock,
    TaskListBlock,
    ToggleBlock,
)
from mdmapper.tree import fold, walk

BLOCK_SEPARATOR = "\n\n"
DEFAULT_FENCE = "```"
# Thematic break used when "---" would open front matter
ALTERNATE_DIVIDER = "***"

_BULLETS = ("-", "*", "+")
_DELIMITERS = (".", ")")

# Words that would turn into block syntax at the start of a line
_WRAP_UNSAFE = re.compile(r"^(?:#{1,6}|[-+*]|\d{1,9}[.)]|=+|-+|_+|\*+)$|^(?:>|```|~~~|\||<)")

# A "#" run after whitespace at the end of a heading is read as its closing sequence
_CLOSING_HASHES = re.compile(r"(?:^|[ \t])#+[ \t]*$")

# Lazy continuation lines that become a setext underline or a table delimiter
# row once indented under a list marker
_UNDERLINE_OR_DELIMITER = re.compile(r"^[ \t]*(?:=+|[ \t|:-]*-[ \t|:-]*)$")

_MARKDOWN_SPECIAL = re.compile(r"[\\`*_\[\]()#+\-.!]")

Handler = Callable[[Any, list[str]], str]


def needs_escaping(text: str) -> bool:
    """True if ``text`` contains characters Markdown may read as syntax."""
    return _MARKDOWN_SPECIAL.search(text) is not None


def escape_markdown_text(text: str) -> str:
    """Backslash-escape every Markdown special character in plain text.

    Meant for callers building blocks from text that must render literally,
    e.g. ``ParagraphContent(text=escape_markdown_text("1. not a list"))``.
    """
    return _MARKDOWN_SPECIAL.sub(lambda match: "\\" + match.group(0), text)


def escape_closing_hashes(text: str) -> str:
    """Escape a trailing ``#`` run so it stays part of the heading text."""
    if not _CLOSING_HASHES.search(text):
        return text
    text = text.rstrip(" \t")
    return text[:-1] + "\\#"


def escape_continuation_lines(text: str) -> str:
    """Escape lines after the first that would turn the text into a heading or table.

    Container items keep lazy continuation lines as plain text; indented under
    the marker, ``===`` or ``|---|`` would start a setext heading or a table.
    """
    lines = text.split("\n")
    for index in range(1, len(lines)):
        line = lines[index]
        if _UNDERLINE_OR_DELIMITER.match(line):
            indent = len(line) - len(line.lstrip(" \t"))
            lines[index] = line[:indent] + "\\" + line[indent:]
    return "\n".join(lines)


def prefix_lines(text: str, prefix: str, empty: str | None = None) -> str:
    """Prefix every line; blank lines get ``empty`` (default: the stripped prefix)."""
    blank = prefix.rstrip() if empty is None else empty
    return "\n".join(prefix + line if line else blank for line in text.split("\n"))


def indent_continuation(body: str, first: str, width: int) -> str:
    """Put ``first`` before the first line and indent the rest by ``width``."""
    head, newline, rest = body.partition("\n")
    line = f"{first} {head}" if head else first
    if not newline:
        return line
    return line + "\n" + prefix_lines(rest, " " * width, "")


def wrap_text(text: str, width: int) -> str:
    """Greedy reflow that never starts a line with block syntax."""
    words = text.split()
    lines: list[str] = []
    current = ""
    for word in words:
        if not current:
            current = word
        elif len(current) + 1 + len(word) <= width or _WRAP_UNSAFE.match(word):
            current += " " + word
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return "\n".join(lines)


def _fence_for(code: str, fence: str) -> str:
    char = fence[0]
    longest = max((len(run) for run in re.findall(re.escape(char) + "+", code)), default=0)
    return fence if longest < len(fence) else char * (longest + 1)


def _destination(href: str) -> str:
    return f"<{href}>" if any(ch.isspace() for ch in href) else href


def _title(title: str | None) -> str:
    if title is None:
        return ""
    escaped = title.replace("\\", "\\\\").replace('"', '\\"')
    return f' "{escaped}"'


class BlockSerializer:
    """Renders blocks with the dialect choices of one ``Settings`` value."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._handlers: dict[str, Handler] = {
            "paragraph": self._paragraph,
            "heading": self._heading,
            "divider": self._divider,
            "list": self._list,
            "listItem": self._item,
            "taskList": self._list,
            "taskItem": self._item,
            "quote": self._quote,
            "code": self._code,
            "table": self._table,
            "image": self._image,
            "link": self._link,
            "callout": self._callout,
            "toggle": self._toggle,
        }
        self._markers: dict[int, str] = {}
        self._front_matter_id: int | None = None

    @property
    def handled_types(self) -> set[str]:
        return set(self._handlers)

    def serialize(self, blocks: list[Block]) -> str:
        if not blocks:
            return ""
        self._front_matter_id = id(blocks[0])
        self._assign_markers(blocks)
        output = BLOCK_SEPARATOR.join(fold(blocks, self._render))
        if blocks[0].type == "divider" and has_front_matter(output):
            output = ALTERNATE_DIVIDER + output[len("---") :]
        return output

    def _render(self, block: Block, children: list[str] | None) -> str:
        return self._handlers[block.type](block, children or [])

    # === LIST MARKERS ===

    def _list_kind(self, block: Block) -> tuple[str, str] | None:
        """(kind, marker char) for blocks rendered as a Markdown list."""
        if isinstance(block, (ListBlock, TaskListBlock)):
            preserved = block.content.marker if self.settings.preserve_formatting else None
            if block.content.ordered:
                return "ordered", preserved if preserved in _DELIMITERS else "."
            return "bullet", preserved if preserved in _BULLETS else "-"
        if isinstance(block, ToggleBlock) and self.settings.toggles_syntax == "list":
            return "bullet", "-"
        return None

    def _assign_markers(self, blocks: list[Block]) -> None:
        """Pick list markers so adjacent sibling lists don't merge when re-read."""
        groups = [blocks] + [visit.block.children for visit in walk(blocks) if visit.block.children]
        for group in groups:
            previous: tuple[str, str, str] | None = None
            for block in group:
                kind = self._list_kind(block)
                if kind is None:
                    previous = None
                    continue
                list_kind, marker = kind
                if previous and previous[0] == list_kind and previous[1] == marker:
                    both_toggles = previous[2] == "toggle" and block.type == "toggle"
                    if not both_toggles:
                        options = _DELIMITERS if list_kind == "ordered" else _BULLETS
                        marker = next(m for m in options if m != previous[1])
                self._markers[id(block)] = marker
                previous = (list_kind, marker, block.type)

    # === HANDLERS ===

    def _paragraph(self, block: ParagraphBlock, children: list[str]) -> str:
        text = escape_continuation_lines(block.content.text)
        if self.settings.wrap_width > 0 and not self.settings.preserve_formatting:
            return wrap_text(text, self.settings.wrap_width)
        return text

    def _heading(self, block: HeadingBlock, children: list[str]) -> str:
        text, level = block.content.text, block.content.level
        if "\n" in text:
            if level <= 2:
                return text + "\n" + ("===" if level == 1 else "---")
            text = " ".join(line.strip() for line in text.split("\n"))
        text = escape_closing_hashes(text)
        hashes = "#" * level
        return f"{hashes} {text}" if text else hashes

    def _divider(self, block: Block, children: list[str]) -> str:
        return "---"

    def _item(self, block: ListItemBlock | TaskItemBlock, children: list[str]) -> str:
        """Item body without its list marker; the list adds the marker."""
        text = escape_continuation_lines(block.content.text)
        if isinstance(block, TaskItemBlock):
            box = "[x]" if block.content.checked else "[ ]"
            text = f"{box} {text}" if text else box

        body = text
        for index, (child, rendered) in enumerate(zip(block.children or [], children)):
            if index == 0 and not text:
                # Content starts on the line after a bare marker
                body = "\n" + rendered
            elif isinstance(child, (ListBlock, TaskListBlock)):
                body += "\n" + rendered
            else:
                body += BLOCK_SEPARATOR + rendered
        return body

    def _list(self, block: ListBlock | TaskListBlock, children: list[str]) -> str:
        marker = self._markers.get(id(block), "-")
        lines = []
        for index, body in enumerate(children):
            if block.content.ordered:
                number = (block.content.start_number if block.content.start_number is not None else 1) + index
                bullet = f"{number}{marker}"
            else:
                bullet = marker
            lines.append(indent_continuation(body, bullet, len(bullet) + 1))
        return "\n".join(lines)

    def _quote(self, block: QuoteBlock, children: list[str]) -> str:
        inner = BLOCK_SEPARATOR.join(children) if children else block.content.text
        return prefix_lines(inner, "> ")

    def _callout(self, block: CalloutBlock, children: list[str]) -> str:
        content = block.content
        header = callout_header_line(content.type, content.title, self.settings.callouts_style)
        inner = f"{header}\n{content.text}" if content.text else header
        return prefix_lines(inner, "> ")

    def _code(self, block: CodeBlock, children: list[str]) -> str:
        content = block.content
        if content.fence == "---" and id(block) == self._front_matter_id:
            return f"---\n{content.code}\n---" if content.code else "---\n---"
        fence = _fence_for(content.code, content.fence if content.fence and content.fence != "---" else DEFAULT_FENCE)
        language = content.language
        if language.startswith(fence[0]):
            # Glued on, it would lengthen the fence
            language = " " + language
        if not content.code:
            return f"{fence}{language}\n{fence}"
        return f"{fence}{language}\n{content.code}\n{fence}"

    def _table(self, block: TableBlock, children: list[str]) -> str:
        content = block.content
        if self.settings.preserve_formatting and content.source:
            reread = read_table(content.source.split("\n"))
            if reread is not None and same_table(reread, content):
                return content.source
            logger.debug(f"Table {block.id} changed since parsing, re-rendering")
        return render_table(content)

    def _image(self, block: ImageBlock, children: list[str]) -> str:
        content = block.content
        return f"![{content.alt}]({_destination(content.src)}{_title(content.title)})"

    def _link(self, block: LinkBlock, children: list[str]) -> str:
        content = block.content
        return f"[{content.text}]({_destination(content.href)}{_title(content.title)})"

    def _toggle(self, block: ToggleBlock, children: list[str]) -> str:
        summary = block.content.summary
        if self.settings.toggles_syntax == "list":
            marker = self._markers.get(id(block), "-")
            head = f"{marker} {TOGGLE_LIST_MARKER} {summary}" if summary else f"{marker} {TOGGLE_LIST_MARKER}"
            if not children:
                return head
            return head + "\n\n" + prefix_lines(BLOCK_SEPARATOR.join(children), "  ", "")

        opening = f"<details><summary>{summary}</summary>"
        if not children:
            return f"{opening}</details>"
        return opening + BLOCK_SEPARATOR + BLOCK_SEPARATOR.join(children) + BLOCK_SEPARATOR + "</details>"


def _coerce_blocks(blocks: Sequence[Block | dict[str, Any]]) -> list[Block]:
    if all(not isinstance(block, dict) for block in blocks):
        return list(blocks)  # type: ignore[arg-type]
    try:
        return BlockListAdapter.validate_python([block for block in blocks])
    except ValidationError as e:
        raise InvalidBlockError(f"Invalid block data: {e}", problems=[err["msg"] for err in e.errors()]) from e


def serialize_blocks(blocks: Sequence[Block | dict[str, Any]], settings: Settings | None = None) -> str:
    """Serialize blocks to Markdown.

    Args:
        blocks: Block models, or plain dicts in the camelCase JSON shape
        settings: Dialect choices; the process-wide settings when omitted

    Returns:
        Markdown text with blocks separated by one blank line ("" for no blocks)
    """
    return BlockSerializer(resolve_settings(settings)).serialize(_coerce_blocks(blocks))
