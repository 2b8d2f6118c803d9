"""Transform the markdown-it token stream into a Block forest.

The token stream is flat, so container nesting (lists, items, quotes) is
tracked with an explicit frame stack rather than recursion. ``<details>``
toggles are not Markdown to markdown-it: their inner text is queued as a
separate region and tokenized on its own, so toggles nest without recursion
too.

Blocks are first collected as mutable ``_Node``s, then frozen into pydantic
models bottom-up, and finally given deterministic IDs.
"""

import re
from collections import deque
from dataclasses import dataclass, field

from loguru import logger
from markdown_it.token import Token
from pydantic import BaseModel

from mdmapper.config import Settings
from mdmapper.ids import assign_block_ids
from mdmapper.markdown.dialects import (
    DETAILS_OPEN,
    DETAILS_TAG,
    SUMMARY,
    match_callout_header,
    scan_details_tags,
    strip_blank_edges,
    toggle_list_summary,
)
from mdmapper.markdown.parser import MAX_NESTING, tokenize
from mdmapper.markdown.tables import read_table
from mdmapper.models import (
    BLOCK_MODELS,
    Block,
    CalloutContent,
    CodeContent,
    DividerContent,
    HeadingContent,
    ImageContent,
    LinkContent,
    ListContent,
    ListItemContent,
    ParagraphContent,
    QuoteContent,
    SourceRange,
    TableCell,
    TableContent,
    TaskItemContent,
    TaskListContent,
    ToggleContent,
)
from mdmapper.ranges import line_starts

_WHITESPACE = " \t\r\n\f\v"
_LINE_END = re.compile(r"(?:\r\n|\r|\n)$")

# Applied with Pattern.match(text, pos, endpos), so no "^" anchors
_ATX_PREFIX = re.compile(r"#+[ \t]*")
_ITEM_PREFIX = re.compile(r"(?:[-+*]|\d{1,9}[.)])(?:[ \t]+|$)")
_QUOTE_PREFIX = re.compile(r">[ \t]?")

_QUOTE_MARKER = re.compile(r"^[ \t]{0,3}>[ \t]?")
_ITEM_MARKER = re.compile(r"^([ \t]*(?:[-+*]|\d{1,9}[.)]))([ \t]*)")
_TASK_MARKER = re.compile(r"^\[( |x|X|)\](?:[ \t]+|$)")

_LINK_TAIL = re.compile(
    r"\(\s*(<[^<>\n]*>|[^\s()<>]*)"
    r"(?:\s+(\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*'|\((?:[^()\\]|\\.)*\)))?\s*\)",
    re.DOTALL,
)
_ESCAPED_PUNCTUATION = re.compile(r"\\([!-/:-@\[-`{-~])")

_CELL_ALIGNMENT = {"text-align:left": "left", "text-align:center": "center", "text-align:right": "right"}

_LIST_OPENERS = ("bullet_list_open", "ordered_list_open")
_CLOSERS = {
    "bullet_list_close": "bullet_list_open",
    "ordered_list_close": "ordered_list_open",
    "list_item_close": "list_item_open",
    "blockquote_close": "blockquote_open",
}


@dataclass
class _Node:
    type: str
    content: BaseModel
    start: int
    end: int
    text_offset: int | None = None
    children: list["_Node"] | None = None


@dataclass
class _Region:
    """A slice of the document tokenized on its own: the whole text, a toggle body,
    or what follows ``</details>`` in the same HTML block."""

    start: int
    end: int
    nodes: list[_Node]  # receives the region's top-level nodes
    document_start: bool = False


@dataclass
class _Frame:
    """An open container in the token walk."""

    token: Token
    start_line: int
    nodes: list[_Node] = field(default_factory=list)
    item_text: str | None = None  # list items: text of the leading paragraph
    indent: int = 0  # list items: column where item content starts

    @property
    def kind(self) -> str:
        return self.token.type

    def strip(self, line: str, line_no: int) -> str:
        """Remove this container's own prefix from a source line."""
        if self.kind == "blockquote_open":
            return _QUOTE_MARKER.sub("", line, count=1)
        if self.kind == "list_item_open":
            if line_no == self.start_line:
                match = _ITEM_MARKER.match(line)
                return line[match.end() :] if match else line
            return _strip_indent(line, self.indent)
        return line


class _RegionSource:
    """Line bookkeeping for one region; returns absolute document offsets."""

    def __init__(self, document: str, region: _Region):
        self.document = document
        self.base = region.start
        self.text = document[region.start : region.end]
        self.starts = line_starts(self.text)

    @property
    def line_count(self) -> int:
        return len(self.starts)

    def relative_offset(self, line_no: int) -> int:
        return self.starts[line_no] if line_no < len(self.starts) else len(self.text)

    def line(self, line_no: int) -> str:
        begin = self.starts[line_no]
        end = self.relative_offset(line_no + 1)
        return _LINE_END.sub("", self.text[begin:end])

    def span(self, first: int, last: int) -> tuple[int, int]:
        return _trim(self.document, self.base + self.relative_offset(first), self.base + self.relative_offset(last))


def _trim(text: str, start: int, end: int) -> tuple[int, int]:
    while start < end and text[start] in _WHITESPACE:
        start += 1
    while end > start and text[end - 1] in _WHITESPACE:
        end -= 1
    return start, end


def _strip_indent(line: str, width: int) -> str:
    i = 0
    while i < len(line) and i < width and line[i] in " \t":
        i += 1
    return line[i:]


def _content_indent(line: str) -> int:
    """Column where a list item's content starts, given the item's first line."""
    match = _ITEM_MARKER.match(line)
    if not match:
        return 0
    marker, spaces = len(match.group(1)), len(match.group(2))
    if spaces == 0 or spaces > 4 or not line[match.end() :].strip():
        return marker + 1
    return marker + spaces


def _split_link_source(raw: str) -> tuple[str, str | None, str | None] | None:
    """Split ``[label](dest "title")`` into its raw parts.

    Returns None if ``raw`` does not start with a bracketed label. When the
    label is not followed by an inline destination (reference links), the
    destination and title are None.
    """
    if not raw.startswith("["):
        return None
    depth, i = 0, 0
    while i < len(raw):
        ch = raw[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                break
        i += 1
    else:
        return None

    label = raw[1:i]
    tail = _LINK_TAIL.fullmatch(raw, i + 1)
    if tail is None:
        return label, None, None
    dest = tail.group(1)
    if dest.startswith("<"):
        dest = dest[1:-1]
    title = tail.group(2)
    if title is not None:
        title = _ESCAPED_PUNCTUATION.sub(r"\1", title[1:-1])
    return label, dest, title


def _table_from_tokens(tokens: list[Token]) -> TableContent:
    rows: list[list[TableCell]] = []
    alignments = []
    for token in tokens:
        if token.type == "tr_open":
            rows.append([])
        elif token.type == "th_open":
            alignments.append(_CELL_ALIGNMENT.get(str(token.attrs.get("style", ""))))
        elif token.type == "inline" and rows:
            rows[-1].append(TableCell(text=token.content.replace("|", "\\|")))
    headers = rows[0] if rows else []
    body = [row + [TableCell(text="")] * (len(headers) - len(row)) for row in rows[1:]]
    return TableContent(headers=headers, rows=body, alignments=alignments)


def _sort_by_start(roots: list[_Node]) -> None:
    """Regions fill their node lists out of document order; put every list back in order."""
    stack = [roots]
    while stack:
        nodes = stack.pop()
        nodes.sort(key=lambda node: node.start)
        stack.extend(node.children for node in nodes if node.children)


def _freeze(roots: list[_Node]) -> list[Block]:
    """Convert nodes to block models, children first."""
    frozen: dict[int, Block] = {}
    stack: list[tuple[_Node, bool]] = [(node, False) for node in reversed(roots)]
    while stack:
        node, expanded = stack.pop()
        if node.children and not expanded:
            stack.append((node, True))
            stack.extend((child, False) for child in reversed(node.children))
            continue
        children = [frozen.pop(id(child)) for child in node.children] if node.children else None
        frozen[id(node)] = BLOCK_MODELS[node.type](
            content=node.content,
            source_range=SourceRange(start=node.start, end=node.end),
            children=children,
            text_offset=node.text_offset,
        )
    return [frozen.pop(id(node)) for node in roots]


class BlockTransformer:
    """Turns one Markdown document into a Block forest.

    Every block carries the character range it came from. Anything markdown-it
    consumes without producing a block at the top of a region (reference
    definitions, for instance) is kept as a raw paragraph.
    """

    def __init__(self, text: str):
        self.document = text
        self._queue: deque[_Region] = deque()
        self._handlers = {
            "heading_open": self._on_heading,
            "paragraph_open": self._on_paragraph,
            "hr": self._on_divider,
            "fence": self._on_code,
            "code_block": self._on_code,
            "front_matter": self._on_code,
            "html_block": self._on_html,
            "table_open": self._on_table,
        }
        # Per-region state, reset by _transform_region
        self._region: _Region
        self._source: _RegionSource
        self._tokens: list[Token] = []
        self._frames: list[_Frame] = []
        self._root: list[_Node] = []
        self._covered: list[bool] = []

    def transform(self) -> list[Block]:
        roots: list[_Node] = []
        self._queue.append(_Region(0, len(self.document), roots, document_start=True))
        while self._queue:
            self._transform_region(self._queue.popleft())
        _sort_by_start(roots)
        return assign_block_ids(_freeze(roots))

    # === REGION WALK ===

    def _transform_region(self, region: _Region) -> None:
        self._region = region
        self._source = _RegionSource(self.document, region)
        self._tokens = tokenize(self._source.text, document_start=region.document_start)
        self._frames = []
        self._root = []
        self._covered = [False] * self._source.line_count

        i = 0
        while i < len(self._tokens):
            token = self._tokens[i]
            if token.level == 0 and token.map:
                self._cover(token.map[0], token.map[1])

            if handler := self._handlers.get(token.type):
                i = handler(i)
            elif token.type in _LIST_OPENERS or token.type == "blockquote_open":
                self._frames.append(_Frame(token, token.map[0] if token.map else 0))
                i += 1
            elif token.type == "list_item_open":
                self._open_item(token)
                i += 1
            elif token.type in _CLOSERS:
                self._close_frame()
                i += 1
            else:
                i += 1

        self._add_uncovered_lines()
        self._root.sort(key=lambda node: node.start)
        region.nodes.extend(self._root)

    def _cover(self, first: int, last: int) -> None:
        for line_no in range(first, min(last, len(self._covered))):
            self._covered[line_no] = True

    def _add_uncovered_lines(self) -> None:
        """Keep root lines that no block claimed as raw paragraphs."""
        run_start = None
        for line_no in range(self._source.line_count + 1):
            uncovered = (
                line_no < self._source.line_count
                and not self._covered[line_no]
                and bool(self._source.line(line_no).strip())
            )
            if uncovered and run_start is None:
                run_start = line_no
            elif not uncovered and run_start is not None:
                start, end = self._source.span(run_start, line_no)
                text = self.document[start:end]
                self._root.append(_Node("paragraph", ParagraphContent(text=text), start, end, text_offset=0))
                run_start = None

    def _emit(self, node: _Node) -> None:
        if self._frames:
            self._frames[-1].nodes.append(node)
        else:
            self._root.append(node)

    def _span(self, token: Token) -> tuple[int, int]:
        first, last = token.map or (0, 0)
        return self._source.span(first, last)

    def _container_line(self, line_no: int) -> str:
        """Source line with the prefixes of all open containers removed."""
        line = self._source.line(line_no)
        for frame in self._frames:
            line = frame.strip(line, line_no)
        return line

    def _linear_offset(self, start: int, end: int, text: str, candidate: int | None) -> int | None:
        """``candidate`` if ``text`` appears verbatim at that offset in the block's source."""
        if candidate is None:
            return None
        at = start + candidate
        if at + len(text) <= end and self.document[at : at + len(text)] == text:
            return candidate
        return None

    # === LEAF BLOCKS ===

    def _on_heading(self, i: int) -> int:
        token, inline = self._tokens[i], self._tokens[i + 1]
        start, end = self._span(token)
        text = inline.content
        candidate: int | None = 0
        if token.markup.startswith("#"):
            match = _ATX_PREFIX.match(self.document, start, end)
            candidate = match.end() - start if match else None
        content = HeadingContent(level=min(int(token.tag[1:]), 3), text=text)
        self._emit(_Node("heading", content, start, end, self._linear_offset(start, end, text, candidate)))
        return i + 3

    def _on_paragraph(self, i: int) -> int:
        token, inline = self._tokens[i], self._tokens[i + 1]
        frame = self._frames[-1] if self._frames else None
        if frame and frame.kind == "list_item_open" and frame.item_text is None and not frame.nodes:
            frame.item_text = inline.content
            return i + 3

        start, end = self._span(token)
        node = self._standalone_link(inline, start, end)
        if node is None:
            # Top-level paragraphs keep their exact source text
            text = self.document[start:end] if frame is None else inline.content
            node = _Node("paragraph", ParagraphContent(text=text), start, end, self._linear_offset(start, end, text, 0))
        self._emit(node)
        return i + 3

    def _standalone_link(self, inline: Token, start: int, end: int) -> _Node | None:
        """Link or image node for a paragraph holding nothing else."""
        children = [c for c in inline.children or [] if not (c.type == "text" and not c.content.strip())]
        if not children:
            return None
        raw = inline.content.strip()

        if len(children) == 1 and children[0].type == "image":
            image = children[0]
            parts = _split_link_source(raw[1:]) if raw.startswith("!") else None
            alt = parts[0] if parts else image.content
            if parts and parts[1] is not None:
                src, title = parts[1], parts[2]
            else:
                src, title = str(image.attrs.get("src", "")), image.attrs.get("title")
            content = ImageContent(src=src, alt=alt, title=str(title) if title is not None else None)
            return _Node("image", content, start, end)

        first, last = children[0], children[-1]
        if first.type != "link_open" or first.markup == "autolink" or last.type != "link_close":
            return None
        if next(n for n, c in enumerate(children) if c.type == "link_close") != len(children) - 1:
            return None
        parts = _split_link_source(raw)
        text = parts[0] if parts else "".join(c.content for c in children[1:-1])
        if parts and parts[1] is not None:
            href, title = parts[1], parts[2]
        else:
            href, title = str(first.attrs.get("href", "")), first.attrs.get("title")
        content = LinkContent(text=text, href=href, title=str(title) if title is not None else None)
        return _Node("link", content, start, end)

    def _on_divider(self, i: int) -> int:
        start, end = self._span(self._tokens[i])
        self._emit(_Node("divider", DividerContent(), start, end))
        return i + 1

    def _on_code(self, i: int) -> int:
        token = self._tokens[i]
        start, end = self._span(token)
        code = token.content[:-1] if token.content.endswith("\n") else token.content
        if token.type == "front_matter":
            content = CodeContent(language="yaml", code=code, fence="---")
        elif token.type == "fence":
            content = CodeContent(language=token.info.strip(), code=code, fence=token.markup)
        else:
            content = CodeContent(code=code)
        self._emit(_Node("code", content, start, end))
        return i + 1

    def _on_table(self, i: int) -> int:
        token = self._tokens[i]
        j = i
        while j < len(self._tokens) and self._tokens[j].type != "table_close":
            j += 1
        start, end = self._span(token)
        first, last = token.map or (0, 0)

        lines = [self._container_line(line_no) for line_no in range(first, last)]
        source = "\n".join(line.strip() for line in lines) if not self._frames else None
        from_tokens = _table_from_tokens(self._tokens[i : j + 1])
        content = read_table(lines, source)
        if content is None or len(content.headers) != len(from_tokens.headers):
            content = from_tokens

        self._emit(_Node("table", content, start, end))
        return j + 1

    def _on_html(self, i: int) -> int:
        token = self._tokens[i]
        if not self._frames and DETAILS_OPEN.match(token.content.lstrip()):
            return self._on_details(i)
        start, end = self._span(token)
        text = self.document[start:end] if not self._frames else token.content.strip()
        self._emit(_Node("paragraph", ParagraphContent(text=text), start, end, self._linear_offset(start, end, text, 0)))
        return i + 1

    def _on_details(self, i: int) -> int:
        """Build a toggle from ``<details>`` up to its matching ``</details>``."""
        source = self._source
        first_line = self._tokens[i].map[0]  # type: ignore[index]
        opening = DETAILS_TAG.search(source.text, source.relative_offset(first_line))
        assert opening is not None

        # Count nesting across the region's top-level HTML blocks
        depth, close, j = 1, None, i
        scan_from = opening.end()
        while j < len(self._tokens):
            html = self._tokens[j]
            if html.type == "html_block" and html.level == 0 and html.map:
                begin = max(scan_from, source.relative_offset(html.map[0]))
                depth, close = scan_details_tags(source.text, begin, source.relative_offset(html.map[1]), depth)
                if close:
                    break
            j += 1

        inner_end = close[0] if close else len(source.text)
        summary = SUMMARY.match(source.text, opening.end())
        if summary and summary.end() <= inner_end:
            summary_text, inner_start = summary.group(1).strip(), summary.end()
        else:
            summary_text, inner_start = "", opening.end()

        end = source.base + (close[1] if close else len(source.text))
        start, end = _trim(self.document, source.base + opening.start(), end)
        node = _Node("toggle", ToggleContent(summary=summary_text), start, end, children=[])
        self._root.append(node)
        self._queue.append(_Region(source.base + inner_start, source.base + inner_end, node.children))  # type: ignore[arg-type]

        if close is None:
            self._cover(first_line, source.line_count)
            logger.debug(f"Unterminated <details> at offset {start}, extending to end of region")
            return len(self._tokens)

        closing_block = self._tokens[j]
        self._cover(first_line, closing_block.map[1])  # type: ignore[index]
        # Anything after </details> in the same HTML block
        rest_start, rest_end = _trim(
            self.document, source.base + close[1], source.base + source.relative_offset(closing_block.map[1])  # type: ignore[index]
        )
        if rest_end > rest_start:
            # The rest of the region reads as if it started on its own line after the toggle
            self._queue.append(_Region(rest_start, self._region.end, self._region.nodes))
            self._cover(first_line, source.line_count)
            return len(self._tokens)
        return j + 1

    # === CONTAINERS ===

    def _open_item(self, token: Token) -> None:
        line_no = token.map[0] if token.map else 0
        indent = _content_indent(self._container_line(line_no))
        self._frames.append(_Frame(token, line_no, indent=indent))

    def _close_frame(self) -> None:
        frame = self._frames[-1]
        if frame.kind == "blockquote_open":
            node = self._quote_node(frame)
            self._frames.pop()
            self._emit(node)
            return

        self._frames.pop()
        if frame.kind == "list_item_open":
            self._emit(self._item_node(frame))
        else:
            for node in self._list_nodes(frame):
                self._emit(node)

    def _quote_node(self, frame: _Frame) -> _Node:
        start, end = self._span(frame.token)
        first, last = frame.token.map or (0, 0)
        lines = [self._container_line(line_no) for line_no in range(first, last)]
        while lines and not lines[-1].strip():
            lines.pop()

        header = match_callout_header(lines[0]) if lines else None
        if header is not None:
            body = "\n".join(strip_blank_edges(lines[1:]))
            return _Node("callout", CalloutContent(type=header.type, title=header.title, text=body), start, end)

        text = "\n".join(lines)
        candidate = None
        if match := _QUOTE_PREFIX.match(self.document, start, end):
            candidate = match.end() - start
        children = frame.nodes if any(n.type in ("quote", "callout") for n in frame.nodes) else None
        return _Node("quote", QuoteContent(text=text), start, end, self._linear_offset(start, end, text, candidate), children)

    def _item_node(self, frame: _Frame) -> _Node:
        start, end = self._span(frame.token)
        depth = sum(1 for f in self._frames if f.kind in _LIST_OPENERS) - 1
        text = frame.item_text
        if text is None and not frame.nodes and frame.token.level >= MAX_NESTING - 1:
            text = self._truncated_item_text(frame)
        text = text or ""
        candidate = None
        if match := _ITEM_PREFIX.match(self.document, start, end):
            candidate = match.end() - start
        content = ListItemContent(text=text, indent=max(depth, 0))
        offset = self._linear_offset(start, end, text, candidate)
        return _Node("listItem", content, start, end, offset, frame.nodes or None)

    def _truncated_item_text(self, frame: _Frame) -> str:
        """Raw lines of an item markdown-it stopped descending into."""
        first, last = frame.token.map or (0, 0)
        lines = [frame.strip(self._container_line(line_no), line_no) for line_no in range(first, last)]
        start, _ = self._span(frame.token)
        logger.warning(f"Nesting limit of {MAX_NESTING} reached at offset {start}, keeping deeper content as item text")
        return "\n".join(strip_blank_edges(lines))

    def _list_nodes(self, frame: _Frame) -> list[_Node]:
        """One list node, or one toggle node per item for ``▸`` lists."""
        token = frame.token
        items = frame.nodes
        start, end = self._span(token)
        ordered = token.type == "ordered_list_open"
        start_number = int(token.attrs.get("start", 1)) if ordered else None

        tasks = [_TASK_MARKER.match(item.content.text) for item in items]  # type: ignore[attr-defined]
        if items and all(tasks):
            for item, match in zip(items, tasks):
                item.type = "taskItem"
                item.content = TaskItemContent(
                    checked=match.group(1) in ("x", "X"),  # type: ignore[union-attr]
                    text=item.content.text[match.end() :],  # type: ignore[attr-defined, union-attr]
                    indent=item.content.indent,  # type: ignore[attr-defined]
                )
                if item.text_offset is not None:
                    item.text_offset += match.end()  # type: ignore[union-attr]
            content = TaskListContent(ordered=ordered, start_number=start_number, marker=token.markup)
            return [_Node("taskList", content, start, end, children=items)]

        summaries = [toggle_list_summary(item.content.text) for item in items]  # type: ignore[attr-defined]
        if items and not ordered and all(s is not None for s in summaries):
            return [
                _Node("toggle", ToggleContent(summary=summary), item.start, item.end, children=item.children)  # type: ignore[arg-type]
                for item, summary in zip(items, summaries)
            ]

        content = ListContent(ordered=ordered, start_number=start_number, marker=token.markup)
        return [_Node("list", content, start, end, children=items)]


def parse_markdown(text: str, settings: Settings | None = None) -> list[Block]:
    """Parse Markdown text into a Block forest.

    Never raises: malformed syntax degrades to the closest structure (usually
    a paragraph). Both callout forms and both toggle forms are recognized
    whatever ``settings`` say; settings only affect serialization.

    Args:
        text: Markdown document
        settings: Accepted for symmetry with ``serialize_blocks``

    Returns:
        Top-level blocks in document order
    """
    if not text.strip():
        return []
    blocks = BlockTransformer(text).transform()
    logger.debug(f"Parsed {len(text)} chars into {len(blocks)} top-level blocks")
    return blocks
