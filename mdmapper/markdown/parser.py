"""Markdown tokenizing using markdown-it-py.

Configures markdown-it with the plugins we need:
- CommonMark base with a raised nesting limit
- GFM tables and strikethrough
- YAML front matter (only for documents that open with a closed ``---`` block)
- ATX headings with seven or more ``#``, which CommonMark treats as text
"""

import re

from markdown_it import MarkdownIt
from markdown_it.rules_block import StateBlock
from markdown_it.token import Token
from mdit_py_plugins.front_matter import front_matter_plugin

# Token nesting limit: a list level takes two, a quote one. markdown-it drops the
# content of any container opened at the limit, so the transformer keeps it as text.
MAX_NESTING = 200

_DEEP_HEADING = re.compile(r"^(#{7,})(?=[ \t]|$)(.*)$")
_CLOSING_SEQUENCE = re.compile(r"(?:^|[ \t]+)#+[ \t]*$")
_FRONT_MATTER = re.compile(r"^---[ \t]*(?:\r\n|\r|\n)(?:.*?(?:\r\n|\r|\n))??---[ \t]*(?:\r\n|\r|\n|$)", re.DOTALL)


def deep_heading_rule(state: StateBlock, startLine: int, endLine: int, silent: bool) -> bool:
    """Block rule for ``####### Title``: emits a level-6 heading for the mapper to clamp."""
    if state.sCount[startLine] - state.blkIndent >= 4:
        return False

    pos = state.bMarks[startLine] + state.tShift[startLine]
    match = _DEEP_HEADING.match(state.src[pos : state.eMarks[startLine]])
    if not match:
        return False
    if silent:
        return True

    state.line = startLine + 1

    token = state.push("heading_open", "h6", 1)
    token.markup = match.group(1)
    token.map = [startLine, state.line]

    token = state.push("inline", "", 0)
    token.content = _CLOSING_SEQUENCE.sub("", match.group(2).strip()).strip()
    token.map = [startLine, state.line]
    token.children = []

    token = state.push("heading_close", "h6", -1)
    token.markup = match.group(1)
    return True


def create_parser(front_matter: bool = False) -> MarkdownIt:
    """Create configured markdown-it parser."""
    md = MarkdownIt("commonmark", options_update={"maxNesting": MAX_NESTING})
    md.enable("table")
    md.enable("strikethrough")
    md.block.ruler.before(
        "heading",
        "deep_heading",
        deep_heading_rule,
        {"alt": ["paragraph", "reference", "blockquote"]},
    )
    if front_matter:
        md.use(front_matter_plugin)
    return md


# Singleton parser instances, keyed by front matter support
_parsers: dict[bool, MarkdownIt] = {}


def get_parser(front_matter: bool = False) -> MarkdownIt:
    """Get or create the singleton parser instance."""
    if front_matter not in _parsers:
        _parsers[front_matter] = create_parser(front_matter)
    return _parsers[front_matter]


def has_front_matter(text: str) -> bool:
    """True if the text opens with a ``---`` block that is closed again."""
    return _FRONT_MATTER.match(text) is not None


def tokenize(text: str, *, document_start: bool = True) -> list[Token]:
    """Tokenize Markdown text.

    Args:
        text: Markdown text to tokenize
        document_start: Whether ``text`` starts the document, the only place
            front matter is recognized

    Returns:
        Flat markdown-it token stream with inline children populated
    """
    parser = get_parser(front_matter=document_start and has_front_matter(text))
    return parser.parse(text)
