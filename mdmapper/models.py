"""Data models for the Markdown <-> Block mapping.

A parsed document is a forest of blocks. Each block type has its own model and
its own content model, and ``Block`` is the discriminated union over all of
them. Models are frozen: every operation that changes a forest returns new
instances (``model_copy(update=...)``) and may share untouched subtrees.

Field names are snake_case; the JSON form uses camelCase aliases
(``sourceRange``, ``startNumber``, ...) so hosts can exchange blocks as plain
dicts through ``BlockListAdapter``.
"""

from typing import Annotated, Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

BlockType = Literal[
    "paragraph",
    "heading",
    "divider",
    "list",
    "listItem",
    "taskList",
    "taskItem",
    "quote",
    "code",
    "table",
    "image",
    "link",
    "callout",
    "toggle",
]

BLOCK_TYPES: tuple[str, ...] = get_args(BlockType)

CalloutType = Literal["note", "tip", "warning", "danger", "info"]

CALLOUT_TYPES: tuple[str, ...] = get_args(CalloutType)

Alignment = Literal["left", "center", "right"]


class MapperModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class SourceRange(MapperModel):
    """Half-open ``[start, end)`` character interval into the source text."""

    start: int = Field(ge=0)
    end: int = Field(ge=0)

    @property
    def length(self) -> int:
        return self.end - self.start


# === CONTENT ===


class ParagraphContent(MapperModel):
    text: str


class HeadingContent(MapperModel):
    level: Literal[1, 2, 3]
    text: str


class DividerContent(MapperModel):
    pass


class ListContent(MapperModel):
    ordered: bool = False
    start_number: int | None = None
    marker: str | None = None  # "-", "*", "+" or the ordered delimiter "." / ")"


class ListItemContent(MapperModel):
    text: str
    indent: int = 0  # list nesting depth, 0 = top level


class TaskListContent(MapperModel):
    ordered: bool = False
    start_number: int | None = None
    marker: str | None = None


class TaskItemContent(MapperModel):
    checked: bool = False
    text: str
    indent: int = 0


class QuoteContent(MapperModel):
    text: str  # inner lines with one ">" level removed


class CodeContent(MapperModel):
    language: str = ""
    code: str
    fence: str | None = None  # None for indented code, "---" for YAML front matter


class TableCell(MapperModel):
    text: str


class TableContent(MapperModel):
    headers: list[TableCell]
    rows: list[list[TableCell]] = Field(default_factory=list)
    alignments: list[Alignment | None] = Field(default_factory=list)
    source: str | None = None  # verbatim table text, reused when formatting is preserved


class ImageContent(MapperModel):
    src: str
    alt: str = ""
    title: str | None = None


class LinkContent(MapperModel):
    text: str
    href: str
    title: str | None = None


class CalloutContent(MapperModel):
    type: CalloutType
    title: str | None = None
    text: str = ""


class ToggleContent(MapperModel):
    summary: str
    collapsed: bool = False  # UI state, never written to Markdown


# === BLOCKS ===


class BlockBase(MapperModel):
    id: str = ""
    source_range: SourceRange
    children: list["Block"] | None = None
    # Offset of the editable text inside the block's source span, or None when
    # the stored text does not map 1:1 onto the source.
    text_offset: int | None = Field(default=None, exclude=True)


class ParagraphBlock(BlockBase):
    """Plain paragraph; ``text`` keeps inline Markdown as written."""

    type: Literal["paragraph"] = "paragraph"
    content: ParagraphContent


class HeadingBlock(BlockBase):
    """ATX or setext heading, level clamped to 1-3."""

    type: Literal["heading"] = "heading"
    content: HeadingContent


class DividerBlock(BlockBase):
    type: Literal["divider"] = "divider"
    content: DividerContent = Field(default_factory=DividerContent)


class ListBlock(BlockBase):
    """Bullet or ordered list. Children are ListItemBlocks."""

    type: Literal["list"] = "list"
    content: ListContent


class ListItemBlock(BlockBase):
    """Single list item. Children hold nested lists and any further item blocks."""

    type: Literal["listItem"] = "listItem"
    content: ListItemContent


class TaskListBlock(BlockBase):
    """List whose every item starts with a checkbox. Children are TaskItemBlocks."""

    type: Literal["taskList"] = "taskList"
    content: TaskListContent = Field(default_factory=TaskListContent)


class TaskItemBlock(BlockBase):
    type: Literal["taskItem"] = "taskItem"
    content: TaskItemContent


class QuoteBlock(BlockBase):
    """Blockquote. Children are only present when the quote nests another quote."""

    type: Literal["quote"] = "quote"
    content: QuoteContent


class CodeBlock(BlockBase):
    """Fenced or indented code, or YAML front matter."""

    type: Literal["code"] = "code"
    content: CodeContent


class TableBlock(BlockBase):
    type: Literal["table"] = "table"
    content: TableContent


class ImageBlock(BlockBase):
    """Paragraph consisting of a single image."""

    type: Literal["image"] = "image"
    content: ImageContent


class LinkBlock(BlockBase):
    """Paragraph consisting of a single link."""

    type: Literal["link"] = "link"
    content: LinkContent


class CalloutBlock(BlockBase):
    """Typed note/tip/warning/danger/info block written as a blockquote."""

    type: Literal["callout"] = "callout"
    content: CalloutContent


class ToggleBlock(BlockBase):
    """Collapsible ``<details>`` region. Children are the parsed inner blocks."""

    type: Literal["toggle"] = "toggle"
    content: ToggleContent


Block = Annotated[
    ParagraphBlock
    | HeadingBlock
    | DividerBlock
    | ListBlock
    | ListItemBlock
    | TaskListBlock
    | TaskItemBlock
    | QuoteBlock
    | CodeBlock
    | TableBlock
    | ImageBlock
    | LinkBlock
    | CalloutBlock
    | ToggleBlock,
    Field(discriminator="type"),
]

BLOCK_MODELS: dict[str, type[BlockBase]] = {
    "paragraph": ParagraphBlock,
    "heading": HeadingBlock,
    "divider": DividerBlock,
    "list": ListBlock,
    "listItem": ListItemBlock,
    "taskList": TaskListBlock,
    "taskItem": TaskItemBlock,
    "quote": QuoteBlock,
    "code": CodeBlock,
    "table": TableBlock,
    "image": ImageBlock,
    "link": LinkBlock,
    "callout": CalloutBlock,
    "toggle": ToggleBlock,
}

# Update forward references
for _model in BLOCK_MODELS.values():
    _model.model_rebuild()

BlockListAdapter: TypeAdapter[list[Block]] = TypeAdapter(list[Block])


def dump_blocks(blocks: list[Block]) -> list[dict[str, Any]]:
    """Dump blocks to JSON-compatible dicts using the camelCase wire names."""
    return BlockListAdapter.dump_python(blocks, mode="json", by_alias=True, exclude_none=True)


# === EDITS ===


class DocumentChange(MapperModel):
    """A single textual substitution: replace ``range`` with ``text``."""

    range: SourceRange
    text: str = ""

    @property
    def deleted_length(self) -> int:
        return self.range.end - self.range.start

    @property
    def inserted_length(self) -> int:
        return len(self.text)

    @property
    def delta(self) -> int:
        return self.inserted_length - self.deleted_length

    @property
    def newline_count(self) -> int:
        return self.text.count("\n")


class TextEdit(MapperModel):
    """Host-facing edit; converts 1:1 to a DocumentChange."""

    start: int = Field(ge=0)
    end: int = Field(ge=0)
    new_text: str = ""
