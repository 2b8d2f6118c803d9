"""Map Markdown text to addressable content blocks, back to Markdown, and through edits."""

from mdmapper.config import Settings, SettingsManager, configure_settings, get_settings, reset_settings
from mdmapper.exceptions import InvalidBlockError, InvalidSettingsError, MarkdownMapperError, PatchError
from mdmapper.incremental import (
    UpdateResult,
    UpdateStrategy,
    apply_changes,
    apply_text_changes,
    batch_text_edits,
    text_edit_to_document_change,
    update_blocks,
)
from mdmapper.markdown import escape_markdown_text, needs_escaping, parse_markdown, serialize_blocks
from mdmapper.models import (
    BLOCK_TYPES,
    Block,
    BlockListAdapter,
    CalloutBlock,
    CalloutContent,
    CodeBlock,
    CodeContent,
    DividerBlock,
    DividerContent,
    DocumentChange,
    HeadingBlock,
    HeadingContent,
    ImageBlock,
    ImageContent,
    LinkBlock,
    LinkContent,
    ListBlock,
    ListContent,
    ListItemBlock,
    ListItemContent,
    ParagraphBlock,
    ParagraphContent,
    QuoteBlock,
    QuoteContent,
    SourceRange,
    TableBlock,
    TableCell,
    TableContent,
    TaskItemBlock,
    TaskItemContent,
    TaskListBlock,
    TaskListContent,
    TextEdit,
    ToggleBlock,
    ToggleContent,
    dump_blocks,
)
from mdmapper.ranges import (
    adjust_range_after_edit,
    contains_range,
    extract_range_text,
    merge_ranges,
    offset_to_position,
    position_to_offset,
    ranges_overlap,
)
from mdmapper.tree import flatten_blocks
from mdmapper.validation import validate_blocks

__all__ = [
    # Core operations
    "parse_markdown",
    "serialize_blocks",
    "update_blocks",
    "apply_changes",
    "UpdateResult",
    "UpdateStrategy",
    "text_edit_to_document_change",
    "batch_text_edits",
    "apply_text_changes",
    "escape_markdown_text",
    "needs_escaping",
    # Settings
    "Settings",
    "SettingsManager",
    "configure_settings",
    "get_settings",
    "reset_settings",
    # Errors
    "MarkdownMapperError",
    "InvalidSettingsError",
    "InvalidBlockError",
    "PatchError",
    # Models
    "BLOCK_TYPES",
    "Block",
    "BlockListAdapter",
    "dump_blocks",
    "SourceRange",
    "DocumentChange",
    "TextEdit",
    "ParagraphBlock",
    "ParagraphContent",
    "HeadingBlock",
    "HeadingContent",
    "DividerBlock",
    "DividerContent",
    "ListBlock",
    "ListContent",
    "ListItemBlock",
    "ListItemContent",
    "TaskListBlock",
    "TaskListContent",
    "TaskItemBlock",
    "TaskItemContent",
    "QuoteBlock",
    "QuoteContent",
    "CodeBlock",
    "CodeContent",
    "TableBlock",
    "TableCell",
    "TableContent",
    "ImageBlock",
    "ImageContent",
    "LinkBlock",
    "LinkContent",
    "CalloutBlock",
    "CalloutContent",
    "ToggleBlock",
    "ToggleContent",
    # Ranges & trees
    "contains_range",
    "ranges_overlap",
    "merge_ranges",
    "adjust_range_after_edit",
    "offset_to_position",
    "position_to_offset",
    "extract_range_text",
    "flatten_blocks",
    "validate_blocks",
]
