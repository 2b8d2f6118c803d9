"""Keep a Block forest in sync with small text edits.

Each call picks the cheapest strategy that is still safe:

1. no changes: return the forest as is
2. edit touches no block: shift the ranges of everything after it
3. edit stays inside the text of one paragraph-like block: splice it in place
4. otherwise reparse from the live text when the caller supplies it, only the
   blank-line bounded region around the edit if that can be isolated

Without live text the updater cannot reparse, so it hands the forest back
unchanged with ``reparse_needed`` set.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum, auto

from loguru import logger

from mdmapper.config import Settings
from mdmapper.exceptions import PatchError
from mdmapper.ids import assign_block_ids
from mdmapper.markdown.parser import has_front_matter
from mdmapper.markdown.transformer import parse_markdown
from mdmapper.models import Block, DocumentChange, SourceRange, TextEdit
from mdmapper.ranges import contains_range, ranges_overlap, shift_range
from mdmapper.tree import Visit, rebuild, walk

MAX_DELETED_LENGTH = 1000
MAX_INSERTED_NEWLINES = 5
# A patch may remove at most this many more characters than it inserts
MAX_NET_DELETION = 10

UNPATCHABLE_TYPES = frozenset({"table", "code", "list", "taskList", "toggle"})
_TEXT_BLOCK_TYPES = frozenset({"paragraph", "heading", "listItem", "taskItem", "quote"})

# Neighbours that can absorb a reparsed region across a blank line
_CONTINUABLE_TYPES = frozenset({"list", "taskList", "toggle", "code"})
# Blocks that may extend to the end of the document
_OPEN_ENDED_TYPES = frozenset({"code", "toggle"})

# Text that would change a block's type if it appeared at the start of its text
_STRUCTURAL_START = re.compile(
    r"^(?:#{1,6}(?:[ \t]|$)|[-+*](?:[ \t]|$)|\d{1,9}[.)](?:[ \t]|$)|>|```|~~~|<|\||[ \t]"
    r"|\[[ xX]?\](?:[ \t]|$)|(?:[-*_][ \t]*){3,}$|=+[ \t]*$)"
)
_BLANK_LINE = re.compile(r"(?:\r\n|\r|\n)[ \t]*(?:\r\n|\r|\n)")
# Syntax whose extent is not bounded by blank lines
_UNBOUNDED_SYNTAX = re.compile(r"```|~~~|</?details\b", re.IGNORECASE)
_REFERENCE_DEFINITION = re.compile(r"^[ \t]{0,3}\[[^\]]+\]:", re.MULTILINE)


class UpdateStrategy(StrEnum):
    UNCHANGED = auto()
    RANGE_SHIFT = auto()
    PATCH = auto()
    REGION_REPARSE = auto()
    FULL_REPARSE = auto()
    REPARSE_NEEDED = auto()


@dataclass(frozen=True)
class UpdateResult:
    blocks: list[Block]
    strategy: UpdateStrategy

    @property
    def reparse_needed(self) -> bool:
        """True when the caller must reparse the live text itself."""
        return self.strategy == UpdateStrategy.REPARSE_NEEDED


# === EDIT HELPERS ===


def text_edit_to_document_change(edit: TextEdit) -> DocumentChange:
    start, end = sorted((edit.start, edit.end))
    return DocumentChange(range=SourceRange(start=start, end=end), text=edit.new_text)


def batch_text_edits(edits: Sequence[TextEdit]) -> list[DocumentChange]:
    """Convert edits to changes ordered by descending start offset.

    Applying them in that order keeps every pending offset valid. Edits with
    the same start keep their relative order.
    """
    ordered = sorted(edits, key=lambda edit: min(edit.start, edit.end), reverse=True)
    return [text_edit_to_document_change(edit) for edit in ordered]


def apply_text_changes(text: str, changes: Sequence[DocumentChange]) -> str:
    """Apply changes to a string one after another, in the given order."""
    for change in changes:
        start = min(change.range.start, len(text))
        end = min(max(change.range.end, start), len(text))
        text = text[:start] + change.text + text[end:]
    return text


def is_complex(changes: Sequence[DocumentChange]) -> bool:
    if len(changes) > 1:
        return True
    change = changes[0]
    return change.deleted_length > MAX_DELETED_LENGTH or change.newline_count > MAX_INSERTED_NEWLINES


# === RANGE SHIFT & PATCH ===


def _same_children(new: list[Block] | None, old: list[Block] | None) -> bool:
    if new is None or old is None:
        return new is old
    return len(new) == len(old) and all(a is b for a, b in zip(new, old))


def _ancestor_ids(blocks: list[Block], target: Block) -> set[int]:
    parents: dict[int, Block | None] = {}
    for visit in walk(blocks):
        parents[id(visit.block)] = visit.parent
        if visit.block is target:
            break
    ancestors = set()
    parent = parents.get(id(target))
    while parent is not None:
        ancestors.add(id(parent))
        parent = parents.get(id(parent))
    return ancestors


def shift_after(
    blocks: list[Block], change: DocumentChange, target: Block | None = None, replacement: Block | None = None
) -> list[Block]:
    """Move every block after ``change`` by its length delta.

    With a ``target``, that block is swapped for ``replacement`` and its
    ancestors stretch or shrink their end by the delta. Untouched subtrees are
    shared with the input.
    """
    delta = change.delta
    if delta == 0 and target is None:
        return blocks
    ancestors = _ancestor_ids(blocks, target) if target is not None else set()

    def _update(block: Block, children: list[Block] | None) -> Block:
        if block is target and replacement is not None:
            return replacement.model_copy(update={"children": children})
        range_ = block.source_range
        if id(block) in ancestors:
            range_ = SourceRange(start=range_.start, end=max(range_.start, range_.end + delta))
        elif range_.start >= change.range.end:
            range_ = shift_range(range_, delta)
        if range_ == block.source_range and _same_children(children, block.children):
            return block
        return block.model_copy(update={"source_range": range_, "children": children})

    return rebuild(blocks, _update)


def is_simple_edit(block: Block, change: DocumentChange) -> bool:
    return (
        contains_range(block.source_range, change.range)
        and block.type not in UNPATCHABLE_TYPES
        and "\n" not in change.text
        and change.deleted_length <= change.inserted_length + MAX_NET_DELETION
    )


def _line_at(text: str, pos: int) -> str:
    start = text.rfind("\n", 0, pos) + 1
    end = text.find("\n", pos)
    return text[start : end if end >= 0 else len(text)]


def patch_block(block: Block, change: DocumentChange) -> Block:
    """Splice ``change`` into the block's text, keeping its ID.

    Raises:
        PatchError: if the block text does not map onto its source, the edit
            reaches outside the text, or the result would read as another
            kind of block
    """
    if block.type not in _TEXT_BLOCK_TYPES:
        raise PatchError(block.id, f"{block.type} blocks have no editable text")
    if block.text_offset is None:
        raise PatchError(block.id, "text does not map linearly onto the source")

    text: str = block.content.text  # type: ignore[union-attr]
    relative = change.range.start - (block.source_range.start + block.text_offset)
    if relative < 0 or relative + change.deleted_length > len(text):
        raise PatchError(block.id, "edit falls outside the block text")

    new_text = text[:relative] + change.text + text[relative + change.deleted_length :]
    if block.type != "heading":
        old_line, new_line = _line_at(text, relative), _line_at(new_text, relative)
        if _STRUCTURAL_START.match(new_line) and not _STRUCTURAL_START.match(old_line):
            raise PatchError(block.id, "edit changes the block syntax")

    range_ = block.source_range
    return block.model_copy(
        update={
            "content": block.content.model_copy(update={"text": new_text}),
            "source_range": SourceRange(start=range_.start, end=max(range_.start, range_.end + change.delta)),
        }
    )


def _after_open_ended_block(blocks: list[Block], change: DocumentChange) -> bool:
    """True if the edit follows a trailing code block or toggle.

    An unterminated fence or ``<details>`` runs to the end of the document, so
    even blank lines added after it change its content.
    """
    return bool(blocks) and blocks[-1].type in _OPEN_ENDED_TYPES and change.range.start >= blocks[-1].source_range.end


def _innermost(overlapping: list[Visit]) -> Visit | None:
    """The deepest overlapping block, provided every other one is its ancestor."""
    for outer, inner in zip(overlapping, overlapping[1:]):
        if inner.parent is not outer.block:
            return None
    return overlapping[-1] if overlapping else None


# === REPARSE ===


def _blank_bounded(text: str, start: int, end: int) -> tuple[int, int]:
    """Widen ``[start, end)`` to the nearest blank lines or document edges."""
    boundary = 0
    for match in _BLANK_LINE.finditer(text, 0, start):
        boundary = match.end()
    after = _BLANK_LINE.search(text, end)
    return min(boundary, start), after.start() if after else len(text)


def _moved(range_: SourceRange, change: DocumentChange) -> SourceRange:
    """Post-edit range of a block the edit does not touch."""
    return range_ if range_.end <= change.range.start else shift_range(range_, change.delta)


def _offset_forest(blocks: list[Block], offset: int) -> list[Block]:
    def _move(block: Block, children: list[Block] | None) -> Block:
        return block.model_copy(update={"source_range": shift_range(block.source_range, offset), "children": children})

    return rebuild(blocks, _move) if offset else blocks


def region_reparse(
    blocks: list[Block], change: DocumentChange, text: str, settings: Settings | None = None
) -> list[Block] | None:
    """Reparse only the top-level blocks around ``change`` from the new text.

    The result matches a full parse of ``text``. Returns None when the region
    cannot be isolated: fences, toggles, front matter or reference definitions
    nearby, or a neighbouring block that could absorb the region.
    """
    if _REFERENCE_DEFINITION.search(text):
        return None

    touched = [i for i, block in enumerate(blocks) if ranges_overlap(block.source_range, change.range)]
    start, end = change.range.start, change.range.start + change.inserted_length
    first, last = (touched[0], touched[-1]) if touched else (None, None)
    if first is not None and last is not None:
        start = min(start, blocks[first].source_range.start)
        end = max(end, blocks[last].source_range.end + change.delta)
    if end > len(text):
        return None

    # Grow until blank-line bounded and holding whole top-level blocks
    while True:
        start, end = _blank_bounded(text, start, end)
        grown = False
        for i, block in enumerate(blocks):
            if first is not None and last is not None and first <= i <= last:
                continue
            moved = _moved(block.source_range, change)
            if moved.end > start and moved.start < end:
                first = i if first is None else min(first, i)
                last = i if last is None else max(last, i)
                if moved.start < start or moved.end > end:
                    start, end = min(start, moved.start), max(end, moved.end)
                    grown = True
        if not grown:
            break

    region = text[start:end]
    if _UNBOUNDED_SYNTAX.search(region) or has_front_matter(region):
        return None

    if first is None or last is None:
        before = [b for b in blocks if b.source_range.end <= change.range.start]
        after = blocks[len(before) :]
    else:
        before, after = blocks[:first], blocks[last + 1 :]
    if (before and before[-1].type in _CONTINUABLE_TYPES) or (after and after[0].type in _CONTINUABLE_TYPES):
        return None

    fresh = _offset_forest(parse_markdown(region, settings), start)
    shifted = _offset_forest(after, change.delta)
    return assign_block_ids(before + fresh + shifted)


def _fallback(
    blocks: list[Block], changes: list[DocumentChange], text: str | None, settings: Settings | None, reason: str
) -> UpdateResult:
    if text is None:
        logger.warning(f"Incremental update not possible ({reason}) and no document text given; caller must reparse")
        return UpdateResult(blocks, UpdateStrategy.REPARSE_NEEDED)

    if not is_complex(changes):
        region = region_reparse(blocks, changes[0], text, settings)
        if region is not None:
            logger.debug(f"Region reparse after {reason}")
            return UpdateResult(region, UpdateStrategy.REGION_REPARSE)

    logger.debug(f"Full reparse after {reason}")
    return UpdateResult(parse_markdown(text, settings), UpdateStrategy.FULL_REPARSE)


# === ENTRY POINTS ===


def apply_changes(
    blocks: list[Block],
    changes: Sequence[DocumentChange],
    text: str | None = None,
    settings: Settings | None = None,
) -> UpdateResult:
    """Reconcile ``blocks`` with ``changes`` and report how it was done.

    Args:
        blocks: Forest produced for the text before the changes
        changes: Edits in the order they were applied to the text
        text: The document text after the changes; enables real reparsing
        settings: Passed through to the parser on reparse

    Returns:
        The updated forest and the strategy used. Never raises for valid
        models.
    """
    changes = list(changes)
    if not changes:
        return UpdateResult(blocks, UpdateStrategy.UNCHANGED)
    if is_complex(changes):
        return _fallback(blocks, changes, text, settings, "complex change")

    change = changes[0]
    overlapping = [visit for visit in walk(blocks) if ranges_overlap(visit.block.source_range, change.range)]

    if not overlapping:
        # Anything but added line breaks can create or merge blocks; check when possible
        if text is not None and (
            change.deleted_length or change.text.strip("\r\n") or _after_open_ended_block(blocks, change)
        ):
            return _fallback(blocks, changes, text, settings, "edit between blocks")
        return UpdateResult(shift_after(blocks, change), UpdateStrategy.RANGE_SHIFT)

    innermost = _innermost(overlapping)
    if innermost is not None and is_simple_edit(innermost.block, change):
        try:
            patched = patch_block(innermost.block, change)
            return UpdateResult(shift_after(blocks, change, innermost.block, patched), UpdateStrategy.PATCH)
        except Exception as e:
            logger.debug(f"Patch failed, falling back: {e}")

    return _fallback(blocks, changes, text, settings, f"edit touching {len(overlapping)} block(s)")


def update_blocks(
    blocks: list[Block],
    changes: Sequence[DocumentChange],
    text: str | None = None,
    settings: Settings | None = None,
) -> list[Block]:
    """Like ``apply_changes`` but returns only the blocks."""
    return apply_changes(blocks, changes, text, settings).blocks
