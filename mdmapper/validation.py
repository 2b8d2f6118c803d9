"""Structural invariants of a Block forest."""

from mdmapper.exceptions import InvalidBlockError
from mdmapper.models import Block
from mdmapper.ranges import contains_range
from mdmapper.tree import walk

# Sibling ranges may overlap by less than this many characters
SIBLING_OVERLAP_TOLERANCE = 5


def find_problems(blocks: list[Block]) -> list[str]:
    problems: list[str] = []
    seen: set[str] = set()
    previous: dict[int, Block] = {}  # keyed by id() of the parent (0 for roots)

    for visit in walk(blocks):
        block = visit.block
        range_ = block.source_range
        if block.id in seen:
            problems.append(f"duplicate id {block.id!r}")
        seen.add(block.id)

        if range_.end < range_.start:
            problems.append(f"{block.id}: range end {range_.end} before start {range_.start}")
        if visit.parent is not None and not contains_range(visit.parent.source_range, range_):
            problems.append(f"{block.id}: range {range_.start}-{range_.end} outside parent {visit.parent.id}")

        sibling_key = id(visit.parent) if visit.parent is not None else 0
        before = previous.get(sibling_key)
        if before is not None:
            if range_.start < before.source_range.start:
                problems.append(f"{block.id}: starts before previous sibling {before.id}")
            elif before.source_range.end - range_.start >= SIBLING_OVERLAP_TOLERANCE:
                problems.append(f"{block.id}: overlaps previous sibling {before.id}")
        previous[sibling_key] = block

    return problems


def validate_blocks(blocks: list[Block]) -> None:
    """Check ID uniqueness, range sanity, containment and sibling order.

    Raises:
        InvalidBlockError: listing every violation found
    """
    problems = find_problems(blocks)
    if problems:
        raise InvalidBlockError(f"{len(problems)} invariant violation(s): {problems[0]}", problems=problems)
