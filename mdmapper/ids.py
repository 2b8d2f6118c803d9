"""Deterministic block IDs.

An ID is a digest of the block's type, its content, its nesting depth and its
parent's ID. Position among siblings is not part of it, so inserting a
block does not renumber everything after it. When two blocks would still get
the same digest (same type and text under the same parent), later occurrences
in document order get a ``-2``, ``-3``, ... suffix.
"""

import hashlib

from pydantic import BaseModel

from mdmapper.models import Block
from mdmapper.tree import rebuild, walk

# Content fields that do not change what a block *is*
_VOLATILE_FIELDS = {"source", "marker", "fence", "collapsed"}

_DIGEST_CHARS = 12


def content_fingerprint(content: BaseModel) -> str:
    return content.model_dump_json(exclude=_VOLATILE_FIELDS)


def calculate_block_hash(block_type: str, content: BaseModel, depth: int, parent_id: str | None) -> str:
    """Generates the base ID for a block from its identity-relevant properties."""
    hasher = hashlib.sha256()
    hasher.update(block_type.encode("utf-8"))
    hasher.update(f"|{depth}".encode("utf-8"))
    hasher.update(f"|{parent_id or ''}".encode("utf-8"))
    hasher.update(f"|{content_fingerprint(content)}".encode("utf-8"))
    return f"{block_type}-{hasher.hexdigest()[:_DIGEST_CHARS]}"


class IdAllocator:
    """Hands out unique IDs in document order."""

    def __init__(self) -> None:
        self._used: set[str] = set()

    def allocate(self, block_type: str, content: BaseModel, depth: int, parent_id: str | None) -> str:
        base = calculate_block_hash(block_type, content, depth, parent_id)
        if base not in self._used:
            self._used.add(base)
            return base
        counter = 2
        while f"{base}-{counter}" in self._used:
            counter += 1
        unique = f"{base}-{counter}"
        self._used.add(unique)
        return unique


def assign_block_ids(blocks: list[Block]) -> list[Block]:
    """Return a copy of the forest with freshly computed IDs.

    Gives the same IDs ``parse_markdown`` would give to an identical forest.
    """
    allocator = IdAllocator()
    new_ids: dict[int, str] = {}
    for visit in walk(blocks):
        parent_id = new_ids[id(visit.parent)] if visit.parent is not None else None
        new_ids[id(visit.block)] = allocator.allocate(visit.block.type, visit.block.content, visit.depth, parent_id)

    def _with_id(block: Block, children: list[Block] | None) -> Block:
        return block.model_copy(update={"id": new_ids[id(block)], "children": children})

    return rebuild(blocks, _with_id)
