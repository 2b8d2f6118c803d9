"""Iterative traversal helpers for block forests.

Lists, quotes and toggles can nest arbitrarily deep, so nothing here recurses:
walks use an explicit stack and rebuilds assemble parents after their children.
"""

from collections.abc import Callable, Iterator
from typing import NamedTuple, TypeVar

from mdmapper.models import Block

T = TypeVar("T")


class Visit(NamedTuple):
    block: Block
    depth: int
    parent: Block | None
    index: int  # position among siblings


def walk(blocks: list[Block]) -> Iterator[Visit]:
    """Yield every block in document (pre-)order."""
    stack: list[Visit] = [Visit(b, 0, None, i) for i, b in reversed(list(enumerate(blocks)))]
    while stack:
        visit = stack.pop()
        yield visit
        children = visit.block.children or []
        for i in range(len(children) - 1, -1, -1):
            stack.append(Visit(children[i], visit.depth + 1, visit.block, i))


def flatten_blocks(blocks: list[Block]) -> list[Block]:
    return [visit.block for visit in walk(blocks)]


def max_depth(blocks: list[Block]) -> int:
    return max((visit.depth for visit in walk(blocks)), default=-1) + 1


def fold(blocks: list[Block], fn: Callable[[Block, list[T] | None], T]) -> list[T]:
    """Reduce a forest bottom-up.

    ``fn(block, children)`` receives each block together with the results
    already computed for its children (``None`` when the block has no
    children list) and returns the block's result.
    """
    # Each frame: (source blocks, next index, results so far)
    root: list[T] = []
    frames: list[tuple[list[Block], list[int], list[T]]] = [(blocks, [0], root)]
    while frames:
        source, cursor, results = frames[-1]
        if cursor[0] >= len(source):
            frames.pop()
            if frames:
                parent_source, parent_cursor, parent_results = frames[-1]
                parent = parent_source[parent_cursor[0]]
                parent_results.append(fn(parent, results))
                parent_cursor[0] += 1
            continue
        block = source[cursor[0]]
        if block.children:
            frames.append((block.children, [0], []))
            continue
        results.append(fn(block, None if block.children is None else []))
        cursor[0] += 1
    return root


def rebuild(blocks: list[Block], fn: Callable[[Block, list[Block] | None], Block]) -> list[Block]:
    """Rebuild a forest bottom-up; ``fn`` returns the replacement for each block."""
    return fold(blocks, fn)
