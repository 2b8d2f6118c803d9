"""Source range utilities over half-open ``[start, end)`` intervals."""

import bisect
import re

from mdmapper.models import SourceRange

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def contains_range(container: SourceRange, contained: SourceRange) -> bool:
    return container.start <= contained.start and container.end >= contained.end


def ranges_overlap(a: SourceRange, b: SourceRange) -> bool:
    """True if the ranges share at least one character.

    A zero-width range is an insertion point: it overlaps a range whose
    interior or end it sits on, so appending to a block counts as touching it.
    """
    if a.start == a.end:
        return b.start < a.start <= b.end
    if b.start == b.end:
        return a.start < b.start <= a.end
    return a.start < b.end and b.start < a.end


def merge_ranges(*ranges: SourceRange) -> SourceRange:
    if not ranges:
        raise ValueError("Cannot merge an empty list of ranges")
    return SourceRange(start=min(r.start for r in ranges), end=max(r.end for r in ranges))


def shift_range(range_: SourceRange, delta: int) -> SourceRange:
    if delta == 0:
        return range_
    return SourceRange(start=max(0, range_.start + delta), end=max(0, range_.end + delta))


def adjust_range_after_edit(range_: SourceRange, edit_start: int, edit_end: int, new_text_length: int) -> SourceRange:
    """Map a range through the replacement of ``[edit_start, edit_end)``.

    Ranges ending before the edit are unchanged, ranges starting after it move
    by the length delta. A range that overlaps the edit keeps its start and
    stretches or shrinks its end by the delta; callers that need exact
    positions there must reparse.
    """
    delta = new_text_length - (edit_end - edit_start)
    if range_.end <= edit_start:
        return range_
    if range_.start >= edit_end:
        return shift_range(range_, delta)
    start = min(range_.start, edit_start)
    end = max(start, range_.end + delta, edit_start + new_text_length)
    return SourceRange(start=start, end=end)


def line_starts(text: str) -> list[int]:
    """Offsets at which each line of ``text`` starts (\\r\\n, \\r and \\n all break lines)."""
    starts = [0]
    starts.extend(m.end() for m in _LINE_BREAK.finditer(text))
    return starts


def offset_to_position(text: str, offset: int) -> tuple[int, int]:
    """Convert a character offset to a 1-based ``(line, column)`` pair."""
    offset = max(0, min(offset, len(text)))
    starts = line_starts(text)
    line = bisect.bisect_right(starts, offset) - 1
    return line + 1, offset - starts[line] + 1


def position_to_offset(text: str, line: int, column: int) -> int:
    """Inverse of ``offset_to_position``; out-of-range positions are clamped."""
    starts = line_starts(text)
    index = max(0, min(line - 1, len(starts) - 1))
    return max(0, min(starts[index] + column - 1, len(text)))


def extract_range_text(text: str, range_: SourceRange) -> str:
    return text[range_.start : range_.end]
