"""GFM pipe tables: row splitting, alignment tokens and padded rendering.

markdown-it drops cells beyond the header width, so tables are read back from
their source rows instead of from the token stream.
"""

from mdmapper.models import Alignment, TableCell, TableContent

MIN_COLUMN_WIDTH = 3


def split_row(line: str) -> list[str]:
    """Split a table row on unescaped pipes. ``\\|`` stays inside its cell."""
    line = line.strip()
    if line.startswith("|"):
        line = line[1:]
    if line.endswith("|") and not _is_escaped(line, len(line) - 1):
        line = line[:-1]

    cells: list[str] = []
    current: list[str] = []
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\" and i + 1 < len(line):
            current.append(line[i : i + 2])
            i += 2
            continue
        if ch == "|":
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    cells.append("".join(current).strip())
    return cells


def _is_escaped(line: str, pos: int) -> bool:
    backslashes = 0
    pos -= 1
    while pos >= 0 and line[pos] == "\\":
        backslashes += 1
        pos -= 1
    return backslashes % 2 == 1


def parse_alignment(cell: str) -> Alignment | None:
    cell = cell.strip()
    left, right = cell.startswith(":"), cell.endswith(":") and len(cell) > 1
    if left and right:
        return "center"
    if left:
        return "left"
    if right:
        return "right"
    return None


def alignment_token(alignment: Alignment | None, width: int) -> str:
    if alignment == "left":
        return ":" + "-" * (width - 1)
    if alignment == "center":
        return ":" + "-" * (width - 2) + ":"
    if alignment == "right":
        return "-" * (width - 1) + ":"
    return "-" * width


def read_table(lines: list[str], source: str | None = None) -> TableContent | None:
    """Build table content from its rows: header, delimiter, then body rows.

    Body rows shorter than the header are padded with empty cells; longer rows
    keep their extra cells. Returns None when the lines do not form a table.
    """
    if len(lines) < 2:
        return None
    headers = split_row(lines[0])
    delimiter = split_row(lines[1])
    if len(delimiter) != len(headers) or not all(_is_delimiter_cell(c) for c in delimiter):
        return None

    rows = []
    for line in lines[2:]:
        cells = split_row(line)
        cells += [""] * (len(headers) - len(cells))
        rows.append([TableCell(text=c) for c in cells])

    return TableContent(
        headers=[TableCell(text=h) for h in headers],
        rows=rows,
        alignments=[parse_alignment(c) for c in delimiter],
        source=source,
    )


def _is_delimiter_cell(cell: str) -> bool:
    core = cell.strip().removeprefix(":").removesuffix(":")
    return bool(core) and set(core) == {"-"}


def same_table(a: TableContent, b: TableContent) -> bool:
    """Compare tables ignoring their verbatim source."""
    return a.model_dump(exclude={"source"}) == b.model_dump(exclude={"source"})


def render_table(table: TableContent) -> str:
    """Render a table with every column padded to its widest cell."""
    column_count = max([len(table.headers), *(len(row) for row in table.rows)])
    alignments = list(table.alignments[:column_count])
    alignments += [None] * (column_count - len(alignments))

    grid = [_pad([c.text for c in table.headers], column_count)]
    grid += [_pad([c.text for c in row], column_count) for row in table.rows]
    widths = [max(MIN_COLUMN_WIDTH, *(len(row[col]) for row in grid)) for col in range(column_count)]

    lines = [_render_row(grid[0], widths)]
    lines.append("| " + " | ".join(alignment_token(a, w) for a, w in zip(alignments, widths)) + " |")
    lines += [_render_row(row, widths) for row in grid[1:]]
    return "\n".join(lines)


def _pad(cells: list[str], count: int) -> list[str]:
    return cells + [""] * (count - len(cells))


def _render_row(cells: list[str], widths: list[int]) -> str:
    return "| " + " | ".join(cell.ljust(width) for cell, width in zip(cells, widths)) + " |"
