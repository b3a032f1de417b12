"""Delimited-text parsing for published sheet exports.

Only the simple grammar the league sheets need is supported: one record per
line, ``,`` as the delimiter, one optional layer of surrounding double quotes
per cell. Delimiters or line breaks inside quoted cells are not handled.
"""

from typing import List, Sequence

DELIMITER = ","
QUOTE = '"'


def _clean_cell(cell: str) -> str:
    cell = cell.strip()
    if cell.startswith(QUOTE):
        cell = cell[1:]
    if cell.endswith(QUOTE):
        cell = cell[:-1]
    return cell


def parse_csv_text(text: str, delimiter: str = DELIMITER) -> List[List[str]]:
    """Return a grid of trimmed string cells, skipping blank lines."""
    grid: List[List[str]] = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        grid.append([_clean_cell(cell) for cell in line.split(delimiter)])
    return grid


def is_blank_row(row: Sequence[str]) -> bool:
    return not row or all(not (cell or "").strip() for cell in row)


__all__ = ["parse_csv_text", "is_blank_row"]
