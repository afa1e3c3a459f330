"""Reduce decoded tabular data to the list of row texts for one column."""

from collections.abc import Iterable, Sequence
from typing import Any


class InputError(ValueError):
    """Job input cannot be turned into rows (empty table, unknown column, no data)."""


def _cell_text(cell: Any) -> str:
    if cell is None:
        return ""
    return str(cell)


def clean_rows(rows: Iterable[Any]) -> list[str]:
    """Keep rows whose text is non-empty after trimming; text itself is kept as-is."""
    return [text for text in (_cell_text(row) for row in rows) if text.strip()]


def extract_column(table: Sequence[Sequence[Any]], column: str) -> list[str]:
    """Return the cell texts of ``column``, using the first row as the header.

    Raises:
        InputError: If the table has no data rows, the column is missing,
            or the column holds no non-blank cells
    """
    if len(table) < 2:
        raise InputError("Excel 文件为空或格式不正确")

    headers = [_cell_text(cell) for cell in table[0]]
    if column not in headers:
        raise InputError(f"未找到列名: {column}")
    column_index = headers.index(column)

    texts = clean_rows(
        row[column_index] if column_index < len(row) else None
        for row in table[1:]
    )
    if not texts:
        raise InputError("指定列没有有效数据")
    return texts
