"""Positional record access on top of a sheet backend."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from intake.fields import HEADER_TOKEN, cell_text

logger = logging.getLogger("intake.sheet")


def column_map(sheet) -> Mapping[str, int]:
    """Map each header in row 1 to its 1-based column number.

    On duplicate headers the right-most column wins.
    """
    columns: dict[str, int] = {}
    for idx, header in enumerate(sheet.header_row()):
        name = cell_text(header)
        if not name:
            continue
        columns[name] = idx + 1
    return MappingProxyType(columns)


def get_field(values: list, columns: Mapping[str, int], header: str) -> Any:
    col = columns.get(header)
    if not col or col > len(values):
        return ""
    return values[col - 1]


def set_field(values: list, columns: Mapping[str, int], header: str, value: Any) -> None:
    col = columns.get(header)
    if not col or col > len(values):
        return
    values[col - 1] = value


class RecordTable:
    def __init__(self, sheet) -> None:
        self.sheet = sheet

    def column_map(self) -> Mapping[str, int]:
        return column_map(self.sheet)

    def find_by_token(self, token: str | None, columns: Mapping[str, int] | None = None) -> int | None:
        if not token:
            return None
        if columns is None:
            columns = self.column_map()
        col = columns.get(HEADER_TOKEN)
        if not col:
            return None
        for offset, value in enumerate(self.sheet.get_column(col, start_row=2)):
            if cell_text(value) == token:
                return offset + 2
        return None

    def read_row(self, row: int) -> list:
        return self.sheet.get_row(row)

    def blank_row(self) -> list:
        return [""] * self.sheet.last_column()

    def append_row(self, values: Iterable[Any]) -> int:
        return self.sheet.append_row(list(values))

    def write_row(self, row: int, values: Iterable[Any]) -> None:
        self.sheet.set_row(row, list(values))

    def ensure_header(self, headers: Iterable[str]) -> bool:
        if self.sheet.last_row() > 0:
            return False
        self.sheet.append_row(list(headers))
        logger.info("sheet_header_bootstrapped")
        return True
