"""In-memory sheet for local runs and tests."""

from __future__ import annotations

import copy
import threading
from datetime import datetime, timezone
from typing import Any, Iterable, List


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class MemorySheet:
    """Row-oriented table addressed by 1-based row and column numbers.

    Row 1 is the header row. Rows are padded to the current column count on
    read, the way a spreadsheet range read behaves.
    """

    def __init__(self, headers: Iterable[str] | None = None) -> None:
        self._rows: List[List[Any]] = []
        self._lock = threading.Lock()
        if headers:
            self._rows.append(list(headers))

    def header_row(self) -> list:
        with self._lock:
            return list(self._rows[0]) if self._rows else []

    def last_row(self) -> int:
        with self._lock:
            return len(self._rows)

    def last_column(self) -> int:
        with self._lock:
            return max((len(r) for r in self._rows), default=0)

    def _pad(self, values: list, width: int) -> list:
        return list(values) + [""] * max(0, width - len(values))

    def get_row(self, row: int) -> list:
        width = self.last_column()
        with self._lock:
            if row < 1 or row > len(self._rows):
                raise IndexError(f"row out of range: {row}")
            return self._pad(copy.deepcopy(self._rows[row - 1]), width)

    def get_column(self, column: int, start_row: int = 2) -> list:
        with self._lock:
            out = []
            for values in self._rows[max(start_row, 1) - 1 :]:
                out.append(copy.deepcopy(values[column - 1]) if column - 1 < len(values) else "")
            return out

    def append_row(self, values: list) -> int:
        with self._lock:
            self._rows.append(copy.deepcopy(list(values)))
            return len(self._rows)

    def set_row(self, row: int, values: list) -> None:
        with self._lock:
            if row < 1 or row > len(self._rows):
                raise IndexError(f"row out of range: {row}")
            self._rows[row - 1] = copy.deepcopy(list(values))

    def snapshot(self) -> list[list]:
        with self._lock:
            return copy.deepcopy(self._rows)
