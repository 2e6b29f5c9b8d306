"""DB-backed sheet for intake persistence."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Iterable

from app.db import execute, fetch_all, fetch_one, get_conn

logger = logging.getLogger("intake.sheet")


def _json_dumps(value: object) -> str:
    return json.dumps(value, default=str)


def _cells(row: dict | None) -> list:
    if not row:
        return []
    data = row.get("cells")
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except Exception:
            data = []
    return list(data) if isinstance(data, list) else []


def default_sheet_name() -> str:
    return (os.getenv("INTAKE_SHEET_NAME") or "Sheet1").strip()


class DbSheet:
    """Sheet stored as one jsonb array per row in ``intake_sheet_rows``.

    Each method borrows a single connection, so every append or row write
    commits as one statement.
    """

    def __init__(self, sheet: str | None = None) -> None:
        self.sheet = sheet or default_sheet_name()

    def ensure_table(self) -> None:
        with get_conn() as conn:
            execute(
                conn,
                """
                create table if not exists intake_sheet_rows (
                  sheet text not null,
                  row_num integer not null,
                  cells jsonb not null default '[]'::jsonb,
                  primary key (sheet, row_num)
                )
                """,
                query_name="intake_sheet_rows.ensure_table",
            )

    def header_row(self) -> list:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                "select cells from intake_sheet_rows where sheet=%s and row_num=1",
                [self.sheet],
                query_name="intake_sheet_rows.header",
            )
        return _cells(row)

    def last_row(self) -> int:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                "select coalesce(max(row_num), 0) as last_row from intake_sheet_rows where sheet=%s",
                [self.sheet],
                query_name="intake_sheet_rows.last_row",
            )
        return int((row or {}).get("last_row") or 0)

    def last_column(self) -> int:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                "select coalesce(max(jsonb_array_length(cells)), 0) as last_column from intake_sheet_rows where sheet=%s",
                [self.sheet],
                query_name="intake_sheet_rows.last_column",
            )
        return int((row or {}).get("last_column") or 0)

    def get_row(self, row: int) -> list:
        width = self.last_column()
        with get_conn() as conn:
            found = fetch_one(
                conn,
                "select cells from intake_sheet_rows where sheet=%s and row_num=%s",
                [self.sheet, row],
                query_name="intake_sheet_rows.get_row",
            )
        if not found:
            raise IndexError(f"row out of range: {row}")
        values = _cells(found)
        return values + [""] * max(0, width - len(values))

    def get_column(self, column: int, start_row: int = 2) -> list:
        with get_conn() as conn:
            rows = fetch_all(
                conn,
                """
                select row_num, cells->>%s as value
                from intake_sheet_rows
                where sheet=%s and row_num >= %s
                order by row_num asc
                """,
                [column - 1, self.sheet, start_row],
                query_name="intake_sheet_rows.get_column",
            )
        return [r.get("value") if r.get("value") is not None else "" for r in rows]

    def append_row(self, values: Iterable[Any]) -> int:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                """
                insert into intake_sheet_rows (sheet, row_num, cells)
                select %s, coalesce(max(row_num), 0) + 1, %s::jsonb
                from intake_sheet_rows
                where sheet=%s
                returning row_num
                """,
                [self.sheet, _json_dumps(list(values)), self.sheet],
                query_name="intake_sheet_rows.append",
            )
        row_num = int((row or {}).get("row_num") or 0)
        logger.info("sheet_row_appended sheet=%s row=%s", self.sheet, row_num)
        return row_num

    def set_row(self, row: int, values: Iterable[Any]) -> None:
        with get_conn() as conn:
            count = execute(
                conn,
                "update intake_sheet_rows set cells=%s::jsonb where sheet=%s and row_num=%s",
                [_json_dumps(list(values)), self.sheet, row],
                query_name="intake_sheet_rows.set_row",
            )
        if not count:
            raise IndexError(f"row out of range: {row}")
        logger.info("sheet_row_written sheet=%s row=%s", self.sheet, row)
