"""Token-addressed record lifecycle: create, update and get."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Mapping
from urllib.parse import quote

from intake.fields import (
    CATEGORIES,
    HEADER_TIMESTAMP,
    HEADER_TOKEN,
    LINK_HEADERS,
    SCALAR_HEADERS,
    FieldPatch,
    cell_text,
)
from intake.link_codec import join_links, split_links

from app.collector import FileParts, collect_files
from app.record_store import RecordTable, get_field, set_field
from app.stores import _now

logger = logging.getLogger("intake.records")

INVALID_TOKEN = "Invalid token"


def _fail(message: str) -> dict:
    return {"ok": False, "message": message}


def _invalid_token() -> dict:
    return _fail(INVALID_TOKEN)


def edit_url(base_url: str | None, token: str) -> str:
    base = (base_url or "").strip()
    if not base:
        return ""
    return f"{base}?token={quote(token, safe='')}"


class RecordService:
    def __init__(self, sheet, collect: Callable[[FileParts | None, str], list[str]] = collect_files) -> None:
        self.table = RecordTable(sheet)
        self._collect = collect

    def _collect_all(self, files: FileParts | None) -> dict[str, list[str]]:
        # Materialize once so generators survive one pass per category.
        parts = list(files.items()) if isinstance(files, Mapping) else list(files or [])
        return {category: self._collect(parts, category) for category in CATEGORIES}

    def create(self, params: Mapping[str, Any] | None, files: FileParts | None = None, base_url: str = "") -> dict:
        params = params or {}
        try:
            scalars = {name: cell_text(params.get(name)).strip() for name in SCALAR_HEADERS}
            links = self._collect_all(files)
            token = str(uuid.uuid4())
            columns = self.table.column_map()
            row = self.table.blank_row()
            set_field(row, columns, HEADER_TIMESTAMP, _now())
            set_field(row, columns, HEADER_TOKEN, token)
            for name, header in SCALAR_HEADERS.items():
                set_field(row, columns, header, scalars[name])
            for category, header in LINK_HEADERS.items():
                set_field(row, columns, header, join_links(links[category]))
            row_num = self.table.append_row(row)
        except Exception as exc:
            logger.warning("record_create_failed error=%s", exc)
            return _fail(str(exc))
        logger.info(
            "record_created row=%s photos=%s videos=%s documents=%s",
            row_num,
            len(links["photos"]),
            len(links["videos"]),
            len(links["documents"]),
        )
        return {
            "ok": True,
            "message": "Saved successfully",
            "editUrl": edit_url(base_url, token),
            "token": token,
            "data": {**scalars, **links},
        }

    def update(self, params: Mapping[str, Any] | None, files: FileParts | None = None) -> dict:
        params = params or {}
        try:
            token = cell_text(params.get("token")).strip()
            columns = self.table.column_map()
            row_num = self.table.find_by_token(token, columns)
            if row_num is None:
                logger.info("record_update_invalid_token")
                return _invalid_token()
            existing = self.table.read_row(row_num)
            patch = FieldPatch.from_params(params)
            scalars = {name: patch.resolve(name, get_field(existing, columns, header)) for name, header in SCALAR_HEADERS.items()}
            links = {category: split_links(get_field(existing, columns, header)) for category, header in LINK_HEADERS.items()}
            for category, new_links in self._collect_all(files).items():
                if new_links:
                    links[category] = new_links
            updated = list(existing)
            for name, header in SCALAR_HEADERS.items():
                set_field(updated, columns, header, scalars[name])
            for category, header in LINK_HEADERS.items():
                set_field(updated, columns, header, join_links(links[category]))
            self.table.write_row(row_num, updated)
        except Exception as exc:
            logger.warning("record_update_failed error=%s", exc)
            return _fail(str(exc))
        logger.info("record_updated row=%s fields=%s", row_num, sorted(patch.provided))
        return {
            "ok": True,
            "message": "Updated successfully",
            "data": {**scalars, **links},
        }

    def get(self, token: str | None) -> dict:
        token = cell_text(token).strip()
        columns = self.table.column_map()
        row_num = self.table.find_by_token(token, columns)
        if row_num is None:
            return _invalid_token()
        values = self.table.read_row(row_num)
        data: dict[str, Any] = {
            "timestamp": get_field(values, columns, HEADER_TIMESTAMP),
            "token": get_field(values, columns, HEADER_TOKEN),
        }
        for name, header in SCALAR_HEADERS.items():
            data[name] = get_field(values, columns, header) or ""
        for category, header in LINK_HEADERS.items():
            data[category] = split_links(get_field(values, columns, header))
        return {"ok": True, "data": data}
