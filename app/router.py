"""Action dispatch for the intake endpoint.

GET  ?action=get&token=...      -> get
GET  (any other action)         -> liveness message
POST (no action / action=create) -> create
POST action=update&token=...    -> update
"""

from __future__ import annotations

from typing import Any, Mapping

from app.collector import FileParts
from app.records import RecordService

HEALTH_MESSAGE = "Web app running"


def _action(params: Mapping[str, Any], default: str) -> str:
    value = params.get("action")
    if not isinstance(value, str) or not value.strip():
        return default
    return value.strip().lower()


def handle_get(params: Mapping[str, Any] | None, service: RecordService) -> dict:
    params = params or {}
    if _action(params, "ping") == "get":
        return service.get(params.get("token") or "")
    return {"ok": True, "message": HEALTH_MESSAGE}


def handle_post(
    params: Mapping[str, Any] | None,
    files: FileParts | None,
    service: RecordService,
    base_url: str = "",
) -> dict:
    params = params or {}
    if _action(params, "create") == "update":
        return service.update(params, files)
    return service.create(params, files, base_url=base_url)
