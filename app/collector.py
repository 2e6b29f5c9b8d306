"""Store uploaded file parts for one attachment category."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Tuple, Union

from app.attachments import folder_for, public_url, share_public, store_bytes

logger = logging.getLogger("intake.attachments")


@dataclass(frozen=True)
class FilePart:
    filename: str | None
    data: bytes
    content_type: str | None = None


FileParts = Union[Mapping[str, FilePart], Iterable[Tuple[str, FilePart]]]


def _iter_parts(file_parts: FileParts | None) -> list[tuple[str, Any]]:
    if not file_parts:
        return []
    if isinstance(file_parts, Mapping):
        return list(file_parts.items())
    return list(file_parts)


def matches_prefix(field_name: str, prefix: str) -> bool:
    return field_name == prefix or field_name.startswith(prefix + "[")


def category_for(prefix: str) -> str:
    if prefix.startswith("photo"):
        return "photos"
    if prefix.startswith("video"):
        return "videos"
    return "documents"


def _fallback_name() -> str:
    return f"upload_{int(time.time() * 1000)}"


def _unique_name(name: str, used: dict[str, int]) -> str:
    seen = used.get(name, 0)
    used[name] = seen + 1
    if not seen:
        return name
    stem, dot, ext = name.rpartition(".")
    if dot and stem:
        return f"{stem}_{seen + 1}.{ext}"
    return f"{name}_{seen + 1}"


def _share_best_effort(folder: str, storage_key: str) -> None:
    try:
        share_public(folder, storage_key)
    except Exception as exc:
        logger.warning("attachment_share_failed folder=%s key=%s error=%s", folder, storage_key, exc)


def save_to_folder(part: FilePart, folder: str, name: str) -> str:
    stored = store_bytes(folder, name, part.data, mime_type=part.content_type or "application/octet-stream")
    _share_best_effort(stored["folder"], stored["storage_key"])
    return public_url(stored["folder"], stored["storage_key"])


def collect_files(file_parts: FileParts | None, prefix: str) -> list[str]:
    """Store every part named ``prefix`` or ``prefix[...]`` and return their URLs.

    Parts are stored one at a time in the order they arrived. A storage
    error propagates; files stored before it stay stored.
    """
    links: list[str] = []
    used: dict[str, int] = {}
    folder = None
    for field_name, part in _iter_parts(file_parts):
        if part is None or not isinstance(field_name, str) or not matches_prefix(field_name, prefix):
            continue
        if folder is None:
            folder = folder_for(category_for(prefix))
        name = _unique_name(part.filename or _fallback_name(), used)
        links.append(save_to_folder(part, folder, name))
    return links
