from __future__ import annotations

import hashlib
import logging
import os
import threading
from contextvars import ContextVar
from pathlib import Path
from urllib.parse import quote

import httpx

logger = logging.getLogger("intake.attachments")

_REQUEST_BASE_URL: ContextVar[str] = ContextVar("intake_request_base_url", default="")
_PUBLIC_BUCKETS: set[str] = set()
_PUBLIC_BUCKETS_LOCK = threading.Lock()

_DEFAULT_FOLDERS = {
    "photos": ("INTAKE_PHOTOS_FOLDER", "photos"),
    "videos": ("INTAKE_VIDEOS_FOLDER", "videos"),
    "documents": ("INTAKE_DOCUMENTS_FOLDER", "documents"),
}


def _supabase_url() -> str:
    return (os.getenv("SUPABASE_URL") or "").strip().rstrip("/")


def _supabase_service_role_key() -> str:
    return (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()


def _supabase_enabled() -> bool:
    return bool(_supabase_url() and _supabase_service_role_key())


def attachments_bucket() -> str:
    return (os.getenv("SUPABASE_STORAGE_BUCKET_ATTACHMENTS") or "intake").strip()


def _storage_root() -> Path:
    root = os.getenv("INTAKE_STORAGE_DIR", "storage")
    return Path(root)


def set_request_base_url(value: str):
    return _REQUEST_BASE_URL.set((value or "").strip().rstrip("/"))


def reset_request_base_url(token) -> None:
    _REQUEST_BASE_URL.reset(token)


def _public_base_url() -> str:
    configured = (os.getenv("INTAKE_PUBLIC_BASE_URL") or "").strip().rstrip("/")
    return configured or _REQUEST_BASE_URL.get()


def folder_for(category: str) -> str:
    env_key, default = _DEFAULT_FOLDERS.get(category, _DEFAULT_FOLDERS["documents"])
    return (os.getenv(env_key) or default).strip()


def _safe_segment(value: str) -> str:
    return value.replace("..", "_").replace("/", "_").replace("\\", "_")


def _supabase_headers(content_type: str | None = None) -> dict:
    headers = {
        "Authorization": f"Bearer {_supabase_service_role_key()}",
        "apikey": _supabase_service_role_key(),
        "x-upsert": "true",
    }
    if content_type:
        headers["Content-Type"] = content_type
    return headers


def _object_path(folder: str, storage_key: str) -> str:
    return quote(f"{folder}/{storage_key}", safe="/")


def _supabase_upload(folder: str, storage_key: str, data: bytes, mime_type: str | None = None) -> None:
    url = f"{_supabase_url()}/storage/v1/object/{attachments_bucket()}/{_object_path(folder, storage_key)}"
    with httpx.Client(timeout=30.0) as client:
        res = client.post(url, headers=_supabase_headers(mime_type), content=data)
        if res.status_code >= 400:
            raise RuntimeError(f"supabase_upload_failed:{res.status_code}:{res.text}")


def _supabase_make_public() -> None:
    # Visibility is a bucket setting; only the first share per bucket calls out.
    bucket = attachments_bucket()
    with _PUBLIC_BUCKETS_LOCK:
        if bucket in _PUBLIC_BUCKETS:
            return
    url = f"{_supabase_url()}/storage/v1/bucket/{quote(bucket, safe='')}"
    with httpx.Client(timeout=30.0) as client:
        res = client.put(url, headers=_supabase_headers("application/json"), json={"id": bucket, "name": bucket, "public": True})
        if res.status_code >= 400:
            raise RuntimeError(f"supabase_share_failed:{res.status_code}:{res.text}")
    with _PUBLIC_BUCKETS_LOCK:
        _PUBLIC_BUCKETS.add(bucket)


def _supabase_download(folder: str, storage_key: str) -> bytes:
    url = f"{_supabase_url()}/storage/v1/object/{attachments_bucket()}/{_object_path(folder, storage_key)}"
    with httpx.Client(timeout=30.0) as client:
        res = client.get(url, headers=_supabase_headers())
        if res.status_code >= 400:
            raise FileNotFoundError(f"supabase_download_failed:{res.status_code}")
        return res.content


def store_bytes(folder: str, filename: str, data: bytes, mime_type: str | None = None) -> dict:
    digest = hashlib.sha256(data).hexdigest()
    safe_folder = _safe_segment(folder)
    storage_key = f"{digest}_{_safe_segment(filename)}"
    path = None
    if _supabase_enabled():
        _supabase_upload(safe_folder, storage_key, data, mime_type=mime_type)
    else:
        target = _storage_root() / safe_folder
        target.mkdir(parents=True, exist_ok=True)
        path_obj = target / storage_key
        path_obj.write_bytes(data)
        path = str(path_obj)
    logger.info("attachment_stored folder=%s key=%s size=%s", safe_folder, storage_key, len(data))
    return {
        "storage_key": storage_key,
        "sha256": digest,
        "size": len(data),
        "path": path,
        "folder": safe_folder,
    }


def share_public(folder: str, storage_key: str) -> None:
    """Grant anyone holding the URL read access. May raise."""
    if _supabase_enabled():
        _supabase_make_public()
        return
    os.chmod(resolve_path(folder, storage_key), 0o644)


def public_url(folder: str, storage_key: str) -> str:
    if _supabase_enabled():
        return f"{_supabase_url()}/storage/v1/object/public/{attachments_bucket()}/{_object_path(folder, storage_key)}"
    return f"{_public_base_url()}/files/{_object_path(folder, storage_key)}"


def resolve_path(folder: str, storage_key: str) -> Path:
    if _supabase_enabled():
        raise RuntimeError("resolve_path is unavailable when using Supabase storage")
    return _storage_root() / _safe_segment(folder) / _safe_segment(storage_key)


def read_bytes(folder: str, storage_key: str) -> bytes:
    if _supabase_enabled():
        return _supabase_download(_safe_segment(folder), _safe_segment(storage_key))
    return resolve_path(folder, storage_key).read_bytes()
