"""FastAPI app for the patient intake service."""

from __future__ import annotations

import mimetypes
import os
import re
import sys
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import UploadFile as StarletteUploadFile

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import time
import logging

from intake.fields import DEFAULT_HEADERS

from app.attachments import read_bytes, reset_request_base_url, set_request_base_url
from app.collector import FilePart
from app.db import get_db_stats, reset_db_stats
from app.record_store import RecordTable
from app.records import RecordService
from app.router import handle_get, handle_post
from app.stores import MemorySheet
from app.stores_db import DbSheet


app = FastAPI(title="Patient Intake")
logger = logging.getLogger("intake")
logging.basicConfig(level=logging.INFO)
_LOCAL_CORS_ORIGINS = {
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
}
_LOCAL_CORS_REGEX = re.compile(r"^http://(localhost|127\.0\.0\.1):\d+$")
_EXTRA_CORS_ORIGINS = {
    origin.strip().rstrip("/")
    for origin in os.getenv("INTAKE_CORS_ORIGINS", "").split(",")
    if origin.strip()
}
_CORS_ORIGINS = _LOCAL_CORS_ORIGINS | _EXTRA_CORS_ORIGINS

USE_DB = os.getenv("USE_DB", "").strip() == "1"
APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
REQ_SLOW_MS = float(os.getenv("INTAKE_REQ_SLOW_MS", "250"))
SERVICE_URL = os.getenv("INTAKE_SERVICE_URL", "").strip()

if USE_DB:
    sheet = DbSheet()
    sheet.ensure_table()
else:
    sheet = MemorySheet()
RecordTable(sheet).ensure_header(DEFAULT_HEADERS)
service = RecordService(sheet)
logger.info("intake_started use_db=%s app_env=%s", USE_DB, APP_ENV)


@app.middleware("http")
async def local_cors_fallback_middleware(request: Request, call_next):
    origin = request.headers.get("origin")
    if request.method == "OPTIONS":
        response = JSONResponse({}, status_code=200)
    else:
        response = await call_next(request)
    normalized_origin = origin.rstrip("/") if isinstance(origin, str) else origin
    if normalized_origin and (normalized_origin in _CORS_ORIGINS or _LOCAL_CORS_REGEX.match(normalized_origin)):
        response.headers.setdefault("Access-Control-Allow-Origin", origin)
        response.headers.setdefault("Access-Control-Allow-Headers", "*")
        response.headers.setdefault("Access-Control-Allow-Methods", "*")
        response.headers.setdefault("Vary", "Origin")
    return response


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_stats()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    db_stats = get_db_stats()
    db_ms = db_stats.get("total_ms", 0.0)
    logger.info(
        "%s %s %s total_ms=%.1f db_ms=%.1f db_q=%s",
        request.method,
        request.url.path,
        response.status_code,
        total_ms,
        db_ms,
        db_stats.get("queries", 0),
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning(
            "slow_request method=%s path=%s total_ms=%.1f db_ms=%.1f status=%s",
            request.method,
            request.url.path,
            total_ms,
            db_ms,
            response.status_code,
        )
    if IS_DEV:
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
        response.headers["X-DB-MS"] = f"{db_ms:.1f}"
    return response


def _envelope(body: dict, status: int = 200) -> JSONResponse:
    return JSONResponse(jsonable_encoder(body), status_code=status)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.warning("unhandled_error method=%s path=%s error=%s", request.method, request.url.path, exc)
    return _envelope({"ok": False, "message": str(exc) or "Unexpected server error"})


def _public_files_base(request: Request) -> str:
    try:
        return str(request.base_url).rstrip("/")
    except Exception:
        return ""


def _service_url(request: Request) -> str:
    if SERVICE_URL:
        return SERVICE_URL
    try:
        return str(request.url.replace(query="", fragment=""))
    except Exception:
        return ""


async def _read_form(request: Request) -> tuple[dict[str, Any], list[tuple[str, FilePart]]]:
    params: dict[str, Any] = dict(request.query_params)
    files: list[tuple[str, FilePart]] = []
    form = await request.form()
    for key, value in form.multi_items():
        if isinstance(value, StarletteUploadFile):
            data = await value.read()
            files.append((key, FilePart(filename=value.filename, data=data, content_type=value.content_type)))
        else:
            params[key] = value
    return params, files


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/")
async def intake_get(request: Request):
    return _envelope(handle_get(dict(request.query_params), service))


@app.post("/")
async def intake_post(request: Request):
    params, files = await _read_form(request)
    base_token = set_request_base_url(_public_files_base(request))
    try:
        result = handle_post(params, files, service, base_url=_service_url(request))
    finally:
        reset_request_base_url(base_token)
    return _envelope(result)


@app.get("/files/{folder}/{storage_key}")
async def download_file(folder: str, storage_key: str):
    try:
        data = read_bytes(folder, storage_key)
    except OSError:
        return _envelope({"ok": False, "message": "File not found"}, status=404)
    media_type = mimetypes.guess_type(storage_key)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)
