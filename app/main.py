"""FastAPI app exposing the flyout panel request surface."""

from __future__ import annotations

import os
import sys
import json
import logging
from pathlib import Path
from typing import Any

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

import anyio
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.context import build_context
from app.permissions import actor_event_meta, auth_disabled, resolve_actor


logging.basicConfig(level=os.getenv("FLYOUT_LOG_LEVEL", "INFO").strip().upper() or "INFO")
logger = logging.getLogger("flyouts")

ROUTE_PREFIX = "/" + (os.getenv("FLYOUT_ROUTE_PREFIX", "/flyouts/v1").strip().strip("/") or "flyouts/v1")

_LOCAL_CORS_ORIGINS = {
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
}
_EXTRA_CORS_ORIGINS = {
    origin.strip().rstrip("/")
    for origin in os.getenv("FLYOUT_CORS_ORIGINS", "").split(",")
    if origin.strip()
}
_CORS_ORIGINS = _LOCAL_CORS_ORIGINS | _EXTRA_CORS_ORIGINS

context = build_context(route_prefix=ROUTE_PREFIX)
logger.info("flyouts_ready route_prefix=%s auth_disabled=%s", ROUTE_PREFIX, auth_disabled())

app = FastAPI()
app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(_CORS_ORIGINS),
    allow_origin_regex=r"http://localhost:\d+|http://127\.0\.0\.1:\d+",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


def _error_response(code: str, message: str, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body: dict[str, Any] = {"code": code, "message": message, "httpStatus": status}
    if detail:
        body["detail"] = detail
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, status: int = 200) -> JSONResponse:
    body = {**payload, "success": True}
    return JSONResponse(jsonable_encoder(body), status_code=status)


async def _safe_json(request: Request) -> dict:
    try:
        body = await request.json()
    except Exception:
        return {}
    return body if isinstance(body, dict) else {}


def _form_data(value: Any) -> Any:
    # Clients that serialize the form themselves send it as a JSON string.
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return value if isinstance(value, dict) else {}


async def _dispatch(request: Request, operation: str, payload: dict) -> JSONResponse:
    actor = resolve_actor(request)
    if actor is None:
        return _error_response("AUTH_REQUIRED", "Authenticated user required", status=401)
    status, body = await anyio.to_thread.run_sync(
        context.dispatcher.dispatch,
        operation,
        payload,
        context.can_perform_for(actor),
        actor_event_meta(actor),
    )
    if status >= 400:
        return _error_response(body.get("code", "INTERNAL_ERROR"), body.get("message", ""), body.get("detail"), status=status)
    return _ok_response(body, status=status)


@app.post(f"{ROUTE_PREFIX}/load")
async def load_panel(request: Request) -> JSONResponse:
    return await _dispatch(request, "load", await _safe_json(request))


@app.post(f"{ROUTE_PREFIX}/save")
async def save_panel(request: Request) -> JSONResponse:
    payload = await _safe_json(request)
    payload["form_data"] = _form_data(payload.get("form_data"))
    return await _dispatch(request, "save", payload)


@app.post(f"{ROUTE_PREFIX}/delete")
async def delete_panel(request: Request) -> JSONResponse:
    return await _dispatch(request, "delete", await _safe_json(request))


@app.post(f"{ROUTE_PREFIX}/action")
async def panel_action(request: Request) -> JSONResponse:
    return await _dispatch(request, "action", await _safe_json(request))


@app.get(f"{ROUTE_PREFIX}/search")
async def panel_search(request: Request) -> JSONResponse:
    params = request.query_params
    payload: dict[str, Any] = {key: params.get(key) for key in ("manager", "flyout", "panel_id", "item_id", "field_key", "term")}
    include = params.getlist("include") or params.getlist("include[]")
    if include:
        payload["include"] = include[0] if len(include) == 1 else include
    return await _dispatch(request, "search", payload)
