"""
Image editor service.

Hosts the scan and replace endpoints for a static site whose assets live in a
GitHub repository. The repository token is configured on the server only.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from site_editor import __version__
from site_editor.editing.config import load_local_env

from .config import ensure_secure_config_on_startup
from .routes.editor import close_contents_client, editor_router


logger = logging.getLogger("site_editor.web")

load_local_env()
ensure_secure_config_on_startup()


def _cors_origins() -> list[str]:
    raw = os.getenv("SITE_EDITOR_ALLOWED_ORIGINS") or ""
    return [item.strip().rstrip("/") for item in raw.split(",") if item.strip()]


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info("editor service started version=%s", __version__)
    yield
    await close_contents_client()


app = FastAPI(title="Site image editor", version=__version__, lifespan=lifespan)

_origins = _cors_origins()
if _origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        allow_credentials=False,
    )


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    return response


app.include_router(editor_router)
