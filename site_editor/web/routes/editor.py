"""
Editor API routes: scan pages and replace images.

Why:
    The in-page editor script (and any tooling around the static site) needs
    two server-side operations: mark the editable surfaces of a page, and
    commit a replacement image chosen by the editor.

Endpoints:
    POST /api/pages/scan        JSON {html, pageUrl} -> marked HTML + surfaces
    POST /api/images/replace    multipart {reference, pageUrl, file} -> outcome

Permissions:
    Writes are restricted to the service origin and SITE_EDITOR_ALLOWED_ORIGINS.
    The repository token never leaves the server.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from site_editor.editing.capture import CaptureService
from site_editor.editing.commits import ContentsClient
from site_editor.editing.config import EditorConfig, load_editor_config
from site_editor.editing.dom import Page
from site_editor.editing.editor import ReplacePublisher, capture_failure_outcome
from site_editor.editing.ports import CaptureError, EditOutcome, ImageTooLargeError
from site_editor.editing.surfaces import SurfaceScanner

from .security import is_allowed_origin


logger = logging.getLogger("site_editor.web.editor")

editor_router = APIRouter(tags=["Editor"])

EDITOR_CONFIG: Optional[EditorConfig] = None
CONTENTS_CLIENT: Optional[ContentsClient] = None

_STATUS_CODES = {
    "committed": 200,
    "local_only": 422,
    "unconfigured": 503,
    "rejected": 409,
    "failed": 502,
}


def set_editor_config(config: Optional[EditorConfig]) -> None:
    """Install the configuration used by the routes (tests, app startup)."""
    global EDITOR_CONFIG, CONTENTS_CLIENT
    EDITOR_CONFIG = config
    CONTENTS_CLIENT = None


def set_contents_client(client: Optional[ContentsClient]) -> None:
    """Allow tests to provide a contents client (e.g., backed by MockTransport)."""
    global CONTENTS_CLIENT
    CONTENTS_CLIENT = client


def get_editor_config() -> EditorConfig:
    global EDITOR_CONFIG
    if EDITOR_CONFIG is None:
        EDITOR_CONFIG = load_editor_config()
    return EDITOR_CONFIG


def _contents_client() -> ContentsClient:
    global CONTENTS_CLIENT
    if CONTENTS_CLIENT is None:
        CONTENTS_CLIENT = ContentsClient(get_editor_config())
    return CONTENTS_CLIENT


async def close_contents_client() -> None:
    global CONTENTS_CLIENT
    if CONTENTS_CLIENT is not None:
        await CONTENTS_CLIENT.aclose()
        CONTENTS_CLIENT = None


def _json_private(payload, *, status_code: int = 200) -> JSONResponse:
    """Return JSON with "private, no-store" so results never land in shared caches."""
    return JSONResponse(content=payload, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _serialize_outcome(outcome: EditOutcome) -> dict:
    body: dict = {
        "status": outcome.status,
        "repoPath": outcome.repo_path,
        "commitSha": outcome.commit.commit_sha if outcome.commit else None,
        "created": outcome.commit.created if outcome.commit else None,
    }
    if outcome.notice is not None:
        body["notice"] = {"level": outcome.notice.level, "message": outcome.notice.message}
    return body


# --- Request models ---------------------------------------------------------------

class ScanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    html: str = Field(..., max_length=5 * 1024 * 1024)
    page_url: Optional[str] = Field(default=None, alias="pageUrl", max_length=2048)


# --- Routes -------------------------------------------------------------------------

@editor_router.get("/health")
async def health():
    return _json_private({"status": "ok"})


@editor_router.post("/api/pages/scan")
async def scan_page(payload: ScanRequest):
    """Mark the editable surfaces of an HTML page.

    Behavior:
        Returns the marked HTML (data-editable, data-editable-source and the
        editable-image class) plus one entry per surface with the repository
        path it would commit to.
    """
    config = get_editor_config()
    page = Page(payload.html, url=payload.page_url)
    resolver = config.resolver()
    scanner = SurfaceScanner(page, resolver, on_click=lambda event, surface: None)
    surfaces = scanner.scan()
    items = []
    for surface in surfaces:
        reference = surface.reference(page)
        items.append(
            {
                "kind": surface.kind,
                "reference": reference,
                "repoPath": resolver.resolve(reference, page_url=payload.page_url),
            }
        )
    return _json_private({"html": page.html(), "surfaces": items})


@editor_router.post("/api/images/replace")
async def replace_image(
    request: Request,
    reference: str = Form(..., max_length=4096),
    page_url: Optional[str] = Form(default=None, alias="pageUrl"),
    file: Optional[UploadFile] = File(default=None),
):
    """Commit an uploaded image over the asset displayed at `reference`.

    Status codes:
        200 committed, 400 missing file, 403 foreign origin, 409 rejected by
        the remote, 413 too large, 415 not an image, 422 unresolvable (local
        only), 502 network failure, 503 credentials missing.
    """
    if not is_allowed_origin(request):
        return _json_private({"error": "forbidden", "detail": "csrf_violation"}, status_code=403)
    if file is None or not (file.filename or ""):
        return _json_private({"error": "bad_request", "detail": "file_missing"}, status_code=400)

    config = get_editor_config()
    capture = CaptureService(max_upload_bytes=config.max_upload_bytes)
    try:
        captured = await capture.encode(file)
    except CaptureError as exc:
        outcome = capture_failure_outcome(exc)
        status_code = 413 if isinstance(exc, ImageTooLargeError) else 415
        return _json_private(_serialize_outcome(outcome), status_code=status_code)

    publisher = ReplacePublisher(config, contents=_contents_client())
    outcome = await publisher.publish(reference, captured, page_url=page_url)
    logger.info("replace outcome status=%s path=%s", outcome.status, outcome.repo_path or "-")
    return _json_private(_serialize_outcome(outcome), status_code=_STATUS_CODES.get(outcome.status, 200))


__all__ = [
    "close_contents_client",
    "editor_router",
    "get_editor_config",
    "set_contents_client",
    "set_editor_config",
]
