"""
Pytest configuration for the editor tests.

Why: Force AnyIO to use the asyncio backend and keep every test independent of
the developer's SITE_EDITOR_* environment and session store.
"""
from __future__ import annotations

import io
import json
import os
import sys
from pathlib import Path
from typing import Callable, List

import httpx
import pytest
from PIL import Image

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from site_editor.editing.commits import ContentsClient  # noqa: E402
from site_editor.editing.config import EditorConfig  # noqa: E402
from site_editor.editing.session import Credentials  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clean_editor_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("SITE_EDITOR_"):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(token="ghp_test_token", owner="acme", repo="site", branch="main")


@pytest.fixture
def editor_config(credentials) -> EditorConfig:
    return EditorConfig(credentials=credentials, api_base_url="https://api.github.test")


def png_bytes(size=(4, 3), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png() -> bytes:
    return png_bytes()


class FakeGitHub:
    """In-memory contents API behind an httpx.MockTransport.

    `files` maps repository paths to their current sha. `put_responses` queues
    (status, body) pairs returned by successive PUTs before falling back to a
    successful commit.
    """

    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.requests: List[httpx.Request] = []
        self.put_responses: List[tuple[int, dict]] = []
        self.fail_with: Callable[[httpx.Request], None] | None = None
        self._commits = 0

    @staticmethod
    def repo_path(request: httpx.Request) -> str:
        marker = "/contents/"
        path = request.url.path
        return path[path.index(marker) + len(marker):]

    def put_bodies(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests if r.method == "PUT"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            self.fail_with(request)
        path = self.repo_path(request)
        if request.method == "GET":
            sha = self.files.get(path)
            if sha is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"sha": sha, "path": path})
        if request.method == "PUT":
            if self.put_responses:
                status, body = self.put_responses.pop(0)
                return httpx.Response(status, json=body)
            self._commits += 1
            created = path not in self.files
            new_sha = f"blob{self._commits}"
            self.files[path] = new_sha
            return httpx.Response(
                201 if created else 200,
                json={"content": {"path": path, "sha": new_sha}, "commit": {"sha": f"commit{self._commits}"}},
            )
        return httpx.Response(405, json={"message": "Method Not Allowed"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
async def contents(editor_config, github):
    async with httpx.AsyncClient(transport=github.transport()) as http:
        yield ContentsClient(editor_config, client=http)
