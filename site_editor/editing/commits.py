"""
Contents API client: optimistic-concurrency writes of repository files.

Intent:
    Persist a replacement image as a commit on the configured branch using the
    GitHub contents API (`/repos/{owner}/{repo}/contents/{path}`).

Behavior:
    - `fetch_revision()` reads the current blob sha. Any non-200 response
      (404 included) means "no marker": the write becomes a create.
    - `write()` PUTs `{message, content, branch[, sha]}`. Only a response body
      holding a `commit` object counts as success; otherwise the remote
      `message` is raised verbatim as RemoteRejection.
    - `commit()` always lets the read settle before issuing the write. A stale
      marker rejection (409, or 422 naming the sha) re-fetches the marker and
      resubmits, at most `max_conflict_retries` times (0 by default: a stale
      marker simply fails).
    - Transport failures (connect errors, timeouts) raise NetworkFailure and
      are never retried.
    - Paths with empty, "." or ".." segments raise PathResolutionFailure
      before any request is sent.

Security:
    The token is only sent in the Authorization header and never logged.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .capture import payload_from_data_url
from .config import EditorConfig
from .ports import (
    CommitResult,
    MissingCredentialsError,
    NetworkFailure,
    PathResolutionFailure,
    RemoteRejection,
)


LOG = logging.getLogger("site_editor.commits")

GITHUB_ACCEPT = "application/vnd.github+json"


@dataclass(frozen=True)
class CommitRequest:
    """One write attempt. Built fresh per attempt, never reused."""

    path: str
    content: str
    message: str
    branch: str
    sha: Optional[str] = None

    def __post_init__(self) -> None:
        if self.content[:5].lower() == "data:":
            raise ValueError("content must be raw base64 without a data-URL prefix")

    @classmethod
    def build(cls, path: str, payload: str, *, message: str, branch: str, sha: Optional[str] = None) -> "CommitRequest":
        return cls(path=path, content=payload_from_data_url(payload), message=message, branch=branch, sha=sha)

    def to_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message, "content": self.content, "branch": self.branch}
        if self.sha:
            body["sha"] = self.sha
        return body


def is_stale_marker(exc: RemoteRejection) -> bool:
    """True when the remote rejected the write because the sha is outdated/missing."""
    if exc.status_code == 409:
        return True
    return exc.status_code == 422 and "sha" in (exc.message or "").lower()


class ContentsClient:
    """Async client for reading revision markers and writing file contents."""

    def __init__(self, config: EditorConfig, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds, follow_redirects=False)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ContentsClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # --- Helpers -----------------------------------------------------------------

    def _url(self, path: str) -> str:
        segments = path.lstrip("/").split("/")
        if any(part in ("", ".", "..") for part in segments):
            raise PathResolutionFailure(f"unsafe repository path: {path!r}")
        creds = self.config.credentials
        quoted = quote(path.lstrip("/"), safe="/")
        return f"{self.config.api_base_url}/repos/{creds.owner}/{creds.repo}/contents/{quoted}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"token {self.config.credentials.token}",
            "Accept": GITHUB_ACCEPT,
        }

    # --- Operations ----------------------------------------------------------------

    async def fetch_revision(self, path: str) -> Optional[str]:
        """Return the current sha of `path` on the branch, or None when absent."""
        try:
            resp = await self._client.get(
                self._url(path),
                params={"ref": self.config.branch},
                headers=self._headers(),
            )
        except httpx.TransportError as exc:
            LOG.warning("revision fetch failed: path=%s error=%s", path, type(exc).__name__)
            raise NetworkFailure("revision_fetch_failed") from exc
        if resp.status_code != 200:
            LOG.info("revision not found: path=%s status=%s", path, resp.status_code)
            return None
        try:
            body = resp.json()
        except ValueError:
            return None
        sha = body.get("sha") if isinstance(body, dict) else None
        return sha if isinstance(sha, str) and sha else None

    async def write(self, request: CommitRequest) -> CommitResult:
        """Submit `request`; return the confirmation or raise RemoteRejection."""
        headers = dict(self._headers(), **{"Content-Type": "application/json"})
        try:
            resp = await self._client.put(self._url(request.path), json=request.to_payload(), headers=headers)
        except httpx.TransportError as exc:
            LOG.warning("content write failed: path=%s error=%s", request.path, type(exc).__name__)
            raise NetworkFailure("content_write_failed") from exc
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("commit"), dict):
            content = body.get("content") if isinstance(body.get("content"), dict) else {}
            return CommitResult(
                path=request.path,
                commit_sha=body["commit"].get("sha"),
                content_sha=content.get("sha"),
                created=resp.status_code == 201,
            )
        message = body.get("message") if isinstance(body, dict) else None
        if not isinstance(message, str) or not message:
            message = resp.text or f"HTTP {resp.status_code}"
        LOG.warning("content write rejected: path=%s status=%s", request.path, resp.status_code)
        raise RemoteRejection(message, status_code=resp.status_code)

    async def commit(self, path: str, payload: str, *, message: Optional[str] = None) -> CommitResult:
        """Read the marker, then write; retry bounded on stale-marker rejections."""
        if not self.config.credentials.is_complete:
            raise MissingCredentialsError("credentials_incomplete")
        text = message or self.config.commit_message(path)
        attempts = 0
        while True:
            attempts += 1
            sha = await self.fetch_revision(path)
            request = CommitRequest.build(path, payload, message=text, branch=self.config.branch, sha=sha)
            try:
                result = await self.write(request)
            except RemoteRejection as exc:
                if is_stale_marker(exc) and attempts <= self.config.max_conflict_retries:
                    LOG.info("stale revision marker, retrying: path=%s attempt=%d", path, attempts)
                    continue
                raise
            LOG.info(
                "committed: path=%s commit=%s created=%s attempts=%d",
                path,
                result.commit_sha,
                result.created,
                attempts,
            )
            return replace(result, attempts=attempts)


__all__ = ["CommitRequest", "ContentsClient", "GITHUB_ACCEPT", "is_stale_marker"]
