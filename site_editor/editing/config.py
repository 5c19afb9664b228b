"""
Editor configuration parsing and validation.

Intent:
    Provide a single place to read environment variables that control the
    contents API target, path resolution and commit behaviour, and build the
    immutable `EditorConfig` that is passed into each component.

Behavior:
    - Validates integers against explicit ranges (raises ValueError).
    - Upload size falls back to / is clamped at the 10 MiB contract maximum.
    - Credentials come from the session store (see `session.py`), read once.
"""
from __future__ import annotations

from dataclasses import dataclass
import os
import sys
from typing import Optional, Tuple
from urllib.parse import urlparse

from .paths import DEFAULT_ASSET_ROOT, DEFAULT_MARKERS, PathResolver
from .session import Credentials, load_credentials, read_session_store


DEFAULT_API_BASE_URL = "https://api.github.com"
DEFAULT_BRANCH = "main"
DEFAULT_COMMIT_MESSAGE = "Update {path}"
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_MAX_CONFLICT_RETRIES = 0
MAX_UPLOAD_BYTES_CONTRACT = 10 * 1024 * 1024


@dataclass(frozen=True)
class EditorConfig:
    credentials: Credentials
    api_base_url: str = DEFAULT_API_BASE_URL
    asset_root: str = DEFAULT_ASSET_ROOT
    markers: Tuple[str, ...] = DEFAULT_MARKERS
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES
    max_upload_bytes: int = MAX_UPLOAD_BYTES_CONTRACT
    commit_message_template: str = DEFAULT_COMMIT_MESSAGE

    @property
    def branch(self) -> str:
        return self.credentials.branch

    def resolver(self) -> PathResolver:
        return PathResolver(asset_root=self.asset_root, markers=self.markers)

    def commit_message(self, path: str) -> str:
        return self.commit_message_template.replace("{path}", path)


def load_local_env() -> bool:
    """Load a local .env file unless running under pytest or SITE_EDITOR_ENABLE_DOTENV=false."""
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("SITE_EDITOR_ENABLE_DOTENV", "true") or "").strip().lower()
    if flag not in ("1", "true", "yes"):
        return False
    from dotenv import load_dotenv

    return load_dotenv()


def _int_env(name: str, default: int, *, low: int, high: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value < low or value > high:
        raise ValueError(f"{name} out of range ({low}..{high}), got: {value}")
    return value


def _upload_limit_env() -> int:
    raw = (os.getenv("SITE_EDITOR_MAX_UPLOAD_BYTES") or "").strip()
    if not raw:
        return MAX_UPLOAD_BYTES_CONTRACT
    try:
        value = int(raw)
    except ValueError:
        return MAX_UPLOAD_BYTES_CONTRACT
    if value <= 0:
        return MAX_UPLOAD_BYTES_CONTRACT
    return min(value, MAX_UPLOAD_BYTES_CONTRACT)


def _validate_api_base(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("SITE_EDITOR_API_BASE_URL must be an absolute http(s) URL")
    return url.rstrip("/")


def parse_markers(raw: Optional[str]) -> Tuple[str, ...]:
    """Parse a comma list of marker segments into `/segment/` form."""
    if not raw or not raw.strip():
        return DEFAULT_MARKERS
    markers = []
    for item in raw.split(","):
        seg = item.strip().strip("/")
        if seg:
            markers.append(f"/{seg}/")
    return tuple(markers) or DEFAULT_MARKERS


def load_editor_config(*, credentials: Optional[Credentials] = None) -> EditorConfig:
    """Parse and validate editor configuration from environment variables.

    Env:
        SITE_EDITOR_BRANCH, SITE_EDITOR_API_BASE_URL, SITE_EDITOR_ASSET_ROOT,
        SITE_EDITOR_MARKERS, SITE_EDITOR_TIMEOUT_SECONDS (1..120),
        SITE_EDITOR_MAX_CONFLICT_RETRIES (0..5), SITE_EDITOR_MAX_UPLOAD_BYTES,
        SITE_EDITOR_COMMIT_MESSAGE, SITE_EDITOR_SESSION_FILE.
    """
    branch = (os.getenv("SITE_EDITOR_BRANCH") or DEFAULT_BRANCH).strip()
    if credentials is None:
        store = read_session_store(os.getenv("SITE_EDITOR_SESSION_FILE"))
        credentials = load_credentials(store, branch=branch)
    template = (os.getenv("SITE_EDITOR_COMMIT_MESSAGE") or DEFAULT_COMMIT_MESSAGE).strip()
    return EditorConfig(
        credentials=credentials,
        api_base_url=_validate_api_base((os.getenv("SITE_EDITOR_API_BASE_URL") or DEFAULT_API_BASE_URL).strip()),
        asset_root=(os.getenv("SITE_EDITOR_ASSET_ROOT") or DEFAULT_ASSET_ROOT).strip().strip("/") or DEFAULT_ASSET_ROOT,
        markers=parse_markers(os.getenv("SITE_EDITOR_MARKERS")),
        timeout_seconds=_int_env("SITE_EDITOR_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS, low=1, high=120),
        max_conflict_retries=_int_env(
            "SITE_EDITOR_MAX_CONFLICT_RETRIES", DEFAULT_MAX_CONFLICT_RETRIES, low=0, high=5
        ),
        max_upload_bytes=_upload_limit_env(),
        commit_message_template=template or DEFAULT_COMMIT_MESSAGE,
    )


__all__ = [
    "DEFAULT_API_BASE_URL",
    "DEFAULT_BRANCH",
    "EditorConfig",
    "MAX_UPLOAD_BYTES_CONTRACT",
    "load_editor_config",
    "load_local_env",
    "parse_markers",
]
