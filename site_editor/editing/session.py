"""
Session credentials for the contents API.

Credentials (token, owner, repository name) live in a persistent key-value
store that is read once at startup; the branch is fixed configuration. The
resulting `Credentials` value is immutable and passed explicitly to the
components that need it.

Store keys:
    feature_key – access token
    owner       – repository owner (user or organisation)
    repo_name   – repository name

Security: never log the token. `Credentials.__repr__` masks it.
"""
from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Union


LOG = logging.getLogger("site_editor.session")

TOKEN_KEY = "feature_key"
OWNER_KEY = "owner"
REPO_KEY = "repo_name"

# Environment overrides for the stored values (deployment convenience).
_ENV_OVERRIDES = {
    TOKEN_KEY: "SITE_EDITOR_TOKEN",
    OWNER_KEY: "SITE_EDITOR_OWNER",
    REPO_KEY: "SITE_EDITOR_REPO",
}


@dataclass(frozen=True)
class Credentials:
    token: str
    owner: str
    repo: str
    branch: str = "main"

    @property
    def is_complete(self) -> bool:
        return bool(self.token and self.owner and self.repo and self.branch)

    def __repr__(self) -> str:
        masked = "***" if self.token else ""
        return f"Credentials(token={masked!r}, owner={self.owner!r}, repo={self.repo!r}, branch={self.branch!r})"


def read_session_store(path: Union[str, Path, None]) -> Dict[str, str]:
    """Read the persistent key-value store (a flat JSON object).

    A missing file yields an empty store. Malformed content is logged and
    treated as empty so the editor still works locally.
    """
    if not path:
        return {}
    p = Path(path)
    if not p.exists():
        return {}
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        LOG.warning("session store unreadable: path=%s error=%s", p, type(exc).__name__)
        return {}
    if not isinstance(data, dict):
        LOG.warning("session store is not an object: path=%s", p)
        return {}
    return {str(k): str(v) for k, v in data.items() if v is not None}


def load_credentials(store: Mapping[str, str], *, branch: str = "main", use_env: bool = True) -> Credentials:
    """Build credentials from `store`, letting SITE_EDITOR_* env vars win."""

    def _value(key: str) -> str:
        if use_env:
            override = (os.getenv(_ENV_OVERRIDES[key]) or "").strip()
            if override:
                return override
        return str(store.get(key) or "").strip()

    return Credentials(
        token=_value(TOKEN_KEY),
        owner=_value(OWNER_KEY),
        repo=_value(REPO_KEY),
        branch=(branch or "main").strip(),
    )


__all__ = [
    "Credentials",
    "OWNER_KEY",
    "REPO_KEY",
    "TOKEN_KEY",
    "load_credentials",
    "read_session_store",
]
