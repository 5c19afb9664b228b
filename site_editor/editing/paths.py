"""
Path resolution from displayed image references to repository paths.

Intent:
    Map whatever the page displays (absolute URL, relative URL, or a bare
    repository path) to the canonical path of the asset inside the content
    repository, so the commit client knows which file to overwrite.

Behavior:
    - Data URLs are never resolvable (they have no repository counterpart).
    - Bare paths that already start with the asset root and contain a marker
      are returned unchanged apart from dot-segment normalisation.
    - Everything else is resolved against the page origin; the URL path is
      percent-decoded, normalised, and searched for the first configured
      marker. The marker segment onward is prefixed with the asset root.
    - A result never contains "." or ".." segments.

Purity:
    No I/O, no globals, no logging. Safe for property-based testing.
"""
from __future__ import annotations

from dataclasses import dataclass
import posixpath
from typing import Optional, Sequence
from urllib.parse import unquote, urljoin, urlparse


DEFAULT_ASSET_ROOT = "public"
DEFAULT_MARKERS: tuple[str, ...] = ("/assets/images/", "/images/")
DEFAULT_ORIGIN = "http://localhost"


def is_data_url(reference: str) -> bool:
    return reference.strip()[:5].lower() == "data:"


def page_origin(page_url: Optional[str]) -> str:
    """Return `scheme://host[:port]` for a page URL (localhost when unknown)."""
    if not page_url:
        return DEFAULT_ORIGIN
    parsed = urlparse(page_url)
    if not parsed.scheme or not parsed.netloc:
        return DEFAULT_ORIGIN
    return f"{parsed.scheme}://{parsed.netloc}"


def _normalise_bare(path: str) -> str:
    path = path.split("#", 1)[0].split("?", 1)[0]
    norm = posixpath.normpath(path)
    return "" if norm == "." else norm


def _is_bare_repo_path(reference: str, asset_root: str) -> bool:
    try:
        parsed = urlparse(reference)
    except ValueError:
        return False
    if parsed.scheme or parsed.netloc or reference.startswith("/"):
        return False
    root = asset_root.strip("/")
    return bool(root) and reference.startswith(root + "/")


def _has_dot_segments(path: str) -> bool:
    return any(part in (".", "..") for part in path.split("/"))


def _find_marker(path: str, markers: Sequence[str]) -> int:
    for marker in markers:
        idx = path.find(marker)
        if idx != -1:
            return idx
    return -1


def resolve_repo_path(
    reference: Optional[str],
    *,
    page_url: Optional[str] = None,
    asset_root: str = DEFAULT_ASSET_ROOT,
    markers: Sequence[str] = DEFAULT_MARKERS,
) -> Optional[str]:
    """Return the repository path for `reference`, or None when unresolvable.

    Examples:
        "/assets/images/banner.png"                     -> "public/assets/images/banner.png"
        "https://site.example/images/a.jpg?v=2"          -> "public/images/a.jpg"
        "public/assets/images/hero.jpg"                  -> "public/assets/images/hero.jpg"
        "data:image/png;base64,iVBOR..."                 -> None
    """
    ref = (reference or "").strip()
    if not ref or is_data_url(ref):
        return None
    root = asset_root.strip("/")

    if _is_bare_repo_path(ref, root):
        bare = _normalise_bare(ref)
        if not bare.startswith(root + "/"):
            return None
        if _has_dot_segments(bare) or _find_marker("/" + bare, markers) == -1:
            return None
        return bare

    try:
        absolute = urljoin(page_origin(page_url) + "/", ref)
        path = unquote(urlparse(absolute).path)
    except ValueError:
        return None
    # decoding can reveal "%2e%2e" segments that urljoin left alone
    path = posixpath.normpath(path) if path else path
    idx = _find_marker(path, markers)
    if idx == -1:
        return None
    resolved = f"{root}{path[idx:]}"
    return None if _has_dot_segments(resolved) else resolved


@dataclass(frozen=True)
class PathResolver:
    """Resolver bound to one asset root and marker list."""

    asset_root: str = DEFAULT_ASSET_ROOT
    markers: tuple[str, ...] = DEFAULT_MARKERS

    def resolve(self, reference: Optional[str], *, page_url: Optional[str] = None) -> Optional[str]:
        return resolve_repo_path(
            reference,
            page_url=page_url,
            asset_root=self.asset_root,
            markers=self.markers,
        )

    def is_managed(self, reference: Optional[str], *, page_url: Optional[str] = None) -> bool:
        """True when `reference` points into the managed asset tree."""
        return self.resolve(reference, page_url=page_url) is not None


__all__ = [
    "DEFAULT_ASSET_ROOT",
    "DEFAULT_MARKERS",
    "PathResolver",
    "is_data_url",
    "page_origin",
    "resolve_repo_path",
]
