"""
Ports for the image editor: shared result types, protocols, and errors.

Intent:
    Provide framework-agnostic contracts between the editor core and its hosts
    (in-process page, HTTP service, CLI). Keeping these definitions in a
    dedicated module avoids circular imports and clarifies boundaries.

Design:
    - Result dataclasses: CapturedImage, CommitResult, Notice, EditOutcome
    - Protocols: ChosenFile, FileChooser, Notifier
    - Error taxonomy: resolution, network, remote rejection, capture rejections
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


# ----------------------------- Result types ---------------------------------


@dataclass(frozen=True)
class CapturedImage:
    """Image captured from a file chooser.

    Parameters:
        data_url: Complete `data:<mime>;base64,<payload>` string used for previews.
        payload: Raw base64 portion of `data_url`; this is what gets committed.
        mime_type: Detected image MIME type.
        filename: Name reported by the chooser (may be empty).
        size: Size of the decoded file in bytes.
    """

    data_url: str
    payload: str
    mime_type: str
    filename: str
    size: int


@dataclass(frozen=True)
class CommitResult:
    """Confirmation returned by the contents API after a successful write."""

    path: str
    commit_sha: Optional[str]
    content_sha: Optional[str]
    created: bool
    attempts: int = 1


@dataclass(frozen=True)
class Notice:
    """User-visible notice (the host decides how to block/display it)."""

    level: str  # "success" | "warning" | "error"
    message: str


@dataclass(frozen=True)
class EditOutcome:
    """Final state of one replace flow."""

    status: str  # committed | local_only | unconfigured | cancelled | rejected | failed | invalid_image
    repo_path: Optional[str] = None
    commit: Optional[CommitResult] = None
    notice: Optional[Notice] = None


# ----------------------------- Protocols ------------------------------------


class ChosenFile(Protocol):
    """File handed back by a chooser. Starlette's UploadFile satisfies this."""

    filename: Optional[str]
    content_type: Optional[str]

    async def read(self) -> bytes:
        ...


class FileChooser(Protocol):
    """Transient file-selection control; returns None when the user cancels."""

    async def choose(self, *, accept: str) -> Optional[ChosenFile]:
        ...


class Notifier(Protocol):
    """Delivers blocking notices to the editor."""

    def notify(self, notice: Notice) -> None:
        ...


# ------------------------------ Errors --------------------------------------


class EditorError(Exception):
    """Base class for replace-and-commit failures."""


class PathResolutionFailure(EditorError):
    """Reference does not map into the repository asset tree."""


class MissingCredentialsError(EditorError):
    """Token, owner or repository name is not configured."""


class NetworkFailure(EditorError):
    """The read or write request did not complete (connectivity, timeout)."""


class RemoteRejection(EditorError):
    """The write completed but the remote did not confirm a commit.

    `message` is the remote's human-readable message, surfaced as-is.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CaptureError(EditorError):
    """Selected file cannot be used as a replacement image."""


class UnsupportedImageError(CaptureError):
    """Selected file is not an image."""


class ImageTooLargeError(CaptureError):
    """Selected file exceeds the configured upload limit."""


__all__ = [
    "CapturedImage",
    "CommitResult",
    "Notice",
    "EditOutcome",
    "ChosenFile",
    "FileChooser",
    "Notifier",
    "EditorError",
    "PathResolutionFailure",
    "MissingCredentialsError",
    "NetworkFailure",
    "RemoteRejection",
    "CaptureError",
    "UnsupportedImageError",
    "ImageTooLargeError",
]
