"""
Capture service: choose a replacement image and preview it in place.

Intent:
    Keep "get the new image as base64" independent of where it is sent. The
    service suppresses the surface's default click behaviour, asks a chooser
    for an `image/*` file, encodes it as a data URL off the event loop, and
    applies the optimistic preview before any network call.

Behavior:
    - Cancel (chooser returns None) ends the flow silently.
    - MIME type comes from Pillow's format sniffing; SVG is accepted by its
      declared/guessed type plus an `<svg` check since Pillow cannot open it.
    - Files above `max_upload_bytes` and non-images raise CaptureError
      subclasses; nothing is previewed in that case.
"""
from __future__ import annotations

import base64
import io
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import anyio
from PIL import Image, UnidentifiedImageError

from .css import css_url, set_declaration
from .dom import ClickEvent
from .ports import CapturedImage, ChosenFile, FileChooser, ImageTooLargeError, UnsupportedImageError
from .surfaces import KIND_IMAGE, EditableSurface


ACCEPT_IMAGES = "image/*"
SVG_MIME = "image/svg+xml"
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def detect_image_mime(data: bytes, *, declared: Optional[str] = None, filename: Optional[str] = None) -> Optional[str]:
    """Return the image MIME type of `data`, or None when it is not an image."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            fmt = im.format
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError):
        fmt = None
    if fmt:
        mime = Image.MIME.get(fmt)
        if mime:
            return mime
    guessed = (mimetypes.guess_type(filename)[0] if filename else None) or ""
    hinted = {(declared or "").split(";")[0].strip().lower(), guessed.lower()}
    if SVG_MIME in hinted and b"<svg" in data[:4096].lower():
        return SVG_MIME
    return None


def encode_data_url(data: bytes, mime_type: str) -> Tuple[str, str]:
    """Return (data_url, payload) for `data`."""
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{payload}", payload


def payload_from_data_url(value: str) -> str:
    """Strip a `data:...;base64,` prefix; plain base64 is returned unchanged."""
    if value[:5].lower() == "data:":
        return value.split(",", 1)[1] if "," in value else ""
    return value


def apply_preview(surface: EditableSurface, data_url: str) -> None:
    """Show `data_url` on the surface immediately (optimistic, never rolled back)."""
    element = surface.element
    if surface.kind == KIND_IMAGE:
        element["src"] = data_url
    else:
        element["style"] = set_declaration(element.get("style"), "background-image", css_url(data_url))


@dataclass
class LocalFile:
    """A file on disk presented through the ChosenFile protocol."""

    path: Path
    content_type: Optional[str] = None

    @property
    def filename(self) -> str:
        return self.path.name

    async def read(self) -> bytes:
        return await anyio.Path(self.path).read_bytes()


class StaticChooser:
    """Chooser that hands back a file selected elsewhere (upload, CLI argument)."""

    def __init__(self, file: Optional[ChosenFile]) -> None:
        self._file = file

    async def choose(self, *, accept: str) -> Optional[ChosenFile]:
        return self._file


def local_chooser(path: Union[str, Path, None]) -> StaticChooser:
    return StaticChooser(LocalFile(Path(path)) if path else None)


class CaptureService:
    """Turns a click on a surface into a previewed, encoded replacement image."""

    def __init__(self, *, max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> None:
        self.max_upload_bytes = max_upload_bytes

    async def encode(self, file: ChosenFile) -> CapturedImage:
        """Read and encode `file`; raise CaptureError subclasses on bad input."""
        data = await file.read()
        if len(data) > self.max_upload_bytes:
            raise ImageTooLargeError(f"file_too_large:{len(data)}")
        filename = file.filename or ""
        mime = await anyio.to_thread.run_sync(
            lambda: detect_image_mime(data, declared=file.content_type, filename=filename)
        )
        if mime is None:
            raise UnsupportedImageError("not_an_image")
        data_url, payload = encode_data_url(data, mime)
        return CapturedImage(data_url=data_url, payload=payload, mime_type=mime, filename=filename, size=len(data))

    async def capture(
        self,
        event: Optional[ClickEvent],
        surface: EditableSurface,
        chooser: FileChooser,
        *,
        preview: bool = True,
    ) -> Optional[CapturedImage]:
        """Suppress the click default, choose, encode and preview.

        Returns None when the user cancels the chooser. With `preview=False`
        the caller applies the preview itself (see `apply_preview`).
        """
        if event is not None:
            event.prevent_default()
            event.stop_propagation()
        file = await chooser.choose(accept=ACCEPT_IMAGES)
        if file is None:
            return None
        captured = await self.encode(file)
        if preview:
            apply_preview(surface, captured.data_url)
        return captured


__all__ = [
    "ACCEPT_IMAGES",
    "CaptureService",
    "LocalFile",
    "StaticChooser",
    "apply_preview",
    "detect_image_mime",
    "encode_data_url",
    "local_chooser",
    "payload_from_data_url",
]
