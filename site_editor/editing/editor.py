"""
Replace-and-commit orchestration.

Intent:
    Wire the scanner, capture service, path resolver and contents client into
    the single flow an editor experiences: click an image, pick a file, see it
    immediately, get told whether the repository accepted it.

Behavior:
    - `ImageEditor.start()` scans the whole page once and then re-scans every
      inserted subtree reported by the page.
    - The displayed reference is captured at click time, before the preview
      mutates the node.
    - Every failure is handled here and turned into a Notice; nothing
      propagates to the host. The preview is never rolled back.
    - Single-flight: a newer click on any surface supersedes the edit in
      progress; the superseded edit stops before previewing or publishing.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .capture import CaptureService, apply_preview
from .commits import ContentsClient
from .config import EditorConfig
from .dom import ClickEvent, Page
from .paths import PathResolver
from .ports import (
    CapturedImage,
    CaptureError,
    EditOutcome,
    FileChooser,
    ImageTooLargeError,
    MissingCredentialsError,
    NetworkFailure,
    Notice,
    Notifier,
    PathResolutionFailure,
    RemoteRejection,
)
from .surfaces import EditableSurface, SurfaceScanner


LOG = logging.getLogger("site_editor.editor")

MSG_SUCCESS = "Image updated successfully on GitHub."
MSG_LOCAL_ONLY = "Cannot resolve repository path for this image. Updated locally only."
MSG_NO_CREDENTIALS = "Repository credentials are not configured. Updated locally only."
MSG_NETWORK = "Upload failed. Check your connection and try again."
MSG_NOT_IMAGE = "The selected file is not an image."
MSG_TOO_LARGE = "The selected image is too large."
MSG_READ_FAILED = "The selected file could not be read."


class LogNotifier:
    """Notifier for headless hosts: notices go to the log."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._log = logger or LOG

    def notify(self, notice: Notice) -> None:
        level = logging.INFO if notice.level == "success" else logging.WARNING
        self._log.log(level, "notice level=%s message=%s", notice.level, notice.message)


def capture_failure_outcome(exc: CaptureError) -> EditOutcome:
    message = MSG_TOO_LARGE if isinstance(exc, ImageTooLargeError) else MSG_NOT_IMAGE
    return EditOutcome(status="invalid_image", notice=Notice(level="error", message=message))


def read_failure_outcome(exc: OSError) -> EditOutcome:
    LOG.error("reading the chosen file failed: error=%s", type(exc).__name__)
    return EditOutcome(status="failed", notice=Notice(level="error", message=MSG_READ_FAILED))


class ReplacePublisher:
    """Resolve a reference and commit a captured image; never raises domain errors."""

    def __init__(self, config: EditorConfig, *, contents: ContentsClient, resolver: Optional[PathResolver] = None) -> None:
        self.config = config
        self.contents = contents
        self.resolver = resolver or config.resolver()

    async def publish(self, reference: Optional[str], captured: CapturedImage, *, page_url: Optional[str]) -> EditOutcome:
        repo_path = self.resolver.resolve(reference, page_url=page_url)
        if repo_path is None:
            LOG.info("unresolvable reference, local only: reference=%.80s", reference or "")
            return EditOutcome(status="local_only", notice=Notice(level="warning", message=MSG_LOCAL_ONLY))
        try:
            result = await self.contents.commit(repo_path, captured.payload)
        except PathResolutionFailure:
            LOG.warning("unsafe repository path, local only: path=%s", repo_path)
            return EditOutcome(status="local_only", notice=Notice(level="warning", message=MSG_LOCAL_ONLY))
        except MissingCredentialsError:
            return EditOutcome(
                status="unconfigured",
                repo_path=repo_path,
                notice=Notice(level="warning", message=MSG_NO_CREDENTIALS),
            )
        except NetworkFailure as exc:
            LOG.error("publish failed: path=%s error=%s", repo_path, exc)
            return EditOutcome(status="failed", repo_path=repo_path, notice=Notice(level="error", message=MSG_NETWORK))
        except RemoteRejection as exc:
            LOG.error("publish rejected: path=%s status=%s message=%s", repo_path, exc.status_code, exc.message)
            return EditOutcome(status="rejected", repo_path=repo_path, notice=Notice(level="error", message=exc.message))
        return EditOutcome(
            status="committed",
            repo_path=repo_path,
            commit=result,
            notice=Notice(level="success", message=MSG_SUCCESS),
        )


class ImageEditor:
    """Makes the images of one page editable and commits replacements."""

    def __init__(
        self,
        page: Page,
        config: EditorConfig,
        *,
        chooser: FileChooser,
        notifier: Optional[Notifier] = None,
        contents: Optional[ContentsClient] = None,
        capture: Optional[CaptureService] = None,
    ) -> None:
        self.page = page
        self.config = config
        self.chooser = chooser
        self.notifier = notifier or LogNotifier()
        self.resolver = config.resolver()
        self.contents = contents or ContentsClient(config)
        self.capture = capture or CaptureService(max_upload_bytes=config.max_upload_bytes)
        self.publisher = ReplacePublisher(config, contents=self.contents, resolver=self.resolver)
        self.scanner = SurfaceScanner(page, self.resolver, self._on_click)
        self.outcomes: List[EditOutcome] = []
        self._current: Optional[object] = None
        self._unwatch: Optional[Callable[[], None]] = None

    def start(self) -> List[EditableSurface]:
        """Initial scan plus subscription to inserted subtrees."""
        surfaces = self.scanner.scan()
        if self._unwatch is None:
            self._unwatch = self.scanner.watch()
        LOG.info("editor started: surfaces=%d page=%s", len(surfaces), self.page.url or "-")
        return surfaces

    def stop(self) -> None:
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None

    async def aclose(self) -> None:
        self.stop()
        await self.contents.aclose()

    async def _on_click(self, event: ClickEvent, surface: EditableSurface) -> None:
        await self.replace(surface, event)

    async def replace(self, surface: EditableSurface, event: Optional[ClickEvent] = None) -> EditOutcome:
        """Run the full flow for one surface and deliver its notice."""
        ticket = self._current = object()
        reference = surface.reference(self.page)
        try:
            captured = await self.capture.capture(event, surface, self.chooser, preview=False)
        except CaptureError as exc:
            return self._finish(ticket, capture_failure_outcome(exc))
        except OSError as exc:
            return self._finish(ticket, read_failure_outcome(exc))
        if captured is None:
            return self._finish(ticket, EditOutcome(status="cancelled"))
        if self._current is not ticket:
            LOG.info("edit superseded by a newer click")
            return self._record(EditOutcome(status="cancelled"))
        apply_preview(surface, captured.data_url)
        outcome = await self.publisher.publish(reference, captured, page_url=self.page.url)
        return self._finish(ticket, outcome)

    def _finish(self, ticket: object, outcome: EditOutcome) -> EditOutcome:
        if self._current is ticket:
            self._current = None
        if outcome.notice is not None:
            self.notifier.notify(outcome.notice)
        return self._record(outcome)

    def _record(self, outcome: EditOutcome) -> EditOutcome:
        self.outcomes.append(outcome)
        return outcome


__all__ = [
    "ImageEditor",
    "LogNotifier",
    "MSG_LOCAL_ONLY",
    "MSG_NETWORK",
    "MSG_NOT_IMAGE",
    "MSG_NO_CREDENTIALS",
    "MSG_READ_FAILED",
    "MSG_SUCCESS",
    "MSG_TOO_LARGE",
    "ReplacePublisher",
    "capture_failure_outcome",
    "read_failure_outcome",
]
