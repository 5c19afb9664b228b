"""
Editor flow end to end: click, choose, preview, resolve, commit, notice.
"""
from __future__ import annotations

from dataclasses import replace

import anyio
import httpx
import pytest

from site_editor.editing.commits import ContentsClient
from site_editor.editing.dom import Page
from site_editor.editing.editor import (
    MSG_LOCAL_ONLY,
    MSG_NETWORK,
    MSG_NO_CREDENTIALS,
    MSG_NOT_IMAGE,
    MSG_READ_FAILED,
    MSG_SUCCESS,
    ImageEditor,
    ReplacePublisher,
)
from site_editor.editing.ports import CapturedImage
from site_editor.editing.session import Credentials


pytestmark = pytest.mark.anyio("asyncio")

PAGE = """
<html><head><style>.hero { background: linear-gradient(#000,#111), url(/images/hero.jpg) }</style></head>
<body>
  <a href="/gallery"><img id="banner" src="/assets/images/banner.png"></a>
  <div id="hero" class="hero"><h1 id="title">Welcome</h1></div>
  <main id="main"></main>
</body></html>
"""


class MemoryFile:
    def __init__(self, data: bytes, filename: str = "new.png", content_type: str | None = "image/png") -> None:
        self._data = data
        self.filename = filename
        self.content_type = content_type

    async def read(self) -> bytes:
        return self._data


class UnreadableFile(MemoryFile):
    async def read(self) -> bytes:
        raise PermissionError(13, "Permission denied", self.filename)


class QueueChooser:
    """Hands out queued files; `None` entries model a cancelled dialog."""

    def __init__(self, *files) -> None:
        self.files = list(files)

    async def choose(self, *, accept: str):
        return self.files.pop(0) if self.files else None


class RecordingNotifier:
    def __init__(self) -> None:
        self.notices = []

    def notify(self, notice) -> None:
        self.notices.append(notice)


@pytest.fixture
def page():
    return Page(PAGE, url="https://site.example/index.html")


def _editor(page, config, github, chooser, notifier, http):
    editor = ImageEditor(page, config, chooser=chooser, notifier=notifier, contents=ContentsClient(config, client=http))
    editor.start()
    return editor


@pytest.mark.anyio
async def test_click_on_image_commits_and_notifies(page, editor_config, github, png):
    github.files["public/assets/images/banner.png"] = "abc123"
    notifier = RecordingNotifier()
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, QueueChooser(MemoryFile(png)), notifier, http)
        event = await page.click(page.soup.find(id="banner"))
    assert event.default_action is None
    assert [n.message for n in notifier.notices] == [MSG_SUCCESS]
    outcome = editor.outcomes[-1]
    assert outcome.status == "committed"
    assert outcome.repo_path == "public/assets/images/banner.png"
    body = github.put_bodies()[0]
    assert body["sha"] == "abc123"
    assert body["message"] == "Update public/assets/images/banner.png"
    assert page.soup.find(id="banner")["src"].startswith("data:image/png;base64,")


@pytest.mark.anyio
async def test_click_inside_background_surface_bubbles_to_it(page, editor_config, github, png):
    notifier = RecordingNotifier()
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, QueueChooser(MemoryFile(png)), notifier, http)
        await page.click(page.soup.find(id="title"))
    assert editor.outcomes[-1].repo_path == "public/images/hero.jpg"
    assert "data:image/png;base64," in page.soup.find(id="hero")["style"]
    assert "sha" not in github.put_bodies()[0]


@pytest.mark.anyio
async def test_second_edit_of_same_image_resolves_original_path(page, editor_config, github, png):
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, QueueChooser(MemoryFile(png), MemoryFile(png)), RecordingNotifier(), http)
        banner = page.soup.find(id="banner")
        await page.click(banner)
        await page.click(banner)
    assert [o.repo_path for o in editor.outcomes] == ["public/assets/images/banner.png"] * 2
    assert "sha" in github.put_bodies()[1]


@pytest.mark.anyio
async def test_cancel_is_silent(page, editor_config, github):
    notifier = RecordingNotifier()
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, QueueChooser(None), notifier, http)
        await page.click(page.soup.find(id="banner"))
    assert editor.outcomes[-1].status == "cancelled"
    assert notifier.notices == []
    assert github.requests == []


@pytest.mark.anyio
async def test_non_image_notifies_without_network(page, editor_config, github):
    notifier = RecordingNotifier()
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, QueueChooser(MemoryFile(b"plain text", "a.txt", "text/plain")), notifier, http)
        await page.click(page.soup.find(id="banner"))
    assert editor.outcomes[-1].status == "invalid_image"
    assert [n.message for n in notifier.notices] == [MSG_NOT_IMAGE]
    assert page.soup.find(id="banner")["src"] == "/assets/images/banner.png"
    assert github.requests == []


@pytest.mark.anyio
async def test_unresolvable_reference_is_local_only(editor_config, github, png):
    page = Page('<body><img id="x" src="/assets/images/x.png"></body>')
    notifier = RecordingNotifier()
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, QueueChooser(MemoryFile(png)), notifier, http)
        img = page.soup.find(id="x")
        # the recorded source no longer maps into the asset tree
        img["data-editable-source"] = "https://cdn.example/unknown/x.png"
        await page.click(img)
    assert editor.outcomes[-1].status == "local_only"
    assert [n.message for n in notifier.notices] == [MSG_LOCAL_ONLY]
    assert img["src"].startswith("data:")
    assert github.requests == []


@pytest.mark.anyio
async def test_missing_credentials_is_local_only(page, editor_config, github, png):
    config = replace(editor_config, credentials=Credentials(token="", owner="", repo=""))
    notifier = RecordingNotifier()
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, config, github, QueueChooser(MemoryFile(png)), notifier, http)
        await page.click(page.soup.find(id="banner"))
    assert editor.outcomes[-1].status == "unconfigured"
    assert [n.message for n in notifier.notices] == [MSG_NO_CREDENTIALS]
    assert github.requests == []


@pytest.mark.anyio
async def test_network_failure_notifies_generic_message(page, editor_config, github, png):
    def _offline(request):
        raise httpx.ConnectError("offline", request=request)

    github.fail_with = _offline
    notifier = RecordingNotifier()
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, QueueChooser(MemoryFile(png)), notifier, http)
        await page.click(page.soup.find(id="banner"))
    assert editor.outcomes[-1].status == "failed"
    assert [n.message for n in notifier.notices] == [MSG_NETWORK]
    # preview is kept
    assert page.soup.find(id="banner")["src"].startswith("data:")


@pytest.mark.anyio
async def test_remote_message_is_shown_verbatim(page, editor_config, github, png):
    github.put_responses.append((403, {"message": "Resource not accessible by integration"}))
    notifier = RecordingNotifier()
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, QueueChooser(MemoryFile(png)), notifier, http)
        await page.click(page.soup.find(id="banner"))
    assert editor.outcomes[-1].status == "rejected"
    assert notifier.notices[-1].message == "Resource not accessible by integration"
    assert notifier.notices[-1].level == "error"


@pytest.mark.anyio
async def test_inserted_images_become_editable(page, editor_config, github, png):
    notifier = RecordingNotifier()
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, QueueChooser(MemoryFile(png)), notifier, http)
        page.insert_html(page.soup.find(id="main"), '<figure><img id="late" src="/images/late.webp"></figure>')
        await page.click(page.soup.find(id="late"))
    assert editor.outcomes[-1].repo_path == "public/images/late.webp"


class SlowFile(MemoryFile):
    def __init__(self, data: bytes, gate: anyio.Event) -> None:
        super().__init__(data)
        self.gate = gate

    async def read(self) -> bytes:
        await self.gate.wait()
        return await super().read()


@pytest.mark.anyio
async def test_newer_click_supersedes_pending_edit(page, editor_config, github, png):
    gate = anyio.Event()
    notifier = RecordingNotifier()
    chooser = QueueChooser(SlowFile(png, gate), MemoryFile(png))
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, chooser, notifier, http)
        async with anyio.create_task_group() as tg:
            tg.start_soon(page.click, page.soup.find(id="banner"))
            await anyio.sleep(0.01)
            await page.click(page.soup.find(id="title"))
            gate.set()
    statuses = sorted(o.status for o in editor.outcomes)
    assert statuses == ["cancelled", "committed"]
    assert [o.repo_path for o in editor.outcomes if o.status == "committed"] == ["public/images/hero.jpg"]
    assert len(github.put_bodies()) == 1
    assert [n.message for n in notifier.notices] == [MSG_SUCCESS]
    # the abandoned edit never previewed
    assert page.soup.find(id="banner")["src"] == "/assets/images/banner.png"


@pytest.mark.anyio
async def test_encoded_traversal_in_source_stays_local(editor_config, github, png):
    page = Page('<body><img id="x" src="/assets/images/x.png"></body>')
    notifier = RecordingNotifier()
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, QueueChooser(MemoryFile(png)), notifier, http)
        img = page.soup.find(id="x")
        img["data-editable-source"] = "/assets/images/%2e%2e/%2e%2e/%2e%2e/.github/workflows/deploy.yml"
        await page.click(img)
    assert editor.outcomes[-1].status == "local_only"
    assert [n.message for n in notifier.notices] == [MSG_LOCAL_ONLY]
    assert github.requests == []


class _LooseResolver:
    def resolve(self, reference, *, page_url=None):
        return "public/assets/images/../../index.html"


@pytest.mark.anyio
async def test_publisher_refuses_unsafe_resolved_path(editor_config, github):
    captured = CapturedImage(data_url="data:image/png;base64,QUJD", payload="QUJD", mime_type="image/png", filename="a.png", size=3)
    async with httpx.AsyncClient(transport=github.transport()) as http:
        publisher = ReplacePublisher(editor_config, contents=ContentsClient(editor_config, client=http), resolver=_LooseResolver())
        outcome = await publisher.publish("/assets/images/a.png", captured, page_url=None)
    assert outcome.status == "local_only"
    assert outcome.notice.message == MSG_LOCAL_ONLY
    assert github.requests == []


@pytest.mark.anyio
async def test_unreadable_file_fails_with_notice(page, editor_config, github):
    notifier = RecordingNotifier()
    async with httpx.AsyncClient(transport=github.transport()) as http:
        editor = _editor(page, editor_config, github, QueueChooser(UnreadableFile(b"")), notifier, http)
        await page.click(page.soup.find(id="banner"))
    assert editor.outcomes[-1].status == "failed"
    assert [(n.level, n.message) for n in notifier.notices] == [("error", MSG_READ_FAILED)]
    assert page.soup.find(id="banner")["src"] == "/assets/images/banner.png"
    assert github.requests == []
