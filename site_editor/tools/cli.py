"""
Command line entry point for the image editor.

Commands:
    scan     List the editable surfaces of a page (optionally write marked HTML).
    replace  Commit a local image over the asset behind a reference.
    edit     Click an element of a page, replace its image and commit it.
    serve    Run the HTTP service (uvicorn).

Configuration is read from the SITE_EDITOR_* environment (see
`site_editor.editing.config`); a local `.env` is honoured.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import anyio
import click
import httpx

from site_editor.editing.capture import CaptureService, LocalFile, local_chooser
from site_editor.editing.commits import ContentsClient
from site_editor.editing.config import EditorConfig, load_editor_config, load_local_env
from site_editor.editing.dom import Page
from site_editor.editing.editor import ImageEditor, ReplacePublisher, capture_failure_outcome, read_failure_outcome
from site_editor.editing.ports import CaptureError, EditOutcome, Notice
from site_editor.editing.surfaces import SurfaceScanner


# Tests swap in an httpx.MockTransport here.
HTTP_TRANSPORT: Optional[httpx.AsyncBaseTransport] = None


def set_http_transport(transport: Optional[httpx.AsyncBaseTransport]) -> None:
    global HTTP_TRANSPORT
    HTTP_TRANSPORT = transport


def _http_client(config: EditorConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=config.timeout_seconds, follow_redirects=False, transport=HTTP_TRANSPORT)


def _load_config() -> EditorConfig:
    load_local_env()
    try:
        return load_editor_config()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc


def _echo_outcome(outcome: EditOutcome) -> None:
    if outcome.notice is not None:
        click.echo(outcome.notice.message, err=outcome.notice.level != "success")
    details = [f"status={outcome.status}"]
    if outcome.repo_path:
        details.append(f"path={outcome.repo_path}")
    if outcome.commit is not None and outcome.commit.commit_sha:
        details.append(f"commit={outcome.commit.commit_sha}")
    click.echo(" ".join(details))


class _EchoNotifier:
    def notify(self, notice: Notice) -> None:
        click.echo(notice.message, err=notice.level != "success")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def cli() -> None:
    """Replace images of a static site and commit them to its repository."""


@cli.command()
@click.argument("page", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--page-url", default=None, help="URL the page is served from (resolves relative sources).")
@click.option("--write", is_flag=True, default=False, help="Write the marked HTML back to PAGE.")
def scan(page: Path, page_url: Optional[str], write: bool) -> None:
    """List the editable surfaces of PAGE and the repository paths they map to."""
    config = _load_config()
    doc = Page.from_file(page, url=page_url)
    resolver = config.resolver()
    surfaces = SurfaceScanner(doc, resolver, on_click=lambda event, surface: None).scan()
    for surface in surfaces:
        reference = surface.reference(doc) or ""
        repo_path = resolver.resolve(reference, page_url=page_url) or "-"
        click.echo(f"{surface.kind}\t{reference}\t{repo_path}")
    click.echo(f"{len(surfaces)} editable surface(s)")
    if write:
        page.write_text(doc.html(), encoding="utf-8")
        click.echo(f"Wrote marked HTML to {page}")


@cli.command()
@click.argument("reference")
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--page-url", default=None, help="URL of the page displaying REFERENCE.")
def replace(reference: str, image: Path, page_url: Optional[str]) -> None:
    """Commit IMAGE over the repository asset displayed at REFERENCE."""
    config = _load_config()

    async def _run() -> EditOutcome:
        capture = CaptureService(max_upload_bytes=config.max_upload_bytes)
        try:
            captured = await capture.encode(LocalFile(image))
        except CaptureError as exc:
            return capture_failure_outcome(exc)
        except OSError as exc:
            return read_failure_outcome(exc)
        async with _http_client(config) as http:
            contents = ContentsClient(config, client=http)
            return await ReplacePublisher(config, contents=contents).publish(reference, captured, page_url=page_url)

    outcome = anyio.run(_run)
    _echo_outcome(outcome)
    if outcome.status != "committed":
        raise SystemExit(1)


@cli.command()
@click.argument("page", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("selector")
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--page-url", default=None, help="URL the page is served from.")
@click.option("--write", is_flag=True, default=False, help="Write the previewed HTML back to PAGE.")
def edit(page: Path, selector: str, image: Path, page_url: Optional[str], write: bool) -> None:
    """Click the element matching SELECTOR in PAGE and replace its image with IMAGE."""
    config = _load_config()
    doc = Page.from_file(page, url=page_url)
    target = doc.soup.select_one(selector)
    if target is None:
        raise click.UsageError(f"No element matches selector {selector!r}")

    async def _run() -> Optional[EditOutcome]:
        async with _http_client(config) as http:
            editor = ImageEditor(
                doc,
                config,
                chooser=local_chooser(image),
                notifier=_EchoNotifier(),
                contents=ContentsClient(config, client=http),
            )
            editor.start()
            await doc.click(target)
            editor.stop()
        return editor.outcomes[-1] if editor.outcomes else None

    outcome = anyio.run(_run)
    if outcome is None:
        click.echo(f"Element {selector!r} is not an editable image", err=True)
        raise SystemExit(1)
    _echo_outcome(EditOutcome(status=outcome.status, repo_path=outcome.repo_path, commit=outcome.commit))
    if write:
        page.write_text(doc.html(), encoding="utf-8")
        click.echo(f"Wrote updated HTML to {page}")
    if outcome.status != "committed":
        raise SystemExit(1)


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", type=int, default=8000, show_default=True)
def serve(host: str, port: int) -> None:
    """Serve the scan and replace endpoints."""
    import uvicorn

    uvicorn.run("site_editor.web.main:app", host=host, port=port, proxy_headers=True)


if __name__ == "__main__":  # pragma: no cover
    cli()
