"""
Surface scanner: find and mark editable images.

A surface is an `<img>` whose `src` points into the managed asset tree, or any
element whose computed background paints a `url(...)` into that tree (first
url layer only). Each qualifying element is marked once with
`data-editable="image|background"`, receives the `editable-image` class and
exactly one click listener. Scanning is idempotent and may target any subtree.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Iterator, List, Optional

from bs4 import BeautifulSoup, Tag

from .css import first_url
from .dom import ClickEvent, Page
from .paths import PathResolver


LOG = logging.getLogger("site_editor.surfaces")

KIND_IMAGE = "image"
KIND_BACKGROUND = "background"
MARKER_ATTR = "data-editable"
SOURCE_ATTR = "data-editable-source"
AFFORDANCE_CLASS = "editable-image"


@dataclass
class EditableSurface:
    element: Tag
    kind: str
    processed: bool = False

    def reference(self, page: Page) -> Optional[str]:
        """Repository-backed source of this surface.

        The source recorded at marking time wins, so a surface that already shows
        a data-URL preview still maps to its original asset.
        """
        recorded = self.element.get(SOURCE_ATTR)
        if recorded:
            return str(recorded)
        if self.kind == KIND_IMAGE:
            src = self.element.get("src")
            return str(src) if src else None
        return first_url(page.computed_background(self.element))


ClickHandler = Callable[[ClickEvent, EditableSurface], object]


def surface_for(element: Tag) -> Optional[EditableSurface]:
    """Rebuild the surface descriptor of an already-marked element."""
    kind = element.get(MARKER_ATTR)
    if kind not in (KIND_IMAGE, KIND_BACKGROUND):
        return None
    return EditableSurface(element=element, kind=str(kind), processed=True)


def _walk(root: Tag) -> Iterator[Tag]:
    if not isinstance(root, BeautifulSoup):
        yield root
    yield from root.find_all(True)


class SurfaceScanner:
    """Marks qualifying elements of a page and wires the click handler."""

    def __init__(self, page: Page, resolver: PathResolver, on_click: ClickHandler) -> None:
        self.page = page
        self.resolver = resolver
        self.on_click = on_click

    def classify(self, element: Tag, sheet: Optional[dict] = None) -> Optional[str]:
        """Return the surface kind of `element`, or None when it does not qualify."""
        url = self.page.url
        if element.name == "img":
            src = element.get("src")
            if src and self.resolver.is_managed(str(src), page_url=url):
                return KIND_IMAGE
            return None
        ref = first_url(self.page.computed_background(element, sheet))
        if ref and self.resolver.is_managed(ref, page_url=url):
            return KIND_BACKGROUND
        return None

    def scan(self, root: Optional[Tag] = None) -> List[EditableSurface]:
        """Mark every unmarked qualifying element under `root`; return the new surfaces."""
        if root is None:
            root = self.page.document
        sheet = self.page.stylesheet_backgrounds()
        found: List[EditableSurface] = []
        for element in _walk(root):
            if element.get(MARKER_ATTR):
                # marked in markup (e.g. served pre-scanned) but not wired in this page
                adopted = surface_for(element)
                if adopted is not None and not self.page.listeners(element):
                    self._attach(adopted)
                    found.append(adopted)
                continue
            kind = self.classify(element, sheet)
            if kind is None:
                continue
            surface = EditableSurface(element=element, kind=kind)
            self._mark(surface, sheet)
            found.append(surface)
        if found:
            LOG.debug("marked surfaces count=%d root=%s", len(found), getattr(root, "name", "?"))
        return found

    def watch(self) -> Callable[[], None]:
        """Re-scan every subtree the page reports as inserted."""
        return self.page.subscribe_inserted(lambda node: self.scan(node))

    def _mark(self, surface: EditableSurface, sheet: Optional[dict] = None) -> None:
        element = surface.element
        source = surface.reference(self.page) if surface.kind == KIND_IMAGE else first_url(
            self.page.computed_background(element, sheet)
        )
        element[MARKER_ATTR] = surface.kind
        if source:
            element[SOURCE_ATTR] = source
        classes = list(element.get("class") or [])
        if AFFORDANCE_CLASS not in classes:
            classes.append(AFFORDANCE_CLASS)
        element["class"] = classes
        self._attach(surface)

    def _attach(self, surface: EditableSurface) -> None:
        self.page.add_listener(surface.element, lambda event, s=surface: self.on_click(event, s))
        surface.processed = True


__all__ = [
    "AFFORDANCE_CLASS",
    "EditableSurface",
    "KIND_BACKGROUND",
    "KIND_IMAGE",
    "MARKER_ATTR",
    "SOURCE_ATTR",
    "SurfaceScanner",
    "surface_for",
]
