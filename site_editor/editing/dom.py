"""
Page model for the image editor.

Intent:
    Give the editor a browser-like surface to work against without a browser:
    a parsed HTML document (BeautifulSoup), click listeners with bubbling and
    default suppression, a computed background lookup, and an explicit
    "subtree inserted" channel that replaces mutation polling.

Behavior:
    - `click()` dispatches from the target up through its ancestors and awaits
      async listeners in order; `stop_propagation()` ends the walk.
    - `default_action` reports the link an un-prevented click would follow.
    - `insert_html()` appends parsed markup to a parent and publishes every
      inserted element root to subscribers (the scanner re-scans exactly
      those subtrees).
    - Computed backgrounds combine `<style>` rules (source order, no
      specificity) with the inline `style` attribute, which always wins.
"""
from __future__ import annotations

import inspect
import logging
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from .css import background_value, parse_declarations, parse_stylesheet


LOG = logging.getLogger("site_editor.dom")

Listener = Callable[["ClickEvent"], Optional[Awaitable[None]]]
InsertedSubscriber = Callable[[Tag], None]


class ClickEvent:
    """Minimal click event: target, current target and the two suppression flags."""

    def __init__(self, target: Tag) -> None:
        self.target = target
        self.current_target: Optional[Tag] = None
        self.default_prevented = False
        self.propagation_stopped = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True

    @property
    def default_action(self) -> Optional[str]:
        """href the click would navigate to, or None when prevented/no link."""
        if self.default_prevented:
            return None
        node: Optional[Tag] = self.target
        while isinstance(node, Tag):
            if node.name == "a" and node.get("href"):
                return str(node["href"])
            node = node.parent
        return None


class Page:
    """A parsed HTML document with listener bookkeeping."""

    def __init__(self, html: str, *, url: Optional[str] = None, parser: str = "html.parser") -> None:
        self.soup = BeautifulSoup(html or "", parser)
        self.url = url
        self._parser = parser
        # id(tag) -> (tag, listeners); the tag is kept to pin its id
        self._listeners: Dict[int, Tuple[Tag, List[Listener]]] = {}
        self._inserted: List[InsertedSubscriber] = []

    @classmethod
    def from_file(cls, path: Union[str, Path], *, url: Optional[str] = None) -> "Page":
        return cls(Path(path).read_text(encoding="utf-8"), url=url)

    @property
    def document(self) -> BeautifulSoup:
        return self.soup

    def html(self) -> str:
        return str(self.soup)

    # --- Listeners -------------------------------------------------------------

    def add_listener(self, element: Tag, listener: Listener) -> None:
        entry = self._listeners.setdefault(id(element), (element, []))
        entry[1].append(listener)

    def listeners(self, element: Tag) -> List[Listener]:
        entry = self._listeners.get(id(element))
        if entry is None or entry[0] is not element:
            return []
        return list(entry[1])

    async def click(self, element: Tag) -> ClickEvent:
        """Dispatch a click on `element` and bubble it to the document."""
        event = ClickEvent(element)
        node: Optional[Tag] = element
        while isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
            event.current_target = node
            for listener in self.listeners(node):
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            if event.propagation_stopped:
                break
            node = node.parent
        event.current_target = None
        return event

    # --- Subtree insertion -----------------------------------------------------

    def subscribe_inserted(self, subscriber: InsertedSubscriber) -> Callable[[], None]:
        """Register `subscriber` for inserted subtrees; returns an unsubscribe callable."""
        self._inserted.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._inserted:
                self._inserted.remove(subscriber)

        return _unsubscribe

    def insert_html(self, parent: Tag, html: str) -> List[Tag]:
        """Append `html` to `parent` and publish each inserted element root."""
        fragment = BeautifulSoup(html or "", self._parser)
        inserted: List[Tag] = []
        for node in list(fragment.contents):
            parent.append(node.extract())
            if isinstance(node, Tag):
                inserted.append(node)
        for node in inserted:
            self._publish_inserted(node)
        return inserted

    def _publish_inserted(self, node: Tag) -> None:
        for subscriber in list(self._inserted):
            subscriber(node)

    # --- Styles ------------------------------------------------------------------

    def stylesheet_backgrounds(self) -> Dict[int, str]:
        """Map id(element) -> background value contributed by `<style>` rules."""
        index: Dict[int, str] = {}
        for style in self.soup.find_all("style"):
            for rule in parse_stylesheet(style.get_text()):
                value = background_value(rule.declarations)
                if value is None:
                    continue
                for selector in rule.selectors:
                    if "::" in selector:
                        continue
                    try:
                        matches = self.soup.select(selector)
                    except (SelectorSyntaxError, NotImplementedError, ValueError):
                        LOG.debug("skipping unsupported selector=%r", selector)
                        continue
                    for match in matches:
                        index[id(match)] = value
        return index

    def computed_background(self, element: Tag, sheet: Optional[Dict[int, str]] = None) -> Optional[str]:
        """Return the background value that paints `element`, if any."""
        inline = background_value(parse_declarations(element.get("style")))
        if inline is not None:
            return inline
        if sheet is None:
            sheet = self.stylesheet_backgrounds()
        return sheet.get(id(element))


__all__ = ["ClickEvent", "Listener", "Page"]
