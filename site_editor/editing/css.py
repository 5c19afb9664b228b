"""
Small CSS readers for image references.

Intent:
    Turn `background-image` / `background` values, inline `style` attributes
    and `<style>` sheets into structured data, so "which image does this
    element paint" is an explicit decision instead of a regex side effect.

Behavior:
    - `parse_image_layers()` splits a value into comma-separated layers and
      reports the image token of each layer (url, gradient, other image
      function, or none).
    - `first_url()` implements the "first url(...) layer wins" policy used by
      the surface scanner; gradients and other paint layers are ignored.
    - `parse_declarations()` / `set_declaration()` read and rewrite inline
      style attributes without breaking data URLs (which contain `;`).
    - `parse_stylesheet()` returns plain style rules; at-rule blocks such as
      `@media` are skipped.

Not a full CSS parser: no specificity, no custom properties, no nesting.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Dict, List, Optional


IMAGE_FUNCTIONS = {"image-set", "-webkit-image-set", "image", "cross-fade", "element", "paint"}
BACKGROUND_PROPERTIES = ("background-image", "background")

_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_HEX_ESCAPE_RE = re.compile(r"\\([0-9a-fA-F]{1,6})\s?")


@dataclass(frozen=True)
class ImageLayer:
    """One paint layer of a background value."""

    kind: str  # "url" | "gradient" | "function" | "none"
    reference: Optional[str] = None
    raw: str = ""


@dataclass
class StyleRule:
    selectors: List[str]
    declarations: Dict[str, str] = field(default_factory=dict)


# --- Tokenising helpers --------------------------------------------------------


def _skip_string(value: str, i: int) -> int:
    """Return the index just past the quoted string starting at `value[i]`."""
    quote = value[i]
    i += 1
    while i < len(value):
        ch = value[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    return i


def split_top_level(value: str, sep: str) -> List[str]:
    """Split on `sep` outside of parentheses and quoted strings."""
    parts: List[str] = []
    depth = 0
    start = 0
    i = 0
    while i < len(value):
        ch = value[i]
        if ch in "\"'":
            i = _skip_string(value, i)
            continue
        if ch == "\\":
            i += 2
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        elif ch == sep and depth == 0:
            parts.append(value[start:i])
            start = i + 1
        i += 1
    parts.append(value[start:])
    return parts


def _unescape(text: str) -> str:
    text = _HEX_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), text)
    return re.sub(r"\\(.)", r"\1", text)


def _url_argument(inner: str) -> str:
    arg = inner.strip()
    if len(arg) >= 2 and arg[0] == arg[-1] and arg[0] in "\"'":
        arg = arg[1:-1]
    return _unescape(arg).strip()


def _functions(layer: str):
    """Yield (name, inner, raw) for each top-level function call in `layer`."""
    i = 0
    n = len(layer)
    while i < n:
        ch = layer[i]
        if ch in "\"'":
            i = _skip_string(layer, i)
            continue
        if ch.isalpha() or ch == "-":
            j = i
            while j < n and (layer[j].isalnum() or layer[j] in "-_"):
                j += 1
            if j < n and layer[j] == "(":
                depth = 0
                k = j
                while k < n:
                    c = layer[k]
                    if c in "\"'":
                        k = _skip_string(layer, k)
                        continue
                    if c == "\\":
                        k += 2
                        continue
                    if c == "(":
                        depth += 1
                    elif c == ")":
                        depth -= 1
                        if depth == 0:
                            break
                    k += 1
                yield layer[i:j].lower(), layer[j + 1:k], layer[i:k + 1]
                i = k + 1
                continue
            i = j
            continue
        i += 1


# --- Image references ------------------------------------------------------------


def parse_image_layers(value: Optional[str]) -> List[ImageLayer]:
    """Return the image token of every comma-separated layer in `value`."""
    layers: List[ImageLayer] = []
    for part in split_top_level(value or "", ","):
        layer = part.strip()
        if not layer:
            continue
        found: Optional[ImageLayer] = None
        for name, inner, raw in _functions(layer):
            if name == "url":
                ref = _url_argument(inner)
                found = ImageLayer(kind="url", reference=ref or None, raw=raw)
            elif name.endswith("gradient"):
                found = ImageLayer(kind="gradient", raw=raw)
            elif name in IMAGE_FUNCTIONS:
                found = ImageLayer(kind="function", raw=raw)
            if found is not None:
                break
        layers.append(found or ImageLayer(kind="none", raw=layer))
    return layers


def first_url(value: Optional[str]) -> Optional[str]:
    """Return the reference of the first `url(...)` layer, skipping other paint."""
    for layer in parse_image_layers(value):
        if layer.kind == "url" and layer.reference:
            return layer.reference
    return None


def css_url(reference: str) -> str:
    """Format `reference` as a quoted CSS url() token."""
    escaped = reference.replace("\\", "\\\\").replace('"', '\\"')
    return f'url("{escaped}")'


# --- Declarations ----------------------------------------------------------------


def parse_declarations(style: Optional[str]) -> Dict[str, str]:
    """Parse an inline style attribute; later declarations win.

    The returned dict is ordered by the position of the last occurrence of
    each property, which keeps shorthand/longhand precedence readable.
    """
    decls: Dict[str, str] = {}
    for chunk in split_top_level(_COMMENT_RE.sub("", style or ""), ";"):
        if ":" not in chunk:
            continue
        name, _, value = chunk.partition(":")
        name = name.strip().lower()
        value = value.strip()
        if value.lower().endswith("!important"):
            value = value[: -len("!important")].rstrip()
        if not name:
            continue
        decls.pop(name, None)
        decls[name] = value
    return decls


def serialize_declarations(decls: Dict[str, str]) -> str:
    return "; ".join(f"{k}: {v}" for k, v in decls.items())


def set_declaration(style: Optional[str], name: str, value: str) -> str:
    """Return `style` with `name` set to `value` (appended when missing)."""
    decls = parse_declarations(style)
    decls.pop(name.lower(), None)
    decls[name.lower()] = value
    return serialize_declarations(decls)


def background_value(decls: Dict[str, str]) -> Optional[str]:
    """Return the effective background image value of a declaration block."""
    value: Optional[str] = None
    for name, val in decls.items():
        if name in BACKGROUND_PROPERTIES:
            value = val
    return value


# --- Stylesheets -------------------------------------------------------------------


def parse_stylesheet(css: Optional[str]) -> List[StyleRule]:
    """Return plain style rules in source order; at-rules are skipped."""
    text = _COMMENT_RE.sub("", css or "")
    rules: List[StyleRule] = []
    i = 0
    n = len(text)
    while i < n:
        brace = text.find("{", i)
        if brace == -1:
            break
        prelude = text[i:brace].strip()
        # statement at-rules (`@import ...;`) may precede the next block
        while prelude.startswith("@") and ";" in prelude:
            prelude = prelude.split(";", 1)[1].strip()
        depth = 0
        j = brace
        while j < n:
            c = text[j]
            if c in "\"'":
                j = _skip_string(text, j)
                continue
            if c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    break
            j += 1
        body = text[brace + 1:j]
        i = j + 1
        if not prelude or prelude.startswith("@"):
            continue
        selectors = [s.strip() for s in split_top_level(prelude, ",") if s.strip()]
        if selectors:
            rules.append(StyleRule(selectors=selectors, declarations=parse_declarations(body)))
    return rules


__all__ = [
    "ImageLayer",
    "StyleRule",
    "background_value",
    "css_url",
    "first_url",
    "parse_declarations",
    "parse_image_layers",
    "parse_stylesheet",
    "serialize_declarations",
    "set_declaration",
    "split_top_level",
]
