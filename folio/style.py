from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, fields
from typing import Callable, Optional, Union

from .css import CssBlock, CssFile, validate_css

StyleValue = Union[str, int, float, bool]

FINGERPRINT_WIDTH = len(str(2**64 - 1))
FREEFORM_KEYS = ("freeform_css_no_override", "freeform_css_override")


class StylesheetError(ValueError):
    pass


@dataclass(frozen=True)
class StyleProperty:
    value: StyleValue
    override_book: bool = False


@dataclass(frozen=True)
class PropertyRule:
    name: str
    kind: str
    selector: str
    declarations: Callable[[StyleValue], list[str]]
    # Inherited properties must also hit descendants to beat per-element book CSS.
    inherited: bool = False


STYLE_PROPERTIES: tuple[PropertyRule, ...] = (
    PropertyRule("font", "str", "body", lambda v: [f"font-family: {v}"], inherited=True),
    PropertyRule("font_size", "number", "body", lambda v: [f"font-size: {v}px"], inherited=True),
    PropertyRule("text_color", "str", "body", lambda v: [f"color: {v}"], inherited=True),
    PropertyRule("link_color", "str", ":any-link", lambda v: [f"color: {v}"]),
    PropertyRule("background_color", "str", "body", lambda v: [f"background-color: {v}"]),
    PropertyRule("line_spacing", "number", "body", lambda v: [f"line-height: {v}"], inherited=True),
    PropertyRule("indentation", "number", "p", lambda v: [f"text-indent: {v}px"]),
    PropertyRule(
        "margin_size",
        "number",
        "body",
        lambda v: [f"margin-left: {v}px", f"margin-right: {v}px"],
    ),
    PropertyRule("max_width", "number", "body", lambda v: [f"max-width: {v}px"]),
    PropertyRule(
        "limit_image_size_to_viewport_size",
        "bool",
        "img",
        lambda v: ["max-width: 100%", "max-height: 100vh"] if v else [],
    ),
)
PROPERTY_NAMES = tuple(rule.name for rule in STYLE_PROPERTIES)


@dataclass(frozen=True)
class Stylesheet:
    font: Optional[StyleProperty] = None
    font_size: Optional[StyleProperty] = None
    text_color: Optional[StyleProperty] = None
    link_color: Optional[StyleProperty] = None
    background_color: Optional[StyleProperty] = None
    line_spacing: Optional[StyleProperty] = None
    indentation: Optional[StyleProperty] = None
    margin_size: Optional[StyleProperty] = None
    max_width: Optional[StyleProperty] = None
    limit_image_size_to_viewport_size: Optional[StyleProperty] = None
    freeform_css_no_override: Optional[str] = None
    freeform_css_override: Optional[str] = None

    def get(self, name: str) -> Optional[StyleProperty]:
        return getattr(self, name)

    def is_empty(self) -> bool:
        return all(getattr(self, item.name) is None for item in fields(self))

    def no_override_css(self) -> Optional[str]:
        return _stylesheet_file(self, override=False).render()

    def override_css(self) -> Optional[str]:
        return _stylesheet_file(self, override=True).render()


def _stylesheet_file(stylesheet: Stylesheet, *, override: bool) -> CssFile:
    grouped: dict[str, list[str]] = {}
    suffix = " !important;" if override else ";"
    for rule in STYLE_PROPERTIES:
        prop = stylesheet.get(rule.name)
        if prop is None or prop.override_book != override:
            continue
        selector = rule.selector
        if override:
            selector = f"html {selector}"
            if rule.inherited:
                selector = f"{selector}, {selector} *"
        lines = grouped.setdefault(selector, [])
        lines.extend(f"{declaration}{suffix}" for declaration in rule.declarations(prop.value))
    freeform = stylesheet.freeform_css_override if override else stylesheet.freeform_css_no_override
    return CssFile(
        blocks=[CssBlock(selector, list(lines)) for selector, lines in grouped.items()],
        trailer=[freeform] if freeform else [],
    )


@dataclass(frozen=True)
class Style:
    include_index: bool = True
    inject_navigation: bool = True
    stylesheet: Optional[Stylesheet] = None

    @classmethod
    def raw(cls) -> "Style":
        return cls(include_index=False, inject_navigation=False, stylesheet=None)

    def is_raw(self) -> bool:
        return self == Style.raw()

    def uses_raw_contents(self) -> bool:
        """True when sections need no rewriting, so the raw files can be linked to directly."""
        return not self.inject_navigation and (self.stylesheet is None or self.stylesheet.is_empty())

    def property_value(self, name: str) -> Optional[StyleValue]:
        if self.stylesheet is None:
            return None
        prop = self.stylesheet.get(name)
        return None if prop is None else prop.value

    def no_override_css(self) -> Optional[str]:
        return None if self.stylesheet is None else self.stylesheet.no_override_css()

    def override_css(self) -> Optional[str]:
        return None if self.stylesheet is None else self.stylesheet.override_css()


def style_fingerprint(style: Style) -> int:
    payload = json.dumps(style_to_dict(style), sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(payload.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def link_block(style: Style) -> CssBlock:
    color = style.property_value("link_color")
    return CssBlock(":any-link", [f"color: {color};"] if color is not None else [])


def image_block(style: Style) -> CssBlock:
    if style.property_value("limit_image_size_to_viewport_size"):
        return CssBlock("img", ["max-width: 100%;", "max-height: 100vh;"])
    return CssBlock("img")


def _check_value(rule: PropertyRule, value: object) -> StyleValue:
    if rule.kind == "bool":
        if not isinstance(value, bool):
            raise StylesheetError(f"{rule.name} must be true or false")
        return value
    if rule.kind == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise StylesheetError(f"{rule.name} must be a number")
        return value
    if not isinstance(value, str) or not value.strip():
        raise StylesheetError(f"{rule.name} must be a non-empty string")
    if any(ch in value for ch in "{};"):
        raise StylesheetError(f"{rule.name} must not contain CSS punctuation")
    return value.strip()


def stylesheet_to_dict(stylesheet: Stylesheet) -> dict:
    data: dict = {}
    for name in PROPERTY_NAMES:
        prop = stylesheet.get(name)
        if prop is not None:
            data[name] = {"value": prop.value, "override_book": prop.override_book}
    for key in FREEFORM_KEYS:
        text = getattr(stylesheet, key)
        if text is not None:
            data[key] = text
    return data


def stylesheet_from_dict(data: dict) -> Stylesheet:
    if not isinstance(data, dict):
        raise StylesheetError("stylesheet must be an object")
    unknown = sorted(set(data) - set(PROPERTY_NAMES) - set(FREEFORM_KEYS))
    if unknown:
        raise StylesheetError(f"unknown stylesheet keys: {', '.join(unknown)}")
    values: dict = {}
    for rule in STYLE_PROPERTIES:
        entry = data.get(rule.name)
        if entry is None:
            continue
        if not isinstance(entry, dict) or "value" not in entry:
            raise StylesheetError(f"{rule.name} must be an object with a value")
        override_book = entry.get("override_book", False)
        if not isinstance(override_book, bool):
            raise StylesheetError(f"{rule.name}.override_book must be true or false")
        values[rule.name] = StyleProperty(_check_value(rule, entry["value"]), override_book)
    for key in FREEFORM_KEYS:
        text = data.get(key)
        if text is None:
            continue
        if not isinstance(text, str):
            raise StylesheetError(f"{key} must be a string")
        problem = validate_css(text)
        if problem:
            raise StylesheetError(f"{key}: {problem}")
        values[key] = text
    return Stylesheet(**values)


def style_to_dict(style: Style) -> dict:
    return {
        "include_index": style.include_index,
        "inject_navigation": style.inject_navigation,
        "stylesheet": None if style.stylesheet is None else stylesheet_to_dict(style.stylesheet),
    }


def style_from_dict(data: dict) -> Style:
    if not isinstance(data, dict):
        raise StylesheetError("style must be an object")
    stylesheet_data = data.get("stylesheet")
    return Style(
        include_index=bool(data.get("include_index", True)),
        inject_navigation=bool(data.get("inject_navigation", True)),
        stylesheet=None if stylesheet_data is None else stylesheet_from_dict(stylesheet_data),
    )
