from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .css import CssBlock, CssFile
from .errors import InternalError
from .index import INDEX_PAGE
from .models import EpubBook, SpineItem
from .rendering import render_template
from .style import Style, image_block, link_block

NAVIGATION_STYLESHEET = "navigation_styles.css"
NAVIGATION_SCRIPT = "navigation_script.js"


@dataclass
class NavigationControls:
    previous_href: Optional[str] = None
    next_href: Optional[str] = None
    index_href: Optional[str] = None


def navigation_filenames(spine_items: list[SpineItem]) -> list[str]:
    """One wrapper filename per spine position, zero padded to a width fixed by the spine length."""
    width = len(str(max(len(spine_items) - 1, 0)))
    return [f"section_{index:0{width}d}.xhtml" for index in range(len(spine_items))]


def previous_linear_index(spine_items: list[SpineItem], spine_index: int) -> int:
    for index in range(spine_index - 1, -1, -1):
        if spine_items[index].linear:
            return index
    raise InternalError(f"no linear spine item before position {spine_index}")


def next_linear_index(spine_items: list[SpineItem], spine_index: int) -> int:
    for index in range(spine_index + 1, len(spine_items)):
        if spine_items[index].linear:
            return index
    raise InternalError(f"no linear spine item after position {spine_index}")


def navigation_controls(book: EpubBook, filenames: list[str], spine_index: int, style: Style) -> NavigationControls:
    controls = NavigationControls(index_href=INDEX_PAGE if style.include_index else None)
    if spine_index > book.first_linear_index():
        controls.previous_href = filenames[previous_linear_index(book.spine_items, spine_index)]
    if spine_index < book.last_linear_index():
        controls.next_href = filenames[next_linear_index(book.spine_items, spine_index)]
    return controls


def render_navigation_wrapper(
    book: EpubBook,
    filenames: list[str],
    spine_index: int,
    style: Style,
    section_markup: Optional[str] = None,
    section_src: Optional[str] = None,
) -> str:
    """Wrapper page for one spine item.

    XHTML sections are embedded inline through ``srcdoc`` after re-basing;
    anything else (SVG pages) is framed by ``section_src``.
    """
    if section_markup is None and section_src is None:
        raise InternalError("navigation wrapper needs either section markup or a section src")
    return render_template(
        "navigation.xhtml.j2",
        title=book.title,
        section_path=book.spine_items[spine_index].path,
        section_markup=section_markup,
        section_src=section_src,
        controls=navigation_controls(book, filenames, spine_index, style),
        stylesheet_href=NAVIGATION_STYLESHEET,
        script_href=NAVIGATION_SCRIPT,
    )


def _body_block(style: Style) -> CssBlock:
    lines = ["margin: 0;", "padding: 0;", "height: 100vh;", "width: 100vw;", "overflow: hidden;"]
    text_color = style.property_value("text_color")
    background_color = style.property_value("background_color")
    if text_color is not None:
        lines.append(f"color: {text_color};")
    if background_color is not None:
        lines.append(f"background-color: {background_color};")
    return CssBlock("body", lines)


def _navigation_block(style: Style) -> CssBlock:
    margin = style.property_value("margin_size")
    if margin is None:
        offset = "5vh"
        width = "calc(100vw - calc(10vh + 2.5rem))"
    else:
        offset = f"calc(5vh + {margin}px)"
        width = f"calc(100vw - calc(10vh + 2.5rem + calc(2 * {margin}px)))"
    border_color = style.property_value("text_color") or "black"
    background = style.property_value("background_color") or "white"
    return CssBlock(
        "#navigation",
        [
            "position: fixed;",
            "bottom: 5vh;",
            f"left: {offset};",
            f"right: {offset};",
            f"width: {width};",
            "padding: 1rem;",
            f"border: 0.25rem solid {border_color};",
            "border-radius: 2rem;",
            f"background: {background};",
            "text-align: center;",
            "opacity: 0;",
            "transition: opacity 0.4s ease-out;",
        ],
    )


def _button_block(style: Style) -> CssBlock:
    border_color = style.property_value("text_color") or "black"
    return CssBlock(
        ".navigation-button",
        [
            "padding: 0.1rem;",
            f"border: 0.1rem solid {border_color};",
            "border-radius: 0.2rem;",
            "text-decoration: none;",
        ],
    )


def navigation_stylesheet(style: Style) -> str:
    rendered = CssFile(
        [
            _body_block(style),
            CssBlock("#section", ["border: none;", "height: 100%;", "width: 100%;"]),
            _navigation_block(style),
            CssBlock("#navigation:hover, #navigation:focus-within", ["opacity: 1;"]),
            _button_block(style),
            link_block(style),
            image_block(style),
        ]
    ).render()
    if rendered is None:
        raise InternalError("failed to generate navigation stylesheet.")
    return rendered
