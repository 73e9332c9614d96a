from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from . import paths
from .css import CssBlock, CssFile
from .errors import InternalError
from .models import EpubBook, TocNode
from .reconcile import LinearIndex, classify
from .rendering import render_template
from .style import Style, image_block, link_block

INDEX_PAGE = "index.xhtml"
INDEX_STYLESHEET = "index_styles.css"
CONTENTS_DIR = "contents"


@dataclass
class IndexEntry:
    label: str
    href: Optional[str]
    children: list["IndexEntry"] = field(default_factory=list)


@dataclass
class IndexRow:
    spine_entry: IndexEntry
    toc_entries: list[IndexEntry]


class IndexLinks:
    """Maps book paths to hrefs relative to the rendition root."""

    def __init__(
        self,
        book: EpubBook,
        style: Style,
        navigation_pages: Optional[list[str]] = None,
        contents_dir: str = CONTENTS_DIR,
    ) -> None:
        self.book = book
        self.contents_dir = contents_dir
        self.pages: dict[str, str] = {}
        if style.inject_navigation and navigation_pages:
            for item, page in zip(book.spine_items, navigation_pages):
                self.pages.setdefault(item.path, page)

    def content(self, path: str) -> str:
        return paths.join(self.contents_dir, path)

    def section(self, path: str, fragment: Optional[str] = None) -> str:
        page = self.pages.get(path)
        return paths.with_fragment(page if page else self.content(path), fragment)

    def toc_entry(self, node: TocNode) -> IndexEntry:
        return IndexEntry(node.label, self.section(node.path_without_fragment, node.fragment))


def nest_entries(nodes: list[TocNode], links: IndexLinks) -> list[IndexEntry]:
    """Turn a flattened TOC run into nested entries by nesting level.

    A node more than one level deeper than its predecessor is wrapped in
    unlabeled entries, one per skipped level, so list depth always matches
    the node's nesting level.
    """
    root: list[IndexEntry] = []
    stack: list[tuple[int, list[IndexEntry]]] = [(-1, root)]
    for node in nodes:
        while len(stack) > 1 and stack[-1][0] >= node.nesting_level:
            stack.pop()
        while stack[-1][0] + 1 < node.nesting_level:
            wrapper = IndexEntry("", None)
            stack[-1][1].append(wrapper)
            stack.append((stack[-1][0] + 1, wrapper.children))
        entry = links.toc_entry(node)
        stack[-1][1].append(entry)
        stack.append((node.nesting_level, entry.children))
    return root


def toc_tree(nodes: list[TocNode], links: IndexLinks) -> list[IndexEntry]:
    entries = []
    for node in nodes:
        entry = links.toc_entry(node)
        entry.children = toc_tree(node.children, links)
        entries.append(entry)
    return entries


def render_index(
    book: EpubBook,
    style: Style,
    navigation_pages: Optional[list[str]] = None,
    contents_dir: str = CONTENTS_DIR,
) -> str:
    """Render the index page; section links resolve under ``contents_dir`` unless a wrapper exists."""
    links = IndexLinks(book, style, navigation_pages, contents_dir)
    book_index = classify(book.spine_items, book.table_of_contents)
    spine_entries = [IndexEntry(item.path, links.section(item.path)) for item in book.spine_items]
    context: dict = {
        "title": book.title,
        "creators": " & ".join(book.creators),
        "cover_src": links.content(book.cover_path) if book.cover_path else None,
        "start_href": links.section(book.first_linear_spine_item_path),
        "end_href": links.section(book.last_linear_spine_item_path),
        "stylesheet_href": INDEX_STYLESHEET,
    }
    if isinstance(book_index, LinearIndex):
        context["rows"] = [
            IndexRow(entry, nest_entries(nodes, links))
            for entry, (_, nodes) in zip(spine_entries, book_index.mapping)
        ]
    else:
        context["spine_entries"] = spine_entries
        context["toc_entries"] = toc_tree(book_index.toc, links)
    return render_template("index.xhtml.j2", **context)


def index_stylesheet(style: Style) -> str:
    body = ["text-align: center;"]
    text_color = style.property_value("text_color")
    background_color = style.property_value("background_color")
    margin = style.property_value("margin_size")
    if text_color is not None:
        body.append(f"color: {text_color};")
    if background_color is not None:
        body.append(f"background-color: {background_color};")
    if margin is not None:
        body.extend([f"margin-left: {margin}px;", f"margin-right: {margin}px;"])
    rendered = CssFile(
        [
            CssBlock("body", body),
            CssBlock("table", ["border-collapse: collapse;", "margin-left: auto;", "margin-right: auto;"]),
            CssBlock("td", [f"border: 1px solid {text_color or 'black'};", "vertical-align: top;"]),
            CssBlock("ul", ["text-align: left;"]),
            link_block(style),
            image_block(style),
        ]
    ).render()
    if rendered is None:
        raise InternalError("failed to generate index stylesheet.")
    return rendered
