from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import ClassVar, Optional, Union

from .errors import InternalError, MalformedBookError
from .style import Style, style_from_dict, style_to_dict

SPINE_FORMATS = {"xhtml", "svg"}


@dataclass
class SpineItem:
    path: str
    format: str
    linear: bool = True


@dataclass
class TocNode:
    label: str
    path_without_fragment: str
    path_with_fragment: str
    nesting_level: int = 0
    children: list["TocNode"] = field(default_factory=list)

    @property
    def fragment(self) -> Optional[str]:
        _, sep, fragment = self.path_with_fragment.partition("#")
        return fragment if sep else None

    def flattened(self) -> list["TocNode"]:
        nodes = [self]
        for child in self.children:
            nodes.extend(child.flattened())
        return nodes


def flatten_toc(toc: list[TocNode]) -> list[TocNode]:
    nodes: list[TocNode] = []
    for node in toc:
        nodes.extend(node.flattened())
    return nodes


@dataclass
class RenditionRecord:
    style: Style
    dir_path_from_library_root: str
    default_file_path_from_library_root: str
    bytes: int = 0


@dataclass
class EpubBook:
    kind: ClassVar[str] = "epub"

    id: str
    title: str
    creators: list[str]
    cover_path: Optional[str]
    first_linear_spine_item_path: str
    last_linear_spine_item_path: str
    path_from_library_root: str
    added_time: dt.datetime
    last_opened_time: dt.datetime
    spine_items: list[SpineItem]
    raw_rendition: RenditionRecord
    nonspine_resource_paths: list[str] = field(default_factory=list)
    table_of_contents: list[TocNode] = field(default_factory=list)
    last_opened_styles: list[Style] = field(default_factory=list)
    nonraw_renditions: list[RenditionRecord] = field(default_factory=list)

    def find_rendition(self, style: Style) -> Optional[RenditionRecord]:
        if style.is_raw():
            return self.raw_rendition
        for rendition in self.nonraw_renditions:
            if rendition.style == style:
                return rendition
        return None

    def size_in_bytes(self) -> int:
        return self.raw_rendition.bytes + sum(rendition.bytes for rendition in self.nonraw_renditions)

    def spine_index(self, path: str) -> Optional[int]:
        for index, item in enumerate(self.spine_items):
            if item.path == path:
                return index
        return None

    def first_linear_index(self) -> int:
        index = self.spine_index(self.first_linear_spine_item_path)
        if index is None:
            raise InternalError(f"first linear spine item {self.first_linear_spine_item_path} is not in the spine")
        return index

    def last_linear_index(self) -> int:
        index = self.spine_index(self.last_linear_spine_item_path)
        if index is None:
            raise InternalError(f"last linear spine item {self.last_linear_spine_item_path} is not in the spine")
        return index


# Every kind of book the library can hold. New formats join this union and
# BOOK_KINDS without changing the library's contract.
LibraryBook = Union[EpubBook]
BOOK_KINDS: dict[str, type] = {EpubBook.kind: EpubBook}


def linear_bounds(spine_items: list[SpineItem]) -> tuple[SpineItem, SpineItem]:
    linear = [item for item in spine_items if item.linear]
    if not linear:
        raise MalformedBookError("Ill-formed EPUB: no linear spine items.")
    return linear[0], linear[-1]


def _timestamp_to_str(value: dt.datetime) -> str:
    return value.isoformat()


def _timestamp_from_str(value: str) -> dt.datetime:
    return dt.datetime.fromisoformat(value)


def _object(data: object, what: str) -> dict:
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be an object, not {type(data).__name__}")
    return data


def _list(data: dict, key: str, default: Optional[list] = None) -> list:
    value = data.get(key, default) if default is not None else data[key]
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list, not {type(value).__name__}")
    return value


def _text(data: dict, key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, not {type(value).__name__}")
    return value


def spine_item_to_dict(item: SpineItem) -> dict:
    return {"path": item.path, "format": item.format, "linear": item.linear}


def spine_item_from_dict(data: dict) -> SpineItem:
    data = _object(data, "spine item")
    item_format = data["format"]
    if item_format not in SPINE_FORMATS:
        raise ValueError(f"Unknown spine item format {item_format!r}")
    return SpineItem(path=_text(data, "path"), format=item_format, linear=bool(data.get("linear", True)))


def toc_node_to_dict(node: TocNode) -> dict:
    return {
        "label": node.label,
        "path_without_fragment": node.path_without_fragment,
        "path_with_fragment": node.path_with_fragment,
        "nesting_level": node.nesting_level,
        "children": [toc_node_to_dict(child) for child in node.children],
    }


def toc_node_from_dict(data: dict) -> TocNode:
    data = _object(data, "table of contents entry")
    return TocNode(
        label=_text(data, "label"),
        path_without_fragment=_text(data, "path_without_fragment"),
        path_with_fragment=_text(data, "path_with_fragment"),
        nesting_level=int(data.get("nesting_level", 0)),
        children=[toc_node_from_dict(child) for child in _list(data, "children", [])],
    )


def rendition_to_dict(rendition: RenditionRecord) -> dict:
    return {
        "style": style_to_dict(rendition.style),
        "dir_path_from_library_root": rendition.dir_path_from_library_root,
        "default_file_path_from_library_root": rendition.default_file_path_from_library_root,
        "bytes": rendition.bytes,
    }


def rendition_from_dict(data: dict) -> RenditionRecord:
    data = _object(data, "rendition")
    return RenditionRecord(
        style=style_from_dict(data["style"]),
        dir_path_from_library_root=_text(data, "dir_path_from_library_root"),
        default_file_path_from_library_root=_text(data, "default_file_path_from_library_root"),
        bytes=int(data.get("bytes", 0)),
    )


def book_to_dict(book: LibraryBook) -> dict:
    return {
        "kind": book.kind,
        "id": book.id,
        "title": book.title,
        "creators": list(book.creators),
        "cover_path": book.cover_path,
        "first_linear_spine_item_path": book.first_linear_spine_item_path,
        "last_linear_spine_item_path": book.last_linear_spine_item_path,
        "path_from_library_root": book.path_from_library_root,
        "added_time": _timestamp_to_str(book.added_time),
        "last_opened_time": _timestamp_to_str(book.last_opened_time),
        "last_opened_styles": [style_to_dict(style) for style in book.last_opened_styles],
        "spine_items": [spine_item_to_dict(item) for item in book.spine_items],
        "nonspine_resource_paths": list(book.nonspine_resource_paths),
        "table_of_contents": [toc_node_to_dict(node) for node in book.table_of_contents],
        "raw_rendition": rendition_to_dict(book.raw_rendition),
        "nonraw_renditions": [rendition_to_dict(rendition) for rendition in book.nonraw_renditions],
    }


def book_from_dict(data: dict) -> LibraryBook:
    data = _object(data, "book")
    kind = data.get("kind", EpubBook.kind)
    if not isinstance(kind, str) or BOOK_KINDS.get(kind) is not EpubBook:
        raise ValueError(f"Unknown book kind {kind!r}")
    cover_path = data.get("cover_path")
    if cover_path is not None and not isinstance(cover_path, str):
        raise ValueError("cover_path must be a string or null")
    return EpubBook(
        id=_text(data, "id"),
        title=_text(data, "title"),
        creators=[str(name) for name in _list(data, "creators", [])],
        cover_path=cover_path,
        first_linear_spine_item_path=_text(data, "first_linear_spine_item_path"),
        last_linear_spine_item_path=_text(data, "last_linear_spine_item_path"),
        path_from_library_root=_text(data, "path_from_library_root"),
        added_time=_timestamp_from_str(_text(data, "added_time")),
        last_opened_time=_timestamp_from_str(_text(data, "last_opened_time")),
        last_opened_styles=[style_from_dict(style) for style in _list(data, "last_opened_styles", [])],
        spine_items=[spine_item_from_dict(item) for item in _list(data, "spine_items")],
        nonspine_resource_paths=[str(path) for path in _list(data, "nonspine_resource_paths", [])],
        table_of_contents=[toc_node_from_dict(node) for node in _list(data, "table_of_contents", [])],
        raw_rendition=rendition_from_dict(data["raw_rendition"]),
        nonraw_renditions=[rendition_from_dict(item) for item in _list(data, "nonraw_renditions", [])],
    )
