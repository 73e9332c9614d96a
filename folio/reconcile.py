from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .errors import MalformedBookError
from .models import SpineItem, TocNode, flatten_toc


@dataclass
class LinearIndex:
    """The TOC follows spine order; each spine item carries the entries that point into it."""

    mapping: list[tuple[SpineItem, list[TocNode]]]


@dataclass
class NonlinearIndex:
    spine: list[SpineItem]
    toc: list[TocNode]
    flattened_toc: list[TocNode]


BookIndex = Union[LinearIndex, NonlinearIndex]


def _toc_is_linear(spine: list[SpineItem], flattened: list[TocNode]) -> bool:
    positions = {}
    for index, item in enumerate(spine):
        positions.setdefault(item.path, index)
    running_max = 0
    for node in flattened:
        position = positions.get(node.path_without_fragment)
        if position is None:
            raise MalformedBookError(
                f"Ill-formed EPUB: TOC contains path {node.path_without_fragment}, which doesn't appear in spine."
            )
        if position < running_max:
            return False
        running_max = position
    return True


def classify(spine: list[SpineItem], toc: list[TocNode]) -> BookIndex:
    flattened = flatten_toc(toc)
    if not _toc_is_linear(spine, flattened):
        return NonlinearIndex(spine=list(spine), toc=list(toc), flattened_toc=flattened)
    return LinearIndex(
        mapping=[
            (item, [node for node in flattened if node.path_without_fragment == item.path])
            for item in spine
        ]
    )
