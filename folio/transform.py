from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

from lxml import etree as LXML_ET

from . import paths
from .errors import InternalError, MalformedBookError
from .markup import MarkupFilter, MarkupWriter, attribute_value, find_base_href, is_html_element, run_parser, split_tag

logger = logging.getLogger("folio.transform")

TARGET_NEW_CONTEXT = "_blank"
TARGET_SAME_CONTEXT = "_self"
TARGET_PARENT_CONTEXT = "_parent"


@dataclass
class SectionPlan:
    """How one content section is rewritten. Paths are relative to the rendition root."""

    document_path: str
    inject_navigation: bool = False
    navigation_pages: dict[str, str] = field(default_factory=dict)
    no_override_stylesheet: Optional[str] = None
    override_stylesheet: Optional[str] = None


def base_directory(document_path: str, base_href: Optional[str]) -> Optional[str]:
    """Directory that relative references in ``document_path`` resolve against.

    ``None`` means the document declares a base outside the rendition (an
    absolute URL or a root path), so references cannot be mapped back to files.
    """
    if not base_href:
        return paths.parent(document_path)
    if paths.is_absolute_url(base_href):
        return None
    target = paths.strip_suffixes(base_href).strip()
    if not target:
        return paths.parent(document_path)
    if target.startswith("/"):
        return None
    resolved = paths.join(paths.parent(document_path), target)
    return resolved if target.endswith("/") else paths.parent(resolved)


def _stylesheet_link_tag(head_tag: str) -> str:
    uri, _ = split_tag(head_tag)
    return f"{{{uri}}}link" if uri else "link"


class SectionRewriter(MarkupFilter):
    def __init__(self, writer: MarkupWriter, plan: SectionPlan, base_dir: Optional[str]) -> None:
        super().__init__(writer)
        self.plan = plan
        self.base_dir = base_dir
        self.link_dir = base_dir if base_dir is not None else paths.parent(plan.document_path)

    def _stylesheet_href(self, stylesheet_path: str) -> str:
        return paths.relativize(stylesheet_path, self.link_dir)

    def _inject_stylesheet(self, head_tag: str, stylesheet_path: str) -> None:
        self.writer.element(
            _stylesheet_link_tag(head_tag),
            {"rel": "stylesheet", "type": "text/css", "href": self._stylesheet_href(stylesheet_path)},
        )

    def _navigation_href(self, href: str) -> Optional[str]:
        if self.base_dir is None:
            return None
        target, fragment = paths.split_fragment(href)
        target = unquote(paths.strip_suffixes(target).strip())
        resolved = paths.join(self.base_dir, target) if target else paths.normalize(self.plan.document_path)
        page = self.plan.navigation_pages.get(resolved)
        if page is None:
            return None
        return paths.with_fragment(paths.relativize(page, self.base_dir), fragment)

    def _rewrite_anchor(self, attrib: dict) -> dict:
        href = attribute_value(attrib, "href")
        if href is None:
            return attrib
        try:
            absolute = paths.is_absolute_url(href)
        except ValueError as exc:
            raise MalformedBookError(
                f'URL parse error on <a href="{href}"> in {self.plan.document_path}: {exc}'
            ) from exc
        if absolute:
            target = TARGET_NEW_CONTEXT
        elif self.plan.inject_navigation:
            target = TARGET_PARENT_CONTEXT
            redirected = self._navigation_href(href)
            if redirected is not None:
                attrib["href"] = redirected
        else:
            target = TARGET_SAME_CONTEXT
        attrib["target"] = target
        return attrib

    def start(self, tag: str, attrib: dict, nsmap: Optional[dict] = None) -> None:
        attrib = dict(attrib)
        if is_html_element(tag, "a"):
            attrib = self._rewrite_anchor(attrib)
        super().start(tag, attrib, nsmap)
        if self.in_head() and len(self.stack) == 2 and self.plan.no_override_stylesheet:
            self._inject_stylesheet(tag, self.plan.no_override_stylesheet)

    def end(self, tag: str) -> None:
        if self.in_head() and len(self.stack) == 2 and self.plan.override_stylesheet:
            self._inject_stylesheet(tag, self.plan.override_stylesheet)
        super().end(tag)


def _encode(text: str, document_path: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise InternalError(f"{document_path} wasn't encoded to valid UTF-8 on adjustment.") from exc


def transform_section(source: Path, plan: SectionPlan) -> bytes:
    """Rewrite one XHTML section; the file is streamed twice and never held as a tree."""
    try:
        with source.open("rb") as handle:
            declared_base = find_base_href(handle)
            handle.seek(0)
            base_dir = base_directory(plan.document_path, declared_base)
            rewriter = SectionRewriter(MarkupWriter(), plan, base_dir)
            text = run_parser(handle, rewriter)
    except LXML_ET.XMLSyntaxError as exc:
        raise MalformedBookError(f"XML parse failure in {source}: {exc}") from exc
    except ValueError as exc:
        raise MalformedBookError(f"Invalid base URL in {source}: {exc}") from exc
    logger.debug("transformed %s", plan.document_path)
    return _encode(text, plan.document_path)


class BaseRewriter(MarkupFilter):
    """Second pass of re-basing: drop declared ``<base>`` elements and insert ours first in ``<head>``."""

    def __init__(self, writer: MarkupWriter, base_href: str) -> None:
        super().__init__(writer)
        self.base_href = base_href
        self._skipping = 0

    def start(self, tag: str, attrib: dict, nsmap: Optional[dict] = None) -> None:
        if self._skipping:
            self._skipping += 1
            return
        if self.in_head() and len(self.stack) == 2 and is_html_element(tag, "base"):
            self._skipping = 1
            return
        super().start(tag, attrib, nsmap)
        if self.in_head() and len(self.stack) == 2:
            uri, _ = split_tag(tag)
            self.writer.element(f"{{{uri}}}base" if uri else "base", {"href": self.base_href})

    def end(self, tag: str) -> None:
        if self._skipping:
            self._skipping -= 1
            return
        super().end(tag)

    def data(self, text: str) -> None:
        if not self._skipping:
            super().data(text)

    def comment(self, text: str) -> None:
        if not self._skipping:
            super().comment(text)

    def pi(self, target: str, data: Optional[str] = None) -> None:
        if not self._skipping:
            super().pi(target, data)


def rebase_section(content: bytes, document_path: str, wrapper_path: str) -> str:
    """Re-point a section's base so it still resolves when embedded in ``wrapper_path``."""
    try:
        declared_base = find_base_href(content)
        base_dir = base_directory(document_path, declared_base)
        if base_dir is None:
            base_href = declared_base or ""
        else:
            base_href = paths.directory_href(wrapper_path, base_dir)
        return run_parser(content, BaseRewriter(MarkupWriter(declaration=False), base_href))
    except LXML_ET.XMLSyntaxError as exc:
        raise MalformedBookError(f"XML parse failure in {document_path}: {exc}") from exc
    except ValueError as exc:
        raise MalformedBookError(f"Invalid base URL in {document_path}: {exc}") from exc
