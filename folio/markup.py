"""Event-stream reading and writing of XHTML without building a tree.

Parsing goes through lxml's parser-target interface: the parser calls
``start``/``end``/``data``/``comment``/``pi``/``doctype`` on a target object
as it consumes input, and never materializes elements. ``MarkupWriter``
turns those same calls back into bytes, so a filter can sit between the two
and rewrite individual events.
"""

from __future__ import annotations

import html
import io
from typing import BinaryIO, Optional, Union

from lxml import etree as LXML_ET

XHTML_NS = "http://www.w3.org/1999/xhtml"
XML_NS = "http://www.w3.org/XML/1998/namespace"
XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>\n'
CHUNK_SIZE = 64 * 1024

# Written as <br/> rather than <br></br> so HTML parsers do not see two breaks.
VOID_ELEMENTS = {
    "area",
    "base",
    "br",
    "col",
    "embed",
    "hr",
    "img",
    "input",
    "link",
    "meta",
    "param",
    "source",
    "track",
    "wbr",
}


def split_tag(tag: str) -> tuple[Optional[str], str]:
    if tag.startswith("{"):
        uri, _, local = tag[1:].partition("}")
        return uri, local
    return None, tag


def is_html_element(tag: str, local_name: str) -> bool:
    uri, local = split_tag(tag)
    return local == local_name and uri in (None, XHTML_NS)


def attribute_value(attrib: dict, local_name: str) -> Optional[str]:
    for key, value in attrib.items():
        uri, local = split_tag(key)
        if uri is None and local == local_name:
            return value
    return None


class MarkupWriter:
    """Parser target that serializes every event it receives."""

    def __init__(self, *, declaration: bool = True) -> None:
        self._out = io.StringIO()
        self._scopes: list[dict[str, Optional[str]]] = [{XML_NS: "xml"}]
        self._open: list[str] = []
        self._pending: Optional[str] = None
        self._generated_prefixes = 0
        if declaration:
            self._out.write(XML_DECLARATION)

    def _flush_pending(self) -> None:
        if self._pending is not None:
            self._out.write(">")
            self._pending = None

    def _prefix_for(self, uri: str, declarations: list[tuple[Optional[str], str]]) -> Optional[str]:
        for scope in reversed(self._scopes):
            if uri in scope:
                return scope[uri]
        self._generated_prefixes += 1
        prefix = f"ns{self._generated_prefixes}"
        self._scopes[-1][uri] = prefix
        declarations.append((prefix, uri))
        return prefix

    def _qualified(self, tag: str, declarations: list[tuple[Optional[str], str]], *, attribute: bool) -> str:
        uri, local = split_tag(tag)
        if uri is None:
            return local
        prefix = self._prefix_for(uri, declarations)
        if prefix is None and attribute:
            # Attributes never take the default namespace.
            self._generated_prefixes += 1
            prefix = f"ns{self._generated_prefixes}"
            self._scopes[-1][uri] = prefix
            declarations.append((prefix, uri))
        return local if prefix is None else f"{prefix}:{local}"

    def start(self, tag: str, attrib: dict, nsmap: Optional[dict] = None) -> None:
        self._flush_pending()
        scope: dict[str, Optional[str]] = {}
        declarations: list[tuple[Optional[str], str]] = []
        for prefix, uri in (nsmap or {}).items():
            # lxml reports the default namespace under "" as well as None.
            prefix = prefix or None
            scope[uri] = prefix
            declarations.append((prefix, uri))
        self._scopes.append(scope)
        name = self._qualified(tag, declarations, attribute=False)
        attributes = [
            (self._qualified(key, declarations, attribute=True), value) for key, value in attrib.items()
        ]
        parts = [f"<{name}"]
        for prefix, uri in declarations:
            attr_name = "xmlns" if prefix is None else f"xmlns:{prefix}"
            parts.append(f' {attr_name}="{html.escape(uri, quote=True)}"')
        for attr_name, value in attributes:
            parts.append(f' {attr_name}="{html.escape(value, quote=True)}"')
        self._out.write("".join(parts))
        self._open.append(name)
        self._pending = name

    def end(self, tag: str) -> None:
        name = self._open.pop()
        _, local = split_tag(tag)
        if self._pending is not None:
            if local in VOID_ELEMENTS:
                self._out.write("/>")
            else:
                self._out.write(f"></{name}>")
            self._pending = None
        else:
            self._out.write(f"</{name}>")
        self._scopes.pop()

    def data(self, text: str) -> None:
        if not text:
            return
        self._flush_pending()
        self._out.write(html.escape(text, quote=False))

    def comment(self, text: str) -> None:
        self._flush_pending()
        self._out.write(f"<!--{text}-->")
        if not self._open:
            self._out.write("\n")

    def pi(self, target: str, data: Optional[str] = None) -> None:
        self._flush_pending()
        body = f"{target} {data}" if data else target
        self._out.write(f"<?{body}?>")
        if not self._open:
            self._out.write("\n")

    def doctype(self, name: str, pubid: Optional[str], system: Optional[str]) -> None:
        if not name:
            return
        if pubid:
            self._out.write(f'<!DOCTYPE {name} PUBLIC "{pubid}" "{system or ""}">\n')
        elif system:
            self._out.write(f'<!DOCTYPE {name} SYSTEM "{system}">\n')
        else:
            self._out.write(f"<!DOCTYPE {name}>\n")

    def element(self, tag: str, attrib: dict, text: Optional[str] = None) -> None:
        self.start(tag, attrib)
        if text:
            self.data(text)
        self.end(tag)

    def getvalue(self) -> str:
        self._flush_pending()
        return self._out.getvalue()

    def close(self) -> str:
        return self.getvalue()


class MarkupFilter:
    """Parser target that forwards events to a writer; subclasses rewrite some of them."""

    def __init__(self, writer: MarkupWriter) -> None:
        self.writer = writer
        self.stack: list[str] = []

    def in_head(self) -> bool:
        return len(self.stack) >= 2 and is_html_element(self.stack[1], "head") and is_html_element(
            self.stack[0], "html"
        )

    def start(self, tag: str, attrib: dict, nsmap: Optional[dict] = None) -> None:
        self.stack.append(tag)
        self.writer.start(tag, dict(attrib), nsmap)

    def end(self, tag: str) -> None:
        self.writer.end(tag)
        self.stack.pop()

    def data(self, text: str) -> None:
        self.writer.data(text)

    def comment(self, text: str) -> None:
        self.writer.comment(text)

    def pi(self, target: str, data: Optional[str] = None) -> None:
        self.writer.pi(target, data)

    def doctype(self, name: str, pubid: Optional[str], system: Optional[str]) -> None:
        self.writer.doctype(name, pubid, system)

    def close(self) -> str:
        return self.writer.close()


class BaseHrefScanner:
    """First pass of re-basing: find the ``<base href>`` declared in ``<head>``, if any."""

    def __init__(self) -> None:
        self.stack: list[str] = []
        self.base_href: Optional[str] = None

    def start(self, tag: str, attrib: dict, nsmap: Optional[dict] = None) -> None:
        self.stack.append(tag)
        if self.base_href is not None or not is_html_element(tag, "base"):
            return
        if len(self.stack) >= 2 and is_html_element(self.stack[-2], "head"):
            href = attribute_value(attrib, "href")
            if href is not None and href.strip():
                self.base_href = href.strip()

    def end(self, tag: str) -> None:
        self.stack.pop()

    def data(self, text: str) -> None:
        pass

    def comment(self, text: str) -> None:
        pass

    def pi(self, target: str, data: Optional[str] = None) -> None:
        pass

    def close(self) -> Optional[str]:
        return self.base_href


def run_parser(source: Union[bytes, BinaryIO], target: object):
    """Feed ``source`` through an lxml target parser and return ``target.close()``.

    Raises ``lxml.etree.XMLSyntaxError`` on malformed input.
    """
    parser = LXML_ET.XMLParser(
        target=target,
        resolve_entities=False,
        no_network=True,
        remove_comments=False,
        remove_pis=False,
    )
    stream = io.BytesIO(source) if isinstance(source, bytes) else source
    for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
        parser.feed(chunk)
    return parser.close()


def find_base_href(source: Union[bytes, BinaryIO]) -> Optional[str]:
    return run_parser(source, BaseHrefScanner())
