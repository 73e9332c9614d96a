"""Reading EPUB archives: container.xml, the OPF package, and the nav/NCX table of contents."""

from __future__ import annotations

import logging
import shutil
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

from lxml import etree as LXML_ET

from . import paths
from .errors import MalformedBookError, ZipSlipError
from .models import SpineItem, TocNode

logger = logging.getLogger("folio.container")

CONTAINER_PATH = "META-INF/container.xml"
CONTAINER_NS = "urn:oasis:names:tc:opendocument:xmlns:container"
OPF_NS = "http://www.idpf.org/2007/opf"
DC_NS = "http://purl.org/dc/elements/1.1/"
OPS_NS = "http://www.idpf.org/2007/ops"
SPINE_MEDIA_TYPES = {
    "application/xhtml+xml": "xhtml",
    "image/svg+xml": "svg",
}
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"
COPY_CHUNK_SIZE = 1024 * 1024


@dataclass
class ManifestItem:
    item_id: str
    href: str
    media_type: str
    properties: set[str]
    path: str


@dataclass
class EpubContainer:
    source: Path
    unique_identifier: Optional[str]
    modified: Optional[str]
    title: Optional[str]
    creators: list[str]
    cover_path: Optional[str]
    spine_items: list[SpineItem]
    resource_paths: list[str]
    table_of_contents: list[TocNode] = field(default_factory=list)
    members: dict[str, str] = field(default_factory=dict)

    @property
    def release_identifier(self) -> Optional[str]:
        if self.unique_identifier and self.modified:
            return f"{self.unique_identifier}@{self.modified}"
        return None

    def book_id(self) -> str:
        book_id = self.release_identifier or self.unique_identifier
        if not book_id:
            raise MalformedBookError("Ill-formed EPUB: no unique identifier.")
        return book_id

    def nonspine_resource_paths(self) -> list[str]:
        spine_paths = {item.path for item in self.spine_items}
        return [path for path in self.resource_paths if path not in spine_paths]

    def check_extraction(self, raw_dir: Path) -> None:
        for path in self.resource_paths:
            if not paths.is_within(raw_dir / path, raw_dir):
                raise ZipSlipError(f"Book contains resource {path}, which is attempting a zip slip.")

    def extract_to(self, raw_dir: Path) -> None:
        """Copy every manifest resource under ``raw_dir``; nothing is written unless all paths stay inside it."""
        self.check_extraction(raw_dir)
        with zipfile.ZipFile(self.source, "r") as zf:
            for path in self.resource_paths:
                destination = raw_dir / path
                destination.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(self.members[path], "r") as src_stream:
                    with destination.open("wb") as dst_stream:
                        shutil.copyfileobj(src_stream, dst_stream, COPY_CHUNK_SIZE)


def _tag_local_name(tag: object) -> str:
    if not tag or not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _child_by_local_name(node: LXML_ET._Element, local_name: str) -> Optional[LXML_ET._Element]:
    for child in list(node):
        if _tag_local_name(child.tag) == local_name:
            return child
    return None


def _iter_children_by_local_name(node: LXML_ET._Element, local_name: str) -> list[LXML_ET._Element]:
    return [child for child in list(node) if _tag_local_name(child.tag) == local_name]


def _node_text(node: Optional[LXML_ET._Element]) -> Optional[str]:
    if node is None:
        return None
    text = " ".join("".join(node.itertext()).split())
    return text or None


def _xml_root_from_bytes(raw: bytes, member: str) -> LXML_ET._Element:
    parser = LXML_ET.XMLParser(resolve_entities=False, no_network=True, recover=True)
    try:
        root = LXML_ET.fromstring(raw, parser=parser)
    except LXML_ET.XMLSyntaxError as exc:
        raise MalformedBookError(f"Ill-formed EPUB: couldn't parse {member}: {exc}") from exc
    if root is None:
        raise MalformedBookError(f"Ill-formed EPUB: {member} is empty.")
    return root


def _member_index(zf: zipfile.ZipFile) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for info in zf.infolist():
        if info.is_dir():
            continue
        key = paths.normalize(info.filename)
        if key and key not in mapping:
            mapping[key] = info.filename
    return mapping


def _read_member(zf: zipfile.ZipFile, members: dict[str, str], path: str) -> bytes:
    name = members.get(path)
    if name is None:
        raise MalformedBookError(f"Ill-formed EPUB: missing {path}.")
    return zf.read(name)


def _opf_path_from_container(zf: zipfile.ZipFile, members: dict[str, str]) -> str:
    root = _xml_root_from_bytes(_read_member(zf, members, CONTAINER_PATH), CONTAINER_PATH)
    rootfile = root.find(f".//{{{CONTAINER_NS}}}rootfile")
    full_path = ""
    if rootfile is not None:
        full_path = (rootfile.attrib.get("full-path") or "").strip()
    if not full_path:
        for node in root.iter():
            if _tag_local_name(node.tag) != "rootfile":
                continue
            candidate = (node.attrib.get("full-path") or "").strip()
            if candidate:
                full_path = candidate
                break
    normalized = paths.normalize(full_path)
    if not normalized:
        raise MalformedBookError("Ill-formed EPUB: missing OPF path in container.xml.")
    return normalized


def _resolve_href(from_member: str, href: str) -> str:
    return paths.join(paths.parent(from_member), unquote(paths.strip_suffixes(href).strip()))


def _manifest_from_opf(opf_path: str, root: LXML_ET._Element) -> tuple[list[ManifestItem], dict[str, ManifestItem]]:
    manifest = _child_by_local_name(root, "manifest")
    if manifest is None:
        raise MalformedBookError("Ill-formed EPUB: OPF has no manifest.")
    items: list[ManifestItem] = []
    by_id: dict[str, ManifestItem] = {}
    for node in _iter_children_by_local_name(manifest, "item"):
        href = str(node.attrib.get("href") or "").strip()
        if not href:
            continue
        item = ManifestItem(
            item_id=str(node.attrib.get("id") or "").strip(),
            href=href,
            media_type=str(node.attrib.get("media-type") or "").strip().lower(),
            properties={part for part in str(node.attrib.get("properties") or "").split() if part},
            path=_resolve_href(opf_path, href),
        )
        items.append(item)
        if item.item_id:
            by_id.setdefault(item.item_id, item)
    return items, by_id


def _spine_from_opf(root: LXML_ET._Element, items_by_id: dict[str, ManifestItem]) -> tuple[list[SpineItem], Optional[str]]:
    spine = _child_by_local_name(root, "spine")
    if spine is None:
        raise MalformedBookError("Ill-formed EPUB: OPF has no spine.")
    spine_items: list[SpineItem] = []
    for itemref in _iter_children_by_local_name(spine, "itemref"):
        idref = str(itemref.attrib.get("idref") or "").strip()
        item = items_by_id.get(idref)
        if item is None:
            raise MalformedBookError(f"Ill-formed EPUB: spine references unknown manifest id {idref!r}.")
        item_format = SPINE_MEDIA_TYPES.get(item.media_type)
        if item_format is None:
            raise MalformedBookError(
                f"Ill-formed EPUB: encountered unexpected media type {item.media_type} on spine item."
            )
        linear = str(itemref.attrib.get("linear") or "yes").strip().lower() != "no"
        spine_items.append(SpineItem(path=item.path, format=item_format, linear=linear))
    return spine_items, (str(spine.attrib.get("toc") or "").strip() or None)


def _metadata_values(root: LXML_ET._Element) -> dict:
    metadata = _child_by_local_name(root, "metadata")
    values: dict = {"identifiers": [], "titles": [], "creators": [], "modified": None, "cover_id": None}
    if metadata is None:
        return values
    for node in metadata.iter():
        local = _tag_local_name(node.tag)
        text = _node_text(node)
        if local == "identifier" and text:
            values["identifiers"].append((str(node.attrib.get("id") or ""), text))
        elif local == "title" and text:
            values["titles"].append(text)
        elif local == "creator" and text:
            values["creators"].append(text)
        elif local == "meta":
            attrs = {_tag_local_name(key): str(value) for key, value in node.attrib.items()}
            if attrs.get("property") == "dcterms:modified" and text and values["modified"] is None:
                values["modified"] = text
            if attrs.get("name") == "cover" and attrs.get("content"):
                values["cover_id"] = attrs["content"].strip()
    return values


def _unique_identifier(root: LXML_ET._Element, identifiers: list[tuple[str, str]]) -> Optional[str]:
    wanted = str(root.attrib.get("unique-identifier") or "").strip()
    for id_attr, value in identifiers:
        if wanted and id_attr == wanted:
            return value
    return identifiers[0][1] if identifiers else None


def _cover_path(manifest_items: list[ManifestItem], items_by_id: dict[str, ManifestItem], cover_id: Optional[str]) -> Optional[str]:
    for item in manifest_items:
        if "cover-image" in item.properties:
            return item.path
    if cover_id and cover_id in items_by_id:
        return items_by_id[cover_id].path
    return None


def _toc_target(from_member: str, href: str) -> tuple[str, str]:
    target, fragment = paths.split_fragment(href.strip())
    path = paths.resolve(from_member, unquote(target))
    return path, paths.with_fragment(path, fragment)


def _nav_entries(nav_path: str, list_node: LXML_ET._Element, level: int) -> list[TocNode]:
    nodes: list[TocNode] = []
    for li in _iter_children_by_local_name(list_node, "li"):
        link = _child_by_local_name(li, "a")
        sublist = _child_by_local_name(li, "ol")
        children = _nav_entries(nav_path, sublist, level + 1) if sublist is not None else []
        href = str(link.attrib.get("href") or "").strip() if link is not None else ""
        if not href:
            # Unlinked headings keep their children at the heading's level.
            if sublist is not None:
                nodes.extend(_nav_entries(nav_path, sublist, level))
            continue
        path, path_with_fragment = _toc_target(nav_path, href)
        nodes.append(TocNode(_node_text(link) or path, path, path_with_fragment, level, children))
    return nodes


def _toc_from_nav(nav_path: str, raw: bytes) -> Optional[list[TocNode]]:
    root = _xml_root_from_bytes(raw, nav_path)
    candidates = root.xpath(".//*[local-name()='nav']")  # noqa: S320
    for nav in candidates:
        nav_type = str(nav.attrib.get(f"{{{OPS_NS}}}type") or "").split()
        if "toc" not in nav_type:
            continue
        list_node = _child_by_local_name(nav, "ol")
        return _nav_entries(nav_path, list_node, 0) if list_node is not None else []
    return None


def _ncx_entries(ncx_path: str, parent_node: LXML_ET._Element, level: int) -> list[TocNode]:
    nodes: list[TocNode] = []
    for point in _iter_children_by_local_name(parent_node, "navPoint"):
        label_node = _child_by_local_name(point, "navLabel")
        content = _child_by_local_name(point, "content")
        children = _ncx_entries(ncx_path, point, level + 1)
        src = str(content.attrib.get("src") or "").strip() if content is not None else ""
        if not src:
            nodes.extend(children)
            continue
        path, path_with_fragment = _toc_target(ncx_path, src)
        label = _node_text(_child_by_local_name(label_node, "text") if label_node is not None else None)
        nodes.append(TocNode(label or path, path, path_with_fragment, level, children))
    return nodes


def _toc_from_ncx(ncx_path: str, raw: bytes) -> list[TocNode]:
    root = _xml_root_from_bytes(raw, ncx_path)
    nav_map = _child_by_local_name(root, "navMap")
    return _ncx_entries(ncx_path, nav_map, 0) if nav_map is not None else []


def _table_of_contents(
    zf: zipfile.ZipFile,
    members: dict[str, str],
    manifest_items: list[ManifestItem],
    items_by_id: dict[str, ManifestItem],
    spine_toc_id: Optional[str],
) -> list[TocNode]:
    for item in manifest_items:
        if "nav" in item.properties and item.path in members:
            toc = _toc_from_nav(item.path, _read_member(zf, members, item.path))
            if toc is not None:
                return toc
    ncx_item = items_by_id.get(spine_toc_id or "")
    if ncx_item is None:
        ncx_item = next((item for item in manifest_items if item.media_type == NCX_MEDIA_TYPE), None)
    if ncx_item is not None and ncx_item.path in members:
        return _toc_from_ncx(ncx_item.path, _read_member(zf, members, ncx_item.path))
    return []


def read_container(source: Path) -> EpubContainer:
    try:
        with zipfile.ZipFile(source, "r") as zf:
            members = _member_index(zf)
            opf_path = _opf_path_from_container(zf, members)
            root = _xml_root_from_bytes(_read_member(zf, members, opf_path), opf_path)
            manifest_items, items_by_id = _manifest_from_opf(opf_path, root)
            spine_items, spine_toc_id = _spine_from_opf(root, items_by_id)
            toc = _table_of_contents(zf, members, manifest_items, items_by_id, spine_toc_id)
    except (OSError, zipfile.BadZipFile) as exc:
        raise MalformedBookError(f"Couldn't open {source} as EPUB: {exc}") from exc

    for item in spine_items:
        if item.path not in members:
            raise MalformedBookError(f"Ill-formed EPUB: spine item {item.path} is missing from the archive.")
    resource_paths: list[str] = []
    for item in manifest_items:
        if item.path in resource_paths:
            continue
        if item.path not in members:
            logger.warning("%s lists %s, which is missing from the archive", source, item.path)
            continue
        resource_paths.append(item.path)

    values = _metadata_values(root)
    return EpubContainer(
        source=source,
        unique_identifier=_unique_identifier(root, values["identifiers"]),
        modified=values["modified"],
        title=values["titles"][0] if values["titles"] else None,
        creators=values["creators"],
        cover_path=_cover_path(manifest_items, items_by_id, values["cover_id"]),
        spine_items=spine_items,
        resource_paths=resource_paths,
        table_of_contents=toc,
        members=members,
    )
