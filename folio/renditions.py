from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from . import paths
from .errors import RenditionError
from .index import CONTENTS_DIR, INDEX_PAGE, INDEX_STYLESHEET, index_stylesheet, render_index
from .models import EpubBook, RenditionRecord
from .navigation import (
    NAVIGATION_SCRIPT,
    NAVIGATION_STYLESHEET,
    navigation_filenames,
    navigation_stylesheet,
    render_navigation_wrapper,
)
from .rendering import read_asset
from .style import FINGERPRINT_WIDTH, Style, style_fingerprint
from .transform import SectionPlan, rebase_section, transform_section

logger = logging.getLogger("folio.renditions")

RAW_DIR = "raw"
STYLESHEET_NO_OVERRIDE = "stylesheet_no_override.css"
STYLESHEET_OVERRIDE = "stylesheet_override.css"


def directory_size(root: Path) -> int:
    """Total size of everything under ``root``; symlinks count as their link text and are not followed."""
    total = 0
    with os.scandir(root) as entries:
        for entry in entries:
            if entry.is_symlink():
                total += entry.stat(follow_symlinks=False).st_size
            elif entry.is_dir(follow_symlinks=False):
                total += directory_size(Path(entry.path))
            else:
                total += entry.stat(follow_symlinks=False).st_size
    return total


def link_resource(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    if os.name == "nt":
        # Creating symlinks needs extra privileges on Windows.
        os.link(source, destination)
    else:
        os.symlink(os.path.relpath(source, destination.parent), destination)


def rendition_dir_name(book: EpubBook, style: Style) -> str:
    """Fingerprint-named directory, suffixed ``_2``, ``_3``... when another style already holds it."""
    base = f"{style_fingerprint(style):0{FINGERPRINT_WIDTH}d}"
    taken = {RAW_DIR}
    taken.update(
        paths.normalize(rendition.dir_path_from_library_root).rsplit("/", 1)[-1]
        for rendition in book.nonraw_renditions
        if rendition.style != style
    )
    candidate = base
    suffix = 2
    while candidate in taken:
        candidate = f"{base}_{suffix}"
        suffix += 1
    return candidate


def _entry_file(book: EpubBook, style: Style, pages: list[str], contents_dir: str) -> str:
    if style.include_index:
        return INDEX_PAGE
    first = book.first_linear_index()
    if style.inject_navigation:
        return pages[first]
    return paths.join(contents_dir, book.spine_items[first].path)


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _populate(raw_dir: Path, rendition_dir: Path, book: EpubBook, style: Style) -> str:
    no_override_css = style.no_override_css()
    override_css = style.override_css()
    if no_override_css:
        _write_text(rendition_dir / STYLESHEET_NO_OVERRIDE, no_override_css)
    if override_css:
        _write_text(rendition_dir / STYLESHEET_OVERRIDE, override_css)

    pages = navigation_filenames(book.spine_items) if style.inject_navigation else []
    if style.uses_raw_contents():
        contents_dir = paths.join("..", RAW_DIR)
    else:
        contents_dir = CONTENTS_DIR
        _populate_contents(raw_dir, rendition_dir, book, style, pages)

    if style.inject_navigation:
        _write_text(rendition_dir / NAVIGATION_STYLESHEET, navigation_stylesheet(style))
        (rendition_dir / NAVIGATION_SCRIPT).write_bytes(read_asset(NAVIGATION_SCRIPT))
    if style.include_index:
        _write_text(rendition_dir / INDEX_PAGE, render_index(book, style, pages, contents_dir))
        _write_text(rendition_dir / INDEX_STYLESHEET, index_stylesheet(style))

    return _entry_file(book, style, pages, contents_dir)


def _populate_contents(raw_dir: Path, rendition_dir: Path, book: EpubBook, style: Style, pages: list[str]) -> None:
    no_override_css = style.no_override_css()
    override_css = style.override_css()
    navigation_pages: dict[str, str] = {}
    for item, page in zip(book.spine_items, pages):
        navigation_pages.setdefault(paths.join(CONTENTS_DIR, item.path), page)

    written: set[str] = set()
    for spine_index, item in enumerate(book.spine_items):
        document_path = paths.join(CONTENTS_DIR, item.path)
        destination = rendition_dir / document_path
        content = None
        if item.format == "xhtml":
            if item.path in written:
                content = destination.read_bytes()
            else:
                plan = SectionPlan(
                    document_path=document_path,
                    inject_navigation=style.inject_navigation,
                    navigation_pages=navigation_pages,
                    no_override_stylesheet=STYLESHEET_NO_OVERRIDE if no_override_css else None,
                    override_stylesheet=STYLESHEET_OVERRIDE if override_css else None,
                )
                content = transform_section(raw_dir / item.path, plan)
                destination.parent.mkdir(parents=True, exist_ok=True)
                destination.write_bytes(content)
        elif item.path not in written:
            link_resource(raw_dir / item.path, destination)
        written.add(item.path)

        if style.inject_navigation:
            page = pages[spine_index]
            if content is not None:
                wrapper = render_navigation_wrapper(
                    book, pages, spine_index, style, section_markup=rebase_section(content, document_path, page)
                )
            else:
                wrapper = render_navigation_wrapper(
                    book, pages, spine_index, style, section_src=paths.relative_href(page, document_path)
                )
            _write_text(rendition_dir / page, wrapper)

    for resource_path in book.nonspine_resource_paths:
        if resource_path in written:
            continue
        link_resource(raw_dir / resource_path, rendition_dir / CONTENTS_DIR / resource_path)
        written.add(resource_path)


def build_rendition(library_root: Path, book: EpubBook, style: Style, dir_name: str) -> RenditionRecord:
    book_dir = library_root / book.path_from_library_root
    rendition_dir = book_dir / dir_name
    if rendition_dir.exists():
        logger.info("removing stale rendition directory %s", rendition_dir)
        shutil.rmtree(rendition_dir)
    try:
        rendition_dir.mkdir(parents=True)
        entry_file = _populate(book_dir / RAW_DIR, rendition_dir, book, style)
        size = directory_size(rendition_dir)
    except Exception as exc:
        shutil.rmtree(rendition_dir, ignore_errors=True)
        if isinstance(exc, OSError):
            raise RenditionError(f"Failed to generate rendition at {rendition_dir}: {exc}") from exc
        raise
    dir_path = paths.join(book.path_from_library_root, dir_name)
    logger.info("generated rendition %s for %s", dir_path, book.id)
    return RenditionRecord(
        style=style,
        dir_path_from_library_root=dir_path,
        default_file_path_from_library_root=paths.join(dir_path, entry_file),
        bytes=size,
    )


def ensure_rendition(library_root: Path, book: EpubBook, style: Style) -> tuple[RenditionRecord, bool]:
    """Return the rendition for ``style``, building it first if needed.

    The flag is true when a new rendition was added to ``book``.
    """
    existing = book.find_rendition(style)
    if existing is not None:
        return existing, False
    record = build_rendition(library_root, book, style, rendition_dir_name(book, style))
    book.nonraw_renditions.append(record)
    return record, True
