from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .container import read_container
from .library import Library, utc_now
from .style import Style

logger = logging.getLogger("folio.books")


@dataclass
class OpenedRendition:
    book_id: str
    title: str
    path: Path
    viewer: Optional[str] = None


def open_books(
    library: Library,
    sources: Iterable[Path],
    styles: list[Style],
    *,
    max_books: Optional[int] = None,
    max_bytes: Optional[int] = None,
    viewer: Optional[str] = None,
    timestamp: Optional[dt.datetime] = None,
) -> list[OpenedRendition]:
    """Register each book, make sure every requested style is rendered, then evict.

    Books opened by this call are protected from the eviction that follows it.
    Eviction also runs when a later source fails, covering the books opened so far.
    """
    if not styles:
        styles = [Style()]
    now = timestamp or utc_now()
    opened: list[OpenedRendition] = []
    book_ids: list[str] = []
    try:
        for source in sources:
            book_id = library.register(read_container(source), now)
            book_ids.append(book_id)
            book = library.get(book_id)
            for style in styles:
                record = library.ensure_rendition(book_id, style)
                opened.append(
                    OpenedRendition(
                        book_id=book_id,
                        title=book.title,
                        path=library.root / record.default_file_path_from_library_root,
                        viewer=viewer,
                    )
                )
            library.record_open(book_id, styles, now)
            logger.info("opened %s with %d style(s)", book_id, len(styles))
    finally:
        library.truncate(max_books, max_bytes, protected_ids=book_ids)
    return opened
