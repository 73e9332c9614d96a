from __future__ import annotations

import datetime as dt
import json
import logging
import re
import shutil
import zipfile
from pathlib import Path
from typing import Iterable, Optional

from . import paths
from .container import EpubContainer
from .errors import BookNotFoundError, FolioError, InternalError, MalformedBookError, RenditionError
from .models import EpubBook, LibraryBook, RenditionRecord, book_from_dict, book_to_dict, linear_bounds
from .renditions import RAW_DIR, directory_size
from .renditions import ensure_rendition as build_missing_rendition
from .style import Style

logger = logging.getLogger("folio.library")

INDEX_FILENAME = "library_index.json"
_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def sanitize_dir_name(book_id: str) -> str:
    cleaned = _UNSAFE_NAME_CHARS.sub("_", book_id).strip("._")
    return cleaned[:120] or "book"


def _books_from_index(data: object) -> dict[str, LibraryBook]:
    if not isinstance(data, dict) or not isinstance(data.get("books", {}), dict):
        raise ValueError("library index must be an object with a books map")
    books: dict[str, LibraryBook] = {}
    for book_id, entry in data.get("books", {}).items():
        book = book_from_dict(entry)
        if book.id != book_id:
            raise ValueError(f"index entry {book_id} holds book {book.id}")
        books[book_id] = book
    return books


class Library:
    """All books under one library directory, plus the JSON index describing them."""

    def __init__(self, root: Path, books: Optional[dict[str, LibraryBook]] = None) -> None:
        self.root = root
        self.index_path = root / INDEX_FILENAME
        self.books: dict[str, LibraryBook] = books if books is not None else {}
        self.dirty = False

    @classmethod
    def open(cls, root: Path) -> "Library":
        index_path = root / INDEX_FILENAME
        try:
            raw = index_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("no library index at %s; creating a new library", index_path)
            return cls._fresh(root)
        except OSError as exc:
            logger.warning("couldn't read library index at %s (%s); creating a new library index", index_path, exc)
            return cls._fresh(root)
        try:
            books = _books_from_index(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("library index is ill-formed (%s); clearing library and creating a new index", exc)
            try:
                shutil.rmtree(root)
            except OSError as rm_exc:
                raise FolioError(f"Failed to clear library at {root}: {rm_exc}") from rm_exc
            return cls._fresh(root)
        return cls(root, books)

    @classmethod
    def _fresh(cls, root: Path) -> "Library":
        library = cls(root)
        library.dirty = True
        library.save()
        return library

    def to_dict(self) -> dict:
        return {"books": {book_id: book_to_dict(book) for book_id, book in self.books.items()}}

    def save(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self.index_path.write_text(json.dumps(self.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("failed to write library index (%s); library may be cleared on next run", exc)
            return
        self.dirty = False

    def _commit(self) -> None:
        self.dirty = True
        self.save()

    def get(self, book_id: str) -> LibraryBook:
        book = self.books.get(book_id)
        if book is None:
            raise BookNotFoundError(f"Book {book_id} is not in the library.")
        return book

    def list_books(self) -> list[LibraryBook]:
        return sorted(self.books.values(), key=lambda book: book.last_opened_time, reverse=True)

    def total_bytes(self) -> int:
        return sum(book.size_in_bytes() for book in self.books.values())

    def book_path(self, book: LibraryBook) -> Path:
        return self.root / book.path_from_library_root

    def _book_dir_name(self, book_id: str) -> str:
        base = sanitize_dir_name(book_id)
        taken = {paths.normalize(book.path_from_library_root) for other_id, book in self.books.items() if other_id != book_id}
        candidate = base
        suffix = 2
        while candidate in taken:
            candidate = f"{base}_{suffix}"
            suffix += 1
        return candidate

    def register(self, container: EpubContainer, timestamp: Optional[dt.datetime] = None) -> str:
        """Add the book in ``container`` unless its id is already present; returns the id."""
        book_id = container.book_id()
        if book_id in self.books:
            return book_id
        if not container.title:
            raise MalformedBookError("Ill-formed EPUB: no title.")
        first, last = linear_bounds(container.spine_items)

        dir_name = self._book_dir_name(book_id)
        book_dir = self.root / dir_name
        raw_dir = book_dir / RAW_DIR
        container.check_extraction(raw_dir)
        if book_dir.exists():
            logger.info("removing stale book directory %s", book_dir)
            shutil.rmtree(book_dir)
        try:
            container.extract_to(raw_dir)
            size = directory_size(raw_dir)
        except Exception as exc:
            shutil.rmtree(book_dir, ignore_errors=True)
            if isinstance(exc, zipfile.BadZipFile):
                raise MalformedBookError(f"Couldn't extract {container.source}: {exc}") from exc
            if isinstance(exc, OSError):
                raise RenditionError(f"Failed to extract {container.source} to {raw_dir}: {exc}") from exc
            raise
        logger.info("dumped raw contents of %s to %s", container.source, raw_dir)

        now = timestamp or utc_now()
        raw_path = paths.join(dir_name, RAW_DIR)
        self.books[book_id] = EpubBook(
            id=book_id,
            title=container.title,
            creators=list(container.creators),
            cover_path=container.cover_path,
            first_linear_spine_item_path=first.path,
            last_linear_spine_item_path=last.path,
            path_from_library_root=dir_name,
            added_time=now,
            last_opened_time=now,
            spine_items=list(container.spine_items),
            raw_rendition=RenditionRecord(
                style=Style.raw(),
                dir_path_from_library_root=raw_path,
                default_file_path_from_library_root=paths.join(raw_path, first.path),
                bytes=size,
            ),
            nonspine_resource_paths=container.nonspine_resource_paths(),
            table_of_contents=list(container.table_of_contents),
        )
        self._commit()
        return book_id

    def ensure_rendition(self, book_id: str, style: Style) -> RenditionRecord:
        record, created = build_missing_rendition(self.root, self.get(book_id), style)
        if created:
            self._commit()
        return record

    def record_open(self, book_id: str, styles: Iterable[Style], timestamp: Optional[dt.datetime] = None) -> None:
        book = self.get(book_id)
        book.last_opened_time = timestamp or utc_now()
        book.last_opened_styles = list(styles)
        self._commit()

    def remove(self, book_id: str) -> None:
        book = self.books.get(book_id)
        if book is None:
            raise InternalError(f"tried to remove book {book_id}, which is not in the library.")
        book_dir = self.book_path(book)
        try:
            shutil.rmtree(book_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise FolioError(f"Failed to remove {book_dir}: {exc}") from exc
        del self.books[book_id]
        self._commit()

    def is_oversized(self, max_books: Optional[int], max_bytes: Optional[int]) -> bool:
        if max_books is not None and len(self.books) > max_books:
            return True
        return max_bytes is not None and self.total_bytes() > max_bytes

    def truncate(
        self,
        max_books: Optional[int],
        max_bytes: Optional[int],
        protected_ids: Iterable[str] = (),
    ) -> list[str]:
        """Evict least recently opened books until within limits; returns the evicted ids.

        Protected books are never evicted, so the library may stay oversized.
        Ties on last-opened time evict the larger book first.
        """
        protected = set(protected_ids)
        candidates = sorted(
            (book for book in self.books.values() if book.id not in protected),
            key=lambda book: (book.last_opened_time, -book.size_in_bytes()),
        )
        removed: list[str] = []
        for book in candidates:
            if not self.is_oversized(max_books, max_bytes):
                break
            self.remove(book.id)
            removed.append(book.id)
            logger.info("evicted %s (%s) from the library", book.id, book.title)
        return removed

    def clear(
        self,
        target_ids: Iterable[str],
        max_books: Optional[int],
        max_bytes: Optional[int],
    ) -> list[str]:
        targets = list(dict.fromkeys(target_ids))
        missing = [book_id for book_id in targets if book_id not in self.books]
        if missing:
            raise BookNotFoundError(f"Not in the library: {', '.join(missing)}")
        for book_id in targets:
            self.remove(book_id)
        return targets + self.truncate(max_books, max_bytes)
