import datetime as dt
import tempfile
import unittest
from pathlib import Path

from folio.books import open_books
from folio.errors import MalformedBookError
from folio.library import Library
from folio.style import Style, StyleProperty, Stylesheet

from epub_builder import simple_book

T0 = dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)


class OpenBooksTests(unittest.TestCase):
    def test_opens_every_style_and_records_them(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            library = Library.open(Path(tmp) / "library")
            source = simple_book(Path(tmp) / "book.epub")
            styles = [Style(), Style(stylesheet=Stylesheet(font_size=StyleProperty(20)))]
            opened = open_books(library, [source], styles, viewer="viewer", timestamp=T0)

            self.assertEqual(len(opened), 2)
            self.assertTrue(all(rendition.path.is_file() for rendition in opened))
            self.assertEqual({rendition.viewer for rendition in opened}, {"viewer"})
            book = library.get(opened[0].book_id)
            self.assertEqual(book.last_opened_styles, styles)
            self.assertEqual(len(book.nonraw_renditions), 2)

    def test_no_styles_means_default_style(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            library = Library.open(Path(tmp) / "library")
            (rendition,) = open_books(library, [simple_book(Path(tmp) / "book.epub")], [])
            self.assertEqual(rendition.path.name, "index.xhtml")

    def test_books_opened_together_are_protected(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            library = Library.open(Path(tmp) / "library")
            old = simple_book(Path(tmp) / "old.epub", identifier="old-book")
            first = simple_book(Path(tmp) / "first.epub", identifier="first-book")
            second = simple_book(Path(tmp) / "second.epub", identifier="second-book")
            open_books(library, [old], [Style()], timestamp=T0)

            open_books(library, [first, second], [Style()], max_books=1, timestamp=T0 + dt.timedelta(days=1))

            remaining = sorted(library.books)
            self.assertEqual(len(remaining), 2)
            self.assertTrue(all(book_id.startswith(("first-book", "second-book")) for book_id in remaining))

    def test_failed_source_still_evicts_around_opened_books(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp) / "library"
            library = Library.open(root)
            old = simple_book(Path(tmp) / "old.epub", identifier="old-book")
            first = simple_book(Path(tmp) / "first.epub", identifier="first-book")
            broken = Path(tmp) / "broken.epub"
            broken.write_bytes(b"not a zip archive")
            open_books(library, [old], [Style()], timestamp=T0)

            with self.assertRaises(MalformedBookError):
                open_books(library, [first, broken], [Style()], max_books=1, timestamp=T0 + dt.timedelta(days=1))

            (remaining,) = library.books
            self.assertTrue(remaining.startswith("first-book"))
            self.assertEqual(list(Library.open(root).books), [remaining])


if __name__ == "__main__":
    unittest.main()
