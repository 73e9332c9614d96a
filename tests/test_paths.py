import tempfile
import unittest
from pathlib import Path

from folio import paths


class PathAlgebraTests(unittest.TestCase):
    def test_normalize_collapses_dot_segments_and_backslashes(self) -> None:
        self.assertEqual(paths.normalize("OEBPS\\Text/./ch1.xhtml"), "OEBPS/Text/ch1.xhtml")
        self.assertEqual(paths.normalize("OEBPS/Text/../Images/a.png"), "OEBPS/Images/a.png")
        self.assertEqual(paths.normalize("."), "")

    def test_normalize_keeps_leading_parent_segments(self) -> None:
        self.assertEqual(paths.normalize("../../etc/passwd"), "../../etc/passwd")

    def test_split_fragment(self) -> None:
        self.assertEqual(paths.split_fragment("ch1.xhtml#note"), ("ch1.xhtml", "note"))
        self.assertEqual(paths.split_fragment("ch1.xhtml"), ("ch1.xhtml", None))
        self.assertEqual(paths.split_fragment("#top"), ("", "top"))

    def test_strip_suffixes_drops_query_and_fragment(self) -> None:
        self.assertEqual(paths.strip_suffixes("ch1.xhtml?x=1#note"), "ch1.xhtml")

    def test_join_and_resolve(self) -> None:
        self.assertEqual(paths.join("OEBPS/Text", "../Images/a.png"), "OEBPS/Images/a.png")
        self.assertEqual(paths.resolve("OEBPS/Text/ch1.xhtml", "ch2.xhtml#x"), "OEBPS/Text/ch2.xhtml")
        self.assertEqual(paths.resolve("OEBPS/Text/ch1.xhtml", "#x"), "OEBPS/Text/ch1.xhtml")

    def test_relative_hrefs(self) -> None:
        self.assertEqual(paths.relative_href("section_1.xhtml", "contents/OEBPS/ch1.xhtml"), "contents/OEBPS/ch1.xhtml")
        self.assertEqual(paths.relativize("stylesheet_override.css", "contents/OEBPS/Text"), "../../../stylesheet_override.css")
        self.assertEqual(paths.directory_href("section_1.xhtml", "contents/OEBPS"), "contents/OEBPS/")
        self.assertEqual(paths.directory_href("section_1.xhtml", ""), "./")

    def test_is_absolute_url(self) -> None:
        self.assertTrue(paths.is_absolute_url("https://example.com/"))
        self.assertTrue(paths.is_absolute_url("mailto:someone@example.com"))
        self.assertFalse(paths.is_absolute_url("ch1.xhtml#note"))
        self.assertFalse(paths.is_absolute_url("../Images/a.png"))

    def test_is_absolute_url_rejects_unparseable_reference(self) -> None:
        with self.assertRaises(ValueError):
            paths.is_absolute_url("http://[::1")

    def test_is_within(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp) / "raw"
            self.assertTrue(paths.is_within(root / "OEBPS/ch1.xhtml", root))
            self.assertFalse(paths.is_within(root / "../evil.xhtml", root))
            self.assertFalse(paths.is_within(root / "/etc/passwd", root))


if __name__ == "__main__":
    unittest.main()
