import datetime as dt
import unittest

from folio.errors import MalformedBookError
from folio.models import SpineItem, TocNode
from folio.navigation import (
    navigation_controls,
    navigation_filenames,
    navigation_stylesheet,
    render_navigation_wrapper,
)
from folio.reconcile import LinearIndex, NonlinearIndex, classify
from folio.style import Style, StyleProperty, Stylesheet

from epub_builder import make_book, toc_node


class NavigationBoundaryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.spine = [
            SpineItem("cover.xhtml", "xhtml", linear=False),
            SpineItem("a.xhtml", "xhtml"),
            SpineItem("notes.xhtml", "xhtml", linear=False),
            SpineItem("b.xhtml", "xhtml"),
            SpineItem("c.xhtml", "xhtml"),
            SpineItem("appendix.xhtml", "xhtml", linear=False),
        ]
        self.book = make_book(self.spine)
        self.pages = navigation_filenames(self.spine)

    def test_filenames_are_padded_by_spine_length(self) -> None:
        self.assertEqual(self.pages[0], "section_0.xhtml")
        self.assertEqual(len(navigation_filenames([SpineItem(f"{i}.xhtml", "xhtml") for i in range(12)])[0]), len("section_00.xhtml"))

    def test_first_linear_item_has_no_previous(self) -> None:
        controls = navigation_controls(self.book, self.pages, 1, Style())
        self.assertIsNone(controls.previous_href)
        self.assertEqual(controls.next_href, self.pages[3])

    def test_items_before_first_linear_have_no_previous(self) -> None:
        controls = navigation_controls(self.book, self.pages, 0, Style())
        self.assertIsNone(controls.previous_href)
        self.assertEqual(controls.next_href, self.pages[1])

    def test_nonlinear_items_are_skipped(self) -> None:
        controls = navigation_controls(self.book, self.pages, 3, Style())
        self.assertEqual(controls.previous_href, self.pages[1])
        self.assertEqual(controls.next_href, self.pages[4])

    def test_last_linear_and_later_items_have_no_next(self) -> None:
        for index in (4, 5):
            controls = navigation_controls(self.book, self.pages, index, Style())
            self.assertIsNone(controls.next_href)
            self.assertEqual(controls.previous_href, self.pages[3] if index == 4 else self.pages[4])

    def test_index_control_follows_style(self) -> None:
        self.assertEqual(navigation_controls(self.book, self.pages, 3, Style()).index_href, "index.xhtml")
        no_index = Style(include_index=False)
        self.assertIsNone(navigation_controls(self.book, self.pages, 3, no_index).index_href)

    def test_wrapper_embeds_section_and_disables_missing_controls(self) -> None:
        page = render_navigation_wrapper(self.book, self.pages, 1, Style(include_index=False), section_markup='<p class="x">a\nb</p>')
        self.assertIn('srcdoc="&lt;p class=&#34;x&#34;&gt;a&#10;b&lt;/p&gt;"', page)
        self.assertIn('<button type="button" class="navigation-button" disabled="disabled">Previous</button>', page)
        self.assertIn(f'<a class="navigation-button" href="{self.pages[3]}">Next</a>', page)
        self.assertNotIn(">Index<", page)
        self.assertIn("<title>folio | Book &amp; Title</title>", page)
        self.assertTrue(page.startswith('<?xml version="1.0" encoding="utf-8"?>'))

    def test_wrapper_frames_non_xhtml_sections(self) -> None:
        page = render_navigation_wrapper(self.book, self.pages, 3, Style(), section_src="contents/b.svg")
        self.assertIn('src="contents/b.svg"', page)
        self.assertNotIn("srcdoc", page)

    def test_stylesheet_uses_style_colors(self) -> None:
        style = Style(stylesheet=Stylesheet(text_color=StyleProperty("gold"), margin_size=StyleProperty(8)))
        css = navigation_stylesheet(style)
        self.assertIn("border: 0.25rem solid gold;", css)
        self.assertIn("left: calc(5vh + 8px);", css)
        self.assertIn("background: white;", navigation_stylesheet(Style()))


class ReconcileTests(unittest.TestCase):
    def setUp(self) -> None:
        self.spine = [SpineItem(name, "xhtml") for name in ("a.xhtml", "b.xhtml", "c.xhtml")]

    def test_ordered_toc_is_linear(self) -> None:
        toc = [
            toc_node("a.xhtml", children=[toc_node("a.xhtml", 1, fragment="s1"), toc_node("b.xhtml", 1)]),
            toc_node("c.xhtml"),
        ]
        result = classify(self.spine, toc)
        self.assertIsInstance(result, LinearIndex)
        self.assertEqual([len(nodes) for _, nodes in result.mapping], [2, 1, 1])
        self.assertEqual(result.mapping[0][1][1].path_with_fragment, "a.xhtml#s1")

    def test_backwards_toc_is_nonlinear(self) -> None:
        toc = [toc_node("b.xhtml"), toc_node("a.xhtml")]
        result = classify(self.spine, toc)
        self.assertIsInstance(result, NonlinearIndex)
        self.assertEqual([node.path_without_fragment for node in result.flattened_toc], ["b.xhtml", "a.xhtml"])

    def test_repeated_targets_stay_linear(self) -> None:
        toc = [toc_node("a.xhtml"), toc_node("a.xhtml", fragment="x"), toc_node("c.xhtml")]
        self.assertIsInstance(classify(self.spine, toc), LinearIndex)

    def test_toc_path_missing_from_spine(self) -> None:
        with self.assertRaises(MalformedBookError):
            classify(self.spine, [toc_node("missing.xhtml")])

    def test_empty_toc_is_linear(self) -> None:
        result = classify(self.spine, [])
        self.assertIsInstance(result, LinearIndex)
        self.assertTrue(all(not nodes for _, nodes in result.mapping))


if __name__ == "__main__":
    unittest.main()
