import unittest

from folio.css import CssBlock, CssFile, validate_css
from folio.style import (
    FINGERPRINT_WIDTH,
    Style,
    StyleProperty,
    Stylesheet,
    StylesheetError,
    style_fingerprint,
    style_from_dict,
    style_to_dict,
    stylesheet_from_dict,
)


class StyleFingerprintTests(unittest.TestCase):
    def test_equal_styles_share_a_fingerprint(self) -> None:
        left = Style(stylesheet=Stylesheet(font_size=StyleProperty(16)))
        right = Style(stylesheet=Stylesheet(font_size=StyleProperty(16)))
        self.assertEqual(style_fingerprint(left), style_fingerprint(right))

    def test_different_styles_differ(self) -> None:
        plain = Style()
        sized = Style(stylesheet=Stylesheet(font_size=StyleProperty(16)))
        self.assertNotEqual(style_fingerprint(plain), style_fingerprint(sized))

    def test_fingerprint_fits_padding_width(self) -> None:
        self.assertEqual(FINGERPRINT_WIDTH, 20)
        self.assertLess(style_fingerprint(Style()), 2**64)

    def test_raw_style(self) -> None:
        self.assertTrue(Style.raw().is_raw())
        self.assertFalse(Style().is_raw())


class StylesheetCssTests(unittest.TestCase):
    def test_no_override_css(self) -> None:
        sheet = Stylesheet(
            text_color=StyleProperty("gold"),
            margin_size=StyleProperty(8),
            freeform_css_no_override="h1 { color: red; }",
        )
        css = sheet.no_override_css()
        self.assertIn("body {\n\tcolor: gold;\n\tmargin-left: 8px;\n\tmargin-right: 8px;\n}", css)
        self.assertIn("h1 { color: red; }", css)
        self.assertIsNone(sheet.override_css())

    def test_override_css_reaches_descendants(self) -> None:
        sheet = Stylesheet(font=StyleProperty("serif", override_book=True))
        css = sheet.override_css()
        self.assertIn("html body, html body * {", css)
        self.assertIn("font-family: serif !important;", css)
        self.assertIsNone(sheet.no_override_css())

    def test_image_limit_false_emits_nothing(self) -> None:
        sheet = Stylesheet(limit_image_size_to_viewport_size=StyleProperty(False))
        self.assertIsNone(sheet.no_override_css())

    def test_css_block_skips_empty_nested_blocks(self) -> None:
        block = CssBlock("@media print", [CssBlock("body"), CssBlock("p", ["margin: 0;"])])
        self.assertEqual(block.render(), "@media print {\n\tp {\n\t\tmargin: 0;\n\t}\n}")
        self.assertIsNone(CssFile([CssBlock("body")]).render())


class StyleSerializationTests(unittest.TestCase):
    def test_round_trip(self) -> None:
        style = Style(
            include_index=False,
            inject_navigation=True,
            stylesheet=Stylesheet(
                line_spacing=StyleProperty(1.5),
                link_color=StyleProperty("orangered", override_book=True),
                freeform_css_override="p { margin: 0; }",
            ),
        )
        self.assertEqual(style_from_dict(style_to_dict(style)), style)

    def test_rejects_unknown_property(self) -> None:
        with self.assertRaises(StylesheetError):
            stylesheet_from_dict({"font_weight": {"value": "bold"}})

    def test_rejects_wrong_value_type(self) -> None:
        with self.assertRaises(StylesheetError):
            stylesheet_from_dict({"font_size": {"value": "large"}})
        with self.assertRaises(StylesheetError):
            stylesheet_from_dict({"limit_image_size_to_viewport_size": {"value": 1}})

    def test_rejects_unbalanced_freeform_css(self) -> None:
        with self.assertRaisesRegex(StylesheetError, r"^freeform_css_no_override: '\{' opened on line 1 is never closed$"):
            stylesheet_from_dict({"freeform_css_no_override": "body { color: red;"})


class FreeformCssTests(unittest.TestCase):
    def test_accepts_well_formed_css(self) -> None:
        css = "/* reader tweaks */\n@media (min-width: 40em) {\n  body { font-family: \"a}b\"; }\n}\n"
        self.assertIsNone(validate_css(css))
        self.assertIsNone(validate_css("   "))

    def test_problems_name_their_line(self) -> None:
        cases = {
            "p { color: red; }\n}": "unexpected '}' on line 2",
            "p {\n  color: red;\n/* trailing": "comment opened on line 3 is never closed",
            "/* a\nb */\np { content: \"x }": "string opened on line 3 is never closed",
            "p { content: \"x\n\"; }": "string opened on line 1 runs past the end of the line",
            "p {\n  q {\n  }\n": "'{' opened on line 1 is never closed",
            "p { color: red; }\n\x00": "NUL character on line 2",
        }
        for css, problem in cases.items():
            with self.subTest(css=css):
                self.assertEqual(validate_css(css), problem)

    def test_oversized_css(self) -> None:
        self.assertIn("longer than", validate_css("a" * 200_001))


if __name__ == "__main__":
    unittest.main()
