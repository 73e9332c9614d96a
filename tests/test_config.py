import json
import os
import tempfile
import unittest
from pathlib import Path

from folio.config import (
    DEFAULT_MAX_LIBRARY_BOOKS,
    ConfigError,
    config_from_dict,
    config_path,
    library_dir,
    load_config,
    env_path,
)
from folio.style import StyleProperty, Stylesheet


def _restore_env(name: str, previous: str | None) -> None:
    if previous is None:
        os.environ.pop(name, None)
    else:
        os.environ[name] = previous


class EnvFileTests(unittest.TestCase):
    def test_env_path_prefers_plain_value(self) -> None:
        prev_plain = os.environ.get("FOLIO_SAMPLE")
        prev_file = os.environ.get("FOLIO_SAMPLE_FILE")
        with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False) as tmp:
            tmp.write("from-file")
            file_path = tmp.name
        try:
            os.environ["FOLIO_SAMPLE"] = "from-env"
            os.environ["FOLIO_SAMPLE_FILE"] = file_path
            self.assertEqual(env_path("FOLIO_SAMPLE"), Path("from-env"))
        finally:
            Path(file_path).unlink(missing_ok=True)
            _restore_env("FOLIO_SAMPLE", prev_plain)
            _restore_env("FOLIO_SAMPLE_FILE", prev_file)

    def test_env_path_reads_first_line_of_file(self) -> None:
        prev_plain = os.environ.get("FOLIO_SAMPLE")
        prev_file = os.environ.get("FOLIO_SAMPLE_FILE")
        with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False) as tmp:
            tmp.write("  from-file  \nignored\n")
            file_path = tmp.name
        try:
            os.environ.pop("FOLIO_SAMPLE", None)
            os.environ["FOLIO_SAMPLE_FILE"] = file_path
            self.assertEqual(env_path("FOLIO_SAMPLE"), Path("from-file"))
        finally:
            Path(file_path).unlink(missing_ok=True)
            _restore_env("FOLIO_SAMPLE", prev_plain)
            _restore_env("FOLIO_SAMPLE_FILE", prev_file)

    def test_env_path_ignores_unreadable_or_empty_file(self) -> None:
        prev_plain = os.environ.get("FOLIO_SAMPLE")
        prev_file = os.environ.get("FOLIO_SAMPLE_FILE")
        with tempfile.TemporaryDirectory() as tmp:
            empty = Path(tmp) / "empty.txt"
            empty.write_text("\n", encoding="utf-8")
            try:
                os.environ.pop("FOLIO_SAMPLE", None)
                for source in (Path(tmp) / "missing.txt", empty):
                    with self.subTest(source=source.name):
                        os.environ["FOLIO_SAMPLE_FILE"] = str(source)
                        with self.assertLogs("folio.config", level="WARNING") as logs:
                            self.assertIsNone(env_path("FOLIO_SAMPLE"))
                        self.assertIn("FOLIO_SAMPLE_FILE", logs.output[0])
            finally:
                _restore_env("FOLIO_SAMPLE", prev_plain)
                _restore_env("FOLIO_SAMPLE_FILE", prev_file)

    def test_env_path_expands_home(self) -> None:
        prev_plain = os.environ.get("FOLIO_SAMPLE")
        try:
            os.environ["FOLIO_SAMPLE"] = "~/books"
            self.assertEqual(env_path("FOLIO_SAMPLE"), Path.home() / "books")
        finally:
            _restore_env("FOLIO_SAMPLE", prev_plain)

    def test_library_and_config_path_from_env(self) -> None:
        prev_library = os.environ.get("FOLIO_LIBRARY_DIR")
        prev_library_file = os.environ.get("FOLIO_LIBRARY_DIR_FILE")
        prev_config = os.environ.get("FOLIO_CONFIG_PATH")
        with tempfile.TemporaryDirectory() as tmp:
            library_target = Path(tmp) / "library-data"
            lib_file = Path(tmp) / "library_path.txt"
            lib_file.write_text(str(library_target), encoding="utf-8")
            try:
                os.environ.pop("FOLIO_LIBRARY_DIR", None)
                os.environ["FOLIO_LIBRARY_DIR_FILE"] = str(lib_file)
                os.environ["FOLIO_CONFIG_PATH"] = str(Path(tmp) / "conf.json")
                self.assertEqual(library_dir(), library_target)
                self.assertEqual(config_path(), Path(tmp) / "conf.json")
            finally:
                _restore_env("FOLIO_LIBRARY_DIR", prev_library)
                _restore_env("FOLIO_LIBRARY_DIR_FILE", prev_library_file)
                _restore_env("FOLIO_CONFIG_PATH", prev_config)


class LoadConfigTests(unittest.TestCase):
    def test_missing_file_writes_default(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "config.json"
            config = load_config(path)
            self.assertTrue(path.is_file())
            written = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(written["max_library_books"], DEFAULT_MAX_LIBRARY_BOOKS)
        self.assertEqual(config.max_library_books, DEFAULT_MAX_LIBRARY_BOOKS)
        self.assertIn("basalt", config.stylesheets)
        self.assertTrue(config.include_index)

    def test_malformed_file_falls_back_to_default(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text("{oops", encoding="utf-8")
            with self.assertLogs("folio.config", level="WARNING"):
                config = load_config(path)
            self.assertEqual(path.read_text(encoding="utf-8"), "{oops")
        self.assertEqual(config.max_library_books, DEFAULT_MAX_LIBRARY_BOOKS)

    def test_invalid_stylesheet_falls_back_to_default(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"stylesheets": {"bad": {"font_size": {"value": "huge"}}}}), encoding="utf-8")
            with self.assertLogs("folio.config", level="WARNING"):
                config = load_config(path)
        self.assertNotIn("bad", config.stylesheets)

    def test_reads_user_values(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(
                json.dumps(
                    {
                        "default_viewer": "firefox --new-window",
                        "max_library_books": 0,
                        "max_library_bytes": 1000,
                        "include_index": False,
                        "default_stylesheets": ["dark"],
                        "stylesheets": {"dark": {"text_color": {"value": "white", "override_book": True}}},
                    }
                ),
                encoding="utf-8",
            )
            config = load_config(path)
        self.assertEqual(config.default_viewer, "firefox --new-window")
        self.assertIsNone(config.max_library_books)
        self.assertEqual(config.max_library_bytes, 1000)
        self.assertFalse(config.include_index)
        self.assertTrue(config.inject_navigation)
        self.assertEqual(config.get_stylesheet("dark"), Stylesheet(text_color=StyleProperty("white", True)))


class ConfigFromDictTests(unittest.TestCase):
    def test_rejects_negative_limits(self) -> None:
        with self.assertRaises(ConfigError):
            config_from_dict({"max_library_bytes": -1})

    def test_rejects_non_boolean_flags(self) -> None:
        with self.assertRaises(ConfigError):
            config_from_dict({"inject_navigation": "yes"})

    def test_unknown_stylesheet_is_empty(self) -> None:
        config = config_from_dict({})
        with self.assertLogs("folio.config", level="WARNING"):
            sheet = config.get_stylesheet("missing")
        self.assertTrue(sheet.is_empty())


if __name__ == "__main__":
    unittest.main()
