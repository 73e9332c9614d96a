from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from .books import open_books
from .config import Config, config_path, library_dir, load_config
from .errors import FolioError
from .library import Library
from .style import STYLE_PROPERTIES, PropertyRule, Style, StyleProperty, Stylesheet
from .viewer import launch

PROPERTY_HELP = {
    "font": "CSS font-family for book text",
    "font_size": "font size in px",
    "text_color": "color for ordinary text",
    "link_color": "color for hyperlink text",
    "background_color": "page background color",
    "line_spacing": "CSS line-height value",
    "indentation": "start-of-paragraph indentation in px",
    "margin_size": "left and right page margins in px",
    "max_width": "maximum reading-column width in px",
    "limit_image_size_to_viewport_size": "keep images within the viewport",
}


def parse_bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {text!r}")


def parse_number(text: str) -> float | int:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a number, got {text!r}") from exc


def _property_type(rule: PropertyRule):
    if rule.kind == "bool":
        return parse_bool
    if rule.kind == "number":
        return parse_number
    return str


def _add_open_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("paths", nargs="+", type=Path, help="EPUB files to open")
    parser.add_argument("-b", "--viewer", help="command used to open renditions")
    parser.add_argument("-i", "--include-index", type=parse_bool, help="generate an index page")
    parser.add_argument("-n", "--inject-navigation", type=parse_bool, help="wrap sections in navigation pages")
    parser.add_argument(
        "-S",
        "--stylesheet",
        dest="stylesheets",
        action="append",
        default=[],
        help="named stylesheet from the config; repeat to open several renditions",
    )
    parser.add_argument("--raw", action="store_true", help="open the book's unmodified files")
    for rule in STYLE_PROPERTIES:
        option = rule.name.replace("_", "-")
        parser.add_argument(f"--{option}", dest=rule.name, type=_property_type(rule), help=PROPERTY_HELP[rule.name])
        parser.add_argument(
            f"--{option}-override",
            dest=f"{rule.name}_override",
            type=parse_bool,
            help=f"whether --{option} overrides the book's own styles",
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="folio", description="Open EPUB books as styled, browsable pages.")
    parser.add_argument("-v", "--verbose", action="store_true", help="log progress messages")
    commands = parser.add_subparsers(dest="command", required=True)

    open_parser = commands.add_parser("open", help="open one or more books")
    _add_open_arguments(open_parser)

    library_parser = commands.add_parser("library", help="interact with the library of opened books")
    library_commands = library_parser.add_subparsers(dest="library_command", required=True)
    library_commands.add_parser("list", help="list books in the library")
    library_commands.add_parser("path", help="print the library directory")
    clear_parser = library_commands.add_parser("clear", help="remove books from the library")
    clear_parser.add_argument("ids", nargs="*", help="books to remove regardless of size limits")
    clear_parser.add_argument("-a", "--all", action="store_true", help="remove every book")
    clear_parser.add_argument("-b", "--max-books", type=int, help="remove books until at most this many remain")
    clear_parser.add_argument("-B", "--max-bytes", type=int, help="remove books until the library fits in this many bytes")

    config_parser = commands.add_parser("config", help="interact with the configuration")
    config_commands = config_parser.add_subparsers(dest="config_command", required=True)
    config_commands.add_parser("path", help="print the config file path")
    return parser


def apply_property_arguments(stylesheet: Stylesheet, args: argparse.Namespace) -> Stylesheet:
    changes: dict[str, StyleProperty] = {}
    for rule in STYLE_PROPERTIES:
        value = getattr(args, rule.name, None)
        override = getattr(args, f"{rule.name}_override", None)
        current = stylesheet.get(rule.name)
        if value is None:
            if override is None or current is None:
                continue
            changes[rule.name] = StyleProperty(current.value, override)
            continue
        if override is None:
            override = current.override_book if current is not None else False
        changes[rule.name] = StyleProperty(value, override)
    return replace(stylesheet, **changes) if changes else stylesheet


def styles_from_args(args: argparse.Namespace, config: Config) -> list[Style]:
    if args.raw:
        return [Style.raw()]
    include_index = config.include_index if args.include_index is None else args.include_index
    inject_navigation = config.inject_navigation if args.inject_navigation is None else args.inject_navigation
    names = args.stylesheets or config.default_stylesheets
    sheets = [config.get_stylesheet(name) for name in names] or [Stylesheet()]
    styles = []
    for sheet in sheets:
        sheet = apply_property_arguments(sheet, args)
        styles.append(Style(include_index, inject_navigation, None if sheet.is_empty() else sheet))
    return list(dict.fromkeys(styles))


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1000 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1000
    return f"{size} B"


def _run_open(args: argparse.Namespace, config: Config, library: Library) -> int:
    opened = open_books(
        library,
        args.paths,
        styles_from_args(args, config),
        max_books=config.max_library_books,
        max_bytes=config.max_library_bytes,
        viewer=args.viewer or config.default_viewer,
    )
    for rendition in opened:
        launch(rendition.path, rendition.viewer)
    return 0


def _run_library(args: argparse.Namespace, library: Library) -> int:
    if args.library_command == "path":
        print(library.root)
        return 0
    if args.library_command == "list":
        for book in library.list_books():
            creators = " & ".join(book.creators)
            print(f"{book.id}\t{book.title}\t{creators}\t{_format_size(book.size_in_bytes())}")
        return 0
    if args.all:
        removed = library.clear([], 0, None)
    elif not args.ids and args.max_books is None and args.max_bytes is None:
        print("library clear needs book ids, --all, --max-books or --max-bytes", file=sys.stderr)
        return 2
    else:
        removed = library.clear(args.ids, args.max_books, args.max_bytes)
    for book_id in removed:
        print(f"Removed {book_id}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.command == "config":
            print(config_path())
            return 0
        if args.command == "library":
            return _run_library(args, Library.open(library_dir()))
        config = load_config(config_path())
        return _run_open(args, config, Library.open(library_dir()))
    except FolioError as exc:
        print(exc, file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
