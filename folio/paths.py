"""Path and URL arithmetic shared by every rendition component.

All book-internal paths are POSIX-style strings relative to some root (the
archive root for resources, the rendition root for generated pages). The
helpers here never touch the file system, except ``is_within`` which only
normalizes absolute paths lexically.
"""

from __future__ import annotations

import os
import posixpath
from pathlib import Path
from urllib.parse import urlsplit


def standardize_separators(path: str) -> str:
    return (path or "").replace("\\", "/")


def normalize(path: str) -> str:
    # Unlike a zip member canonicalizer, leading ".." segments are kept so
    # containment checks can still see them.
    cleaned = posixpath.normpath(standardize_separators(path))
    return "" if cleaned == "." else cleaned


def split_fragment(ref: str) -> tuple[str, str | None]:
    path, sep, fragment = (ref or "").partition("#")
    return path, (fragment if sep else None)


def strip_suffixes(ref: str) -> str:
    """Drop the fragment and query from a reference, keeping only its path."""
    without_fragment = (ref or "").split("#", 1)[0]
    return without_fragment.split("?", 1)[0]


def with_fragment(path: str, fragment: str | None) -> str:
    if fragment is None:
        return path
    return f"{path}#{fragment}"


def parent(path: str) -> str:
    return normalize(posixpath.dirname(normalize(path)))


def join(base_dir: str, ref: str) -> str:
    ref = standardize_separators(ref)
    if ref.startswith("/"):
        return normalize(ref)
    return normalize(posixpath.join(normalize(base_dir), ref))


def resolve(from_file: str, ref: str) -> str:
    """Resolve ``ref`` as written inside ``from_file`` to a root-relative path."""
    target = strip_suffixes(ref).strip()
    if not target:
        return normalize(from_file)
    return join(parent(from_file), target)


def relativize(target: str, start_dir: str) -> str:
    start = normalize(start_dir) or "."
    return posixpath.relpath(normalize(target) or ".", start=start)


def relative_href(from_file: str, to_file: str) -> str:
    return relativize(to_file, parent(from_file))


def directory_href(from_file: str, to_dir: str) -> str:
    rel = relativize(to_dir, parent(from_file))
    if rel == ".":
        return "./"
    return f"{rel}/"


def is_absolute_url(ref: str) -> bool:
    """True when ``ref`` parses as a standalone URL, i.e. carries a scheme.

    Raises ``ValueError`` for references that cannot be parsed at all.
    """
    return bool(urlsplit((ref or "").strip()).scheme)


def is_within(path: Path, root: Path) -> bool:
    candidate = Path(os.path.normpath(os.path.abspath(path)))
    container = Path(os.path.normpath(os.path.abspath(root)))
    return candidate == container or candidate.is_relative_to(container)
