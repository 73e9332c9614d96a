from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .style import Stylesheet, StylesheetError, stylesheet_from_dict

logger = logging.getLogger("folio.config")

DEFAULT_MAX_LIBRARY_BOOKS = 50
DEFAULT_MAX_LIBRARY_BYTES = 1_000_000_000

DEFAULT_CONFIG: dict = {
    "default_viewer": None,
    "max_library_books": DEFAULT_MAX_LIBRARY_BOOKS,
    "max_library_bytes": DEFAULT_MAX_LIBRARY_BYTES,
    "include_index": True,
    "inject_navigation": True,
    "default_stylesheets": [],
    "stylesheets": {
        "null": {},
        "basalt": {
            "font_size": {"value": 16, "override_book": False},
            "text_color": {"value": "gold", "override_book": False},
            "link_color": {"value": "orangered", "override_book": False},
            "background_color": {"value": "darkslateblue", "override_book": False},
            "margin_size": {"value": 8, "override_book": False},
            "limit_image_size_to_viewport_size": {"value": True, "override_book": True},
        },
    },
}


class ConfigError(ValueError):
    pass


def env_path(name: str) -> Optional[Path]:
    """Path override from the environment.

    ``NAME`` holds the path itself; otherwise ``NAME_FILE`` names a file whose
    first line holds it. ``~`` is expanded.
    """
    value = os.getenv(name)
    if not value:
        source = os.getenv(f"{name}_FILE")
        if not source:
            return None
        try:
            lines = Path(source).read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            logger.warning("ignoring %s_FILE: cannot read %s: %s", name, source, exc)
            return None
        value = lines[0].strip() if lines else ""
        if not value:
            logger.warning("ignoring %s_FILE: %s is empty", name, source)
            return None
    return Path(value).expanduser()


def _data_home() -> Path:
    env = os.getenv("XDG_DATA_HOME")
    return Path(env) if env else Path.home() / ".local" / "share"


def _config_home() -> Path:
    env = os.getenv("XDG_CONFIG_HOME")
    return Path(env) if env else Path.home() / ".config"


def library_dir() -> Path:
    return env_path("FOLIO_LIBRARY_DIR") or _data_home() / "folio" / "library"


def config_path() -> Path:
    return env_path("FOLIO_CONFIG_PATH") or _config_home() / "folio" / "config.json"


@dataclass
class Config:
    default_viewer: Optional[str] = None
    max_library_books: Optional[int] = DEFAULT_MAX_LIBRARY_BOOKS
    max_library_bytes: Optional[int] = DEFAULT_MAX_LIBRARY_BYTES
    include_index: bool = True
    inject_navigation: bool = True
    default_stylesheets: list[str] = field(default_factory=list)
    stylesheets: dict[str, Stylesheet] = field(default_factory=dict)

    def get_stylesheet(self, name: str) -> Stylesheet:
        stylesheet = self.stylesheets.get(name)
        if stylesheet is None:
            logger.warning("stylesheet %s is not defined in the config", name)
            return Stylesheet()
        return stylesheet


def _limit(data: dict, key: str, default: int) -> Optional[int]:
    value = data.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{key} must be a non-negative integer")
    # 0 disables the limit.
    return value or None


def _flag(data: dict, key: str) -> bool:
    value = data.get(key, True)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false")
    return value


def config_from_dict(data: dict) -> Config:
    if not isinstance(data, dict):
        raise ConfigError("config must be an object")
    viewer = data.get("default_viewer")
    if viewer is not None and (not isinstance(viewer, str) or not viewer.strip()):
        raise ConfigError("default_viewer must be a non-empty string or null")
    defaults = data.get("default_stylesheets", [])
    if not isinstance(defaults, list) or not all(isinstance(name, str) for name in defaults):
        raise ConfigError("default_stylesheets must be a list of names")
    raw_sheets = data.get("stylesheets", {})
    if not isinstance(raw_sheets, dict):
        raise ConfigError("stylesheets must be an object")
    stylesheets: dict[str, Stylesheet] = {}
    for name, sheet in raw_sheets.items():
        try:
            stylesheets[name] = stylesheet_from_dict(sheet)
        except StylesheetError as exc:
            raise ConfigError(f"stylesheet {name}: {exc}") from exc
    return Config(
        default_viewer=viewer,
        max_library_books=_limit(data, "max_library_books", DEFAULT_MAX_LIBRARY_BOOKS),
        max_library_bytes=_limit(data, "max_library_bytes", DEFAULT_MAX_LIBRARY_BYTES),
        include_index=_flag(data, "include_index"),
        inject_navigation=_flag(data, "inject_navigation"),
        default_stylesheets=list(defaults),
        stylesheets=stylesheets,
    )


def default_config() -> Config:
    return config_from_dict(DEFAULT_CONFIG)


def write_default_config(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(DEFAULT_CONFIG, ensure_ascii=False, indent=2), encoding="utf-8")
    except OSError as exc:
        logger.warning("failed to write default config file to %s: %s", path, exc)


def load_config(path: Path) -> Config:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("no config file at %s; writing the default config", path)
        write_default_config(path)
        return default_config()
    except OSError as exc:
        logger.warning("couldn't read config file at %s: %s; using the default config", path, exc)
        return default_config()
    try:
        return config_from_dict(json.loads(raw))
    except (json.JSONDecodeError, ConfigError) as exc:
        logger.warning("config file at %s is ill-formed (%s); falling back on the default config", path, exc)
        return default_config()
