from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup, escape

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
ASSETS_DIR = Path(__file__).resolve().parent / "assets"


def attribute_text(value: str) -> Markup:
    # XML parsers fold literal whitespace in attribute values into spaces.
    escaped = str(escape(value))
    return Markup(escaped.replace("\t", "&#9;").replace("\n", "&#10;").replace("\r", "&#13;"))


@lru_cache(maxsize=1)
def _template_env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(
            enabled_extensions=("xml", "xhtml", "html", "j2"),
            default_for_string=False,
        ),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["attribute_text"] = attribute_text
    return env


def render_template(template_name: str, **context: object) -> str:
    return _template_env().get_template(template_name).render(**context)


def read_asset(name: str) -> bytes:
    return (ASSETS_DIR / name).read_bytes()
