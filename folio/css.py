from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

MAX_CSS_LENGTH = 200_000


@dataclass
class CssBlock:
    """A selector and its declarations; nested blocks serve at-rules like ``@media``."""

    prefix: str
    contents: list[Union[str, "CssBlock"]] = field(default_factory=list)

    def is_empty(self) -> bool:
        for item in self.contents:
            if isinstance(item, CssBlock):
                if not item.is_empty():
                    return False
            else:
                return False
        return True

    def render(self, indentation: int = 0) -> Optional[str]:
        if self.is_empty():
            return None
        outer = "\t" * indentation
        inner = "\t" * (indentation + 1)
        lines = [f"{outer}{self.prefix} {{"]
        previous: Optional[str] = None
        for item in self.contents:
            if isinstance(item, CssBlock):
                rendered = item.render(indentation + 1)
                if rendered is None:
                    continue
                if previous is not None:
                    lines.append("")
                lines.append(rendered)
                previous = "block"
            else:
                if previous == "block":
                    lines.append("")
                lines.append(f"{inner}{item}")
                previous = "line"
        lines.append(f"{outer}}}")
        return "\n".join(lines)


@dataclass
class CssFile:
    blocks: list[CssBlock] = field(default_factory=list)
    trailer: list[str] = field(default_factory=list)

    def render(self) -> Optional[str]:
        parts = [rendered for rendered in (block.render() for block in self.blocks) if rendered]
        parts.extend(text.strip() for text in self.trailer if text and text.strip())
        if not parts:
            return None
        return "\n\n".join(parts) + "\n"


def validate_css(raw: str) -> Optional[str]:
    """Check free-form CSS from a stylesheet config before it is appended to a generated file.

    Returns a description of the first problem, with its line number, or None.
    Only the structure that could leak into the generated rules is checked:
    comments, strings and braces must all be closed where they were opened.
    """
    if not raw or not raw.strip():
        return None
    if len(raw) > MAX_CSS_LENGTH:
        return f"free-form CSS is longer than {MAX_CSS_LENGTH} characters"

    open_braces: list[int] = []
    string_start: Optional[tuple[str, int]] = None
    escaped = False
    line = 1
    i = 0
    while i < len(raw):
        ch = raw[i]
        if ch == "\x00":
            return f"NUL character on line {line}"
        if string_start is not None:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == string_start[0]:
                string_start = None
            elif ch == "\n":
                return f"string opened on line {string_start[1]} runs past the end of the line"
        elif ch in ("'", '"'):
            string_start = (ch, line)
        elif raw.startswith("/*", i):
            end = raw.find("*/", i + 2)
            if end == -1:
                return f"comment opened on line {line} is never closed"
            line += raw.count("\n", i, end)
            i = end + 2
            continue
        elif ch == "{":
            open_braces.append(line)
        elif ch == "}":
            if not open_braces:
                return f"unexpected '}}' on line {line}"
            open_braces.pop()
        if ch == "\n":
            line += 1
        i += 1

    if string_start is not None:
        return f"string opened on line {string_start[1]} is never closed"
    if open_braces:
        return f"'{{' opened on line {open_braces[-1]} is never closed"
    return None
