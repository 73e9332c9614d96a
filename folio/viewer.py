from __future__ import annotations

import os
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Optional

from .errors import FolioError


def default_viewer_command() -> str:
    if os.name == "nt":
        return "explorer"
    if sys.platform == "darwin":
        return "open"
    return "xdg-open"


def launch(path: Path, viewer: Optional[str] = None) -> subprocess.Popen:
    command = shlex.split(viewer) if viewer else [default_viewer_command()]
    target = path.resolve()
    try:
        return subprocess.Popen([*command, str(target)])
    except OSError as exc:
        raise FolioError(f"Failed to open {target} in {command[0]}: {exc}") from exc
