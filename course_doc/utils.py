"""
Small file helpers shared by the build driver and the CLI.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .errors import DocSyntaxError


def ensure_directory(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def read_text(path: Path) -> str:
    """Read a UTF-8 document and normalise its line endings to ``\\n``."""
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise DocSyntaxError(f"{path} is not valid UTF-8: {exc.reason}", offset=exc.start) from exc
    return text.replace("\r\n", "\n").replace("\r", "\n")


def write_text(path: Path, text: str) -> None:
    ensure_directory(path.parent)
    path.write_text(text, encoding="utf-8")


def read_yaml(path: Path) -> Any:
    return yaml.safe_load(path.read_text(encoding="utf-8"))
