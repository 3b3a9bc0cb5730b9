from __future__ import annotations

import gzip
import json
import logging
import re
from pathlib import Path
from typing import Any, TextIO

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[:\\/*?|<>]")


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def sanitize_filename(name: str) -> str:
    """Replace characters that are unsafe in file names with ``_``."""
    return _UNSAFE_FILENAME_CHARS.sub("_", name)
