# src/upload_queue/uploaders/paths.py

from __future__ import annotations

import mimetypes
from pathlib import Path
from urllib.parse import unquote, urlparse


def resolve_local_path(image_uri: str) -> Path:
    """Accept `file://` URIs as well as plain filesystem paths."""
    parsed = urlparse(image_uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(image_uri).expanduser()


def guess_content_type(filename: str, fallback: str = "application/octet-stream") -> str:
    ctype, _ = mimetypes.guess_type(filename)
    return ctype or fallback
