# src/upload_queue/uploaders/local.py

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from pathlib import Path

from ..core.ports import Keepalive
from ..errors import UploadFailure
from .paths import resolve_local_path

logger = logging.getLogger(__name__)


class LocalDirUploader:
    """
    Offline uploader used for demos and local runs without cloud credentials.

    "Uploads" by copying the source file under `root` and writing a
    `<file_name>.json` sidecar with the metadata the remote side would get.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    async def upload(
        self,
        *,
        image_uri: str,
        file_name: str,
        latitude: float | None,
        longitude: float | None,
        quality: int | None,
        payload: str | None,
        keepalive: Keepalive | None = None,
    ) -> None:
        src = resolve_local_path(image_uri)
        dest = self._target(file_name)
        meta = {
            "source": image_uri,
            "lat": latitude,
            "lon": longitude,
            "quality": quality,
            "payload": payload,
        }
        try:
            await asyncio.to_thread(self._copy, src, dest, meta)
        except OSError as e:
            raise UploadFailure(f"copy {src} -> {dest} failed: {e}") from e

        if keepalive is not None:
            keepalive()
        logger.debug("Copied %s -> %s", src, dest)

    def _target(self, file_name: str) -> Path:
        root = self.root.resolve()
        dest = (root / file_name).resolve()
        if dest == root or not dest.is_relative_to(root):
            raise UploadFailure(f"file name {file_name!r} resolves outside {root}")
        return dest

    @staticmethod
    def _copy(src: Path, dest: Path, meta: dict[str, object]) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dest)
        sidecar = dest.with_name(dest.name + ".json")
        sidecar.write_text(json.dumps(meta, ensure_ascii=False, indent=2), "utf-8")
