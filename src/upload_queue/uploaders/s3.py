# src/upload_queue/uploaders/s3.py

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..core.ports import Keepalive
from ..errors import UploadFailure
from .paths import guess_content_type, resolve_local_path

logger = logging.getLogger(__name__)


def s3_key_join(*parts: str) -> str:
    """Join path parts into an S3 key (no empty segments, no '..')."""
    return "/".join(
        seg for p in parts if p for seg in p.replace("..", "").split("/") if seg
    )


def _describe_client_error(e: ClientError) -> str:
    err = e.response.get("Error", {}) or {}
    meta = e.response.get("ResponseMetadata", {}) or {}
    code = err.get("Code", "")
    msg = err.get("Message", "") or str(e)
    return f"S3 {code or 'error'} (http={meta.get('HTTPStatusCode')}): {msg}"


class S3Uploader:
    """
    Upload files to an S3 bucket.

    - the object key is `<prefix>/<file_name>`
    - lat/lon/quality travel as object metadata
    - the opaque payload is stored next to the object as `<key>.json`
    - boto3 runs in a worker thread; its progress callback feeds keepalive
    """

    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        prefix: str = "",
        client: Any | None = None,
    ) -> None:
        if not bucket:
            raise ValueError("bucket is required")
        self.bucket = bucket
        self.prefix = prefix
        if client is None:
            client = boto3.client(
                "s3",
                region_name=region or None,
                config=Config(signature_version="s3v4", retries={"max_attempts": 3}),
            )
        self._client = client

    def object_key(self, file_name: str) -> str:
        return s3_key_join(self.prefix, file_name)

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
        key = self.object_key(file_name)

        metadata: dict[str, str] = {}
        if latitude is not None:
            metadata["lat"] = repr(float(latitude))
        if longitude is not None:
            metadata["lon"] = repr(float(longitude))
        if quality is not None:
            metadata["quality"] = str(int(quality))

        extra_args = {"ContentType": guess_content_type(file_name), "Metadata": metadata}

        def progress(_bytes: int) -> None:
            if keepalive is not None:
                keepalive()

        try:
            await asyncio.to_thread(
                self._client.upload_file,
                str(src),
                self.bucket,
                key,
                ExtraArgs=extra_args,
                Callback=progress,
            )
            if payload is not None:
                await asyncio.to_thread(
                    self._client.put_object,
                    Bucket=self.bucket,
                    Key=key + ".json",
                    Body=json.dumps({"payload": payload}, ensure_ascii=False).encode("utf-8"),
                    ContentType="application/json",
                )
        except ClientError as e:
            raise UploadFailure(_describe_client_error(e)) from e
        except (S3UploadFailedError, BotoCoreError, OSError) as e:
            raise UploadFailure(f"S3 upload of {src} failed: {e}") from e

        logger.info("Uploaded %s to s3://%s/%s", src, self.bucket, key)
