# tests/test_uploaders.py

from __future__ import annotations

import json
from pathlib import Path

import pytest
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError

from upload_queue.errors import UploadFailure
from upload_queue.uploaders.local import LocalDirUploader
from upload_queue.uploaders.paths import guess_content_type, resolve_local_path
from upload_queue.uploaders.s3 import S3Uploader, s3_key_join

FIELDS = dict(latitude=32.32, longitude=-120.12, quality=40, payload='{"device":666}')


@pytest.fixture()
def photo(tmp_path: Path) -> Path:
    p = tmp_path / "src" / "dummy.jpg"
    p.parent.mkdir()
    p.write_bytes(b"\xff\xd8\xff fake jpeg")
    return p


class StubS3Client:
    """Records boto3 calls; optionally raises from upload_file."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.uploads: list[dict] = []
        self.objects: list[dict] = []

    def upload_file(self, filename, bucket, key, ExtraArgs=None, Callback=None):
        if self.error is not None:
            raise self.error
        if Callback is not None:
            Callback(1024)
        self.uploads.append({"filename": filename, "bucket": bucket, "key": key, "extra": ExtraArgs})

    def put_object(self, **kwargs):
        self.objects.append(kwargs)
        return {}


def test_resolve_local_path_accepts_file_uris_and_paths() -> None:
    assert resolve_local_path("file:///tmp/a%20b.jpg") == Path("/tmp/a b.jpg")
    assert resolve_local_path("/tmp/a.jpg") == Path("/tmp/a.jpg")


def test_guess_content_type() -> None:
    assert guess_content_type("a.jpg") == "image/jpeg"
    assert guess_content_type("a.unknownext") == "application/octet-stream"


def test_s3_key_join() -> None:
    assert s3_key_join("uploads/", "/2024/", "a.jpg") == "uploads/2024/a.jpg"
    assert s3_key_join("", "a.jpg") == "a.jpg"
    assert s3_key_join("x", "../a.jpg") == "x/a.jpg"
    assert s3_key_join("x", "a/../../b.jpg") == "x/a/b.jpg"
    assert s3_key_join("/", "a.jpg") == "a.jpg"


@pytest.mark.asyncio
async def test_local_uploader_copies_file_and_writes_sidecar(tmp_path: Path, photo: Path) -> None:
    target = tmp_path / "out"
    pings: list[int] = []
    up = LocalDirUploader(target)

    await up.upload(
        image_uri=photo.as_uri(), file_name="dummy1.jpg", keepalive=lambda: pings.append(1), **FIELDS
    )

    assert (target / "dummy1.jpg").read_bytes() == photo.read_bytes()
    meta = json.loads((target / "dummy1.jpg.json").read_text("utf-8"))
    assert meta["quality"] == 40
    assert meta["payload"] == '{"device":666}'
    assert pings == [1]


@pytest.mark.asyncio
async def test_local_uploader_missing_source_is_upload_failure(tmp_path: Path) -> None:
    up = LocalDirUploader(tmp_path / "out")
    with pytest.raises(UploadFailure):
        await up.upload(image_uri=str(tmp_path / "nope.jpg"), file_name="nope.jpg", **FIELDS)


@pytest.mark.asyncio
@pytest.mark.parametrize("file_name", ["../escaped.jpg", "nested/../../escaped.jpg", "/tmp/escaped.jpg", "."])
async def test_local_uploader_refuses_names_outside_its_root(
    tmp_path: Path, photo: Path, file_name: str
) -> None:
    target = tmp_path / "out"
    up = LocalDirUploader(target)

    with pytest.raises(UploadFailure):
        await up.upload(image_uri=photo.as_uri(), file_name=file_name, **FIELDS)

    assert not (tmp_path / "escaped.jpg").exists()
    assert not target.exists()


@pytest.mark.asyncio
async def test_local_uploader_keeps_subdirectories(tmp_path: Path, photo: Path) -> None:
    target = tmp_path / "out"
    await LocalDirUploader(target).upload(image_uri=photo.as_uri(), file_name="2024/a.jpg", **FIELDS)
    assert (target / "2024" / "a.jpg").read_bytes() == photo.read_bytes()


@pytest.mark.asyncio
async def test_s3_uploader_puts_object_metadata_and_payload(photo: Path) -> None:
    client = StubS3Client()
    pings: list[int] = []
    up = S3Uploader("bucket-1", prefix="uploads", client=client)

    await up.upload(
        image_uri=photo.as_uri(), file_name="dummy1.jpg", keepalive=lambda: pings.append(1), **FIELDS
    )

    assert len(client.uploads) == 1
    sent = client.uploads[0]
    assert sent["filename"] == str(photo)
    assert sent["bucket"] == "bucket-1"
    assert sent["key"] == "uploads/dummy1.jpg"
    assert sent["extra"]["ContentType"] == "image/jpeg"
    assert sent["extra"]["Metadata"] == {"lat": "32.32", "lon": "-120.12", "quality": "40"}

    assert client.objects[0]["Key"] == "uploads/dummy1.jpg.json"
    assert json.loads(client.objects[0]["Body"]) == {"payload": '{"device":666}'}
    assert pings == [1]


@pytest.mark.asyncio
async def test_s3_uploader_skips_payload_object_when_absent(photo: Path) -> None:
    client = StubS3Client()
    up = S3Uploader("bucket-1", client=client)

    await up.upload(
        image_uri=str(photo), file_name="a.jpg", latitude=None, longitude=None, quality=None, payload=None
    )

    assert client.uploads[0]["key"] == "a.jpg"
    assert client.uploads[0]["extra"]["Metadata"] == {}
    assert client.objects == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "nope"}, "ResponseMetadata": {"HTTPStatusCode": 403}},
            "PutObject",
        ),
        S3UploadFailedError("Failed to upload: RequestTimeout"),
        FileNotFoundError("gone"),
    ],
)
async def test_s3_errors_become_upload_failure(photo: Path, error: Exception) -> None:
    up = S3Uploader("bucket-1", client=StubS3Client(error=error))
    with pytest.raises(UploadFailure):
        await up.upload(image_uri=str(photo), file_name="a.jpg", **FIELDS)


def test_s3_uploader_requires_bucket() -> None:
    with pytest.raises(ValueError):
        S3Uploader("", client=StubS3Client())
