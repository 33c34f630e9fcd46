"""Tests for driver document storage backends."""

import pytest
from botocore.exceptions import ClientError

from ecowheels.config import Settings
from ecowheels.errors import InvalidInputError, StoreError
from ecowheels.storage import (
    LocalFileStorage,
    S3FileStorage,
    StorageHandle,
    create_file_storage,
    normalize_path,
)


@pytest.mark.parametrize(
    "path,expected",
    [
        ("driver-documents/d1/license", "driver-documents/d1/license"),
        ("/driver-documents//d1/./license/", "driver-documents/d1/license"),
    ],
)
def test_normalize_path(path: str, expected: str) -> None:
    assert normalize_path(path) == expected


@pytest.mark.parametrize("path", ["", "/", "driver-documents/../secrets", ".."])
def test_normalize_path_rejects_escapes(path: str) -> None:
    with pytest.raises(InvalidInputError):
        normalize_path(path)


@pytest.mark.asyncio
async def test_local_upload_and_url(tmp_path) -> None:
    storage = LocalFileStorage(str(tmp_path), "http://files.test/")

    handle = await storage.upload("docs/d1/my license.pdf", b"data", "application/pdf")

    assert handle == StorageHandle(
        path="docs/d1/my license.pdf", size=4, content_type="application/pdf"
    )
    assert (tmp_path / "docs" / "d1" / "my license.pdf").read_bytes() == b"data"
    assert await storage.get_download_url(handle) == "http://files.test/docs/d1/my%20license.pdf"


class FakeS3Client:
    """Records calls made through the boto3 client interface."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.objects: dict[str, dict] = {}

    def put_object(self, **kwargs):
        if self.fail:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
        self.objects[kwargs["Key"]] = kwargs

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://{Params['Bucket']}.s3.test/{Params['Key']}?expires={ExpiresIn}"


@pytest.mark.asyncio
async def test_s3_upload_and_presigned_url() -> None:
    client = FakeS3Client()
    storage = S3FileStorage("driver-docs", url_expire_seconds=600, client=client)

    handle = await storage.upload("d1/insurance", b"pdf", "application/pdf")

    assert client.objects["d1/insurance"]["ContentType"] == "application/pdf"
    assert client.objects["d1/insurance"]["Bucket"] == "driver-docs"
    url = await storage.get_download_url(handle)
    assert url == "https://driver-docs.s3.test/d1/insurance?expires=600"


@pytest.mark.asyncio
async def test_s3_failure_becomes_store_error() -> None:
    storage = S3FileStorage("driver-docs", client=FakeS3Client(fail=True))

    with pytest.raises(StoreError):
        await storage.upload("d1/insurance", b"pdf")


def test_create_file_storage_selects_backend(tmp_path) -> None:
    local = create_file_storage(Settings(storage_root=str(tmp_path)))
    assert isinstance(local, LocalFileStorage)

    with pytest.raises(ValueError):
        create_file_storage(Settings(storage_backend="s3"))
