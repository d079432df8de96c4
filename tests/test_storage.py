"""
Avatar storage providers.
"""
import pytest
from botocore.exceptions import ClientError

from app.exceptions import InternalError, ValidationError
from app.storage import (
    LocalStorageProvider,
    S3StorageProvider,
    build_object_key,
    validate_image,
)

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


@pytest.mark.parametrize(
    "content, content_type, code",
    [
        (b"", "image/png", "EMPTY_FILE"),
        (PNG, "application/pdf", "INVALID_FILE_TYPE"),
        (PNG, None, "INVALID_FILE_TYPE"),
        (b"x" * 11, "image/png", "FILE_TOO_LARGE"),
    ],
)
def test_validate_image_rejects(content, content_type, code):
    with pytest.raises(ValidationError) as exc_info:
        validate_image(content, content_type, max_bytes=10)
    assert exc_info.value.code == code


def test_validate_image_accepts_allowed_types():
    for content_type in ("image/jpeg", "image/png", "image/webp"):
        validate_image(b"x" * 10, content_type, max_bytes=10)


def test_build_object_key_sanitises_names():
    key = build_object_key("avatars", "../../etc/My Photo!.png", "image/png")
    folder, name = key.split("/")
    assert folder == "avatars"
    assert name.startswith("My-Photo-")
    assert name.endswith(".png")


def test_build_object_key_is_unique():
    assert build_object_key("a", "x.jpg", "image/jpeg") != build_object_key("a", "x.jpg", "image/jpeg")


@pytest.mark.asyncio
async def test_local_upload_and_delete(tmp_path):
    provider = LocalStorageProvider(str(tmp_path), "http://test/uploads/")
    stored = await provider.upload(PNG, "me.png", "image/png", "avatars")

    assert stored.url == f"http://test/uploads/{stored.key}"
    path = tmp_path / stored.key
    assert path.read_bytes() == PNG
    assert provider.key_for_url(stored.url) == stored.key
    assert provider.key_for_url("https://elsewhere/x.png") is None

    await provider.delete(stored.key)
    assert not path.exists()
    # Deleting again is harmless.
    await provider.delete(stored.key)


@pytest.mark.asyncio
async def test_local_delete_refuses_keys_outside_base(tmp_path):
    provider = LocalStorageProvider(str(tmp_path / "uploads"), "http://test/uploads")
    with pytest.raises(ValidationError) as exc_info:
        await provider.delete("../outside.png")
    assert exc_info.value.code == "INVALID_STORAGE_KEY"


class FakeS3Client:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.objects: dict[str, dict] = {}

    def put_object(self, **kwargs):
        if self.fail:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")
        self.objects[kwargs["Key"]] = kwargs

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)


@pytest.mark.asyncio
async def test_s3_upload_and_delete():
    client = FakeS3Client()
    provider = S3StorageProvider("blog-bucket", "eu-west-1", client=client)

    stored = await provider.upload(PNG, "me.png", "image/png", "avatars")

    assert stored.url == f"https://blog-bucket.s3.eu-west-1.amazonaws.com/{stored.key}"
    put = client.objects[stored.key]
    assert put["Bucket"] == "blog-bucket"
    assert put["ContentType"] == "image/png"
    assert put["Body"] == PNG
    assert provider.key_for_url(stored.url) == stored.key

    await provider.delete(stored.key)
    assert client.objects == {}


@pytest.mark.asyncio
async def test_s3_public_base_url_override():
    provider = S3StorageProvider(
        "blog-bucket", "eu-west-1", public_base_url="https://cdn.example.com/", client=FakeS3Client()
    )
    stored = await provider.upload(PNG, "me.png", "image/png", "avatars")
    assert stored.url == f"https://cdn.example.com/{stored.key}"


@pytest.mark.asyncio
async def test_s3_client_error_becomes_upload_failed():
    provider = S3StorageProvider("blog-bucket", "eu-west-1", client=FakeS3Client(fail=True))
    with pytest.raises(InternalError) as exc_info:
        await provider.upload(PNG, "me.png", "image/png", "avatars")
    assert exc_info.value.code == "UPLOAD_FAILED"
    assert exc_info.value.status_code == 500
