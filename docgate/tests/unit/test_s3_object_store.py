from __future__ import annotations

import io
from typing import Any

import pytest
from botocore.exceptions import ClientError

from docgate.core.config import Settings
from docgate.core.errors import ObjectStoreError, ProviderConfigError
from docgate.providers.storage.factory import get_object_store
from docgate.providers.storage.fake import FakeObjectStore
from docgate.providers.storage.s3 import S3ObjectStore


class _StubS3Client:
    def __init__(self, *, missing_bucket: bool = False, fail_put: bool = False) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.missing_bucket = missing_bucket
        self.fail_put = fail_put

    def put_object(self, **kwargs: Any) -> dict:
        self.calls.append(("put_object", kwargs))
        if self.fail_put:
            raise ClientError(
                {"Error": {"Code": "AccessDenied"}, "ResponseMetadata": {"HTTPStatusCode": 403}},
                "PutObject",
            )
        return {}

    def put_object_acl(self, **kwargs: Any) -> dict:
        self.calls.append(("put_object_acl", kwargs))
        return {}

    def delete_object(self, **kwargs: Any) -> dict:
        self.calls.append(("delete_object", kwargs))
        return {}

    def head_bucket(self, **kwargs: Any) -> dict:
        self.calls.append(("head_bucket", kwargs))
        if self.missing_bucket:
            raise ClientError(
                {"Error": {"Code": "404"}, "ResponseMetadata": {"HTTPStatusCode": 404}},
                "HeadBucket",
            )
        return {}

    def create_bucket(self, **kwargs: Any) -> dict:
        self.calls.append(("create_bucket", kwargs))
        return {}


def _store(client: _StubS3Client) -> S3ObjectStore:
    return S3ObjectStore(
        endpoint="minio.local:9000",
        access_key="key",
        secret_key="secret",
        use_ssl=False,
        region="eu-west-1",
        timeout_s=2.0,
        client=client,
    )


@pytest.mark.asyncio
async def test_put_and_make_public() -> None:
    client = _StubS3Client()
    store = _store(client)
    await store.put("documents", "a/b.pdf", io.BytesIO(b"data"), 4, "application/pdf")
    await store.make_public("documents", "a/b.pdf")

    (put_name, put_kwargs), (acl_name, acl_kwargs) = client.calls
    assert put_name == "put_object"
    assert put_kwargs["ContentLength"] == 4
    assert put_kwargs["ContentType"] == "application/pdf"
    assert acl_name == "put_object_acl"
    assert acl_kwargs == {"Bucket": "documents", "Key": "a/b.pdf", "ACL": "public-read"}


@pytest.mark.asyncio
async def test_client_errors_become_object_store_errors() -> None:
    store = _store(_StubS3Client(fail_put=True))
    with pytest.raises(ObjectStoreError):
        await store.put("documents", "a.pdf", io.BytesIO(b"x"), 1, "application/pdf")


@pytest.mark.asyncio
async def test_bucket_helpers() -> None:
    client = _StubS3Client(missing_bucket=True)
    store = _store(client)
    assert await store.exists("documents") is False
    await store.make_bucket("documents", "eu-west-1")
    assert client.calls[-1] == (
        "create_bucket",
        {"Bucket": "documents", "CreateBucketConfiguration": {"LocationConstraint": "eu-west-1"}},
    )
    assert await _store(_StubS3Client()).exists("documents") is True


def test_factory_selects_provider() -> None:
    assert isinstance(get_object_store(Settings(object_store_provider="fake")), FakeObjectStore)
    assert isinstance(get_object_store(Settings(object_store_provider="s3")), S3ObjectStore)
    with pytest.raises(ProviderConfigError):
        get_object_store(Settings(object_store_provider="ftp"))
