from __future__ import annotations

import asyncio
import logging
from typing import Any, BinaryIO, Callable

from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from docgate.core.config import Settings
from docgate.core.errors import ObjectStoreError, ProviderConfigError


logger = logging.getLogger(__name__)


class S3ObjectStore:
    def __init__(
        self,
        *,
        endpoint: str,
        access_key: str | None,
        secret_key: str | None,
        use_ssl: bool,
        region: str,
        timeout_s: float,
        client: Any | None = None,
    ) -> None:
        if not endpoint:
            raise ProviderConfigError("object store endpoint is required")
        self._endpoint = endpoint
        self._access_key = access_key
        self._secret_key = secret_key
        self._use_ssl = use_ssl
        self._region = region
        self._timeout_s = timeout_s
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        return cls(
            endpoint=settings.object_store_endpoint,
            access_key=settings.object_store_access_key,
            secret_key=settings.object_store_secret_key,
            use_ssl=settings.object_store_use_ssl,
            region=settings.object_store_region,
            timeout_s=settings.object_store_timeout_s,
        )

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        try:
            import boto3
        except Exception as exc:  # pragma: no cover - environment-specific import
            raise ObjectStoreError("AWS SDK not available. Install boto3.") from exc

        scheme = "https" if self._use_ssl else "http"
        self._client = boto3.client(
            "s3",
            endpoint_url=f"{scheme}://{self._endpoint}",
            aws_access_key_id=self._access_key,
            aws_secret_access_key=self._secret_key,
            region_name=self._region,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                connect_timeout=self._timeout_s,
                read_timeout=self._timeout_s,
                retries={"max_attempts": 1},
            ),
        )
        return self._client

    async def _call(self, operation: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        # Blocking SDK calls run in a worker thread under a hard deadline.
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, **kwargs), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            logger.warning("object_store_timeout operation=%s timeout_s=%s", operation, self._timeout_s)
            raise ObjectStoreError(f"object store {operation} timed out") from exc
        except ClientError as exc:
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            logger.warning("object_store_client_error operation=%s status=%s", operation, status)
            raise ObjectStoreError(f"object store {operation} failed with status {status}") from exc
        except BotoCoreError as exc:
            logger.warning("object_store_error operation=%s error=%s", operation, exc.__class__.__name__)
            raise ObjectStoreError(f"object store {operation} failed") from exc

    async def put(
        self,
        bucket: str,
        key: str,
        stream: BinaryIO,
        size: int,
        content_type: str,
    ) -> None:
        client = self._get_client()
        await self._call(
            "put",
            client.put_object,
            Bucket=bucket,
            Key=key,
            Body=stream,
            ContentLength=size,
            ContentType=content_type,
        )
        logger.info("object_stored bucket=%s key=%s size=%s", bucket, key, size)

    async def remove(self, bucket: str, key: str) -> None:
        client = self._get_client()
        await self._call("remove", client.delete_object, Bucket=bucket, Key=key)
        logger.info("object_removed bucket=%s key=%s", bucket, key)

    async def make_public(self, bucket: str, key: str) -> None:
        client = self._get_client()
        await self._call(
            "make_public",
            client.put_object_acl,
            Bucket=bucket,
            Key=key,
            ACL="public-read",
        )

    async def exists(self, bucket: str) -> bool:
        client = self._get_client()
        try:
            await self._call("exists", client.head_bucket, Bucket=bucket)
        except ObjectStoreError as exc:
            cause = exc.__cause__
            if isinstance(cause, ClientError):
                status = cause.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
                if status == 404:
                    return False
            raise
        return True

    async def make_bucket(self, bucket: str, region: str) -> None:
        client = self._get_client()
        kwargs: dict[str, Any] = {"Bucket": bucket}
        if region and region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
        await self._call("make_bucket", client.create_bucket, **kwargs)
        logger.info("bucket_created bucket=%s region=%s", bucket, region)
