from __future__ import annotations

from typing import BinaryIO

from docgate.core.errors import ObjectStoreError


class FakeObjectStore:
    def __init__(
        self,
        *,
        fail_on_put: bool = False,
        fail_on_remove: bool = False,
        fail_on_make_public: bool = False,
        removes_before_failure: int | None = None,
    ) -> None:
        # In-memory buckets let tests assert on stored objects without a live service.
        self.buckets: dict[str, dict[str, bytes]] = {}
        self.content_types: dict[tuple[str, str], str] = {}
        self.public: set[tuple[str, str]] = set()
        self.fail_on_put = fail_on_put
        self.fail_on_remove = fail_on_remove
        self.fail_on_make_public = fail_on_make_public
        # Number of removals allowed to succeed before every later one fails.
        self.removes_before_failure = removes_before_failure
        self.removed = 0

    async def put(
        self,
        bucket: str,
        key: str,
        stream: BinaryIO,
        size: int,
        content_type: str,
    ) -> None:
        if self.fail_on_put:
            raise ObjectStoreError(f"simulated upload failure for {bucket}/{key}")
        data = stream.read(size)
        self.buckets.setdefault(bucket, {})[key] = data
        self.content_types[(bucket, key)] = content_type

    async def remove(self, bucket: str, key: str) -> None:
        exhausted = self.removes_before_failure is not None and self.removed >= self.removes_before_failure
        if self.fail_on_remove or exhausted:
            raise ObjectStoreError(f"simulated remove failure for {bucket}/{key}")
        self.buckets.get(bucket, {}).pop(key, None)
        self.public.discard((bucket, key))
        self.removed += 1

    async def make_public(self, bucket: str, key: str) -> None:
        if self.fail_on_make_public:
            raise ObjectStoreError(f"simulated acl failure for {bucket}/{key}")
        if key not in self.buckets.get(bucket, {}):
            raise ObjectStoreError(f"object not found: {bucket}/{key}")
        self.public.add((bucket, key))

    async def exists(self, bucket: str) -> bool:
        return bucket in self.buckets

    async def make_bucket(self, bucket: str, region: str) -> None:
        _ = region
        self.buckets.setdefault(bucket, {})

    def keys(self, bucket: str) -> list[str]:
        return sorted(self.buckets.get(bucket, {}))
