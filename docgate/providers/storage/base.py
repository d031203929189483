from __future__ import annotations

from typing import BinaryIO, Protocol


class ObjectStore(Protocol):
    async def put(
        self,
        bucket: str,
        key: str,
        stream: BinaryIO,
        size: int,
        content_type: str,
    ) -> None:
        ...

    async def remove(self, bucket: str, key: str) -> None:
        ...

    async def make_public(self, bucket: str, key: str) -> None:
        ...

    async def exists(self, bucket: str) -> bool:
        ...

    async def make_bucket(self, bucket: str, region: str) -> None:
        ...
