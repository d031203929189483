from __future__ import annotations

from docgate.core.config import Settings, get_settings
from docgate.core.errors import ProviderConfigError
from docgate.providers.storage.base import ObjectStore
from docgate.providers.storage.fake import FakeObjectStore
from docgate.providers.storage.s3 import S3ObjectStore


def get_object_store(settings: Settings | None = None) -> ObjectStore:
    settings = settings or get_settings()
    provider = (settings.object_store_provider or "").lower()

    if provider == "fake":
        return FakeObjectStore()
    if provider == "s3":
        return S3ObjectStore.from_settings(settings)

    raise ProviderConfigError(f"Unsupported object store provider: {provider or 'unset'}")
