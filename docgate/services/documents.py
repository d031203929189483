from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import io
import logging
from pathlib import PurePosixPath
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from docgate.core.config import Settings, get_settings
from docgate.core.errors import AccessDeniedError, InputValidationError, NotFoundError, ObjectStoreError
from docgate.domain.models import CategoryDocument, DocumentControl, DocumentType, DocumentVersion
from docgate.domain.schemas import DocumentControlPayload, parse_publish_date, parse_uuid
from docgate.persistence.db import atomic
from docgate.persistence.repos import documents as documents_repo
from docgate.persistence.repos import statuses as statuses_repo
from docgate.persistence.repos import taxonomy as taxonomy_repo
from docgate.providers.storage.base import ObjectStore
from docgate.services.authz.decisions import AccessDecisionService


logger = logging.getLogger(__name__)

INITIAL_VERSION_NOTE = "Initial version"
UPDATED_VERSION_NOTE = "Updated version"

_EXTENSIONS = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/png": ".png",
}


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DocumentLifecycle:
    """Document controls and their append-only version history.

    Object-store calls happen inside the database unit of work. An upload
    failure aborts it, and objects uploaded before a failed commit are removed
    again on a best-effort basis. Deletion retires each version as its object
    is removed, so no live version ever points at a missing object.
    """

    def __init__(
        self,
        *,
        object_store: ObjectStore,
        access: AccessDecisionService,
        settings: Settings | None = None,
    ) -> None:
        self._store = object_store
        self._access = access
        self._settings = settings or get_settings()

    def validate_upload(self, file: UploadedFile) -> None:
        # Checked before any persistence so rejected uploads never touch the database.
        if file.size <= 0:
            raise InputValidationError("uploaded file is empty")
        if file.size > self._settings.upload_max_bytes:
            raise InputValidationError(
                f"uploaded file exceeds {self._settings.upload_max_bytes} bytes"
            )
        content_type = (file.content_type or "").split(";")[0].strip().lower()
        if content_type not in self._settings.upload_allowed_content_types:
            raise InputValidationError(f"unsupported content type: {file.content_type}")

    def object_key(self, file: UploadedFile) -> str:
        # Random id keeps keys collision-resistant; the extension comes from the upload.
        suffix = PurePosixPath(file.filename or "").suffix.lower()
        if not suffix:
            suffix = _EXTENSIONS.get(file.content_type.split(";")[0].strip().lower(), "")
        directory = self._settings.object_store_directory.strip("/")
        return f"{directory}/{uuid4()}{suffix}"

    def public_url(self, key: str) -> str:
        return f"https://{self._settings.object_store_endpoint}/{self._settings.object_store_bucket}/{key}"

    async def _upload(self, file: UploadedFile, uploaded: list[StoredObject]) -> StoredObject:
        bucket = self._settings.object_store_bucket
        key = self.object_key(file)
        await self._store.put(bucket, key, io.BytesIO(file.data), file.size, file.content_type)
        stored = StoredObject(key=key, url=self.public_url(key))
        # Tracked before make_public so a failed ACL change is still compensated.
        uploaded.append(stored)
        await self._store.make_public(bucket, key)
        return stored

    async def _discard(self, objects: list[StoredObject]) -> None:
        # Compensation after a failed commit; a leftover object is logged, not raised.
        bucket = self._settings.object_store_bucket
        for stored in objects:
            try:
                await self._store.remove(bucket, stored.key)
            except ObjectStoreError:
                logger.warning("orphan_object_left bucket=%s key=%s", bucket, stored.key, exc_info=True)

    async def _resolve_references(
        self, session: AsyncSession, payload: DocumentControlPayload
    ) -> tuple[CategoryDocument, DocumentType]:
        category = await taxonomy_repo.get_category_by_id(session, payload.document_category_id)
        if category is None or category.deleted_at is not None:
            raise NotFoundError(f"category not found: {payload.document_category_id}")
        doc_type = await taxonomy_repo.get_type_by_id(session, payload.document_type_id)
        if doc_type is None or doc_type.deleted_at is not None:
            raise NotFoundError(f"document type not found: {payload.document_type_id}")
        if doc_type.document_category_id != category.id:
            raise InputValidationError(
                f"document type {doc_type.prefix} does not belong to category {category.prefix}"
            )
        return category, doc_type

    async def _require_document(self, session: AsyncSession, document_uuid: str) -> DocumentControl:
        control = await documents_repo.get_document(session, parse_uuid(document_uuid))
        if control is None:
            raise NotFoundError(f"document not found: {document_uuid}")
        return control

    async def create(
        self,
        session: AsyncSession,
        payload: DocumentControlPayload,
        file: UploadedFile | None,
        *,
        created_by: str,
    ) -> tuple[DocumentControl, DocumentVersion]:
        publish_date = parse_publish_date(payload.publish_date)
        if file is None:
            raise InputValidationError("file is required")
        self.validate_upload(file)

        uploaded: list[StoredObject] = []
        try:
            async with atomic(session, operation="create_document"):
                await self._resolve_references(session, payload)
                status = await statuses_repo.get_status_by_name(session, self._settings.initial_status_name)
                if status is None:
                    raise NotFoundError(f"initial status not found: {self._settings.initial_status_name}")
                control = await documents_repo.insert_document(
                    session,
                    document_name=payload.document_name,
                    description=payload.description,
                    document_number=payload.document_number,
                    clause_number=payload.clause_number,
                    revision_number=payload.revision_number,
                    publish_date=publish_date,
                    page_count=payload.page_count,
                    document_type_id=payload.document_type_id,
                    document_category_id=payload.document_category_id,
                    status_document_id=status.id,
                    sequence_number=payload.sequence_number,
                    created_by=created_by,
                )
                stored = await self._upload(file, uploaded)
                version = await documents_repo.insert_version(
                    session,
                    document_control_id=control.id,
                    version=1,
                    file=stored.url,
                    object_key=stored.key,
                    status_document_id=status.id,
                    note=INITIAL_VERSION_NOTE,
                )
                await session.commit()
        except Exception:
            await self._discard(uploaded)
            raise
        logger.info("document_created uuid=%s created_by=%s key=%s", control.uuid, created_by, stored.key)
        return control, version

    async def update(
        self,
        session: AsyncSession,
        document_uuid: str,
        payload: DocumentControlPayload,
        file: UploadedFile | None = None,
    ) -> tuple[DocumentControl, DocumentVersion | None]:
        # Field updates never rewrite a version; a new file always appends one.
        publish_date = parse_publish_date(payload.publish_date)
        if file is not None:
            self.validate_upload(file)

        uploaded: list[StoredObject] = []
        version: DocumentVersion | None = None
        try:
            async with atomic(session, operation="update_document"):
                control = await self._require_document(session, document_uuid)
                await self._resolve_references(session, payload)
                if payload.status_document_id is not None:
                    status = await statuses_repo.get_status_by_id(session, payload.status_document_id)
                    if status is None or status.deleted_at is not None:
                        raise NotFoundError(f"status not found: {payload.status_document_id}")
                    control.status_document_id = status.id
                control.document_name = payload.document_name
                control.description = payload.description
                control.document_number = payload.document_number
                control.clause_number = payload.clause_number
                control.revision_number = payload.revision_number
                control.publish_date = publish_date
                control.page_count = payload.page_count
                control.document_type_id = payload.document_type_id
                control.document_category_id = payload.document_category_id
                control.sequence_number = payload.sequence_number
                await session.flush()
                if file is not None:
                    stored = await self._upload(file, uploaded)
                    version = await documents_repo.insert_version(
                        session,
                        document_control_id=control.id,
                        version=await documents_repo.next_version_number(session, control.id),
                        file=stored.url,
                        object_key=stored.key,
                        status_document_id=control.status_document_id,
                        note=UPDATED_VERSION_NOTE,
                    )
                await session.commit()
        except Exception:
            await self._discard(uploaded)
            raise
        logger.info(
            "document_updated uuid=%s new_version=%s",
            control.uuid,
            version.version if version is not None else None,
        )
        return control, version

    async def delete(self, session: AsyncSession, document_uuid: str) -> None:
        # A version is retired only once its object is gone; the control goes last.
        bucket = self._settings.object_store_bucket
        async with atomic(session, operation="delete_document"):
            control = await self._require_document(session, document_uuid)
            versions = await documents_repo.list_versions(session, control.id)
            now = _utc_now()
            removed = 0
            for version in versions:
                try:
                    await self._store.remove(bucket, version.object_key)
                except ObjectStoreError:
                    # Keep the retirements already backed by a removal; a retry finishes the rest.
                    await session.commit()
                    logger.warning(
                        "document_delete_incomplete uuid=%s removed=%s remaining=%s",
                        document_uuid,
                        removed,
                        len(versions) - removed,
                    )
                    raise
                version.deleted_at = now
                removed += 1
            control.deleted_at = now
            await session.commit()
        logger.info("document_deleted uuid=%s versions=%s", document_uuid, len(versions))

    async def get(self, session: AsyncSession, document_uuid: str, *, subject: str) -> DocumentControl:
        control = await self._require_document(session, document_uuid)
        if not await self._access.can_read_document(session, subject, control):
            raise AccessDeniedError(f"{subject} may not read document {document_uuid}")
        return control

    async def list_documents(
        self,
        session: AsyncSession,
        *,
        subject: str,
        search: str | None = None,
        category_id: int | None = None,
    ) -> list[DocumentControl]:
        # Non-owners only see documents whose scope and status they may read.
        controls = await documents_repo.list_documents(session, search=search, category_id=category_id)
        visible: list[DocumentControl] = []
        for control in controls:
            if await self._access.can_read_document(session, subject, control):
                visible.append(control)
        return visible

    async def list_versions(
        self, session: AsyncSession, document_uuid: str, *, subject: str
    ) -> list[DocumentVersion]:
        control = await self.get(session, document_uuid, subject=subject)
        return await documents_repo.list_versions(session, control.id)
