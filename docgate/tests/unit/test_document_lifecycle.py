from __future__ import annotations

import pytest
from sqlalchemy import func, select

from docgate.core.config import get_settings
from docgate.core.errors import AccessDeniedError, InputValidationError, NotFoundError, ObjectStoreError
from docgate.domain.models import DocumentControl, DocumentVersion
from docgate.domain.schemas import DocumentControlPayload
from docgate.providers.storage.fake import FakeObjectStore
from docgate.services import statuses as status_service
from docgate.services.authz.decisions import AccessDecisionService
from docgate.services.documents import DocumentLifecycle, UploadedFile
from docgate.tests.utils.seed import create_role_with_member, pdf_upload, seed_category, seed_type


async def _taxonomy(session, tuple_store):
    await status_service.seed_default_statuses(session)
    category = await seed_category(session, tuple_store, prefix="FIN")
    doc_type = await seed_type(
        session,
        tuple_store,
        category=category,
        prefix="INV",
        rules=[{"role_guard_name": "finance-clerk", "action": ["draft"]}],
    )
    return category, doc_type


def _payload(category, doc_type, **overrides) -> DocumentControlPayload:
    fields = {
        "document_name": "Invoice handling",
        "document_number": "FIN-INV-001",
        "publish_date": "2026-01-15",
        "document_type_id": doc_type.id,
        "document_category_id": category.id,
    }
    fields.update(overrides)
    return DocumentControlPayload(**fields)


def _lifecycle(tuple_store, object_store) -> DocumentLifecycle:
    return DocumentLifecycle(object_store=object_store, access=AccessDecisionService(tuple_store))


async def _count(session, model) -> int:
    return await session.scalar(select(func.count()).select_from(model))


@pytest.mark.asyncio
async def test_create_stores_a_public_first_version(session, tuple_store, object_store) -> None:
    category, doc_type = await _taxonomy(session, tuple_store)
    control, version = await _lifecycle(tuple_store, object_store).create(
        session, _payload(category, doc_type), pdf_upload(), created_by="alice"
    )

    bucket = get_settings().object_store_bucket
    assert version.version == 1
    assert version.object_key.startswith("document-versions/")
    assert version.object_key.endswith(".pdf")
    assert version.file.endswith(f"/{bucket}/{version.object_key}")
    assert object_store.keys(bucket) == [version.object_key]
    assert (bucket, version.object_key) in object_store.public
    assert control.created_by == "alice"


@pytest.mark.asyncio
async def test_upload_failure_leaves_no_rows(session, tuple_store) -> None:
    category, doc_type = await _taxonomy(session, tuple_store)
    payload = _payload(category, doc_type)
    lifecycle = _lifecycle(tuple_store, FakeObjectStore(fail_on_put=True))

    with pytest.raises(ObjectStoreError):
        await lifecycle.create(session, payload, pdf_upload(), created_by="alice")
    assert await _count(session, DocumentControl) == 0
    assert await _count(session, DocumentVersion) == 0


@pytest.mark.asyncio
async def test_acl_failure_removes_the_uploaded_object(session, tuple_store) -> None:
    category, doc_type = await _taxonomy(session, tuple_store)
    payload = _payload(category, doc_type)
    store = FakeObjectStore(fail_on_make_public=True)

    with pytest.raises(ObjectStoreError):
        await _lifecycle(tuple_store, store).create(session, payload, pdf_upload(), created_by="alice")
    assert store.keys(get_settings().object_store_bucket) == []
    assert await _count(session, DocumentControl) == 0


@pytest.mark.asyncio
async def test_uploads_are_validated_before_persistence(session, tuple_store, object_store) -> None:
    category, doc_type = await _taxonomy(session, tuple_store)
    payload = _payload(category, doc_type)
    lifecycle = _lifecycle(tuple_store, object_store)

    with pytest.raises(InputValidationError):
        await lifecycle.create(session, payload, None, created_by="alice")
    with pytest.raises(InputValidationError):
        await lifecycle.create(
            session, payload, UploadedFile("notes.txt", "text/plain", b"hello"), created_by="alice"
        )
    with pytest.raises(InputValidationError):
        await lifecycle.create(
            session,
            payload.model_copy(update={"publish_date": "15/01/2026"}),
            pdf_upload(),
            created_by="alice",
        )
    assert await _count(session, DocumentControl) == 0
    assert object_store.buckets == {}


@pytest.mark.asyncio
async def test_type_must_belong_to_the_category(session, tuple_store, object_store) -> None:
    category, doc_type = await _taxonomy(session, tuple_store)
    legal = await seed_category(session, tuple_store, prefix="LEG")
    with pytest.raises(InputValidationError):
        await _lifecycle(tuple_store, object_store).create(
            session,
            _payload(category, doc_type, document_category_id=legal.id),
            pdf_upload(),
            created_by="alice",
        )


@pytest.mark.asyncio
async def test_updates_append_versions(session, tuple_store, object_store) -> None:
    category, doc_type = await _taxonomy(session, tuple_store)
    lifecycle = _lifecycle(tuple_store, object_store)
    control, first = await lifecycle.create(session, _payload(category, doc_type), pdf_upload(), created_by="alice")
    first_key = first.object_key

    _, none_added = await lifecycle.update(
        session, control.uuid, _payload(category, doc_type, document_name="Renamed")
    )
    _, second = await lifecycle.update(
        session, control.uuid, _payload(category, doc_type), pdf_upload("v2.pdf", b"%PDF second")
    )

    assert none_added is None
    assert second.version == 2
    versions = await lifecycle.list_versions(session, control.uuid, subject="alice")
    assert [version.version for version in versions] == [1, 2]
    assert versions[0].object_key == first_key
    assert len(object_store.keys(get_settings().object_store_bucket)) == 2


@pytest.mark.asyncio
async def test_update_can_change_status(session, tuple_store, object_store) -> None:
    category, doc_type = await _taxonomy(session, tuple_store)
    lifecycle = _lifecycle(tuple_store, object_store)
    statuses = {status.name: status for status in await status_service.list_statuses(session)}
    control, _ = await lifecycle.create(session, _payload(category, doc_type), pdf_upload(), created_by="alice")

    updated, _ = await lifecycle.update(
        session,
        control.uuid,
        _payload(category, doc_type, status_document_id=statuses["Published"].id),
    )
    assert updated.status_document_id == statuses["Published"].id


@pytest.mark.asyncio
async def test_delete_failure_keeps_the_document(session, tuple_store) -> None:
    category, doc_type = await _taxonomy(session, tuple_store)
    store = FakeObjectStore()
    lifecycle = _lifecycle(tuple_store, store)
    control, _ = await lifecycle.create(session, _payload(category, doc_type), pdf_upload(), created_by="alice")
    control_uuid = control.uuid

    store.fail_on_remove = True
    with pytest.raises(ObjectStoreError):
        await lifecycle.delete(session, control_uuid)
    assert (await lifecycle.get(session, control_uuid, subject="alice")).uuid == control_uuid

    store.fail_on_remove = False
    await lifecycle.delete(session, control_uuid)
    assert store.keys(get_settings().object_store_bucket) == []
    with pytest.raises(NotFoundError):
        await lifecycle.get(session, control_uuid, subject="alice")


@pytest.mark.asyncio
async def test_partial_delete_never_leaves_live_versions_without_objects(session, tuple_store) -> None:
    category, doc_type = await _taxonomy(session, tuple_store)
    store = FakeObjectStore()
    lifecycle = _lifecycle(tuple_store, store)
    control, _ = await lifecycle.create(session, _payload(category, doc_type), pdf_upload(), created_by="alice")
    control_id, control_uuid = control.id, control.uuid
    await lifecycle.update(session, control_uuid, _payload(category, doc_type), pdf_upload("v2.pdf", b"%PDF two"))

    store.removes_before_failure = 1
    with pytest.raises(ObjectStoreError):
        await lifecycle.delete(session, control_uuid)

    bucket = get_settings().object_store_bucket
    live = (
        await session.execute(
            select(DocumentVersion).where(
                DocumentVersion.document_control_id == control_id,
                DocumentVersion.deleted_at.is_(None),
            )
        )
    ).scalars().all()
    assert [version.version for version in live] == [2]
    assert all(version.object_key in store.keys(bucket) for version in live)
    assert (await lifecycle.get(session, control_uuid, subject="alice")).uuid == control_uuid

    store.removes_before_failure = None
    await lifecycle.delete(session, control_uuid)
    assert store.keys(bucket) == []
    with pytest.raises(NotFoundError):
        await lifecycle.get(session, control_uuid, subject="alice")


@pytest.mark.asyncio
async def test_read_gate_uses_scope_and_status(session, tuple_store, object_store) -> None:
    category, doc_type = await _taxonomy(session, tuple_store)
    lifecycle = _lifecycle(tuple_store, object_store)
    control, _ = await lifecycle.create(session, _payload(category, doc_type), pdf_upload(), created_by="alice")

    with pytest.raises(AccessDeniedError):
        await lifecycle.get(session, control.uuid, subject="bob")
    assert await lifecycle.list_documents(session, subject="bob") == []

    # The role holds the "draft" action under FIN/INV, matching the document's status.
    await create_role_with_member(session, tuple_store, guard_name="finance-clerk", user="bob")
    assert (await lifecycle.get(session, control.uuid, subject="bob")).uuid == control.uuid
    assert [doc.uuid for doc in await lifecycle.list_documents(session, subject="bob")] == [control.uuid]
