from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from docgate.domain.models import CategoryDocument, DocumentType, StatusDocument
from docgate.domain.schemas import CategoryPayload, DocumentTypePayload, StatusDocumentPayload
from docgate.services import statuses as status_service
from docgate.services.authz.tuples import PolicyTupleStore
from docgate.services.catalog import PolicyCatalog
from docgate.services.documents import UploadedFile
from docgate.services.roles import RoleRegistry
from docgate.services.taxonomy import DocumentTaxonomy


def pdf_upload(name: str = "manual.pdf", body: bytes = b"%PDF-1.7 test body") -> UploadedFile:
    # Small in-memory upload accepted by the default content-type allow list.
    return UploadedFile(filename=name, content_type="application/pdf", data=body)


def taxonomy_for(store: PolicyTupleStore) -> DocumentTaxonomy:
    return DocumentTaxonomy(PolicyCatalog(store), store)


async def create_role_with_member(
    session: AsyncSession, store: PolicyTupleStore, *, guard_name: str, user: str
) -> None:
    registry = RoleRegistry(store)
    await registry.create_role(session, name=guard_name.title(), guard_name=guard_name)
    await registry.assign_role(session, user=user, role_guard_name=guard_name)


async def seed_category(
    session: AsyncSession,
    store: PolicyTupleStore,
    *,
    prefix: str,
    rules: list[dict] | None = None,
) -> CategoryDocument:
    payload = CategoryPayload(name=f"{prefix} documents", prefix=prefix, role_has_rules=rules or [])
    result = await taxonomy_for(store).create_category(session, payload)
    return result.category


async def seed_type(
    session: AsyncSession,
    store: PolicyTupleStore,
    *,
    category: CategoryDocument,
    prefix: str,
    rules: list[dict] | None = None,
) -> DocumentType:
    payload = DocumentTypePayload(
        name=f"{prefix} type",
        prefix=prefix,
        document_category_id=category.id,
        role_has_rules=rules or [],
    )
    result = await taxonomy_for(store).create_type(session, payload)
    return result.doc_type


async def seed_status(session: AsyncSession, name: str) -> StatusDocument:
    return await status_service.create_status(session, StatusDocumentPayload(name=name))
