from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.domain.models import CategoryDocument, DocumentType


async def get_category_by_id(session: AsyncSession, category_id: int) -> CategoryDocument | None:
    # Includes soft-deleted rows; documents keep resolving their scope after a delete.
    result = await session.execute(select(CategoryDocument).where(CategoryDocument.id == category_id))
    return result.scalar_one_or_none()


async def get_category(session: AsyncSession, category_uuid: str) -> CategoryDocument | None:
    result = await session.execute(
        select(CategoryDocument).where(
            CategoryDocument.uuid == category_uuid,
            CategoryDocument.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def get_category_by_prefix(session: AsyncSession, prefix: str) -> CategoryDocument | None:
    # Prefix uniqueness spans soft-deleted rows as well.
    result = await session.execute(select(CategoryDocument).where(CategoryDocument.prefix == prefix))
    return result.scalar_one_or_none()


async def list_categories(session: AsyncSession, *, search: str | None = None) -> list[CategoryDocument]:
    stmt = select(CategoryDocument).where(CategoryDocument.deleted_at.is_(None))
    if search:
        stmt = stmt.where(func.lower(CategoryDocument.name).like(f"%{search.lower()}%"))
    result = await session.execute(stmt.order_by(CategoryDocument.name, CategoryDocument.id))
    return list(result.scalars().all())


async def insert_category(session: AsyncSession, *, name: str, prefix: str) -> CategoryDocument:
    category = CategoryDocument(name=name, prefix=prefix)
    session.add(category)
    await session.flush()
    return category


async def soft_delete_category(session: AsyncSession, category: CategoryDocument, *, now: datetime) -> None:
    category.deleted_at = now
    await session.flush()


async def get_type_by_id(session: AsyncSession, type_id: int) -> DocumentType | None:
    result = await session.execute(select(DocumentType).where(DocumentType.id == type_id))
    return result.scalar_one_or_none()


async def get_type(session: AsyncSession, type_uuid: str) -> DocumentType | None:
    result = await session.execute(
        select(DocumentType).where(
            DocumentType.uuid == type_uuid,
            DocumentType.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def get_type_by_prefix(session: AsyncSession, prefix: str) -> DocumentType | None:
    result = await session.execute(select(DocumentType).where(DocumentType.prefix == prefix))
    return result.scalar_one_or_none()


async def list_types(
    session: AsyncSession,
    *,
    search: str | None = None,
    category_id: int | None = None,
) -> list[DocumentType]:
    stmt = select(DocumentType).where(DocumentType.deleted_at.is_(None))
    if search:
        stmt = stmt.where(func.lower(DocumentType.name).like(f"%{search.lower()}%"))
    if category_id is not None:
        stmt = stmt.where(DocumentType.document_category_id == category_id)
    result = await session.execute(stmt.order_by(DocumentType.name, DocumentType.id))
    return list(result.scalars().all())


async def insert_type(
    session: AsyncSession, *, name: str, prefix: str, document_category_id: int
) -> DocumentType:
    doc_type = DocumentType(name=name, prefix=prefix, document_category_id=document_category_id)
    session.add(doc_type)
    await session.flush()
    return doc_type


async def soft_delete_type(session: AsyncSession, doc_type: DocumentType, *, now: datetime) -> None:
    doc_type.deleted_at = now
    await session.flush()
