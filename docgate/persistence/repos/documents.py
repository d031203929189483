from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.domain.models import DocumentControl, DocumentVersion


async def get_document(session: AsyncSession, document_uuid: str) -> DocumentControl | None:
    result = await session.execute(
        select(DocumentControl).where(
            DocumentControl.uuid == document_uuid,
            DocumentControl.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def list_documents(
    session: AsyncSession,
    *,
    search: str | None = None,
    category_id: int | None = None,
) -> list[DocumentControl]:
    stmt = select(DocumentControl).where(DocumentControl.deleted_at.is_(None))
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(DocumentControl.document_name).like(pattern),
                func.lower(DocumentControl.document_number).like(pattern),
            )
        )
    if category_id is not None:
        stmt = stmt.where(DocumentControl.document_category_id == category_id)
    # Newest first keeps listings stable for the same data set.
    result = await session.execute(stmt.order_by(DocumentControl.created_at.desc(), DocumentControl.id.desc()))
    return list(result.scalars().all())


async def insert_document(session: AsyncSession, **fields: object) -> DocumentControl:
    control = DocumentControl(**fields)
    session.add(control)
    await session.flush()
    return control


async def list_versions(session: AsyncSession, document_control_id: int) -> list[DocumentVersion]:
    result = await session.execute(
        select(DocumentVersion)
        .where(
            DocumentVersion.document_control_id == document_control_id,
            DocumentVersion.deleted_at.is_(None),
        )
        .order_by(DocumentVersion.version, DocumentVersion.id)
    )
    return list(result.scalars().all())


async def next_version_number(session: AsyncSession, document_control_id: int) -> int:
    # Counts soft-deleted rows too so a number is never reused.
    result = await session.execute(
        select(func.max(DocumentVersion.version)).where(
            DocumentVersion.document_control_id == document_control_id
        )
    )
    current = result.scalar_one_or_none()
    return int(current or 0) + 1


async def insert_version(
    session: AsyncSession,
    *,
    document_control_id: int,
    version: int,
    file: str,
    object_key: str,
    status_document_id: int | None,
    note: str,
) -> DocumentVersion:
    row = DocumentVersion(
        document_control_id=document_control_id,
        version=version,
        file=file,
        object_key=object_key,
        status_document_id=status_document_id,
        note=note,
    )
    session.add(row)
    await session.flush()
    return row
