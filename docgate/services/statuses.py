from __future__ import annotations

from datetime import datetime, timezone
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from docgate.core.config import get_settings
from docgate.core.errors import ConflictError, NotFoundError
from docgate.domain.models import StatusDocument
from docgate.domain.schemas import StatusDocumentPayload, parse_uuid
from docgate.persistence.db import atomic
from docgate.persistence.repos import statuses as statuses_repo


logger = logging.getLogger(__name__)


async def _require_status(session: AsyncSession, status_uuid: str) -> StatusDocument:
    status = await statuses_repo.get_status(session, parse_uuid(status_uuid))
    if status is None:
        raise NotFoundError(f"status not found: {status_uuid}")
    return status


async def create_status(session: AsyncSession, payload: StatusDocumentPayload) -> StatusDocument:
    # Names are unique case-insensitively because they map onto read actions.
    async with atomic(session, operation="create_status"):
        if await statuses_repo.get_status_by_name(session, payload.name) is not None:
            raise ConflictError(f"status already exists: {payload.name}")
        status = await statuses_repo.insert_status(session, name=payload.name)
        await session.commit()
    logger.info("status_created name=%s", status.name)
    return status


async def list_statuses(session: AsyncSession) -> list[StatusDocument]:
    return await statuses_repo.list_statuses(session)


async def get_status(session: AsyncSession, status_uuid: str) -> StatusDocument:
    return await _require_status(session, status_uuid)


async def update_status(
    session: AsyncSession, status_uuid: str, payload: StatusDocumentPayload
) -> StatusDocument:
    async with atomic(session, operation="update_status"):
        status = await _require_status(session, status_uuid)
        clash = await statuses_repo.get_status_by_name(session, payload.name)
        if clash is not None and clash.id != status.id:
            raise ConflictError(f"status already exists: {payload.name}")
        status.name = payload.name
        await session.commit()
    return status


async def delete_status(session: AsyncSession, status_uuid: str) -> None:
    async with atomic(session, operation="delete_status"):
        status = await _require_status(session, status_uuid)
        status.deleted_at = datetime.now(timezone.utc)
        await session.commit()
    logger.info("status_deleted name=%s", status.name)


async def seed_default_statuses(session: AsyncSession) -> list[StatusDocument]:
    # Idempotent; existing names are left untouched.
    settings = get_settings()
    seeded: list[StatusDocument] = []
    async with atomic(session, operation="seed_default_statuses"):
        for name in settings.default_status_names:
            status = await statuses_repo.get_status_by_name(session, name)
            if status is None:
                status = await statuses_repo.insert_status(session, name=name)
                logger.info("status_seeded name=%s", name)
            seeded.append(status)
        await session.commit()
    return seeded
