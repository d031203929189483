from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from docgate.core.errors import ConflictError, NotFoundError, ScopeResolutionError
from docgate.domain.models import CategoryDocument, DocumentType, RoleHasRule
from docgate.domain.schemas import (
    CategoryPayload,
    DocumentTypePayload,
    flatten_scoped_rules,
    parse_uuid,
)
from docgate.domain.scope import Scope
from docgate.persistence.db import atomic
from docgate.persistence.repos import catalog as catalog_repo
from docgate.persistence.repos import taxonomy as taxonomy_repo
from docgate.services.authz.tuples import PolicyTupleStore
from docgate.services.catalog import PolicyCatalog


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CategoryWithRules:
    category: CategoryDocument
    rules: list[RoleHasRule]


@dataclass(frozen=True)
class TypeWithRules:
    doc_type: DocumentType
    category_prefix: str
    rules: list[RoleHasRule]


class DocumentTaxonomy:
    """Categories and document types whose prefixes double as rule scopes.

    Every create and update runs the entity write and the matching catalog and
    tuple changes in one unit of work. Deletes are soft and leave rules in place.
    """

    def __init__(self, catalog: PolicyCatalog, tuple_store: PolicyTupleStore) -> None:
        self._catalog = catalog
        self._tuples = tuple_store

    async def _require_category(self, session: AsyncSession, category_uuid: str) -> CategoryDocument:
        category = await taxonomy_repo.get_category(session, parse_uuid(category_uuid))
        if category is None:
            raise NotFoundError(f"category not found: {category_uuid}")
        return category

    async def _require_type(self, session: AsyncSession, type_uuid: str) -> DocumentType:
        doc_type = await taxonomy_repo.get_type(session, parse_uuid(type_uuid))
        if doc_type is None:
            raise NotFoundError(f"document type not found: {type_uuid}")
        return doc_type

    async def _live_category_by_id(self, session: AsyncSession, category_id: int) -> CategoryDocument:
        category = await taxonomy_repo.get_category_by_id(session, category_id)
        if category is None or category.deleted_at is not None:
            raise NotFoundError(f"category not found: {category_id}")
        return category

    async def create_category(self, session: AsyncSession, payload: CategoryPayload) -> CategoryWithRules:
        async with atomic(session, operation="create_category"):
            if await taxonomy_repo.get_category_by_prefix(session, payload.prefix) is not None:
                raise ConflictError(f"category prefix already exists: {payload.prefix}")
            category = await taxonomy_repo.insert_category(session, name=payload.name, prefix=payload.prefix)
            rules = await self._catalog.stage_scoped_rules(
                session,
                category=category.prefix,
                type_=Scope.NONE,
                desired=flatten_scoped_rules(payload.role_has_rules),
            )
            await self._tuples.save(session)
        logger.info("category_created prefix=%s rules=%s", category.prefix, len(rules))
        return CategoryWithRules(category=category, rules=rules)

    async def update_category(
        self, session: AsyncSession, category_uuid: str, payload: CategoryPayload
    ) -> CategoryWithRules:
        async with atomic(session, operation="update_category"):
            category = await self._require_category(session, category_uuid)
            old_prefix = category.prefix
            if payload.prefix != old_prefix:
                clash = await taxonomy_repo.get_category_by_prefix(session, payload.prefix)
                if clash is not None:
                    raise ConflictError(f"category prefix already exists: {payload.prefix}")
            category.name = payload.name
            category.prefix = payload.prefix
            await session.flush()
            rules = await self._catalog.stage_category_scoped_update(
                session,
                old_category=old_prefix,
                old_type=Scope.NONE,
                new_category=payload.prefix,
                new_type=Scope.NONE,
                desired=flatten_scoped_rules(payload.role_has_rules),
            )
            if payload.prefix != old_prefix:
                # Type-scoped rules carry the category prefix as well.
                renamed = await catalog_repo.rescope_category(
                    session, old_category=old_prefix, new_category=payload.prefix
                )
                await self._tuples.rescope_category(
                    session, old_category=old_prefix, new_category=payload.prefix
                )
                logger.info(
                    "category_prefix_renamed old=%s new=%s type_rules=%s",
                    old_prefix,
                    payload.prefix,
                    renamed,
                )
            await self._tuples.save(session)
        return CategoryWithRules(category=category, rules=rules)

    async def delete_category(self, session: AsyncSession, category_uuid: str) -> None:
        # Soft delete only; rules scoped to the prefix stay enforceable.
        async with atomic(session, operation="delete_category"):
            category = await self._require_category(session, category_uuid)
            await taxonomy_repo.soft_delete_category(session, category, now=_utc_now())
            await session.commit()
        logger.info("category_deleted prefix=%s", category.prefix)

    async def get_category(self, session: AsyncSession, category_uuid: str) -> CategoryWithRules:
        category = await self._require_category(session, category_uuid)
        rules = await catalog_repo.list_rules_in_scope(session, category=category.prefix)
        return CategoryWithRules(category=category, rules=rules)

    async def list_categories(
        self, session: AsyncSession, *, search: str | None = None
    ) -> list[CategoryWithRules]:
        categories = await taxonomy_repo.list_categories(session, search=search)
        entries: list[CategoryWithRules] = []
        for category in categories:
            rules = await catalog_repo.list_rules_in_scope(session, category=category.prefix)
            entries.append(CategoryWithRules(category=category, rules=rules))
        return entries

    async def create_type(self, session: AsyncSession, payload: DocumentTypePayload) -> TypeWithRules:
        async with atomic(session, operation="create_type"):
            category = await self._live_category_by_id(session, payload.document_category_id)
            if await taxonomy_repo.get_type_by_prefix(session, payload.prefix) is not None:
                raise ConflictError(f"document type prefix already exists: {payload.prefix}")
            doc_type = await taxonomy_repo.insert_type(
                session,
                name=payload.name,
                prefix=payload.prefix,
                document_category_id=category.id,
            )
            rules = await self._catalog.stage_scoped_rules(
                session,
                category=category.prefix,
                type_=doc_type.prefix,
                desired=flatten_scoped_rules(payload.role_has_rules),
            )
            await self._tuples.save(session)
        logger.info(
            "document_type_created category=%s prefix=%s rules=%s",
            category.prefix,
            doc_type.prefix,
            len(rules),
        )
        return TypeWithRules(doc_type=doc_type, category_prefix=category.prefix, rules=rules)

    async def update_type(
        self, session: AsyncSession, type_uuid: str, payload: DocumentTypePayload
    ) -> TypeWithRules:
        async with atomic(session, operation="update_type"):
            doc_type = await self._require_type(session, type_uuid)
            old_category = await taxonomy_repo.get_category_by_id(session, doc_type.document_category_id)
            if old_category is None:
                raise ScopeResolutionError(
                    f"document type {doc_type.uuid} references missing category {doc_type.document_category_id}"
                )
            new_category = await self._live_category_by_id(session, payload.document_category_id)
            old_category_prefix = old_category.prefix
            old_prefix = doc_type.prefix
            if payload.prefix != old_prefix:
                clash = await taxonomy_repo.get_type_by_prefix(session, payload.prefix)
                if clash is not None:
                    raise ConflictError(f"document type prefix already exists: {payload.prefix}")
            doc_type.name = payload.name
            doc_type.prefix = payload.prefix
            doc_type.document_category_id = new_category.id
            await session.flush()
            rules = await self._catalog.stage_category_scoped_update(
                session,
                old_category=old_category_prefix,
                old_type=old_prefix,
                new_category=new_category.prefix,
                new_type=payload.prefix,
                desired=flatten_scoped_rules(payload.role_has_rules),
            )
            await self._tuples.save(session)
        logger.info(
            "document_type_updated old=%s/%s new=%s/%s",
            old_category_prefix,
            old_prefix,
            new_category.prefix,
            payload.prefix,
        )
        return TypeWithRules(doc_type=doc_type, category_prefix=new_category.prefix, rules=rules)

    async def delete_type(self, session: AsyncSession, type_uuid: str) -> None:
        async with atomic(session, operation="delete_type"):
            doc_type = await self._require_type(session, type_uuid)
            await taxonomy_repo.soft_delete_type(session, doc_type, now=_utc_now())
            await session.commit()
        logger.info("document_type_deleted prefix=%s", doc_type.prefix)

    async def _with_rules(self, session: AsyncSession, doc_type: DocumentType) -> TypeWithRules:
        category = await taxonomy_repo.get_category_by_id(session, doc_type.document_category_id)
        if category is None:
            raise ScopeResolutionError(
                f"document type {doc_type.uuid} references missing category {doc_type.document_category_id}"
            )
        rules = await catalog_repo.list_rules_in_scope(
            session, category=category.prefix, type_=doc_type.prefix
        )
        return TypeWithRules(doc_type=doc_type, category_prefix=category.prefix, rules=rules)

    async def get_type(self, session: AsyncSession, type_uuid: str) -> TypeWithRules:
        doc_type = await self._require_type(session, type_uuid)
        return await self._with_rules(session, doc_type)

    async def list_types(
        self,
        session: AsyncSession,
        *,
        search: str | None = None,
        category_id: int | None = None,
    ) -> list[TypeWithRules]:
        types = await taxonomy_repo.list_types(session, search=search, category_id=category_id)
        return [await self._with_rules(session, doc_type) for doc_type in types]
