from __future__ import annotations

from dataclasses import dataclass, field
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.core.errors import AccessDeniedError, ScopeResolutionError
from docgate.domain.models import DocumentControl
from docgate.domain.scope import RESOURCE_DOCUMENT, Scope, scope_value
from docgate.persistence.repos import statuses as statuses_repo
from docgate.persistence.repos import taxonomy as taxonomy_repo
from docgate.services.authz.tuples import PolicyTupleStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentScope:
    # Resolved scope and the status-derived action used by the read gate.
    category: str
    type: str
    action: str


@dataclass
class PermissionSummary:
    subject: str
    roles: list[str] = field(default_factory=list)
    abilities: list[dict[str, str]] = field(default_factory=list)


class AccessDecisionService:
    def __init__(self, tuple_store: PolicyTupleStore) -> None:
        self._tuples = tuple_store

    def check(
        self,
        subject: str,
        resource: str,
        action: str,
        category: str | Scope = Scope.NONE,
        type_: str | Scope = Scope.NONE,
    ) -> bool:
        # Fail closed: any evaluation error is a denial, never a pass.
        try:
            allowed = self._tuples.enforce(subject, resource, action, category, type_)
        except Exception:
            logger.warning(
                "access_check_failed_closed subject=%s resource=%s action=%s category=%s type=%s",
                subject,
                resource,
                action,
                scope_value(category),
                scope_value(type_),
                exc_info=True,
            )
            return False
        if not allowed:
            logger.info(
                "access_denied subject=%s resource=%s action=%s category=%s type=%s",
                subject,
                resource,
                action,
                scope_value(category),
                scope_value(type_),
            )
        return allowed

    def require(
        self,
        subject: str,
        resource: str,
        action: str,
        category: str | Scope = Scope.NONE,
        type_: str | Scope = Scope.NONE,
    ) -> None:
        if not self.check(subject, resource, action, category, type_):
            raise AccessDeniedError(f"{subject} may not {action} {resource}")

    def permission_summary(self, subject: str) -> PermissionSummary:
        # The subject's own grants followed by those of each bound role.
        summary = PermissionSummary(subject=subject)
        summary.roles = self._tuples.roles_of(subject)
        seen: set[tuple[str, str, str, str]] = set()
        for holder in [subject, *summary.roles]:
            for policy in self._tuples.tuples_of(holder):
                key = (policy.resource, policy.action, policy.category, policy.type)
                if key in seen:
                    continue
                seen.add(key)
                summary.abilities.append(
                    {
                        "resource": policy.resource,
                        "action": policy.action,
                        "category": policy.category,
                        "type": policy.type,
                    }
                )
        return summary

    async def resolve_document_scope(
        self, session: AsyncSession, control: DocumentControl
    ) -> DocumentScope:
        # Dangling references raise instead of degrading to an unscoped check.
        category = await taxonomy_repo.get_category_by_id(session, control.document_category_id)
        if category is None:
            raise ScopeResolutionError(
                f"document {control.uuid} references missing category {control.document_category_id}"
            )
        doc_type = await taxonomy_repo.get_type_by_id(session, control.document_type_id)
        if doc_type is None:
            raise ScopeResolutionError(
                f"document {control.uuid} references missing type {control.document_type_id}"
            )
        status = await statuses_repo.get_status_by_id(session, control.status_document_id)
        if status is None:
            raise ScopeResolutionError(
                f"document {control.uuid} references missing status {control.status_document_id}"
            )
        return DocumentScope(
            category=category.prefix,
            type=doc_type.prefix,
            action=status.name.strip().lower(),
        )

    async def can_read_document(
        self, session: AsyncSession, subject: str, control: DocumentControl
    ) -> bool:
        if control.created_by == subject:
            return True
        try:
            scope = await self.resolve_document_scope(session, control)
        except (ScopeResolutionError, SQLAlchemyError):
            logger.warning(
                "document_scope_unresolved uuid=%s subject=%s", control.uuid, subject, exc_info=True
            )
            return False
        return self.check(subject, RESOURCE_DOCUMENT, scope.action, scope.category, scope.type)
