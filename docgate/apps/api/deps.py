from __future__ import annotations

import logging
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.core.config import get_settings
from docgate.core.errors import PolicyStoreError
from docgate.services.authz.decisions import AccessDecisionService
from docgate.services.authz.tuples import PolicyTupleStore
from docgate.services.catalog import PolicyCatalog
from docgate.services.documents import DocumentLifecycle
from docgate.services.roles import RoleRegistry
from docgate.services.taxonomy import DocumentTaxonomy


logger = logging.getLogger(__name__)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; the context manager closes it on success or error.
    async with request.app.state.session_factory() as session:
        yield session


class Principal(BaseModel):
    # Subject identifier verified by the upstream identity provider.
    subject: str


def _auth_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
    )


def _forbidden_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "AUTH_FORBIDDEN", "message": message},
    )


def get_tuple_store(request: Request) -> PolicyTupleStore:
    return request.app.state.tuple_store


def get_access(store: PolicyTupleStore = Depends(get_tuple_store)) -> AccessDecisionService:
    return AccessDecisionService(store)


def get_catalog(store: PolicyTupleStore = Depends(get_tuple_store)) -> PolicyCatalog:
    return PolicyCatalog(store)


def get_roles(store: PolicyTupleStore = Depends(get_tuple_store)) -> RoleRegistry:
    return RoleRegistry(store)


def get_taxonomy(store: PolicyTupleStore = Depends(get_tuple_store)) -> DocumentTaxonomy:
    return DocumentTaxonomy(PolicyCatalog(store), store)


def get_documents(
    request: Request,
    access: AccessDecisionService = Depends(get_access),
) -> DocumentLifecycle:
    return DocumentLifecycle(object_store=request.app.state.object_store, access=access)


async def get_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
    store: PolicyTupleStore = Depends(get_tuple_store),
) -> Principal:
    settings = get_settings()
    subject = (request.headers.get(settings.auth_subject_header) or "").strip()
    if not subject:
        raise _auth_error(f"{settings.auth_subject_header} header is required")
    request.state.subject = subject
    # Reload once per request to bound staleness from out-of-process tuple writes.
    if settings.policy_reload_on_request or not store.loaded:
        try:
            await store.load(db)
        except PolicyStoreError:
            # Keep serving from the previous tuple set; an unloaded store denies every check.
            logger.warning("policy_reload_failed subject=%s", subject, exc_info=True)
    return Principal(subject=subject)


def require_permission(resource: str, action: str) -> Callable[..., Awaitable[Principal]]:
    # Unscoped RBAC gate evaluated before any handler mutates state.
    async def _dependency(
        principal: Principal = Depends(get_principal),
        access: AccessDecisionService = Depends(get_access),
    ) -> Principal:
        if not access.check(principal.subject, resource, action):
            raise _forbidden_error(f"{action} on {resource} is not permitted")
        return principal

    return _dependency
