from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import time
from typing import AsyncIterator, Awaitable, Callable
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docgate.apps.api.errors import install_exception_handlers
from docgate.apps.api.response import API_VERSION
from docgate.apps.api.routes.access import router as access_router
from docgate.apps.api.routes.categories import router as categories_router
from docgate.apps.api.routes.documents import router as documents_router
from docgate.apps.api.routes.roles import router as roles_router
from docgate.apps.api.routes.rules import router as rules_router
from docgate.apps.api.routes.statuses import router as statuses_router
from docgate.apps.api.routes.types import router as types_router
from docgate.core.config import get_settings
from docgate.core.errors import DocgateError
from docgate.core.logging import configure_logging
from docgate.persistence.db import SessionLocal
from docgate.providers.storage.base import ObjectStore
from docgate.providers.storage.factory import get_object_store
from docgate.services.authz.tuples import PolicyTupleStore


logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Warm the enforcer once; request-time reloads keep it current afterwards.
    store: PolicyTupleStore = app.state.tuple_store
    try:
        async with app.state.session_factory() as session:
            count = await store.load(session)
        logger.info("policy_tuples_warmed count=%s", count)
    except (DocgateError, SQLAlchemyError):
        logger.warning("policy_tuples_warm_failed", exc_info=True)
    yield


async def _request_context(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    request.state.request_id = request.headers.get("X-Request-Id") or uuid4().hex
    started = time.perf_counter()
    response = await call_next(request)
    logger.debug(
        "request_completed method=%s path=%s status=%s subject=%s latency_ms=%.1f",
        request.method,
        request.url.path,
        response.status_code,
        getattr(request.state, "subject", None),
        (time.perf_counter() - started) * 1000.0,
    )
    response.headers.setdefault("X-Request-Id", request.state.request_id)
    return response


_ROUTERS = (
    access_router,
    roles_router,
    rules_router,
    categories_router,
    types_router,
    statuses_router,
    documents_router,
)


def create_app(
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    tuple_store: PolicyTupleStore | None = None,
    object_store: ObjectStore | None = None,
) -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="docgate API", lifespan=_lifespan)
    # One enforcer per process, constructed here and shared through app.state.
    app.state.session_factory = session_factory or SessionLocal
    app.state.tuple_store = tuple_store or PolicyTupleStore.from_settings(settings)
    app.state.object_store = object_store or get_object_store(settings)

    app.middleware("http")(_request_context)
    install_exception_handlers(app)
    for router in _ROUTERS:
        app.include_router(router, prefix=f"/{API_VERSION}")
    return app
