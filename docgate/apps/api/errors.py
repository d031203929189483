from __future__ import annotations

from http import HTTPStatus
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from docgate.apps.api.response import ErrorEnvelope, error_response
from docgate.core.errors import (
    AccessDeniedError,
    ConflictError,
    DependencyFailureError,
    DocgateError,
    InputValidationError,
    NotFoundError,
    ObjectStoreError,
    PolicyStoreError,
    ProviderConfigError,
    ScopeResolutionError,
)


logger = logging.getLogger(__name__)

# Most specific classes first; the first isinstance match wins.
_DOMAIN_ERRORS: list[tuple[type[DocgateError], int, str]] = [
    (ConflictError, 409, "CONFLICT"),
    (ScopeResolutionError, 404, "SCOPE_UNRESOLVED"),
    (NotFoundError, 404, "NOT_FOUND"),
    (InputValidationError, 422, "VALIDATION_ERROR"),
    (AccessDeniedError, 403, "AUTH_FORBIDDEN"),
    (ObjectStoreError, 502, "OBJECT_STORE_ERROR"),
    (PolicyStoreError, 502, "POLICY_STORE_ERROR"),
    (DependencyFailureError, 502, "DEPENDENCY_FAILURE"),
    (ProviderConfigError, 500, "PROVIDER_CONFIG_ERROR"),
]

_AUTH_CODES = {401: "AUTH_UNAUTHORIZED", 403: "AUTH_FORBIDDEN"}

DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status_code: {"model": ErrorEnvelope}
    for status_code in (401, 403, 404, 409, 422, 502)
}


def _status_code_name(status_code: int) -> str:
    if status_code in _AUTH_CODES:
        return _AUTH_CODES[status_code]
    try:
        return HTTPStatus(status_code).name
    except ValueError:
        return "HTTP_ERROR"


def domain_error_status(exc: DocgateError) -> tuple[int, str]:
    for error_type, status_code, code in _DOMAIN_ERRORS:
        if isinstance(exc, error_type):
            return status_code, code
    return 500, "INTERNAL_ERROR"


async def domain_exception_handler(request: Request, exc: DocgateError) -> JSONResponse:
    status_code, code = domain_error_status(exc)
    if status_code >= 500:
        logger.warning("request_failed path=%s code=%s", request.url.path, code, exc_info=exc)
    payload = error_response(request=request, code=code, message=str(exc) or code)
    return JSONResponse(content=payload, status_code=status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Dependencies raise with {"code", "message"} details; routing errors carry a plain string.
    detail = exc.detail if isinstance(exc.detail, dict) else {"message": exc.detail}
    extra = {key: value for key, value in detail.items() if key not in ("code", "message")}
    payload = error_response(
        request=request,
        code=str(detail.get("code") or _status_code_name(exc.status_code)),
        message=str(detail.get("message") or HTTPStatus(exc.status_code).phrase),
        details=extra or None,
    )
    return JSONResponse(content=payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Pydantic error contexts may hold exception instances; keep only plain fields.
    errors = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": str(error.get("msg", "")),
            "type": str(error.get("type", "")),
        }
        for error in exc.errors()
    ]
    payload = error_response(
        request=request,
        code="REQUEST_VALIDATION_ERROR",
        message=f"{len(errors)} request field(s) failed validation",
        details={"errors": errors},
    )
    return JSONResponse(content=payload, status_code=422)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Never leak stack traces to clients.
    logger.exception("request_unhandled_error path=%s", request.url.path, exc_info=exc)
    payload = error_response(request=request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)


def install_exception_handlers(app: FastAPI) -> None:
    # fastapi.HTTPException subclasses Starlette's, so one registration covers both.
    app.add_exception_handler(DocgateError, domain_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
