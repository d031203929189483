from __future__ import annotations

from typing import Any
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel, Field


API_VERSION = "v1"


class ResponseMeta(BaseModel):
    request_id: str
    api_version: str = Field(default=API_VERSION)
    # Subject the decision was made for; absent on unauthenticated failures.
    subject: str | None = None
    count: int | None = None


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorEnvelope(BaseModel):
    error: ErrorDetail
    meta: ResponseMeta


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
    return request_id


def _meta(request: Request, *, count: int | None = None) -> dict[str, Any]:
    meta = ResponseMeta(
        request_id=get_request_id(request),
        subject=getattr(request.state, "subject", None),
        count=count,
    )
    return meta.model_dump(exclude_none=True)


def success_response(*, request: Request, data: Any) -> dict[str, Any]:
    # Listings report their size so clients can tell a filtered-out result from an empty one.
    count = len(data) if isinstance(data, list) else None
    return {"data": data, "meta": _meta(request, count=count)}


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error = ErrorDetail(code=code, message=message, details=details)
    return {"error": error.model_dump(exclude_none=True), "meta": _meta(request)}
