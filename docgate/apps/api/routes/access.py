from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from docgate.apps.api.deps import Principal, get_access, get_principal
from docgate.apps.api.errors import DEFAULT_ERROR_RESPONSES
from docgate.apps.api.response import success_response
from docgate.domain.scope import Scope
from docgate.services.authz.decisions import AccessDecisionService


router = APIRouter(prefix="/access", tags=["access"], responses=DEFAULT_ERROR_RESPONSES)


class AbilityResponse(BaseModel):
    resource: str
    action: str
    category: str
    type: str


class PermissionSummaryResponse(BaseModel):
    subject: str
    roles: list[str]
    abilities: list[AbilityResponse]


class AccessCheckResponse(BaseModel):
    allowed: bool


@router.get("/me")
async def get_my_permissions(
    request: Request,
    principal: Principal = Depends(get_principal),
    access: AccessDecisionService = Depends(get_access),
) -> dict:
    # Login-time summary: the subject's own grants plus those of its roles.
    summary = access.permission_summary(principal.subject)
    payload = PermissionSummaryResponse(
        subject=summary.subject,
        roles=summary.roles,
        abilities=[AbilityResponse(**ability) for ability in summary.abilities],
    )
    return success_response(request=request, data=payload.model_dump())


@router.get("/check")
async def check_access(
    request: Request,
    resource: str = Query(min_length=1),
    action: str = Query(min_length=1),
    category: str = Query(default=Scope.NONE.value),
    type: str = Query(default=Scope.NONE.value),
    principal: Principal = Depends(get_principal),
    access: AccessDecisionService = Depends(get_access),
) -> dict:
    # Evaluate a single decision for the calling subject only.
    allowed = access.check(principal.subject, resource, action, category, type)
    return success_response(request=request, data=AccessCheckResponse(allowed=allowed).model_dump())
