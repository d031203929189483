from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.apps.api.deps import Principal, get_db, get_documents, get_principal, require_permission
from docgate.apps.api.errors import DEFAULT_ERROR_RESPONSES
from docgate.apps.api.response import success_response
from docgate.core.errors import InputValidationError
from docgate.domain.models import DocumentControl, DocumentVersion
from docgate.domain.schemas import DocumentControlPayload
from docgate.domain.scope import RESOURCE_DOCUMENT
from docgate.services.documents import DocumentLifecycle, UploadedFile


router = APIRouter(prefix="/documents", tags=["documents"], responses=DEFAULT_ERROR_RESPONSES)


def _document_view(control: DocumentControl) -> dict[str, Any]:
    return {
        "uuid": control.uuid,
        "document_name": control.document_name,
        "description": control.description,
        "document_number": control.document_number,
        "clause_number": control.clause_number,
        "revision_number": control.revision_number,
        "publish_date": control.publish_date.isoformat(),
        "page_count": control.page_count,
        "document_type_id": control.document_type_id,
        "document_category_id": control.document_category_id,
        "status_document_id": control.status_document_id,
        "sequence_number": control.sequence_number,
        "created_by": control.created_by,
        "created_at": control.created_at.isoformat() if control.created_at else None,
    }


def _version_view(version: DocumentVersion) -> dict[str, Any]:
    return {
        "uuid": version.uuid,
        "version": version.version,
        "file": version.file,
        "status_document_id": version.status_document_id,
        "note": version.note,
        "created_at": version.created_at.isoformat() if version.created_at else None,
    }


def _build_payload(fields: dict[str, Any]) -> DocumentControlPayload:
    # Multipart fields bypass FastAPI body validation, so map failures onto the domain error.
    try:
        return DocumentControlPayload.model_validate(
            {name: value for name, value in fields.items() if value is not None}
        )
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        raise InputValidationError(problems) from exc


async def _read_upload(file: UploadFile | None) -> UploadedFile | None:
    if file is None:
        return None
    data = await file.read()
    return UploadedFile(
        filename=file.filename or "upload",
        content_type=file.content_type or "application/octet-stream",
        data=data,
    )


@router.get("")
async def list_documents(
    request: Request,
    search: str | None = Query(default=None),
    category_id: int | None = Query(default=None),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    lifecycle: DocumentLifecycle = Depends(get_documents),
) -> dict:
    # Visibility is decided per document from its category, type and status.
    controls = await lifecycle.list_documents(
        db, subject=principal.subject, search=search, category_id=category_id
    )
    return success_response(request=request, data=[_document_view(control) for control in controls])


@router.post("", status_code=201)
async def create_document(
    request: Request,
    document_name: str = Form(...),
    document_number: str = Form(...),
    publish_date: str = Form(...),
    document_type_id: int = Form(...),
    document_category_id: int = Form(...),
    description: str = Form(default=""),
    clause_number: str | None = Form(default=None),
    revision_number: int = Form(default=0),
    page_count: int = Form(default=0),
    sequence_number: int | None = Form(default=None),
    file: UploadFile = File(...),
    principal: Principal = Depends(require_permission(RESOURCE_DOCUMENT, "create")),
    db: AsyncSession = Depends(get_db),
    lifecycle: DocumentLifecycle = Depends(get_documents),
) -> dict:
    payload = _build_payload(
        {
            "document_name": document_name,
            "description": description,
            "document_number": document_number,
            "clause_number": clause_number,
            "revision_number": revision_number,
            "publish_date": publish_date,
            "page_count": page_count,
            "document_type_id": document_type_id,
            "document_category_id": document_category_id,
            "sequence_number": sequence_number,
        }
    )
    upload = await _read_upload(file)
    control, version = await lifecycle.create(db, payload, upload, created_by=principal.subject)
    data = _document_view(control)
    data["versions"] = [_version_view(version)]
    return success_response(request=request, data=data)


@router.get("/{document_uuid}")
async def get_document(
    document_uuid: str,
    request: Request,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    lifecycle: DocumentLifecycle = Depends(get_documents),
) -> dict:
    control = await lifecycle.get(db, document_uuid, subject=principal.subject)
    return success_response(request=request, data=_document_view(control))


@router.put("/{document_uuid}")
async def update_document(
    document_uuid: str,
    request: Request,
    document_name: str = Form(...),
    document_number: str = Form(...),
    publish_date: str = Form(...),
    document_type_id: int = Form(...),
    document_category_id: int = Form(...),
    description: str = Form(default=""),
    clause_number: str | None = Form(default=None),
    revision_number: int = Form(default=0),
    page_count: int = Form(default=0),
    sequence_number: int | None = Form(default=None),
    status_document_id: int | None = Form(default=None),
    file: UploadFile | None = File(default=None),
    _principal: Principal = Depends(require_permission(RESOURCE_DOCUMENT, "update")),
    db: AsyncSession = Depends(get_db),
    lifecycle: DocumentLifecycle = Depends(get_documents),
) -> dict:
    payload = _build_payload(
        {
            "document_name": document_name,
            "description": description,
            "document_number": document_number,
            "clause_number": clause_number,
            "revision_number": revision_number,
            "publish_date": publish_date,
            "page_count": page_count,
            "document_type_id": document_type_id,
            "document_category_id": document_category_id,
            "sequence_number": sequence_number,
            "status_document_id": status_document_id,
        }
    )
    upload = await _read_upload(file)
    control, version = await lifecycle.update(db, document_uuid, payload, upload)
    data = _document_view(control)
    data["new_version"] = _version_view(version) if version is not None else None
    return success_response(request=request, data=data)


@router.delete("/{document_uuid}")
async def delete_document(
    document_uuid: str,
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_DOCUMENT, "delete")),
    db: AsyncSession = Depends(get_db),
    lifecycle: DocumentLifecycle = Depends(get_documents),
) -> dict:
    await lifecycle.delete(db, document_uuid)
    return success_response(request=request, data={"uuid": document_uuid, "deleted": True})


@router.get("/{document_uuid}/versions")
async def list_versions(
    document_uuid: str,
    request: Request,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    lifecycle: DocumentLifecycle = Depends(get_documents),
) -> dict:
    versions = await lifecycle.list_versions(db, document_uuid, subject=principal.subject)
    return success_response(request=request, data=[_version_view(version) for version in versions])
