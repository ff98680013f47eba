# services/api/routers/records.py

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse
from pydantic import ValidationError

from core.records import RecordService
from models import DocumentType
from schemas import (
    DeleteOut,
    NextNumberOut,
    RecordList,
    RecordOut,
    RecordResponse,
    SequenceResetIn,
    SequenceResetOut,
)

logger = logging.getLogger(__name__)


def _service(request: Request, key: str) -> RecordService:
    services = getattr(request.app.state, "services", None) or {}
    service = services.get(key)
    if service is None:
        raise HTTPException(status_code=503, detail=f"Service for {key} is not initialized")
    return service


def _response(record: Dict[str, Any], result) -> RecordResponse:
    degradation = result.degradation
    return RecordResponse(
        record=RecordOut.model_validate(record),
        artifact=record.get("artifact"),
        outcome=result.status,
        warning=(
            f"Document generated without attachment/appendix: {degradation.message}"
            if degradation else None
        ),
        warning_code=degradation.code if degradation else None,
    )


async def _read_upload(request: Request, upload: Optional[UploadFile]) -> Optional[bytes]:
    if upload is None:
        return None
    data = await upload.read()
    if not data:
        return None
    limit_mb = request.app.state.settings.max_upload_mb
    if len(data) > limit_mb * 1024 * 1024:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Attachment exceeds {limit_mb} MB",
        )
    return data


def build_router(doc_type: DocumentType) -> APIRouter:
    """CRUD + PDF routes for one document type, mounted at /<route>."""
    router = APIRouter(prefix=f"/{doc_type.route}", tags=[doc_type.key])
    create_schema = doc_type.create_schema
    update_schema = doc_type.update_schema
    key = doc_type.key

    @router.post("", response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
    async def create_record(payload: create_schema, request: Request):  # type: ignore[valid-type]
        """Create a record, allocate its number and generate its PDF."""
        service = _service(request, key)
        record, result = await service.create(payload.model_dump(exclude_none=True))
        return _response(record, result)

    @router.post("/with-attachment", response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
    async def create_record_with_attachment(
        request: Request,
        data: str = Form(..., description="Record fields as a JSON object"),
        attachment: Optional[UploadFile] = File(None),
        include_static_appendix: Optional[bool] = Form(None),
    ):
        """
        Multipart create: the record fields travel as JSON in the `data` form
        field, next to an optional PDF attachment merged into the document.
        """
        try:
            payload = create_schema.model_validate_json(data)
        except ValidationError as e:
            raise RequestValidationError(e.errors(include_url=False))

        service = _service(request, key)
        attachment_bytes = await _read_upload(request, attachment)
        record, result = await service.create(
            payload.model_dump(exclude_none=True),
            attachment_bytes=attachment_bytes,
            include_static_appendix=include_static_appendix,
        )
        return _response(record, result)

    @router.get("", response_model=RecordList)
    async def list_records(
        request: Request,
        search: Optional[str] = Query(None, max_length=100),
        created_by: Optional[str] = Query(None),
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
    ):
        service = _service(request, key)
        return service.list(search=search, created_by=created_by, page=page, limit=limit)

    @router.get("/next-number", response_model=NextNumberOut)
    async def next_number(request: Request):
        """Preview the number the next created record will get (consumes nothing)."""
        service = _service(request, key)
        return {"sequence": doc_type.sequence, "next_number": service.peek_number()}

    @router.post("/reset", response_model=SequenceResetOut)
    async def reset_sequence(body: SequenceResetIn, request: Request):
        service = _service(request, key)
        logger.warning(f"Resetting {doc_type.sequence} to {body.value} (clear_records={body.clear_records})")
        return service.reset_sequence(body.value, clear_records=body.clear_records)

    @router.get("/by-number/{document_number}", response_model=RecordOut)
    async def get_by_number(document_number: str, request: Request):
        return _service(request, key).get_by_number(document_number)

    @router.get("/{record_id}", response_model=RecordOut)
    async def get_record(record_id: str, request: Request):
        return _service(request, key).get(record_id)

    @router.patch("/{record_id}", response_model=RecordResponse)
    async def update_record(record_id: str, payload: update_schema, request: Request):  # type: ignore[valid-type]
        """Update fields and regenerate the PDF. id and document number never change."""
        service = _service(request, key)
        record, result = await service.update(record_id, payload.model_dump(exclude_unset=True))
        return _response(record, result)

    @router.delete("/{record_id}", response_model=DeleteOut)
    async def delete_record(record_id: str, request: Request):
        return _service(request, key).delete(record_id)

    @router.post("/{record_id}/pdf", response_model=RecordResponse)
    async def regenerate_pdf(
        record_id: str,
        request: Request,
        attachment: Optional[UploadFile] = File(None),
        include_static_appendix: Optional[bool] = Form(None),
    ):
        """
        Regenerate the PDF, optionally merging an uploaded PDF attachment and
        the static terms appendix. A bad attachment degrades the result
        (outcome="degraded") instead of failing it.
        """
        service = _service(request, key)
        attachment_bytes = await _read_upload(request, attachment)
        record, result = await service.regenerate(
            record_id,
            attachment_bytes=attachment_bytes,
            include_static_appendix=include_static_appendix,
        )
        return _response(record, result)

    @router.get("/{record_id}/pdf")
    async def download_pdf(record_id: str, request: Request):
        service = _service(request, key)
        record = service.get(record_id)
        path = service.artifact_path(record)
        if path is None:
            raise HTTPException(status_code=404, detail="PDF not generated yet")
        return FileResponse(str(path), media_type="application/pdf", filename=path.name)

    return router
