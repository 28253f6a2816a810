from __future__ import annotations

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse

from backend.core.validation import (
    ValidationError,
    normalise_integration_target,
    parse_regs,
    validate_upload_count,
)
from backend.domain import FileDescriptor, JobInput
from backend.infrastructure import UploadStorage
from backend.workers.pipeline import get_pipeline_orchestrator

router = APIRouter(tags=["upload"])
files_router = APIRouter(tags=["upload"])


@router.post("/upload", status_code=202)
@router.post("/submit", status_code=202)
async def upload_files(
    request: Request,
    files: list[UploadFile] = File(default=[]),
    regs: str | None = Form(default=None),
    integration_target: str | None = Form(default=None, alias="integrationTarget"),
) -> dict:
    """Store requirement documents and start a pipeline over them."""
    settings = request.app.state.settings
    storage: UploadStorage = request.app.state.uploads

    validate_upload_count(len(files), settings.max_upload_files)
    selected_regs = parse_regs(regs)
    target = normalise_integration_target(integration_target)

    descriptors: list[FileDescriptor] = []
    try:
        if any(not upload.filename for upload in files):
            raise ValidationError("Uploaded file must have a filename")
        for upload in files:
            descriptors.append(storage.save(upload.filename, upload.file, upload.content_type))
    finally:
        for upload in files:
            await upload.close()

    job_input = JobInput(files=tuple(descriptors), regs=tuple(selected_regs), integration_target=target)
    pipeline_id = await get_pipeline_orchestrator().submit(job_input)
    return {"ok": True, "pipelineId": pipeline_id, "message": "Pipeline started"}


@files_router.get("/uploads/{stored_name}")
async def get_upload(request: Request, stored_name: str) -> FileResponse:
    storage: UploadStorage = request.app.state.uploads
    path = storage.resolve(stored_name)
    if path is None:
        raise HTTPException(status_code=404, detail="upload not found")
    return FileResponse(path)
