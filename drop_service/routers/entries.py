import uuid
from typing import List, Optional

from fastapi import APIRouter, Body, Depends

from drop_service import schemas
from drop_service.deps import get_lifecycle_manager, get_upload_orchestrator
from drop_service.exceptions import ValidationError
from drop_service.logging_config import get_logger
from drop_service.models import EntryKind
from drop_service.services import EntryLifecycleManager, UploadOrchestrator

logger = get_logger(__name__)

router = APIRouter(
    prefix="/entries",
    tags=["entries"],
)

@router.post("/upload-slots", response_model=schemas.UploadSlotsResponse)
async def request_upload_slots(
    body: schemas.UploadSlotsRequest,
    orchestrator: UploadOrchestrator = Depends(get_upload_orchestrator)
):
    logger.info(f"Upload slot request for {len(body.files or [])} file(s)")
    uploads = await orchestrator.request_upload_slots(body.files)
    return schemas.UploadSlotsResponse(uploads=uploads)

@router.post("", response_model=schemas.EntryResponse)
async def create_entry(
    body: schemas.EntryCreate,
    orchestrator: UploadOrchestrator = Depends(get_upload_orchestrator)
):
    logger.info(f"Create entry request of type: '{body.type}'")
    if not body.type:
        raise ValidationError("type required")
    if body.type == EntryKind.TEXT.value:
        db_entry = await orchestrator.confirm_text_entry(body.text)
    elif body.type == EntryKind.FILE.value:
        db_entry = await orchestrator.confirm_file_entry(body.files)
    else:
        raise ValidationError("invalid type")
    return schemas.EntryResponse(entry=schemas.EntryInDB.model_validate(db_entry))

@router.get("", response_model=List[schemas.ListRow], response_model_exclude_none=True)
async def list_entries(
    manager: EntryLifecycleManager = Depends(get_lifecycle_manager)
):
    rows = await manager.list_entries()
    logger.debug(f"Returning {len(rows)} list row(s)")
    return rows

@router.post("/{entry_id}/download-url", response_model=schemas.DownloadUrl)
async def request_download_url(
    entry_id: uuid.UUID,
    body: Optional[schemas.DownloadUrlRequest] = Body(None),
    manager: EntryLifecycleManager = Depends(get_lifecycle_manager)
):
    storage_key = body.storage_key if body else None
    logger.info(f"Download URL request for entry_id: {entry_id}, key: {storage_key}")
    return await manager.request_download_url(storage_key, entry_id=entry_id)

@router.delete("/{entry_id}", response_model=schemas.DeleteResult)
async def delete_entry(
    entry_id: uuid.UUID,
    manager: EntryLifecycleManager = Depends(get_lifecycle_manager)
):
    logger.info(f"Delete request for entry_id: {entry_id}")
    return await manager.delete_entry(entry_id)
