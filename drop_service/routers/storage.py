from typing import List

from fastapi import APIRouter, Depends

from drop_service import schemas
from drop_service.deps import get_lifecycle_manager
from drop_service.logging_config import get_logger
from drop_service.services import EntryLifecycleManager

logger = get_logger(__name__)

router = APIRouter(
    prefix="/storage",
    tags=["storage"],
)

@router.get("/objects", response_model=List[schemas.StoredObject])
async def list_stored_objects(
    manager: EntryLifecycleManager = Depends(get_lifecycle_manager)
):
    logger.info("Stored object listing requested")
    return await manager.list_stored_objects()

@router.get("/health", response_model=schemas.StorageHealth)
async def storage_health(
    manager: EntryLifecycleManager = Depends(get_lifecycle_manager)
):
    return await manager.check_storage()
