from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from drop_service.config import settings as global_app_settings, Settings
from drop_service.database import get_db
from drop_service.services import EntryLifecycleManager, UploadOrchestrator
from drop_service.storage import ObjectStoreGateway

def get_settings() -> Settings:
    return global_app_settings

def get_object_store(request: Request) -> Optional[ObjectStoreGateway]:
    return getattr(request.app.state, "object_store", None)

def get_upload_orchestrator(
    db: AsyncSession = Depends(get_db),
    object_store: Optional[ObjectStoreGateway] = Depends(get_object_store),
    current_settings: Settings = Depends(get_settings)
) -> UploadOrchestrator:
    return UploadOrchestrator(db, object_store, current_settings)

def get_lifecycle_manager(
    db: AsyncSession = Depends(get_db),
    object_store: Optional[ObjectStoreGateway] = Depends(get_object_store),
    current_settings: Settings = Depends(get_settings)
) -> EntryLifecycleManager:
    return EntryLifecycleManager(db, object_store, current_settings)
