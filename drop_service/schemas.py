import uuid
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from drop_service.models import EntryKind

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# Request bodies keep every field optional so the service layer can
# reject incomplete items with its own messages.

class FileSlotRequest(CamelModel):
    name: Optional[str] = None
    size: Optional[int] = None
    mime: Optional[str] = None

class UploadSlotsRequest(CamelModel):
    files: Optional[List[FileSlotRequest]] = None

class FileRefCreate(FileSlotRequest):
    storage_key: Optional[str] = None

class EntryCreate(CamelModel):
    type: Optional[str] = None
    text: Optional[str] = None
    files: Optional[List[FileRefCreate]] = None

class DownloadUrlRequest(CamelModel):
    storage_key: Optional[str] = None

class UploadSlot(CamelModel):
    name: str
    storage_key: str
    upload_url: str
    expires_in: int

class UploadSlotsResponse(CamelModel):
    uploads: List[UploadSlot]

class FileRef(CamelModel):
    name: str
    size: int
    mime: str
    storage_key: str

    model_config = ConfigDict(from_attributes=True)

class EntryInDB(CamelModel):
    id: uuid.UUID
    kind: EntryKind
    text: Optional[str] = None
    files: Optional[List[FileRef]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode='after')
    def drop_files_for_text(self):
        if self.kind == EntryKind.TEXT:
            self.files = None
        return self

class EntryResponse(CamelModel):
    entry: EntryInDB

class ListRow(CamelModel):
    id: uuid.UUID
    kind: EntryKind
    text: Optional[str] = None
    name: Optional[str] = None
    size: Optional[int] = None
    mime: Optional[str] = None
    storage_key: Optional[str] = None
    group_size: Optional[int] = None
    created_at: datetime

class DownloadUrl(CamelModel):
    download_url: str
    expires_in: int

class ObjectDeleteOutcome(CamelModel):
    storage_key: str
    deleted: bool
    error: Optional[str] = None

class DeleteResult(CamelModel):
    success: bool = True
    entry_id: uuid.UUID
    objects: List[ObjectDeleteOutcome] = []

class StoredObject(CamelModel):
    key: str
    size: int
    last_modified: Optional[datetime] = None
    referenced: bool

class StorageHealth(CamelModel):
    bucket: str
    reachable: bool
