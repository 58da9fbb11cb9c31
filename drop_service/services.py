import re
import time
import uuid
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from drop_service import crud, models, schemas
from drop_service.config import Settings
from drop_service.exceptions import ConfigurationError, NotFoundError, UpstreamError, ValidationError
from drop_service.logging_config import get_logger
from drop_service.storage import ObjectStoreGateway

logger = get_logger(__name__)

WHITESPACE_RE = re.compile(r"\s+")


def make_storage_key(prefix: str, filename: str) -> str:
    return f"{prefix}{int(time.time() * 1000)}-{uuid.uuid4().hex}-{WHITESPACE_RE.sub('_', filename)}"


class _StoreBackedService:
    def __init__(self, db: AsyncSession, object_store: Optional[ObjectStoreGateway], settings: Settings):
        self.db = db
        self.object_store = object_store
        self.settings = settings

    def _require_store(self) -> ObjectStoreGateway:
        if self.object_store is None:
            raise ConfigurationError("Object storage is not configured")
        return self.object_store

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback after a failed database call also failed")


class UploadOrchestrator(_StoreBackedService):
    """Issues presigned upload slots and records entries once clients confirm."""

    def _check_file_fields(self, file: schemas.FileSlotRequest) -> None:
        if not file.name or file.size is None or not file.mime:
            raise ValidationError("each file needs name, size, mime")
        if file.size <= 0:
            raise ValidationError(f"File {file.name} is empty")
        if file.size > self.settings.MAX_UPLOAD_SIZE_BYTES:
            limit_mb = self.settings.MAX_UPLOAD_SIZE_BYTES // (1024 * 1024)
            raise ValidationError(f"File {file.name} exceeds {limit_mb}MB limit")

    async def request_upload_slots(self, files: Optional[Sequence[schemas.FileSlotRequest]]) -> List[schemas.UploadSlot]:
        if not files:
            raise ValidationError("files array required")
        for file in files:
            self._check_file_fields(file)

        store = self._require_store()
        expires_in = self.settings.UPLOAD_URL_EXPIRES_SECONDS
        slots = []
        for file in files:
            key = make_storage_key(self.settings.UPLOAD_KEY_PREFIX, file.name)
            upload_url = await store.presign_upload(key, file.mime, expires_in)
            slots.append(schemas.UploadSlot(name=file.name, storage_key=key, upload_url=upload_url, expires_in=expires_in))
        logger.info(f"Issued {len(slots)} upload slot(s), valid for {expires_in}s")
        return slots

    async def confirm_text_entry(self, text: Optional[str]) -> models.Entry:
        trimmed = (text or "").strip()
        if not trimmed:
            raise ValidationError("text required")
        try:
            db_entry = await crud.create_text_entry(self.db, trimmed)
        except SQLAlchemyError as e:
            await self._rollback()
            logger.exception("Failed to store text entry")
            raise UpstreamError("Failed to store text entry") from e
        logger.info(f"Stored text entry {db_entry.id} ({len(trimmed)} chars)")
        return db_entry

    async def confirm_file_entry(self, files: Optional[Sequence[schemas.FileRefCreate]]) -> models.Entry:
        if not files:
            raise ValidationError("files array required")

        seen_keys = set()
        for file in files:
            if not file.storage_key:
                raise ValidationError("each file needs storageKey")
            self._check_file_fields(file)
            if not file.storage_key.startswith(self.settings.UPLOAD_KEY_PREFIX):
                raise ValidationError(f"storageKey {file.storage_key} was not issued by this service")
            if file.storage_key in seen_keys:
                raise ValidationError(f"storageKey {file.storage_key} appears more than once")
            seen_keys.add(file.storage_key)

        try:
            already_referenced = await crud.get_referenced_storage_keys(self.db, seen_keys)
        except SQLAlchemyError as e:
            logger.exception("Failed to look up storage keys")
            raise UpstreamError("Failed to look up storage keys") from e
        if already_referenced:
            raise ValidationError(f"storageKey {sorted(already_referenced)[0]} is already in use")

        if self.settings.VERIFY_UPLOADS:
            store = self._require_store()
            for file in files:
                if not await store.object_exists(file.storage_key):
                    logger.warning(f"Confirmation rejected: object '{file.storage_key}' was never uploaded")
                    raise ValidationError(f"File {file.name} was not uploaded")

        file_refs = [
            schemas.FileRef(name=f.name, size=f.size, mime=f.mime, storage_key=f.storage_key)
            for f in files
        ]
        try:
            db_entry = await crud.create_file_entry(self.db, file_refs)
        except IntegrityError as e:
            # A concurrent confirm recorded one of these keys after the lookup above.
            await self._rollback()
            logger.warning(f"Confirmation rejected: a key in {sorted(seen_keys)} was recorded concurrently")
            raise ValidationError("storageKey is already in use") from e
        except SQLAlchemyError as e:
            await self._rollback()
            logger.exception(f"Failed to store file entry for keys {sorted(seen_keys)}")
            raise UpstreamError("Failed to store file entry") from e
        logger.info(f"Stored file entry {db_entry.id} with {len(file_refs)} file(s)")
        return db_entry


class EntryLifecycleManager(_StoreBackedService):
    """Lists, hands out download links for, and deletes entries."""

    async def _load_entries(self) -> List[models.Entry]:
        try:
            return await crud.get_entries_newest_first(self.db)
        except SQLAlchemyError as e:
            logger.exception("Failed to fetch entries")
            raise UpstreamError("Failed to fetch entries") from e

    async def list_entries(self) -> List[schemas.ListRow]:
        rows = []
        for db_entry in await self._load_entries():
            if db_entry.kind == models.EntryKind.TEXT.value:
                rows.append(schemas.ListRow(
                    id=db_entry.id,
                    kind=models.EntryKind.TEXT,
                    text=db_entry.text,
                    created_at=db_entry.created_at,
                ))
                continue
            # One row per file; all rows of a group carry the group's id.
            for file in db_entry.files:
                rows.append(schemas.ListRow(
                    id=db_entry.id,
                    kind=models.EntryKind.FILE,
                    name=file.name,
                    size=file.size,
                    mime=file.mime,
                    storage_key=file.storage_key,
                    group_size=len(db_entry.files),
                    created_at=db_entry.created_at,
                ))
        return rows

    async def _get_entry(self, entry_id: uuid.UUID) -> models.Entry:
        try:
            db_entry = await crud.get_entry_by_id(self.db, entry_id)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to load entry {entry_id}")
            raise UpstreamError(f"Failed to load entry {entry_id}") from e
        if db_entry is None:
            logger.warning(f"Entry not found: ID {entry_id}")
            raise NotFoundError("Entry not found")
        return db_entry

    async def request_download_url(self, storage_key: Optional[str], entry_id: Optional[uuid.UUID] = None) -> schemas.DownloadUrl:
        if entry_id is not None:
            db_entry = await self._get_entry(entry_id)
            keys = [f.storage_key for f in db_entry.files]
            if not keys:
                raise NotFoundError("Entry has no files")
            if not storage_key:
                if len(keys) > 1:
                    raise ValidationError("storageKey required for entries with several files")
                storage_key = keys[0]
            if storage_key not in keys:
                logger.warning(f"Key '{storage_key}' is not part of entry {entry_id}")
                raise NotFoundError("File not found")
        else:
            if not storage_key:
                raise ValidationError("storageKey required")
            try:
                owner = await crud.get_entry_by_storage_key(self.db, storage_key)
            except SQLAlchemyError as e:
                logger.exception(f"Failed to look up key '{storage_key}'")
                raise UpstreamError(f"Failed to look up {storage_key}") from e
            if owner is None:
                logger.warning(f"Download requested for untracked key '{storage_key}'")
                raise NotFoundError("File not found")

        expires_in = self.settings.DOWNLOAD_URL_EXPIRES_SECONDS
        download_url = await self._require_store().presign_download(storage_key, expires_in)
        logger.info(f"Issued download URL for '{storage_key}', valid for {expires_in}s")
        return schemas.DownloadUrl(download_url=download_url, expires_in=expires_in)

    async def delete_entry(self, entry_id: uuid.UUID) -> schemas.DeleteResult:
        db_entry = await self._get_entry(entry_id)

        outcomes = []
        if db_entry.kind == models.EntryKind.FILE.value:
            store = self._require_store()
            for file in db_entry.files:
                try:
                    await store.delete_object(file.storage_key)
                    outcomes.append(schemas.ObjectDeleteOutcome(storage_key=file.storage_key, deleted=True))
                except UpstreamError as e:
                    logger.warning(f"Could not delete object '{file.storage_key}' of entry {entry_id}, leaving it orphaned: {e.message}")
                    outcomes.append(schemas.ObjectDeleteOutcome(storage_key=file.storage_key, deleted=False, error=e.message))

        # The row goes last so a crash leaves orphaned objects, never dangling references.
        try:
            await crud.delete_entry(self.db, db_entry)
        except SQLAlchemyError as e:
            await self._rollback()
            logger.exception(f"Failed to delete entry {entry_id}")
            raise UpstreamError(f"Failed to delete entry {entry_id}") from e

        failed = sum(1 for o in outcomes if not o.deleted)
        logger.info(f"Deleted entry {entry_id} ({len(outcomes)} object(s), {failed} failed)")
        return schemas.DeleteResult(entry_id=entry_id, objects=outcomes)

    async def list_stored_objects(self) -> List[schemas.StoredObject]:
        objects = await self._require_store().list_objects(self.settings.UPLOAD_KEY_PREFIX)
        try:
            referenced = await crud.get_referenced_storage_keys(self.db, [o["key"] for o in objects])
        except SQLAlchemyError as e:
            logger.exception("Failed to match stored objects against entries")
            raise UpstreamError("Failed to match stored objects against entries") from e
        orphaned = sum(1 for o in objects if o["key"] not in referenced)
        logger.info(f"Bucket holds {len(objects)} object(s) under '{self.settings.UPLOAD_KEY_PREFIX}', {orphaned} orphaned")
        return [
            schemas.StoredObject(
                key=o["key"],
                size=o["size"],
                last_modified=o["last_modified"],
                referenced=o["key"] in referenced,
            )
            for o in objects
        ]

    async def check_storage(self) -> schemas.StorageHealth:
        store = self._require_store()
        reachable = await store.check_bucket()
        return schemas.StorageHealth(bucket=store.bucket, reachable=reachable)
