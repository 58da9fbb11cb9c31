import uuid as py_uuid
from datetime import datetime
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Iterable, List, Optional, Set

from drop_service import models, schemas

KEY_LOOKUP_BATCH_SIZE = 1000

async def get_entry_by_id(db: AsyncSession, entry_id: py_uuid.UUID) -> Optional[models.Entry]:
    result = await db.execute(
        select(models.Entry)
        .options(selectinload(models.Entry.files))
        .filter(models.Entry.id == entry_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()

async def get_entry_by_storage_key(db: AsyncSession, storage_key: str) -> Optional[models.Entry]:
    result = await db.execute(
        select(models.Entry)
        .join(models.Entry.files)
        .options(selectinload(models.Entry.files))
        .filter(models.EntryFile.storage_key == storage_key)
    )
    return result.scalars().first()

async def get_entries_newest_first(db: AsyncSession) -> List[models.Entry]:
    result = await db.execute(
        select(models.Entry)
        .options(selectinload(models.Entry.files))
        .order_by(models.Entry.created_at.desc())
    )
    return list(result.scalars().all())

async def get_referenced_storage_keys(db: AsyncSession, storage_keys: Iterable[str]) -> Set[str]:
    keys = list(storage_keys)
    found = set()
    # Bound parameters per statement are limited (asyncpg allows 32767).
    for start in range(0, len(keys), KEY_LOOKUP_BATCH_SIZE):
        batch = keys[start:start + KEY_LOOKUP_BATCH_SIZE]
        result = await db.execute(
            select(models.EntryFile.storage_key).filter(models.EntryFile.storage_key.in_(batch))
        )
        found.update(result.scalars().all())
    return found

async def create_text_entry(db: AsyncSession, text: str, created_at: Optional[datetime] = None) -> models.Entry:
    entry_id = py_uuid.uuid4()
    db_entry = models.Entry(
        id=entry_id,
        kind=models.EntryKind.TEXT.value,
        text=text,
        created_at=created_at or models.utcnow(),
    )
    db.add(db_entry)
    await db.commit()
    return await get_entry_by_id(db, entry_id)

async def create_file_entry(
    db: AsyncSession,
    files: List[schemas.FileRef],
    created_at: Optional[datetime] = None
) -> models.Entry:
    entry_id = py_uuid.uuid4()
    db_entry = models.Entry(
        id=entry_id,
        kind=models.EntryKind.FILE.value,
        created_at=created_at or models.utcnow(),
        files=[
            models.EntryFile(
                position=position,
                name=file_ref.name,
                size=file_ref.size,
                mime=file_ref.mime,
                storage_key=file_ref.storage_key,
            )
            for position, file_ref in enumerate(files)
        ],
    )
    db.add(db_entry)
    await db.commit()
    return await get_entry_by_id(db, entry_id)

async def delete_entry(db: AsyncSession, db_entry: models.Entry) -> None:
    await db.delete(db_entry)
    await db.commit()
