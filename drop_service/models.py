import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, BigInteger, DateTime, Text, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class EntryKind(str, enum.Enum):
    TEXT = "text"
    FILE = "file"

class Entry(Base):
    __tablename__ = "entries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind = Column(String, nullable=False)
    text = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    files = relationship(
        "EntryFile",
        back_populates="entry",
        order_by="EntryFile.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Entry(id={self.id}, kind='{self.kind}', created_at={self.created_at})>"

class EntryFile(Base):
    __tablename__ = "entry_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(UUID(as_uuid=True), ForeignKey("entries.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String, nullable=False)
    size = Column(BigInteger, nullable=False)
    mime = Column(String, nullable=False)
    storage_key = Column(String, nullable=False, unique=True, index=True)

    entry = relationship("Entry", back_populates="files")

    def __repr__(self):
        return f"<EntryFile(entry_id={self.entry_id}, name='{self.name}', key='{self.storage_key}')>"
