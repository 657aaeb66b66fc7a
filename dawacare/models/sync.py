"""
Desktop-local sync bookkeeping (outbox queue and key/value state)
"""
from sqlalchemy import Column, String, Boolean, Text, Uuid
from sqlalchemy.types import TIMESTAMP
import uuid
from dawacare.database import Base, utcnow


class SyncQueue(Base):
    """Offline writes waiting for upload. entity_type: SALE, CUSTOMER"""
    __tablename__ = "sync_queue"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(String(20), nullable=False, index=True)
    entity_id = Column(Uuid(as_uuid=True), nullable=False)
    synced = Column(Boolean, nullable=False, default=False, index=True)
    synced_at = Column(TIMESTAMP(timezone=True))
    last_error = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)


class SyncState(Base):
    """Key/value state for the desktop client (e.g. last_sync_at)"""
    __tablename__ = "sync_state"

    key = Column(String(100), primary_key=True)
    value = Column(Text)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)
