"""
Supplier model
"""
from sqlalchemy import Column, String, Text, Uuid
from sqlalchemy.types import TIMESTAMP
import uuid
from dawacare.database import Base, utcnow


class Supplier(Base):
    """Supplier model"""
    __tablename__ = "suppliers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    contact_person = Column(String(255))
    phone = Column(String(50))
    email = Column(String(255))
    address = Column(Text)
    license_number = Column(String(100))  # Required on controlled-substance receipts
    status = Column(String(20), default="ACTIVE")
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, index=True)
