"""
Customer model
"""
from sqlalchemy import Column, String, Integer, Numeric, Text, Uuid
from sqlalchemy.types import TIMESTAMP
import uuid
from dawacare.database import Base, utcnow


class Customer(Base):
    """Customer model. Desktop-created customers are deduplicated by phone or email on upload."""
    __tablename__ = "customers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), index=True)
    email = Column(String(255), index=True)
    address = Column(Text)
    loyalty_points = Column(Integer, nullable=False, default=0)
    credit_limit = Column(Numeric(20, 4), nullable=False, default=0)
    credit_balance = Column(Numeric(20, 4), nullable=False, default=0)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, index=True)
