"""
Branch model
"""
from sqlalchemy import Column, String, Boolean, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.types import TIMESTAMP
import uuid
from dawacare.database import Base, utcnow


class Branch(Base):
    """Branch model. `code` is embedded in every document number issued by the branch."""
    __tablename__ = "branches"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    code = Column(String(50), unique=True)
    address = Column(Text)
    phone = Column(String(50))
    email = Column(String(255))
    is_main_branch = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, index=True)

    # Relationships
    medicines = relationship("Medicine", back_populates="branch")
