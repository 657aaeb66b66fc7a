"""
Document numbering counters
"""
from sqlalchemy import Column, String, Integer, UniqueConstraint, Uuid
from sqlalchemy.types import TIMESTAMP
import uuid
from dawacare.database import Base, utcnow


class DocumentSequence(Base):
    """
    Store-side counter per (branch code, document type, year).
    Rows are bootstrapped with INSERT ... ON CONFLICT DO NOTHING and advanced under FOR UPDATE.
    """
    __tablename__ = "document_sequences"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    branch_code = Column(String(50), nullable=False)
    document_type = Column(String(20), nullable=False)  # CSR, GRN, PO, TRF, INV, RX
    year = Column(Integer, nullable=False)
    current_number = Column(Integer, nullable=False, default=0)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("branch_code", "document_type", "year", name="uq_document_sequence"),
    )
