"""
Stock transfer models (inter-branch movement of medicine batches)
"""
from sqlalchemy import Column, String, Integer, Numeric, Text, ForeignKey, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.types import TIMESTAMP
import uuid
from dawacare.database import Base, utcnow


class StockTransfer(Base):
    """
    Transfer header.
    status: PENDING -> IN_TRANSIT -> COMPLETED, PENDING -> COMPLETED,
    PENDING | IN_TRANSIT -> CANCELLED. Stock only moves on COMPLETED.
    """
    __tablename__ = "stock_transfers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transfer_number = Column(String(100), nullable=False, unique=True)
    from_branch_id = Column(Uuid(as_uuid=True), ForeignKey("branches.id"), nullable=False, index=True)
    to_branch_id = Column(Uuid(as_uuid=True), ForeignKey("branches.id"), nullable=False, index=True)
    status = Column(String(50), nullable=False, default="PENDING")
    notes = Column(Text)
    created_by = Column(Uuid(as_uuid=True), nullable=False)
    completed_by = Column(Uuid(as_uuid=True))
    completed_at = Column(TIMESTAMP(timezone=True))
    cancelled_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, index=True)

    __table_args__ = (
        CheckConstraint("from_branch_id != to_branch_id", name="transfer_branches_differ"),
    )

    # Relationships
    from_branch = relationship("Branch", foreign_keys=[from_branch_id])
    to_branch = relationship("Branch", foreign_keys=[to_branch_id])
    items = relationship("StockTransferItem", back_populates="transfer", cascade="all, delete-orphan")


class StockTransferItem(Base):
    """Transfer line items. Name, batch and price are snapshotted at creation."""
    __tablename__ = "stock_transfer_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transfer_id = Column(Uuid(as_uuid=True), ForeignKey("stock_transfers.id", ondelete="CASCADE"), nullable=False)
    medicine_id = Column(Uuid(as_uuid=True), ForeignKey("medicines.id"), nullable=False)
    medicine_name = Column(String(255), nullable=False)
    batch_number = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(20, 4), nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="transfer_item_quantity_positive"),
    )

    # Relationships
    transfer = relationship("StockTransfer", back_populates="items")
