"""
Medicine model - one row per (name, batch, branch) stock-keeping unit
StockMovement - append-only audit of every quantity change made through the ledger
"""
from sqlalchemy import Column, String, Integer, Numeric, Date, ForeignKey, CheckConstraint, Boolean, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.types import TIMESTAMP
import uuid
from dawacare.database import Base, utcnow


class Medicine(Base):
    """
    Medicine stock row.

    `quantity` is the on-hand count for this batch at this branch. It is only
    ever written by StockLedgerService; never update it directly.
    """
    __tablename__ = "medicines"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    branch_id = Column(Uuid(as_uuid=True), ForeignKey("branches.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    generic_name = Column(String(255))
    category = Column(String(100), default="General")
    manufacturer = Column(String(255))
    batch_number = Column(String(200), nullable=False)
    expiry_date = Column(Date)
    quantity = Column(Integer, nullable=False, default=0)
    reorder_level = Column(Integer, nullable=False, default=10)
    unit_price = Column(Numeric(20, 4), nullable=False, default=0)  # Selling price per unit
    cost_price = Column(Numeric(20, 4), nullable=False, default=0)
    is_controlled = Column(Boolean, nullable=False, default=False)
    schedule_class = Column(String(50))  # SCHEDULE_II .. SCHEDULE_V when controlled
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, index=True)

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="medicine_quantity_non_negative"),
        {"comment": "Stock rows. quantity is mutated only through the stock ledger."},
    )

    # Relationships
    branch = relationship("Branch", back_populates="medicines")

    @property
    def is_low_stock(self) -> bool:
        return (self.quantity or 0) <= (self.reorder_level or 0)


class StockMovement(Base):
    """
    Append-only record of every ledger adjust. Never update or delete.
    movement_type: RECEIVE | SALE | DISPENSE | TRANSFER_OUT | TRANSFER_IN | ADJUSTMENT | CONTROLLED
    """
    __tablename__ = "stock_movements"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    medicine_id = Column(Uuid(as_uuid=True), ForeignKey("medicines.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = Column(Uuid(as_uuid=True), ForeignKey("branches.id", ondelete="CASCADE"), nullable=True)
    movement_type = Column(String(50), nullable=False)
    quantity_delta = Column(Integer, nullable=False)  # Positive = add, negative = remove
    quantity_before = Column(Integer, nullable=False)
    quantity_after = Column(Integer, nullable=False)
    reference_type = Column(String(50))  # grn, sale, prescription_dispensing, stock_transfer, controlled_entry
    reference_id = Column(Uuid(as_uuid=True))
    notes = Column(String(2000))
    created_by = Column(Uuid(as_uuid=True))
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint("quantity_delta != 0", name="movement_delta_not_zero"),
        CheckConstraint("quantity_after >= 0", name="movement_after_non_negative"),
    )

    medicine = relationship("Medicine")
