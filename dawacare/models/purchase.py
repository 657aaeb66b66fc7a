"""
Purchase models (Purchase Orders and Goods Received Notes)
"""
from sqlalchemy import Column, String, Integer, Numeric, Date, Text, ForeignKey, Boolean, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.types import TIMESTAMP
import uuid
from dawacare.database import Base, utcnow


class PurchaseOrder(Base):
    """Purchase Order. PARTIAL and RECEIVED are derived from item received quantities, never set by hand."""
    __tablename__ = "purchase_orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    po_number = Column(String(100), nullable=False, unique=True)
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id"), nullable=False)
    branch_id = Column(Uuid(as_uuid=True), ForeignKey("branches.id"), nullable=True, index=True)
    status = Column(String(50), nullable=False, default="DRAFT")  # DRAFT, SENT, PARTIAL, RECEIVED, CANCELLED
    subtotal = Column(Numeric(20, 4), nullable=False, default=0)
    tax = Column(Numeric(20, 4), nullable=False, default=0)
    total = Column(Numeric(20, 4), nullable=False, default=0)
    expected_date = Column(Date)
    notes = Column(Text)
    created_by = Column(Uuid(as_uuid=True), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, index=True)

    # Relationships
    supplier = relationship("Supplier")
    branch = relationship("Branch")
    items = relationship("PurchaseOrderItem", back_populates="purchase_order", cascade="all, delete-orphan")
    grns = relationship("GoodsReceivedNote", back_populates="purchase_order")


class PurchaseOrderItem(Base):
    """Purchase order line items"""
    __tablename__ = "purchase_order_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    purchase_order_id = Column(Uuid(as_uuid=True), ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False)
    medicine_name = Column(String(255), nullable=False)
    generic_name = Column(String(255))
    category = Column(String(100))
    is_controlled = Column(Boolean, nullable=False, default=False)
    schedule_class = Column(String(50))
    quantity = Column(Integer, nullable=False)
    received_qty = Column(Integer, nullable=False, default=0)
    unit_cost = Column(Numeric(20, 4), nullable=False)
    total = Column(Numeric(20, 4), nullable=False)

    # Relationships
    purchase_order = relationship("PurchaseOrder", back_populates="items")


class GoodsReceivedNote(Base):
    """Goods Received Note. Immutable once created."""
    __tablename__ = "goods_received_notes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    grn_number = Column(String(100), nullable=False, unique=True)
    purchase_order_id = Column(Uuid(as_uuid=True), ForeignKey("purchase_orders.id"), nullable=False, index=True)
    branch_id = Column(Uuid(as_uuid=True), ForeignKey("branches.id"), nullable=True)
    received_by = Column(Uuid(as_uuid=True), nullable=False)
    received_by_name = Column(String(255))
    total = Column(Numeric(20, 4), nullable=False, default=0)
    notes = Column(Text)
    received_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    # Relationships
    purchase_order = relationship("PurchaseOrder", back_populates="grns")
    items = relationship("GRNItem", back_populates="grn", cascade="all, delete-orphan")

    __table_args__ = (
        {"comment": "GRN increments received quantities and, when added to inventory, stock."},
    )


class GRNItem(Base):
    """GRN line items"""
    __tablename__ = "grn_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    grn_id = Column(Uuid(as_uuid=True), ForeignKey("goods_received_notes.id", ondelete="CASCADE"), nullable=False)
    purchase_order_item_id = Column(Uuid(as_uuid=True), ForeignKey("purchase_order_items.id"))
    medicine_id = Column(Uuid(as_uuid=True), ForeignKey("medicines.id"))  # Stock row it landed in
    medicine_name = Column(String(255), nullable=False)
    batch_number = Column(String(200), nullable=False)
    expiry_date = Column(Date)
    quantity_received = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(20, 4), nullable=False)
    total = Column(Numeric(20, 4), nullable=False)
    added_to_inventory = Column(Boolean, nullable=False, default=False)

    # Relationships
    grn = relationship("GoodsReceivedNote", back_populates="items")
