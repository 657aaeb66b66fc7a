"""
Sales models (point-of-sale invoices)
"""
from sqlalchemy import Column, String, Integer, Numeric, Text, ForeignKey, Boolean, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.types import TIMESTAMP
import uuid
from dawacare.database import Base, utcnow


class Sale(Base):
    """Sale header. invoice_number is unique and is the idempotency key for offline upload."""
    __tablename__ = "sales"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    invoice_number = Column(String(100), nullable=False, unique=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=True)
    customer_name = Column(String(255))
    customer_phone = Column(String(50))
    subtotal = Column(Numeric(20, 4), nullable=False, default=0)
    discount = Column(Numeric(20, 4), nullable=False, default=0)
    total = Column(Numeric(20, 4), nullable=False, default=0)
    payment_method = Column(String(50), nullable=False, default="CASH")  # CASH, CARD, MOBILE_MONEY, CREDIT, INSURANCE
    payment_status = Column(String(50), nullable=False, default="PAID")  # PAID, PENDING
    notes = Column(Text)
    sold_by = Column(Uuid(as_uuid=True), nullable=False)
    sold_by_name = Column(String(255))
    branch_id = Column(Uuid(as_uuid=True), ForeignKey("branches.id"), nullable=True, index=True)
    is_offline = Column(Boolean, nullable=False, default=False)  # Replayed from a desktop upload
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, index=True)

    # Relationships
    customer = relationship("Customer")
    items = relationship("SaleItem", back_populates="sale", cascade="all, delete-orphan")


class SaleItem(Base):
    """Sale line items"""
    __tablename__ = "sale_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id", ondelete="CASCADE"), nullable=False)
    medicine_id = Column(Uuid(as_uuid=True), ForeignKey("medicines.id"), nullable=False)
    medicine_name = Column(String(255), nullable=False)
    batch_number = Column(String(200))
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(20, 4), nullable=False)
    total = Column(Numeric(20, 4), nullable=False)

    # Relationships
    sale = relationship("Sale", back_populates="items")
