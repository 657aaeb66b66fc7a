"""
Prescription models (prescriptions and their dispensing history)
"""
from sqlalchemy import Column, String, Integer, Date, Text, ForeignKey, Boolean, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.types import TIMESTAMP
import uuid
from dawacare.database import Base, utcnow


class Prescription(Base):
    """Prescription. status: PENDING, PARTIAL, DISPENSED, EXPIRED, CANCELLED"""
    __tablename__ = "prescriptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    prescription_number = Column(String(100), nullable=False, unique=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=True)
    patient_name = Column(String(255), nullable=False)
    patient_phone = Column(String(50))
    patient_address = Column(Text)
    prescriber_name = Column(String(255), nullable=False)
    prescriber_reg_no = Column(String(100))
    prescriber_facility = Column(String(255))
    diagnosis = Column(Text)
    status = Column(String(50), nullable=False, default="PENDING")
    issue_date = Column(Date, nullable=False)
    expiry_date = Column(Date)
    refills_allowed = Column(Integer, nullable=False, default=0)
    refills_used = Column(Integer, nullable=False, default=0)
    notes = Column(Text)
    branch_id = Column(Uuid(as_uuid=True), ForeignKey("branches.id"), nullable=True, index=True)
    created_by = Column(Uuid(as_uuid=True), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, index=True)

    # Relationships
    items = relationship("PrescriptionItem", back_populates="prescription", cascade="all, delete-orphan")
    dispensings = relationship("PrescriptionDispensing", back_populates="prescription", cascade="all, delete-orphan")


class PrescriptionItem(Base):
    """Prescribed line. quantity_dispensed never exceeds quantity_prescribed."""
    __tablename__ = "prescription_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    prescription_id = Column(Uuid(as_uuid=True), ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False)
    medicine_id = Column(Uuid(as_uuid=True), ForeignKey("medicines.id"), nullable=True)
    medicine_name = Column(String(255), nullable=False)
    dosage = Column(String(255))
    frequency = Column(String(255))
    duration = Column(String(255))
    quantity_prescribed = Column(Integer, nullable=False)
    quantity_dispensed = Column(Integer, nullable=False, default=0)
    substitution_allowed = Column(Boolean, nullable=False, default=False)
    is_controlled = Column(Boolean, nullable=False, default=False)
    instructions = Column(Text)

    __table_args__ = (
        CheckConstraint("quantity_dispensed <= quantity_prescribed", name="rx_item_not_over_dispensed"),
    )

    # Relationships
    prescription = relationship("Prescription", back_populates="items")


class PrescriptionDispensing(Base):
    """One dispensing event against a prescription"""
    __tablename__ = "prescription_dispensings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    prescription_id = Column(Uuid(as_uuid=True), ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id"), nullable=True)
    dispensed_by = Column(Uuid(as_uuid=True), nullable=False)
    dispensed_by_name = Column(String(255), nullable=False)
    verified_by = Column(Uuid(as_uuid=True))
    dispensing_notes = Column(Text)
    counseling_provided = Column(Boolean, nullable=False, default=False)
    dispensed_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    # Relationships
    prescription = relationship("Prescription", back_populates="dispensings")
    items = relationship("PrescriptionDispensingItem", back_populates="dispensing", cascade="all, delete-orphan")


class PrescriptionDispensingItem(Base):
    """Dispensed line items"""
    __tablename__ = "prescription_dispensing_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    dispensing_id = Column(Uuid(as_uuid=True), ForeignKey("prescription_dispensings.id", ondelete="CASCADE"), nullable=False)
    prescription_item_id = Column(Uuid(as_uuid=True), ForeignKey("prescription_items.id"), nullable=False)
    medicine_id = Column(Uuid(as_uuid=True), ForeignKey("medicines.id"), nullable=False)
    medicine_name = Column(String(255), nullable=False)
    batch_number = Column(String(200))
    quantity = Column(Integer, nullable=False)
    is_substitution = Column(Boolean, nullable=False, default=False)
    substitution_reason = Column(Text)

    # Relationships
    dispensing = relationship("PrescriptionDispensing", back_populates="items")
