"""
Controlled Substance Register model
"""
from sqlalchemy import Column, String, Integer, Text, ForeignKey, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.types import TIMESTAMP
import uuid
from dawacare.database import Base, utcnow


class ControlledSubstanceEntry(Base):
    """
    Register entry for a regulated medicine.

    Append-only: after creation the only permitted change is attaching the
    verifier (verified_by, verified_by_name, verified_at) exactly once.
    balance_after = balance_before + quantity_in - quantity_out and is never negative.
    """
    __tablename__ = "controlled_substance_register"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entry_number = Column(String(100), nullable=False, unique=True)  # CSR-{BRANCH_CODE}-{YYYY}-00001
    medicine_id = Column(Uuid(as_uuid=True), ForeignKey("medicines.id"), nullable=False, index=True)
    # Snapshot of the medicine at recording time
    medicine_name = Column(String(255), nullable=False)
    generic_name = Column(String(255))
    batch_number = Column(String(200))
    schedule_class = Column(String(50), nullable=False, default="SCHEDULE_II")

    transaction_type = Column(String(20), nullable=False)  # DISPENSE, RECEIVE, ADJUST, DESTROY, RETURN
    quantity_in = Column(Integer, nullable=False, default=0)
    quantity_out = Column(Integer, nullable=False, default=0)
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)

    # What caused the movement
    reference_type = Column(String(50))  # sale, prescription_dispensing, grn, stock_transfer, manual
    reference_id = Column(Uuid(as_uuid=True))
    reference_number = Column(String(100))

    # Regulatory details (which are required depends on transaction_type)
    patient_name = Column(String(255))
    patient_id = Column(String(100))
    patient_address = Column(Text)
    prescription_id = Column(Uuid(as_uuid=True))
    prescription_number = Column(String(100))
    prescriber_name = Column(String(255))
    prescriber_reg_no = Column(String(100))
    supplier_name = Column(String(255))
    supplier_license = Column(String(100))
    witness_name = Column(String(255))
    witness_role = Column(String(100))
    destruction_method = Column(String(255))
    destruction_certificate = Column(String(255))
    notes = Column(Text)

    recorded_by = Column(Uuid(as_uuid=True), nullable=False)
    recorded_by_name = Column(String(255), nullable=False)
    recorded_by_role = Column(String(50), nullable=False)
    verified_by = Column(Uuid(as_uuid=True))
    verified_by_name = Column(String(255))
    verified_at = Column(TIMESTAMP(timezone=True))

    branch_id = Column(Uuid(as_uuid=True), ForeignKey("branches.id"), nullable=True, index=True)
    branch_name = Column(String(255))
    transaction_date = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, index=True)

    __table_args__ = (
        CheckConstraint("quantity_in >= 0 AND quantity_out >= 0", name="csr_quantities_non_negative"),
        CheckConstraint("balance_after >= 0", name="csr_balance_non_negative"),
        CheckConstraint("balance_after = balance_before + quantity_in - quantity_out", name="csr_balance_chained"),
        {"comment": "Controlled substance register. Append-only; only the verifier may be attached later."},
    )

    medicine = relationship("Medicine")
