"""
Controlled substance register schemas
"""
from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Literal
from datetime import datetime
from uuid import UUID

TransactionType = Literal["DISPENSE", "RECEIVE", "ADJUST", "DESTROY", "RETURN"]


class RegisterDetails(BaseModel):
    """Regulatory detail fields shared by every entry type"""
    reference_type: Optional[str] = None
    reference_id: Optional[UUID] = None
    reference_number: Optional[str] = None
    patient_name: Optional[str] = None
    patient_id: Optional[str] = None
    patient_address: Optional[str] = None
    prescription_id: Optional[UUID] = None
    prescription_number: Optional[str] = None
    prescriber_name: Optional[str] = None
    prescriber_reg_no: Optional[str] = None
    supplier_name: Optional[str] = None
    supplier_license: Optional[str] = None
    witness_name: Optional[str] = None
    witness_role: Optional[str] = None
    destruction_method: Optional[str] = None
    destruction_certificate: Optional[str] = None
    notes: Optional[str] = None


class ControlledEntryCreate(RegisterDetails):
    """Manual register entry"""
    medicine_id: UUID
    transaction_type: TransactionType
    quantity_in: int = Field(default=0, ge=0)
    quantity_out: int = Field(default=0, ge=0)
    apply_to_stock: bool = Field(
        default=True,
        description="Also move stock through the ledger; false records a register-only correction",
    )

    @model_validator(mode="after")
    def some_quantity(self):
        if self.quantity_in == 0 and self.quantity_out == 0:
            raise ValueError("quantity_in or quantity_out must be greater than zero")
        return self


class ControlledEntryAction(BaseModel):
    """PUT body; only "verify" is supported"""
    action: Literal["verify"]


class ControlledEntryResponse(RegisterDetails):
    id: UUID
    entry_number: str
    medicine_id: UUID
    medicine_name: str
    generic_name: Optional[str] = None
    batch_number: Optional[str] = None
    schedule_class: str
    transaction_type: str
    quantity_in: int
    quantity_out: int
    balance_before: int
    balance_after: int
    recorded_by: UUID
    recorded_by_name: str
    recorded_by_role: str
    verified_by: Optional[UUID] = None
    verified_by_name: Optional[str] = None
    verified_at: Optional[datetime] = None
    branch_id: Optional[UUID] = None
    branch_name: Optional[str] = None
    transaction_date: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class ControlledEntryList(BaseModel):
    entries: List[ControlledEntryResponse]
    total: int
    page: int
    limit: int


class RegisterBalance(BaseModel):
    """Register balance against the ledger for one medicine"""
    medicine_id: UUID
    medicine_name: str
    schedule_class: Optional[str] = None
    register_balance: int
    inventory_quantity: int
    discrepancy: int
    has_discrepancy: bool
    total_in: int
    total_out: int
    entry_count: int
    by_transaction_type: Dict[str, Dict[str, int]] = {}
    last_entry: Optional[ControlledEntryResponse] = None


class RegisterDrift(BaseModel):
    medicine_id: UUID
    medicine_name: str
    branch_id: Optional[UUID] = None
    register_balance: int
    inventory_quantity: int
    discrepancy: int
