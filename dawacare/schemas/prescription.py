"""
Prescription schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, date
from uuid import UUID


class PrescriptionItemCreate(BaseModel):
    medicine_id: Optional[UUID] = None
    medicine_name: str = Field(..., min_length=1, max_length=255)
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    quantity_prescribed: int = Field(..., gt=0)
    substitution_allowed: bool = False
    instructions: Optional[str] = None


class PrescriptionCreate(BaseModel):
    """Create prescription request"""
    customer_id: Optional[UUID] = None
    patient_name: str = Field(..., min_length=1)
    patient_phone: Optional[str] = None
    patient_address: Optional[str] = None
    prescriber_name: str = Field(..., min_length=1)
    prescriber_reg_no: Optional[str] = None
    prescriber_facility: Optional[str] = None
    diagnosis: Optional[str] = None
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None
    refills_allowed: int = Field(default=0, ge=0)
    notes: Optional[str] = None
    branch_id: Optional[UUID] = None
    items: List[PrescriptionItemCreate] = Field(..., min_length=1)


class DispenseLineItem(BaseModel):
    """
    Quantity to dispense against one prescription line.
    medicine_id names the stock row used; a different medicine than prescribed is a substitution.
    """
    prescription_item_id: UUID
    medicine_id: UUID
    quantity: int = Field(..., gt=0)
    substitution_reason: Optional[str] = None


class DispenseRequest(BaseModel):
    items: List[DispenseLineItem] = Field(..., min_length=1)
    sale_id: Optional[UUID] = None
    verified_by: Optional[UUID] = None
    dispensing_notes: Optional[str] = None
    counseling_provided: bool = False


class PrescriptionItemResponse(BaseModel):
    id: UUID
    medicine_id: Optional[UUID] = None
    medicine_name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    quantity_prescribed: int
    quantity_dispensed: int
    substitution_allowed: bool
    is_controlled: bool
    instructions: Optional[str] = None

    class Config:
        from_attributes = True


class PrescriptionResponse(BaseModel):
    """Prescription response"""
    id: UUID
    prescription_number: str
    customer_id: Optional[UUID] = None
    patient_name: str
    patient_phone: Optional[str] = None
    prescriber_name: str
    prescriber_reg_no: Optional[str] = None
    diagnosis: Optional[str] = None
    status: str
    issue_date: date
    expiry_date: Optional[date] = None
    refills_allowed: int
    refills_used: int
    notes: Optional[str] = None
    branch_id: Optional[UUID] = None
    created_at: datetime
    items: List[PrescriptionItemResponse] = []

    class Config:
        from_attributes = True


class DispensingItemResponse(BaseModel):
    id: UUID
    prescription_item_id: UUID
    medicine_id: UUID
    medicine_name: str
    batch_number: Optional[str] = None
    quantity: int
    is_substitution: bool
    substitution_reason: Optional[str] = None

    class Config:
        from_attributes = True


class DispensingResponse(BaseModel):
    id: UUID
    prescription_id: UUID
    sale_id: Optional[UUID] = None
    dispensed_by: UUID
    dispensed_by_name: str
    verified_by: Optional[UUID] = None
    dispensing_notes: Optional[str] = None
    counseling_provided: bool
    dispensed_at: datetime
    items: List[DispensingItemResponse] = []
    prescription_status: Optional[str] = None

    class Config:
        from_attributes = True
