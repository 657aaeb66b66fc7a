"""
Medicine and stock movement schemas
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime, date
from uuid import UUID
from decimal import Decimal


class MedicineResponse(BaseModel):
    """Stock row"""
    id: UUID
    branch_id: Optional[UUID] = None
    name: str
    generic_name: Optional[str] = None
    category: Optional[str] = None
    manufacturer: Optional[str] = None
    batch_number: str
    expiry_date: Optional[date] = None
    quantity: int
    reorder_level: int
    unit_price: Decimal
    cost_price: Decimal
    is_controlled: bool
    schedule_class: Optional[str] = None
    is_active: bool
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StockAdjustmentRequest(BaseModel):
    """Manual stock correction. Controlled medicines also get an ADJUST register entry."""
    quantity_delta: int = Field(..., description="Positive adds stock, negative removes it")
    reason: Optional[str] = Field(None, max_length=2000)
    witness_name: Optional[str] = None
    witness_role: Optional[str] = None

    @field_validator("quantity_delta")
    @classmethod
    def delta_not_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("quantity_delta must not be zero")
        return v


class StockMovementResponse(BaseModel):
    """Ledger audit row"""
    id: UUID
    medicine_id: UUID
    branch_id: Optional[UUID] = None
    movement_type: str
    quantity_delta: int
    quantity_before: int
    quantity_after: int
    reference_type: Optional[str] = None
    reference_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StockAdjustmentResponse(BaseModel):
    medicine: MedicineResponse
    movement: StockMovementResponse
    register_entry_id: Optional[UUID] = None
