"""
Stock transfer schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from decimal import Decimal


class TransferLineItem(BaseModel):
    """Quantity of one source-branch stock row to move"""
    medicine_id: UUID
    quantity: int = Field(..., gt=0)


class StockTransferCreate(BaseModel):
    from_branch_id: UUID
    to_branch_id: UUID
    notes: Optional[str] = None
    items: List[TransferLineItem] = Field(..., min_length=1)


class StockTransferStatusUpdate(BaseModel):
    """Target state: IN_TRANSIT, COMPLETED or CANCELLED"""
    status: str


class StockTransferItemResponse(BaseModel):
    id: UUID
    medicine_id: UUID
    medicine_name: str
    batch_number: str
    quantity: int
    unit_price: Decimal

    class Config:
        from_attributes = True


class StockTransferResponse(BaseModel):
    id: UUID
    transfer_number: str
    from_branch_id: UUID
    to_branch_id: UUID
    status: str
    notes: Optional[str] = None
    created_by: UUID
    completed_by: Optional[UUID] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    items: List[StockTransferItemResponse] = []

    class Config:
        from_attributes = True
