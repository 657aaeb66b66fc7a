"""
Sales schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime
from uuid import UUID
from decimal import Decimal

PaymentMethod = Literal["CASH", "CARD", "MOBILE_MONEY", "CREDIT", "INSURANCE"]


class SaleLineItem(BaseModel):
    """Sold quantity of one stock row. unit_price is only honoured for replayed offline sales."""
    medicine_id: UUID
    quantity: int = Field(..., gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)


class SaleCreate(BaseModel):
    """Create sale request"""
    items: List[SaleLineItem] = Field(..., min_length=1)
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: PaymentMethod = "CASH"
    notes: Optional[str] = None
    branch_id: Optional[UUID] = Field(None, description="Defaults to the caller's branch")
    # Set by the desktop client; the cloud assigns one otherwise
    invoice_number: Optional[str] = None


class SaleItemResponse(BaseModel):
    id: UUID
    medicine_id: UUID
    medicine_name: str
    batch_number: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class SaleResponse(BaseModel):
    """Sale response"""
    id: UUID
    invoice_number: str
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    payment_method: str
    payment_status: str
    notes: Optional[str] = None
    sold_by: UUID
    sold_by_name: Optional[str] = None
    branch_id: Optional[UUID] = None
    is_offline: bool
    created_at: datetime
    items: List[SaleItemResponse] = []

    class Config:
        from_attributes = True
