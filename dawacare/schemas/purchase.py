"""
Purchase schemas (Purchase Orders and GRNs)
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, date
from uuid import UUID
from decimal import Decimal


class PurchaseOrderItemCreate(BaseModel):
    """Purchase order line"""
    medicine_name: str = Field(..., min_length=1, max_length=255)
    generic_name: Optional[str] = None
    category: Optional[str] = None
    is_controlled: bool = False
    schedule_class: Optional[str] = None
    quantity: int = Field(..., gt=0)
    unit_cost: Decimal = Field(..., ge=0)


class PurchaseOrderCreate(BaseModel):
    """Create purchase order request"""
    supplier_id: UUID
    branch_id: Optional[UUID] = Field(None, description="Defaults to the caller's branch")
    expected_date: Optional[date] = None
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None
    items: List[PurchaseOrderItemCreate] = Field(..., min_length=1)


class PurchaseOrderStatusUpdate(BaseModel):
    """Explicit status change (SENT or CANCELLED)"""
    status: str


class PurchaseOrderItemResponse(BaseModel):
    id: UUID
    medicine_name: str
    generic_name: Optional[str] = None
    category: Optional[str] = None
    is_controlled: bool
    schedule_class: Optional[str] = None
    quantity: int
    received_qty: int
    unit_cost: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class PurchaseOrderResponse(BaseModel):
    """Purchase order response"""
    id: UUID
    po_number: str
    supplier_id: UUID
    branch_id: Optional[UUID] = None
    status: str
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    expected_date: Optional[date] = None
    notes: Optional[str] = None
    created_by: UUID
    created_at: datetime
    items: List[PurchaseOrderItemResponse] = []

    class Config:
        from_attributes = True


class ReceivingLineItem(BaseModel):
    """
    One received line.
    purchase_order_item_id pins the order line; without it the line is matched by medicine name.
    """
    purchase_order_item_id: Optional[UUID] = None
    medicine_name: str = Field(..., min_length=1, max_length=255)
    batch_number: str = Field(..., min_length=1, max_length=200)
    expiry_date: Optional[date] = None
    quantity_received: int = Field(..., gt=0)
    unit_cost: Decimal = Field(..., ge=0)
    selling_price: Optional[Decimal] = Field(None, ge=0, description="Unit price for a newly created stock row")
    reorder_level: Optional[int] = Field(None, ge=0)


class GRNCreate(BaseModel):
    """Receive goods against a purchase order"""
    purchase_order_id: UUID
    add_to_inventory: bool = True
    notes: Optional[str] = None
    items: List[ReceivingLineItem] = Field(..., min_length=1)


class GRNItemResponse(BaseModel):
    id: UUID
    purchase_order_item_id: Optional[UUID] = None
    medicine_id: Optional[UUID] = None
    medicine_name: str
    batch_number: str
    expiry_date: Optional[date] = None
    quantity_received: int
    unit_cost: Decimal
    total: Decimal
    added_to_inventory: bool

    class Config:
        from_attributes = True


class GRNResponse(BaseModel):
    """GRN response"""
    id: UUID
    grn_number: str
    purchase_order_id: UUID
    branch_id: Optional[UUID] = None
    received_by: UUID
    received_by_name: Optional[str] = None
    total: Decimal
    notes: Optional[str] = None
    received_at: datetime
    items: List[GRNItemResponse] = []
    purchase_order_status: Optional[str] = None

    class Config:
        from_attributes = True
