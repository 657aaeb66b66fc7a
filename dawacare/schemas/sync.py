"""
Sync protocol payloads (download change feed and offline upload)
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, date
from uuid import UUID
from decimal import Decimal

from dawacare.schemas.sale import PaymentMethod


class BranchSync(BaseModel):
    id: UUID
    name: str
    code: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_main_branch: Optional[bool] = False
    is_active: Optional[bool] = True
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserSync(BaseModel):
    """Credential-free user copy"""
    id: UUID
    name: str
    email: str
    role: str
    branch_id: Optional[UUID] = None
    is_active: Optional[bool] = True
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomerSync(BaseModel):
    id: Optional[UUID] = None
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    loyalty_points: int = 0
    credit_limit: Decimal = Decimal("0")
    credit_balance: Decimal = Decimal("0")
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    def error_key(self) -> str:
        """Upload errors are reported as "Customer <key>: ..."; names are not unique."""
        return str(self.id or self.phone or self.name)


class SupplierSync(BaseModel):
    id: UUID
    name: str
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    license_number: Optional[str] = None
    status: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MedicineSync(BaseModel):
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


class SyncDownloadResponse(BaseModel):
    branches: List[BranchSync] = []
    users: List[UserSync] = []
    customers: List[CustomerSync] = []
    suppliers: List[SupplierSync] = []
    medicines: List[MedicineSync] = []
    synced_at: datetime
    full_sync: bool


class OfflineSaleItem(BaseModel):
    medicine_id: UUID
    medicine_name: Optional[str] = None
    batch_number: Optional[str] = None
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    total: Optional[Decimal] = None


class OfflineSale(BaseModel):
    """Sale recorded on a desktop while offline. invoice_number is the idempotency key."""
    invoice_number: str = Field(..., min_length=1)
    items: List[OfflineSaleItem] = Field(..., min_length=1)
    subtotal: Optional[Decimal] = None
    discount: Decimal = Decimal("0")
    total: Optional[Decimal] = None
    payment_method: PaymentMethod = "CASH"
    payment_status: str = "PAID"
    notes: Optional[str] = None
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    sold_by: Optional[UUID] = None
    sold_by_name: Optional[str] = None
    branch_id: Optional[UUID] = None
    created_at: Optional[datetime] = None


class SyncUploadRequest(BaseModel):
    sales: List[OfflineSale] = []
    customers: List[CustomerSync] = []


class SyncUploadResponse(BaseModel):
    sales_synced: int = 0
    sales_skipped: int = 0
    customers_synced: int = 0
    errors: List[str] = []
    synced_at: datetime
