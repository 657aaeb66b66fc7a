"""
Database models for DawaCare
"""
from dawacare.database import Base

# Import all models
from .branch import Branch
from .user import User
from .supplier import Supplier
from .customer import Customer
from .medicine import Medicine, StockMovement
from .controlled_substance import ControlledSubstanceEntry
from .purchase import PurchaseOrder, PurchaseOrderItem, GoodsReceivedNote, GRNItem
from .transfer import StockTransfer, StockTransferItem
from .sale import Sale, SaleItem
from .prescription import Prescription, PrescriptionItem, PrescriptionDispensing, PrescriptionDispensingItem
from .settings import DocumentSequence
from .sync import SyncQueue, SyncState

__all__ = [
    "Base",
    "Branch",
    "User",
    "Supplier",
    "Customer",
    "Medicine",
    "StockMovement",
    "ControlledSubstanceEntry",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "GoodsReceivedNote",
    "GRNItem",
    "StockTransfer",
    "StockTransferItem",
    "Sale",
    "SaleItem",
    "Prescription",
    "PrescriptionItem",
    "PrescriptionDispensing",
    "PrescriptionDispensingItem",
    "DocumentSequence",
    "SyncQueue",
    "SyncState",
]
