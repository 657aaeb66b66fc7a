"""
Pydantic schemas for request/response validation
"""
from .medicine import MedicineResponse, StockAdjustmentRequest, StockAdjustmentResponse, StockMovementResponse
from .purchase import (
    PurchaseOrderCreate, PurchaseOrderItemCreate, PurchaseOrderStatusUpdate, PurchaseOrderResponse,
    ReceivingLineItem, GRNCreate, GRNResponse,
)
from .transfer import TransferLineItem, StockTransferCreate, StockTransferStatusUpdate, StockTransferResponse
from .controlled_substance import (
    ControlledEntryCreate, ControlledEntryAction, ControlledEntryResponse, ControlledEntryList,
    RegisterBalance, RegisterDrift,
)
from .sale import SaleLineItem, SaleCreate, SaleResponse
from .prescription import PrescriptionCreate, PrescriptionResponse, DispenseLineItem, DispenseRequest, DispensingResponse
from .sync import OfflineSale, SyncDownloadResponse, SyncUploadRequest, SyncUploadResponse

__all__ = [
    # Medicine
    "MedicineResponse",
    "StockAdjustmentRequest",
    "StockAdjustmentResponse",
    "StockMovementResponse",
    # Purchase
    "PurchaseOrderCreate",
    "PurchaseOrderItemCreate",
    "PurchaseOrderStatusUpdate",
    "PurchaseOrderResponse",
    "ReceivingLineItem",
    "GRNCreate",
    "GRNResponse",
    # Transfer
    "TransferLineItem",
    "StockTransferCreate",
    "StockTransferStatusUpdate",
    "StockTransferResponse",
    # Controlled substances
    "ControlledEntryCreate",
    "ControlledEntryAction",
    "ControlledEntryResponse",
    "ControlledEntryList",
    "RegisterBalance",
    "RegisterDrift",
    # Sales / prescriptions
    "SaleLineItem",
    "SaleCreate",
    "SaleResponse",
    "PrescriptionCreate",
    "PrescriptionResponse",
    "DispenseLineItem",
    "DispenseRequest",
    "DispensingResponse",
    # Sync
    "OfflineSale",
    "SyncDownloadResponse",
    "SyncUploadRequest",
    "SyncUploadResponse",
]
