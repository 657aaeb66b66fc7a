"""
Purchases API routes (Purchase Orders and GRN)
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from dawacare.database import get_db
from dawacare.dependencies import get_current_actor
from dawacare.permissions import Actor
from dawacare.schemas.purchase import (
    PurchaseOrderCreate, PurchaseOrderResponse, PurchaseOrderStatusUpdate,
    GRNCreate, GRNResponse,
)
from dawacare.services.receiving_service import ReceivingService

router = APIRouter()


@router.post("/purchase-orders", response_model=PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
def create_purchase_order(
    body: PurchaseOrderCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Create a DRAFT purchase order"""
    return ReceivingService.create_purchase_order(
        db,
        body.supplier_id,
        body.branch_id,
        body.items,
        actor,
        expected_date=body.expected_date,
        tax=body.tax,
        notes=body.notes,
    )


@router.get("/purchase-orders", response_model=List[PurchaseOrderResponse])
def list_purchase_orders(
    branch_id: Optional[UUID] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    supplier_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return ReceivingService.list_purchase_orders(
        db, branch_id=branch_id, status=status_filter, supplier_id=supplier_id, limit=limit
    )


@router.get("/purchase-orders/{purchase_order_id}", response_model=PurchaseOrderResponse)
def get_purchase_order(
    purchase_order_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return ReceivingService.get_purchase_order(db, purchase_order_id)


@router.put("/purchase-orders/{purchase_order_id}", response_model=PurchaseOrderResponse)
def update_purchase_order_status(
    purchase_order_id: UUID,
    body: PurchaseOrderStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Mark SENT or CANCELLED. PARTIAL and RECEIVED follow from receipts."""
    ReceivingService.set_purchase_order_status(db, purchase_order_id, body.status, actor)
    return ReceivingService.get_purchase_order(db, purchase_order_id)


@router.post("/grn", response_model=GRNResponse, status_code=status.HTTP_201_CREATED)
def create_grn(
    body: GRNCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """
    Create GRN (Goods Received Note)

    Updates purchase order received quantities and, when add_to_inventory,
    stock (and the register for controlled lines) in one transaction.
    """
    grn = ReceivingService.receive(
        db,
        body.purchase_order_id,
        body.items,
        actor,
        add_to_inventory=body.add_to_inventory,
        notes=body.notes,
    )
    response = GRNResponse.model_validate(ReceivingService.get_grn(db, grn.id))
    response.purchase_order_status = grn.purchase_order.status
    return response


@router.get("/grn", response_model=List[GRNResponse])
def list_grns(
    purchase_order_id: Optional[UUID] = Query(None),
    branch_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return ReceivingService.list_grns(db, purchase_order_id=purchase_order_id, branch_id=branch_id, limit=limit)


@router.get("/grn/{grn_id}", response_model=GRNResponse)
def get_grn(
    grn_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return ReceivingService.get_grn(db, grn_id)
