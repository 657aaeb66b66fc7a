"""
Medicine (stock row) API routes
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dawacare.database import get_db
from dawacare.dependencies import get_current_actor
from dawacare.permissions import Actor
from dawacare.schemas.medicine import (
    MedicineResponse, StockAdjustmentRequest, StockAdjustmentResponse, StockMovementResponse,
)
from dawacare.services.inventory_service import InventoryService

router = APIRouter()


@router.get("", response_model=List[MedicineResponse])
def list_medicines(
    branch_id: Optional[UUID] = Query(None),
    low_stock: bool = Query(False),
    controlled: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
    limit: int = Query(200, ge=1, le=1000),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """List stock rows (FEFO order within a medicine name)"""
    return InventoryService.list_medicines(
        db,
        branch_id=branch_id,
        low_stock=low_stock,
        controlled=controlled,
        search=search,
        include_inactive=include_inactive,
        limit=limit,
    )


@router.get("/{medicine_id}", response_model=MedicineResponse)
def get_medicine(
    medicine_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return InventoryService.get_medicine(db, medicine_id)


@router.get("/{medicine_id}/movements", response_model=List[StockMovementResponse])
def list_movements(
    medicine_id: UUID,
    limit: int = Query(100, ge=1, le=1000),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Ledger history for one stock row, newest first"""
    InventoryService.get_medicine(db, medicine_id)
    return InventoryService.list_movements(db, medicine_id, limit=limit)


@router.post("/{medicine_id}/adjust", response_model=StockAdjustmentResponse)
def adjust_stock(
    medicine_id: UUID,
    body: StockAdjustmentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Manual stock adjustment through the ledger"""
    medicine, movement, entry = InventoryService.manual_adjustment(
        db,
        medicine_id,
        body.quantity_delta,
        actor,
        reason=body.reason,
        witness_name=body.witness_name,
        witness_role=body.witness_role,
    )
    return StockAdjustmentResponse(
        medicine=MedicineResponse.model_validate(medicine),
        movement=StockMovementResponse.model_validate(movement),
        register_entry_id=entry.id if entry else None,
    )
