"""
Stock transfer API routes
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from dawacare.database import get_db
from dawacare.dependencies import get_current_actor
from dawacare.permissions import Actor
from dawacare.schemas.transfer import StockTransferCreate, StockTransferResponse, StockTransferStatusUpdate
from dawacare.services.transfer_service import TransferService

router = APIRouter()


@router.post("", response_model=StockTransferResponse, status_code=status.HTTP_201_CREATED)
def create_transfer(
    body: StockTransferCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Create a PENDING transfer. Stock moves only when it is completed."""
    return TransferService.create(
        db, body.from_branch_id, body.to_branch_id, body.items, actor, notes=body.notes
    )


@router.get("", response_model=List[StockTransferResponse])
def list_transfers(
    branch_id: Optional[UUID] = Query(None, description="Transfers into or out of this branch"),
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return TransferService.list_transfers(db, branch_id=branch_id, status=status_filter, limit=limit)


@router.get("/{transfer_id}", response_model=StockTransferResponse)
def get_transfer(
    transfer_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return TransferService.get(db, transfer_id)


@router.put("/{transfer_id}", response_model=StockTransferResponse)
def update_transfer_status(
    transfer_id: UUID,
    body: StockTransferStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Move to IN_TRANSIT, COMPLETED or CANCELLED"""
    TransferService.set_status(db, transfer_id, body.status, actor)
    return TransferService.get(db, transfer_id)
