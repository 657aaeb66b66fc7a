"""
Controlled substance register API routes
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from dawacare.database import get_db
from dawacare.dependencies import get_current_actor
from dawacare.permissions import Actor
from dawacare.schemas.controlled_substance import (
    ControlledEntryCreate, ControlledEntryAction, ControlledEntryResponse, ControlledEntryList,
    RegisterBalance, RegisterDrift,
)
from dawacare.services.controlled_substance_service import ControlledSubstanceService, DETAIL_FIELDS

router = APIRouter()


@router.post(
    "/controlled-substances-register",
    response_model=ControlledEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_entry(
    body: ControlledEntryCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """
    Record a register entry (pharmacists and admins).
    With apply_to_stock (default) the matching stock change is applied in the same transaction.
    """
    details = body.model_dump(include=set(DETAIL_FIELDS), exclude_none=True)
    return ControlledSubstanceService.create_entry(
        db,
        body.medicine_id,
        body.transaction_type,
        body.quantity_in,
        body.quantity_out,
        actor,
        apply_to_stock=body.apply_to_stock,
        **details,
    )


@router.get("/controlled-substances-register", response_model=ControlledEntryList)
def list_entries(
    medicine_id: Optional[UUID] = Query(None),
    branch_id: Optional[UUID] = Query(None),
    transaction_type: Optional[str] = Query(None),
    schedule_class: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    entries, total = ControlledSubstanceService.list_entries(
        db,
        medicine_id=medicine_id,
        branch_id=branch_id,
        transaction_type=transaction_type,
        schedule_class=schedule_class,
        start_date=start_date,
        end_date=end_date,
        search=search,
        page=page,
        limit=limit,
    )
    return ControlledEntryList(
        entries=[ControlledEntryResponse.model_validate(e) for e in entries],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/controlled-substances/balance", response_model=RegisterBalance)
def get_balance(
    medicine_id: UUID = Query(...),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Register balance against stock quantity for one medicine"""
    balance = ControlledSubstanceService.get_balance(db, medicine_id)
    last_entry = balance.pop("last_entry")
    return RegisterBalance(
        **balance,
        last_entry=ControlledEntryResponse.model_validate(last_entry) if last_entry else None,
    )


@router.get("/controlled-substances/drift", response_model=List[RegisterDrift])
def get_drift(
    branch_id: Optional[UUID] = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Controlled medicines whose register balance and stock quantity disagree"""
    return ControlledSubstanceService.find_register_drift(db, branch_id=branch_id)


@router.get("/controlled-substances/{entry_id}", response_model=ControlledEntryResponse)
def get_entry(
    entry_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return ControlledSubstanceService.get_entry(db, entry_id)


@router.put("/controlled-substances/{entry_id}", response_model=ControlledEntryResponse)
def update_entry(
    entry_id: UUID,
    body: ControlledEntryAction,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Verify an entry. Entries are otherwise immutable; the verifier must not be the recorder."""
    return ControlledSubstanceService.verify_entry(db, entry_id, actor)
