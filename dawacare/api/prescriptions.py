"""
Prescription API routes
"""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dawacare.database import get_db
from dawacare.dependencies import get_current_actor
from dawacare.permissions import Actor
from dawacare.schemas.prescription import (
    PrescriptionCreate, PrescriptionResponse, DispenseRequest, DispensingResponse,
)
from dawacare.services.dispensing_service import DispensingService

router = APIRouter()


@router.post("", response_model=PrescriptionResponse, status_code=status.HTTP_201_CREATED)
def create_prescription(
    body: PrescriptionCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    prescription = DispensingService.create_prescription(db, body, actor)
    return DispensingService.get_prescription(db, prescription.id)


@router.get("/{prescription_id}", response_model=PrescriptionResponse)
def get_prescription(
    prescription_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return DispensingService.get_prescription(db, prescription_id)


@router.post("/{prescription_id}/dispense", response_model=DispensingResponse)
def dispense_prescription(
    prescription_id: UUID,
    body: DispenseRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Dispense some or all remaining quantities of a prescription"""
    dispensing = DispensingService.dispense_prescription(
        db,
        prescription_id,
        body.items,
        actor,
        sale_id=body.sale_id,
        verified_by=body.verified_by,
        dispensing_notes=body.dispensing_notes,
        counseling_provided=body.counseling_provided,
    )
    response = DispensingResponse.model_validate(dispensing)
    response.prescription_status = dispensing.prescription.status
    return response
