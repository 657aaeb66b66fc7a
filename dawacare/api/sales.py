"""
Sales API routes
"""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dawacare.database import get_db
from dawacare.dependencies import get_current_actor
from dawacare.permissions import Actor
from dawacare.schemas.sale import SaleCreate, SaleResponse
from dawacare.services.dispensing_service import DispensingService

router = APIRouter()


@router.post("", response_model=SaleResponse, status_code=status.HTTP_201_CREATED)
def create_sale(
    body: SaleCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """
    Create a sale. Prices come from the stock rows; stock is deducted in the
    same transaction and any shortage rejects the whole sale.
    """
    sale = DispensingService.create_sale(db, body, actor)
    return DispensingService.get_sale(db, sale.id)


@router.get("/{sale_id}", response_model=SaleResponse)
def get_sale(
    sale_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return DispensingService.get_sale(db, sale_id)
