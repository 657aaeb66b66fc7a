"""
Inventory Service - stock listing and manual adjustments
"""
import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from dawacare.exceptions import NotFound
from dawacare.models import Medicine, StockMovement, ControlledSubstanceEntry
from dawacare.permissions import Actor, ADJUST_ROLES, REGISTER_ROLES, require_role
from dawacare.services.controlled_substance_service import ControlledSubstanceService
from dawacare.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)


class InventoryService:
    """Stock queries and hand corrections"""

    @staticmethod
    def list_medicines(
        db: Session,
        branch_id: Optional[UUID] = None,
        low_stock: bool = False,
        controlled: Optional[bool] = None,
        search: Optional[str] = None,
        include_inactive: bool = False,
        limit: int = 200,
    ) -> List[Medicine]:
        """Stock rows by name, earliest expiry first within a name (FEFO order)."""
        query = db.query(Medicine)
        if branch_id:
            query = query.filter(Medicine.branch_id == branch_id)
        if not include_inactive:
            query = query.filter(Medicine.is_active.is_(True))
        if low_stock:
            query = query.filter(Medicine.quantity <= Medicine.reorder_level)
        if controlled is not None:
            query = query.filter(Medicine.is_controlled.is_(controlled))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Medicine.name.ilike(pattern),
                Medicine.generic_name.ilike(pattern),
                Medicine.batch_number.ilike(pattern),
            ))
        return (
            query.order_by(Medicine.name, Medicine.expiry_date.asc().nulls_last(), Medicine.batch_number)
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_medicine(db: Session, medicine_id: UUID) -> Medicine:
        medicine = db.query(Medicine).filter(Medicine.id == medicine_id).first()
        if not medicine:
            raise NotFound("Medicine not found")
        return medicine

    @staticmethod
    def list_movements(db: Session, medicine_id: UUID, limit: int = 100) -> List[StockMovement]:
        return (
            db.query(StockMovement)
            .filter(StockMovement.medicine_id == medicine_id)
            .order_by(StockMovement.created_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def manual_adjustment(
        db: Session,
        medicine_id: UUID,
        quantity_delta: int,
        actor: Actor,
        reason: Optional[str] = None,
        witness_name: Optional[str] = None,
        witness_role: Optional[str] = None,
    ) -> Tuple[Medicine, StockMovement, Optional[ControlledSubstanceEntry]]:
        """
        Correct a stock row by hand. Controlled medicines are adjusted through the
        register (ADJUST entry) and need a pharmacist or admin. Commits.
        """
        require_role(actor, ADJUST_ROLES, "adjust stock")
        entry = None
        try:
            medicine = StockLedgerService.lock_medicine(db, medicine_id)
            if medicine.is_controlled:
                require_role(actor, REGISTER_ROLES, "adjust controlled substances")
                entry = ControlledSubstanceService.apply_controlled_transaction(
                    db,
                    medicine,
                    "ADJUST",
                    max(quantity_delta, 0),
                    max(-quantity_delta, 0),
                    actor,
                    movement_type="ADJUSTMENT",
                    reference_type="manual",
                    notes=reason,
                    witness_name=witness_name,
                    witness_role=witness_role,
                )
                movement = (
                    db.query(StockMovement)
                    .filter(StockMovement.reference_id == entry.id)
                    .first()
                )
            else:
                movement = StockLedgerService.adjust(
                    db,
                    medicine.id,
                    quantity_delta,
                    movement_type="ADJUSTMENT",
                    reference_type="manual",
                    notes=reason,
                    actor=actor,
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(medicine)
        db.refresh(movement)
        if entry is not None:
            db.refresh(entry)
        logger.info(
            "Manual adjustment %+d on %s by %s (%s)", quantity_delta, medicine.name, actor.id, reason or "no reason",
        )
        return medicine, movement, entry
