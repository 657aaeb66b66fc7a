"""
Stock Ledger - the single writer of Medicine.quantity

Every quantity change is a signed delta applied to a row read FOR UPDATE and
recorded as a StockMovement. Nothing here commits: the calling workflow owns
the transaction, so a later failure rolls the adjust back with everything else.
"""
import logging
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from dawacare.exceptions import NotFound, InsufficientStock, ValidationError
from dawacare.models import Medicine, StockMovement
from dawacare.permissions import Actor

logger = logging.getLogger(__name__)

MOVEMENT_TYPES = frozenset({
    "RECEIVE", "SALE", "DISPENSE", "TRANSFER_OUT", "TRANSFER_IN", "ADJUSTMENT", "CONTROLLED",
})


class StockLedgerService:
    """Locked, validated stock adjustments"""

    @staticmethod
    def lock_medicine(db: Session, medicine_id: UUID, branch_id: Optional[UUID] = None) -> Medicine:
        """Load a medicine row with SELECT ... FOR UPDATE. NotFound if absent or in another branch."""
        medicine = (
            db.query(Medicine)
            .filter(Medicine.id == medicine_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not medicine:
            raise NotFound(f"Medicine {medicine_id} not found")
        if branch_id is not None and medicine.branch_id != branch_id:
            raise NotFound(f"Medicine {medicine_id} not found in branch {branch_id}")
        return medicine

    @staticmethod
    def adjust(
        db: Session,
        medicine_id: UUID,
        delta: int,
        branch_id: Optional[UUID] = None,
        *,
        movement_type: str = "ADJUSTMENT",
        reference_type: Optional[str] = None,
        reference_id: Optional[UUID] = None,
        notes: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> StockMovement:
        """
        Apply `delta` to the medicine's quantity.

        Raises:
            ValidationError: delta is zero or movement_type unknown
            NotFound: medicine absent or not in branch_id
            InsufficientStock: the result would be negative (nothing is written)
        """
        if delta == 0:
            raise ValidationError("Stock adjustment must not be zero")
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"Unknown movement type: {movement_type}")

        medicine = StockLedgerService.lock_medicine(db, medicine_id, branch_id)
        before = medicine.quantity or 0
        after = before + delta
        if after < 0:
            raise InsufficientStock(medicine.name, before, -delta)

        medicine.quantity = after
        movement = StockMovement(
            medicine_id=medicine.id,
            branch_id=medicine.branch_id,
            movement_type=movement_type,
            quantity_delta=delta,
            quantity_before=before,
            quantity_after=after,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            created_by=actor.id if actor else None,
        )
        db.add(movement)
        db.flush()
        logger.debug(
            "Ledger %s %s: %s -> %s (%+d)", movement_type, medicine.id, before, after, delta
        )
        return movement

    @staticmethod
    def find_or_create_batch(
        db: Session,
        name: str,
        batch_number: str,
        branch_id: Optional[UUID],
        defaults: Optional[dict] = None,
    ) -> Tuple[Medicine, bool]:
        """
        Return the stock row matched by (name, batch_number, branch), locked,
        creating it with quantity 0 when absent. Callers then add stock with adjust()
        (or the controlled unit of work) so the increment is recorded like any other.
        """
        query = db.query(Medicine).filter(
            Medicine.name == name,
            Medicine.batch_number == batch_number,
        )
        if branch_id is None:
            query = query.filter(Medicine.branch_id.is_(None))
        else:
            query = query.filter(Medicine.branch_id == branch_id)
        medicine = query.with_for_update().populate_existing().first()
        if medicine:
            return medicine, False

        fields = dict(defaults or {})
        fields.pop("quantity", None)
        medicine = Medicine(
            name=name,
            batch_number=batch_number,
            branch_id=branch_id,
            quantity=0,
            **fields,
        )
        db.add(medicine)
        db.flush()
        logger.info("Created stock row %s (%s / %s) in branch %s", medicine.id, name, batch_number, branch_id)
        return medicine, True
