"""
Stock Transfer - moving batches between branches

Creating a transfer only records intent (with an early sufficiency check).
Stock moves when the transfer is COMPLETED: the source decrement and the
destination increment run in one transaction, and the ledger decrement at that
point is the authoritative sufficiency check.
"""
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from dawacare.database import utcnow
from dawacare.exceptions import NotFound, ValidationError, InvalidTransition, InsufficientStock
from dawacare.models import Branch, Medicine, StockTransfer, StockTransferItem
from dawacare.permissions import Actor, TRANSFER_ROLES, require_role
from dawacare.schemas.transfer import TransferLineItem
from dawacare.services.controlled_substance_service import ControlledSubstanceService
from dawacare.services.document_service import DocumentService
from dawacare.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    "PENDING": {"IN_TRANSIT", "COMPLETED", "CANCELLED"},
    "IN_TRANSIT": {"COMPLETED", "CANCELLED"},
    "COMPLETED": set(),
    "CANCELLED": set(),
}


class TransferService:
    """Inter-branch stock transfers"""

    @staticmethod
    def create(
        db: Session,
        from_branch_id: UUID,
        to_branch_id: UUID,
        items: List[TransferLineItem],
        actor: Actor,
        notes: Optional[str] = None,
    ) -> StockTransfer:
        """
        Create a PENDING transfer with item snapshots. Commits.

        Raises:
            ValidationError: same source and destination, or no items
            NotFound: unknown branch, or medicine not held by the source branch
            InsufficientStock: source quantity is already short (early warning only)
        """
        require_role(actor, TRANSFER_ROLES, "create stock transfers")
        if from_branch_id == to_branch_id:
            raise ValidationError("Source and destination branches must be different")
        if not items:
            raise ValidationError("At least one item is required")
        try:
            for branch_id in (from_branch_id, to_branch_id):
                if not db.query(Branch).filter(Branch.id == branch_id).first():
                    raise NotFound(f"Branch {branch_id} not found")

            transfer = StockTransfer(
                transfer_number=DocumentService.get_transfer_number(db, from_branch_id),
                from_branch_id=from_branch_id,
                to_branch_id=to_branch_id,
                status="PENDING",
                notes=notes,
                created_by=actor.id,
            )
            for line in items:
                medicine = (
                    db.query(Medicine)
                    .filter(Medicine.id == line.medicine_id, Medicine.branch_id == from_branch_id)
                    .first()
                )
                if not medicine:
                    raise NotFound(f"Medicine {line.medicine_id} not found in source branch")
                if (medicine.quantity or 0) < line.quantity:
                    raise InsufficientStock(medicine.name, medicine.quantity or 0, line.quantity)
                transfer.items.append(StockTransferItem(
                    medicine_id=medicine.id,
                    medicine_name=medicine.name,
                    batch_number=medicine.batch_number,
                    quantity=line.quantity,
                    unit_price=medicine.unit_price or 0,
                ))
            db.add(transfer)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(transfer)
        logger.info("Transfer %s created: %s -> %s", transfer.transfer_number, from_branch_id, to_branch_id)
        return transfer

    @staticmethod
    def get(db: Session, transfer_id: UUID) -> StockTransfer:
        transfer = (
            db.query(StockTransfer)
            .options(selectinload(StockTransfer.items))
            .filter(StockTransfer.id == transfer_id)
            .first()
        )
        if not transfer:
            raise NotFound("Stock transfer not found")
        return transfer

    @staticmethod
    def list_transfers(
        db: Session,
        branch_id: Optional[UUID] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[StockTransfer]:
        query = db.query(StockTransfer).options(selectinload(StockTransfer.items))
        if branch_id:
            query = query.filter(or_(StockTransfer.from_branch_id == branch_id, StockTransfer.to_branch_id == branch_id))
        if status:
            query = query.filter(StockTransfer.status == status)
        return query.order_by(StockTransfer.created_at.desc()).limit(limit).all()

    @staticmethod
    def _complete(db: Session, transfer: StockTransfer, actor: Actor) -> None:
        reference = {
            "reference_type": "stock_transfer",
            "reference_id": transfer.id,
            "reference_number": transfer.transfer_number,
        }
        for item in transfer.items:
            source = StockLedgerService.lock_medicine(db, item.medicine_id, transfer.from_branch_id)
            # Destination follows the item snapshot, not the live source row
            destination, created = StockLedgerService.find_or_create_batch(
                db,
                item.medicine_name,
                item.batch_number,
                transfer.to_branch_id,
                defaults={
                    "generic_name": source.generic_name,
                    "category": source.category,
                    "manufacturer": source.manufacturer,
                    "expiry_date": source.expiry_date,
                    "reorder_level": source.reorder_level,
                    "unit_price": item.unit_price,
                    "cost_price": source.cost_price,
                    "is_controlled": source.is_controlled,
                    "schedule_class": source.schedule_class,
                },
            )

            if source.is_controlled:
                ControlledSubstanceService.apply_controlled_transaction(
                    db, source, "ADJUST", 0, item.quantity, actor,
                    movement_type="TRANSFER_OUT",
                    notes=f"Transfer out to branch {transfer.to_branch_id}",
                    **reference,
                )
            else:
                StockLedgerService.adjust(
                    db, source.id, -item.quantity, transfer.from_branch_id,
                    movement_type="TRANSFER_OUT",
                    reference_type="stock_transfer",
                    reference_id=transfer.id,
                    actor=actor,
                )

            if destination.is_controlled:
                ControlledSubstanceService.apply_controlled_transaction(
                    db, destination, "RECEIVE", item.quantity, 0, actor,
                    movement_type="TRANSFER_IN",
                    notes=f"Transfer in from branch {transfer.from_branch_id}",
                    **reference,
                )
            else:
                StockLedgerService.adjust(
                    db, destination.id, item.quantity, transfer.to_branch_id,
                    movement_type="TRANSFER_IN",
                    reference_type="stock_transfer",
                    reference_id=transfer.id,
                    actor=actor,
                )
            if created:
                logger.info(
                    "Transfer %s created stock row for %s / %s at destination",
                    transfer.transfer_number, item.medicine_name, item.batch_number,
                )

    @staticmethod
    def set_status(db: Session, transfer_id: UUID, new_status: str, actor: Actor) -> StockTransfer:
        """
        Drive the transfer state machine. COMPLETED moves the stock; any failure
        leaves both branches and the transfer unchanged. Commits.

        Raises:
            NotFound: unknown transfer
            InvalidTransition: move not allowed from the current status
            InsufficientStock: source no longer holds the quantity (on COMPLETED)
        """
        require_role(actor, TRANSFER_ROLES, "update stock transfers")
        try:
            transfer = (
                db.query(StockTransfer)
                .options(selectinload(StockTransfer.items))
                .filter(StockTransfer.id == transfer_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not transfer:
                raise NotFound("Stock transfer not found")
            if new_status not in ALLOWED_TRANSITIONS.get(transfer.status, set()):
                raise InvalidTransition(f"Cannot change transfer from {transfer.status} to {new_status}")

            if new_status == "COMPLETED":
                TransferService._complete(db, transfer, actor)
                transfer.completed_by = actor.id
                transfer.completed_at = utcnow()
            elif new_status == "CANCELLED":
                transfer.cancelled_at = utcnow()
            transfer.status = new_status
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(transfer)
        logger.info("Transfer %s -> %s by %s", transfer.transfer_number, new_status, actor.id)
        return transfer
