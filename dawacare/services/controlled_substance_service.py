"""
Controlled Substance Register

The register is a second, append-only ledger kept beside Medicine.quantity for
regulated medicines. Workflows never write one without the other: they go
through apply_controlled_transaction, which records the entry and applies the
same net delta to stock inside the caller's transaction.
"""
import logging
from collections import defaultdict
from datetime import datetime
from typing import Optional, List, Tuple
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from dawacare.database import utcnow
from dawacare.exceptions import NotFound, ValidationError, InsufficientBalance, InvalidTransition, Forbidden
from dawacare.models import Branch, Medicine, ControlledSubstanceEntry
from dawacare.permissions import Actor, REGISTER_ROLES, require_role
from dawacare.services.document_service import DocumentService
from dawacare.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = frozenset({"DISPENSE", "RECEIVE", "ADJUST", "DESTROY", "RETURN"})

DETAIL_FIELDS = (
    "reference_type", "reference_id", "reference_number",
    "patient_name", "patient_id", "patient_address",
    "prescription_id", "prescription_number", "prescriber_name", "prescriber_reg_no",
    "supplier_name", "supplier_license",
    "witness_name", "witness_role", "destruction_method", "destruction_certificate",
    "notes",
)


class ControlledSubstanceService:
    """Register entries, verification and reconciliation"""

    @staticmethod
    def current_balance(db: Session, medicine: Medicine) -> int:
        """balance_after of the latest entry for the medicine, else its ledger quantity."""
        last = (
            db.query(ControlledSubstanceEntry)
            .filter(ControlledSubstanceEntry.medicine_id == medicine.id)
            .order_by(ControlledSubstanceEntry.created_at.desc(), ControlledSubstanceEntry.entry_number.desc())
            .first()
        )
        if last is not None:
            return last.balance_after
        return medicine.quantity or 0

    @staticmethod
    def record_entry(
        db: Session,
        medicine: Medicine,
        transaction_type: str,
        quantity_in: int,
        quantity_out: int,
        actor: Actor,
        **details,
    ) -> ControlledSubstanceEntry:
        """
        Append a register entry. Does not touch stock; flushes, never commits.

        Raises:
            ValidationError: medicine not controlled, bad type or quantities
            InsufficientBalance: balance would go negative
        """
        if not medicine.is_controlled:
            raise ValidationError(f"{medicine.name} is not classified as a controlled substance")
        if transaction_type not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown transaction type: {transaction_type}")
        if quantity_in < 0 or quantity_out < 0:
            raise ValidationError("Register quantities must not be negative")
        if quantity_in == 0 and quantity_out == 0:
            raise ValidationError("quantity_in or quantity_out must be greater than zero")
        unknown = set(details) - set(DETAIL_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown register fields: {', '.join(sorted(unknown))}")

        balance_before = ControlledSubstanceService.current_balance(db, medicine)
        balance_after = balance_before + quantity_in - quantity_out
        if balance_after < 0:
            raise InsufficientBalance(medicine.name, balance_before, quantity_out)

        branch_id = medicine.branch_id or actor.branch_id
        branch = db.query(Branch).filter(Branch.id == branch_id).first() if branch_id else None

        entry = ControlledSubstanceEntry(
            entry_number=DocumentService.get_register_entry_number(db, branch_id),
            medicine_id=medicine.id,
            medicine_name=medicine.name,
            generic_name=medicine.generic_name,
            batch_number=medicine.batch_number,
            schedule_class=medicine.schedule_class or "SCHEDULE_II",
            transaction_type=transaction_type,
            quantity_in=quantity_in,
            quantity_out=quantity_out,
            balance_before=balance_before,
            balance_after=balance_after,
            recorded_by=actor.id,
            recorded_by_name=actor.name,
            recorded_by_role=actor.role,
            branch_id=branch_id,
            branch_name=branch.name if branch else None,
            **{k: v for k, v in details.items() if v is not None},
        )
        db.add(entry)
        db.flush()
        logger.info(
            "Register %s %s for %s: %s -> %s",
            entry.entry_number, transaction_type, medicine.name, balance_before, balance_after,
        )
        return entry

    @staticmethod
    def apply_controlled_transaction(
        db: Session,
        medicine: Medicine,
        transaction_type: str,
        quantity_in: int,
        quantity_out: int,
        actor: Actor,
        *,
        movement_type: str = "CONTROLLED",
        **details,
    ) -> ControlledSubstanceEntry:
        """
        Record the register entry and apply quantity_in - quantity_out to stock
        in the same transaction. The medicine row is locked first so the register
        balance is read under the same lock as the ledger quantity.
        """
        medicine = StockLedgerService.lock_medicine(db, medicine.id)
        entry = ControlledSubstanceService.record_entry(
            db, medicine, transaction_type, quantity_in, quantity_out, actor, **details
        )
        delta = quantity_in - quantity_out
        if delta != 0:
            StockLedgerService.adjust(
                db,
                medicine.id,
                delta,
                movement_type=movement_type,
                reference_type=details.get("reference_type") or "controlled_entry",
                reference_id=details.get("reference_id") or entry.id,
                notes=f"Register {entry.entry_number}",
                actor=actor,
            )
        return entry

    @staticmethod
    def create_entry(
        db: Session,
        medicine_id: UUID,
        transaction_type: str,
        quantity_in: int,
        quantity_out: int,
        actor: Actor,
        apply_to_stock: bool = True,
        **details,
    ) -> ControlledSubstanceEntry:
        """Manual register entry (pharmacists and admins). Commits."""
        require_role(actor, REGISTER_ROLES, "record controlled substance entries")
        try:
            medicine = db.query(Medicine).filter(Medicine.id == medicine_id).first()
            if not medicine:
                raise NotFound("Medicine not found")
            details.setdefault("reference_type", "manual")
            if apply_to_stock:
                entry = ControlledSubstanceService.apply_controlled_transaction(
                    db, medicine, transaction_type, quantity_in, quantity_out, actor, **details
                )
            else:
                medicine = StockLedgerService.lock_medicine(db, medicine.id)
                entry = ControlledSubstanceService.record_entry(
                    db, medicine, transaction_type, quantity_in, quantity_out, actor, **details
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(entry)
        return entry

    @staticmethod
    def verify_entry(db: Session, entry_id: UUID, verifier: Actor) -> ControlledSubstanceEntry:
        """
        Attach a verifier to an entry, once.

        Raises:
            NotFound: unknown entry
            Forbidden: verifier lacks the role, or recorded the entry themselves
            InvalidTransition: entry already verified
        """
        try:
            entry = (
                db.query(ControlledSubstanceEntry)
                .filter(ControlledSubstanceEntry.id == entry_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not entry:
                raise NotFound("Register entry not found")
            require_role(verifier, REGISTER_ROLES, "verify controlled substance entries")
            if entry.recorded_by == verifier.id:
                raise Forbidden("Cannot verify your own entry. A different pharmacist must verify.")
            if entry.verified_by is not None:
                raise InvalidTransition(f"Entry {entry.entry_number} is already verified")

            entry.verified_by = verifier.id
            entry.verified_by_name = verifier.name
            entry.verified_at = utcnow()
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(entry)
        logger.info("Register entry %s verified by %s", entry.entry_number, verifier.id)
        return entry

    @staticmethod
    def get_entry(db: Session, entry_id: UUID) -> ControlledSubstanceEntry:
        entry = db.query(ControlledSubstanceEntry).filter(ControlledSubstanceEntry.id == entry_id).first()
        if not entry:
            raise NotFound("Register entry not found")
        return entry

    @staticmethod
    def list_entries(
        db: Session,
        medicine_id: Optional[UUID] = None,
        branch_id: Optional[UUID] = None,
        transaction_type: Optional[str] = None,
        schedule_class: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[ControlledSubstanceEntry], int]:
        """Filtered, newest-first page of entries plus the total match count."""
        query = db.query(ControlledSubstanceEntry)
        if medicine_id:
            query = query.filter(ControlledSubstanceEntry.medicine_id == medicine_id)
        if branch_id:
            query = query.filter(ControlledSubstanceEntry.branch_id == branch_id)
        if transaction_type:
            query = query.filter(ControlledSubstanceEntry.transaction_type == transaction_type)
        if schedule_class:
            query = query.filter(ControlledSubstanceEntry.schedule_class == schedule_class)
        if start_date:
            query = query.filter(ControlledSubstanceEntry.transaction_date >= start_date)
        if end_date:
            query = query.filter(ControlledSubstanceEntry.transaction_date <= end_date)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                ControlledSubstanceEntry.medicine_name.ilike(pattern),
                ControlledSubstanceEntry.entry_number.ilike(pattern),
                ControlledSubstanceEntry.patient_name.ilike(pattern),
                ControlledSubstanceEntry.prescription_number.ilike(pattern),
            ))
        total = query.count()
        entries = (
            query.order_by(ControlledSubstanceEntry.created_at.desc(), ControlledSubstanceEntry.entry_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return entries, total

    @staticmethod
    def get_balance(db: Session, medicine_id: UUID) -> dict:
        """Register balance against ledger quantity for one controlled medicine, with totals per type."""
        medicine = db.query(Medicine).filter(Medicine.id == medicine_id).first()
        if not medicine:
            raise NotFound("Medicine not found")
        if not medicine.is_controlled:
            raise ValidationError(f"{medicine.name} is not classified as a controlled substance")

        entries = (
            db.query(ControlledSubstanceEntry)
            .filter(ControlledSubstanceEntry.medicine_id == medicine_id)
            .order_by(ControlledSubstanceEntry.created_at.desc(), ControlledSubstanceEntry.entry_number.desc())
            .all()
        )
        register_balance = entries[0].balance_after if entries else (medicine.quantity or 0)
        by_type = defaultdict(lambda: {"count": 0, "in": 0, "out": 0})
        for e in entries:
            bucket = by_type[e.transaction_type]
            bucket["count"] += 1
            bucket["in"] += e.quantity_in
            bucket["out"] += e.quantity_out

        inventory_quantity = medicine.quantity or 0
        return {
            "medicine_id": medicine.id,
            "medicine_name": medicine.name,
            "schedule_class": medicine.schedule_class,
            "register_balance": register_balance,
            "inventory_quantity": inventory_quantity,
            "discrepancy": register_balance - inventory_quantity,
            "has_discrepancy": register_balance != inventory_quantity,
            "total_in": sum(e.quantity_in for e in entries),
            "total_out": sum(e.quantity_out for e in entries),
            "entry_count": len(entries),
            "by_transaction_type": dict(by_type),
            "last_entry": entries[0] if entries else None,
        }

    @staticmethod
    def find_register_drift(db: Session, branch_id: Optional[UUID] = None) -> List[dict]:
        """Controlled medicines whose latest register balance differs from stock quantity."""
        query = db.query(Medicine).filter(Medicine.is_controlled.is_(True))
        if branch_id:
            query = query.filter(Medicine.branch_id == branch_id)

        drift = []
        for medicine in query.order_by(Medicine.name, Medicine.batch_number).all():
            balance = ControlledSubstanceService.current_balance(db, medicine)
            quantity = medicine.quantity or 0
            if balance != quantity:
                drift.append({
                    "medicine_id": medicine.id,
                    "medicine_name": medicine.name,
                    "branch_id": medicine.branch_id,
                    "register_balance": balance,
                    "inventory_quantity": quantity,
                    "discrepancy": balance - quantity,
                })
        if drift:
            logger.warning("Register drift found for %d controlled medicine(s)", len(drift))
        return drift
