"""
Synchronization Engine (cloud side)

Download: every row of the synced entities whose updated_at is at or after the
caller's cursor. The response carries synced_at, taken before any query runs;
the client stores it as its next cursor, so a row touched while the request is
in flight is sent again next time rather than missed. Merging is by id, so
re-sent rows are harmless.

Upload: additive only. Each offline sale is replayed in its own transaction and
keyed by invoice_number, which makes repeated uploads no-ops.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dawacare.config import settings
from dawacare.database import utcnow
from dawacare.exceptions import PharmacyError
from dawacare.models import Branch, User, Customer, Supplier, Medicine, Sale
from dawacare.permissions import Actor
from dawacare.schemas.sync import (
    BranchSync, UserSync, CustomerSync, SupplierSync, MedicineSync,
    OfflineSale, SyncUploadRequest,
)
from dawacare.services.dispensing_service import DispensingService

logger = logging.getLogger(__name__)


def normalize_cursor(value: Optional[datetime]) -> Optional[datetime]:
    """Cursor as aware UTC. A naive cursor is taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _changed_since(query, column, cursor: Optional[datetime]):
    if cursor is None:
        return query
    return query.filter(column >= cursor)


class SyncService:
    """Change feed download and offline upload"""

    @staticmethod
    def download(db: Session, last_sync_at: Optional[datetime] = None, branch_id: Optional[UUID] = None) -> dict:
        """
        Rows changed since last_sync_at (all rows when None). Medicines are
        limited to in-stock rows, and to branch_id when given.
        """
        # Writers stamp updated_at before they commit; step the next cursor back
        # so rows committed just after this read are still picked up next time.
        synced_at = utcnow() - timedelta(seconds=settings.SYNC_CURSOR_OVERLAP_SECONDS)
        cursor = normalize_cursor(last_sync_at)

        branches = _changed_since(db.query(Branch), Branch.updated_at, cursor).all()
        users = _changed_since(db.query(User), User.updated_at, cursor).all()
        customers = _changed_since(db.query(Customer), Customer.updated_at, cursor).all()
        suppliers = _changed_since(db.query(Supplier), Supplier.updated_at, cursor).all()

        medicines_query = db.query(Medicine).filter(Medicine.quantity > 0)
        if branch_id:
            medicines_query = medicines_query.filter(Medicine.branch_id == branch_id)
        medicines = _changed_since(medicines_query, Medicine.updated_at, cursor).all()

        logger.info(
            "Sync download since %s (branch %s): %d branches, %d users, %d customers, %d suppliers, %d medicines",
            cursor or "beginning", branch_id, len(branches), len(users), len(customers), len(suppliers), len(medicines),
        )
        return {
            "branches": [BranchSync.model_validate(b) for b in branches],
            "users": [UserSync.model_validate(u) for u in users],
            "customers": [CustomerSync.model_validate(c) for c in customers],
            "suppliers": [SupplierSync.model_validate(s) for s in suppliers],
            "medicines": [MedicineSync.model_validate(m) for m in medicines],
            "synced_at": synced_at,
            "full_sync": cursor is None,
        }

    @staticmethod
    def _sale_exists(db: Session, invoice_number: str) -> bool:
        return db.query(Sale.id).filter(Sale.invoice_number == invoice_number).first() is not None

    @staticmethod
    def upload_sale(db: Session, payload: OfflineSale, actor: Actor) -> str:
        """
        Replay one offline sale in its own transaction.
        Returns "synced" or "skipped"; raises on a per-record failure after rolling back.
        """
        if SyncService._sale_exists(db, payload.invoice_number):
            return "skipped"
        try:
            DispensingService.replay_offline_sale(db, payload, actor)
            db.commit()
        except IntegrityError:
            db.rollback()
            if SyncService._sale_exists(db, payload.invoice_number):
                # Another uploader committed the same invoice first
                return "skipped"
            raise
        except Exception:
            db.rollback()
            raise
        return "synced"

    @staticmethod
    def upload_customer(db: Session, payload: CustomerSync) -> bool:
        """Create the customer unless one with the same phone or email exists. Returns True if created."""
        conditions = []
        if payload.phone:
            conditions.append(Customer.phone == payload.phone)
        if payload.email:
            conditions.append(Customer.email == payload.email)
        if conditions and db.query(Customer.id).filter(or_(*conditions)).first():
            return False
        if payload.id and db.query(Customer.id).filter(Customer.id == payload.id).first():
            return False
        try:
            customer = Customer(
                name=payload.name,
                phone=payload.phone,
                email=payload.email,
                address=payload.address,
                loyalty_points=payload.loyalty_points or 0,
                credit_limit=payload.credit_limit or 0,
                credit_balance=payload.credit_balance or 0,
            )
            if payload.id:
                customer.id = payload.id
            db.add(customer)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return True

    @staticmethod
    def upload(db: Session, payload: SyncUploadRequest, actor: Actor) -> dict:
        """
        Apply an offline upload. Customers go first so uploaded sales can link
        to them. Per-record failures are collected in errors and the batch continues.
        """
        results = {"sales_synced": 0, "sales_skipped": 0, "customers_synced": 0, "errors": []}

        for customer in payload.customers:
            try:
                if SyncService.upload_customer(db, customer):
                    results["customers_synced"] += 1
            except (PharmacyError, SQLAlchemyError) as e:
                logger.warning("Sync upload: customer %s failed: %s", customer.error_key(), e)
                results["errors"].append(f"Customer {customer.error_key()}: {getattr(e, 'detail', None) or e}")

        for sale in payload.sales:
            try:
                outcome = SyncService.upload_sale(db, sale, actor)
            except (PharmacyError, SQLAlchemyError) as e:
                logger.warning("Sync upload: sale %s failed: %s", sale.invoice_number, e)
                results["errors"].append(f"Sale {sale.invoice_number}: {getattr(e, 'detail', None) or e}")
                continue
            if outcome == "synced":
                results["sales_synced"] += 1
            else:
                results["sales_skipped"] += 1

        results["synced_at"] = utcnow()
        logger.info(
            "Sync upload by %s: %d sales synced, %d skipped, %d customers, %d errors",
            actor.id, results["sales_synced"], results["sales_skipped"],
            results["customers_synced"], len(results["errors"]),
        )
        return results
