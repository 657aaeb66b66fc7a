"""
Desktop side of the sync protocol.

The desktop keeps a local SQLite copy of the store. Sales made offline are
written to it with the same DispensingService the cloud uses and queued in
SyncQueue; upload() pushes them, download() pulls reference data and stock
changed since the stored cursor and merges it by id.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import requests
from sqlalchemy.orm import Session, sessionmaker, selectinload

from dawacare.config import settings
from dawacare.database import Base, make_engine, utcnow
from dawacare.models import Branch, User, Customer, Supplier, Medicine, Sale, SyncQueue, SyncState
from dawacare.permissions import Actor
from dawacare.schemas.sale import SaleCreate
from dawacare.schemas.sync import (
    CustomerSync, OfflineSale, OfflineSaleItem, SyncDownloadResponse, SyncUploadResponse,
)
from dawacare.services.dispensing_service import DispensingService

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_sync_at"
BRANCH_ALIAS_PREFIX = "branch_alias:"

BRANCH_FIELDS = ("name", "code", "address", "phone", "email", "is_main_branch", "is_active", "updated_at")
USER_FIELDS = ("name", "email", "role", "branch_id", "is_active", "updated_at")
CUSTOMER_FIELDS = (
    "name", "phone", "email", "address", "loyalty_points", "credit_limit", "credit_balance", "updated_at",
)
SUPPLIER_FIELDS = (
    "name", "contact_person", "phone", "email", "address", "license_number", "status", "updated_at",
)
MEDICINE_FIELDS = (
    "branch_id", "name", "generic_name", "category", "manufacturer", "batch_number", "expiry_date",
    "quantity", "reorder_level", "unit_price", "cost_price", "is_controlled", "schedule_class",
    "is_active", "updated_at",
)


class SyncError(Exception):
    """The sync server could not be reached or rejected the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def init_local_db(url: Optional[str] = None) -> sessionmaker:
    """Open (and create if needed) the local store; returns a session factory."""
    engine = make_engine(url or settings.LOCAL_DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _copy_fields(target, source, fields) -> None:
    for field in fields:
        setattr(target, field, getattr(source, field))


class SyncClient:
    """
    Sync client for one desktop install.

    `http` is anything with a requests-style request(method, url, ...) method;
    a requests.Session by default.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        server_url: Optional[str] = None,
        token: Optional[str] = None,
        http=None,
        timeout: Optional[int] = None,
        branch_id=None,
    ):
        self.session_factory = session_factory or init_local_db()
        self.server_url = (server_url if server_url is not None else settings.SYNC_SERVER_URL).rstrip("/")
        self.token = token if token is not None else settings.SYNC_TOKEN
        self.http = http or requests.Session()
        self.timeout = timeout or settings.SYNC_TIMEOUT_SECONDS
        self.branch_id = branch_id

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs):
        if not self.server_url:
            raise SyncError("Sync server URL is not configured")
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        url = f"{self.server_url}{path}"
        try:
            response = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise SyncError(f"Cannot reach sync server at {self.server_url}: {e}") from e
        if response.status_code >= 400:
            try:
                message = response.json().get("error")
            except ValueError:
                message = None
            raise SyncError(message or f"HTTP {response.status_code}", status_code=response.status_code)
        return response.json()

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------

    @staticmethod
    def _get_cursor(db: Session) -> Optional[datetime]:
        state = db.query(SyncState).filter(SyncState.key == LAST_SYNC_KEY).first()
        if not state or not state.value:
            return None
        return datetime.fromisoformat(state.value)

    @staticmethod
    def _set_cursor(db: Session, value: Optional[datetime]) -> None:
        state = db.query(SyncState).filter(SyncState.key == LAST_SYNC_KEY).first()
        if value is None:
            if state:
                db.delete(state)
            return
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        if not state:
            state = SyncState(key=LAST_SYNC_KEY)
            db.add(state)
        state.value = value.isoformat()

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    @staticmethod
    def _local_branch_id(db: Session, branch_id):
        """Local id for a cloud branch id; differs when the branch was matched by code."""
        if branch_id is None:
            return None
        state = db.query(SyncState).filter(SyncState.key == f"{BRANCH_ALIAS_PREFIX}{branch_id}").first()
        return UUID(state.value) if state else branch_id

    @staticmethod
    def _merge(db: Session, data: SyncDownloadResponse) -> dict:
        counts = {"branches": 0, "users": 0, "customers": 0, "suppliers": 0, "medicines": 0}

        for row in data.branches:
            branch = db.query(Branch).filter(Branch.id == row.id).first()
            if branch is None and row.code:
                branch = db.query(Branch).filter(Branch.code == row.code).first()
                if branch is not None:
                    key = f"{BRANCH_ALIAS_PREFIX}{row.id}"
                    if db.query(SyncState).filter(SyncState.key == key).first() is None:
                        db.add(SyncState(key=key, value=str(branch.id)))
                    logger.info("Sync: local branch %s matched cloud branch %s by code %s", branch.id, row.id, row.code)
            if branch is None:
                branch = Branch(id=row.id)
                db.add(branch)
            _copy_fields(branch, row, BRANCH_FIELDS)
            counts["branches"] += 1
        db.flush()

        for row in data.users:
            # Users are provisioned locally at login; sync only refreshes them
            user = db.query(User).filter(User.id == row.id).first()
            if user is None:
                continue
            _copy_fields(user, row, USER_FIELDS)
            user.branch_id = SyncClient._local_branch_id(db, row.branch_id)
            counts["users"] += 1

        for model, rows, fields, key in (
            (Customer, data.customers, CUSTOMER_FIELDS, "customers"),
            (Supplier, data.suppliers, SUPPLIER_FIELDS, "suppliers"),
            (Medicine, data.medicines, MEDICINE_FIELDS, "medicines"),
        ):
            for row in rows:
                obj = db.query(model).filter(model.id == row.id).first()
                if obj is None:
                    obj = model(id=row.id)
                    db.add(obj)
                _copy_fields(obj, row, fields)
                if model is Medicine:
                    obj.branch_id = SyncClient._local_branch_id(db, row.branch_id)
                counts[key] += 1
        return counts

    def download(self) -> dict:
        """Pull changes since the stored cursor, merge them and advance the cursor."""
        db = self.session_factory()
        try:
            cursor = self._get_cursor(db)
            params = {}
            if cursor is not None:
                params["last_sync_at"] = cursor.isoformat()
            if self.branch_id:
                params["branch_id"] = str(self.branch_id)
            data = SyncDownloadResponse.model_validate(self._request("GET", "/api/sync", params=params))

            counts = self._merge(db, data)
            self._set_cursor(db, data.synced_at)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        logger.info("Sync download (%s): %s", "full" if data.full_sync else "incremental", counts)
        return {**counts, "synced_at": data.synced_at, "full_sync": data.full_sync}

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    @staticmethod
    def _sale_payload(sale: Sale) -> OfflineSale:
        return OfflineSale(
            invoice_number=sale.invoice_number,
            items=[
                OfflineSaleItem(
                    medicine_id=item.medicine_id,
                    medicine_name=item.medicine_name,
                    batch_number=item.batch_number,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total=item.total,
                )
                for item in sale.items
            ],
            subtotal=sale.subtotal,
            discount=sale.discount,
            total=sale.total,
            payment_method=sale.payment_method,
            payment_status=sale.payment_status,
            notes=sale.notes,
            customer_id=sale.customer_id,
            customer_name=sale.customer_name,
            customer_phone=sale.customer_phone,
            sold_by=sale.sold_by,
            sold_by_name=sale.sold_by_name,
            branch_id=sale.branch_id,
            created_at=sale.created_at,
        )

    def upload(self) -> dict:
        """Push queued offline sales and customers; mark them synced once the server accepts them."""
        db = self.session_factory()
        try:
            pending = (
                db.query(SyncQueue)
                .filter(SyncQueue.synced.is_(False))
                .order_by(SyncQueue.created_at)
                .all()
            )
            if not pending:
                return {"sales_synced": 0, "sales_skipped": 0, "customers_synced": 0, "errors": []}

            sales, customers, sent = [], [], []
            for row in pending:
                if row.entity_type == "SALE":
                    sale = (
                        db.query(Sale).options(selectinload(Sale.items)).filter(Sale.id == row.entity_id).first()
                    )
                    if sale is None:
                        row.last_error = "Sale no longer exists locally"
                        continue
                    sales.append((row, self._sale_payload(sale)))
                elif row.entity_type == "CUSTOMER":
                    customer = db.query(Customer).filter(Customer.id == row.entity_id).first()
                    if customer is None:
                        row.last_error = "Customer no longer exists locally"
                        continue
                    customers.append((row, CustomerSync.model_validate(customer)))
                else:
                    row.last_error = f"Unsupported entity type {row.entity_type}"

            body = {
                "sales": [p.model_dump(mode="json") for _, p in sales],
                "customers": [p.model_dump(mode="json") for _, p in customers],
            }
            result = SyncUploadResponse.model_validate(self._request("POST", "/api/sync", json=body))

            now = utcnow()
            for row, payload in sales:
                prefix = f"Sale {payload.invoice_number}:"
                error = next((e for e in result.errors if e.startswith(prefix)), None)
                if error:
                    row.last_error = error
                    continue
                row.synced, row.synced_at, row.last_error = True, now, None
                sent.append(row)
            for row, payload in customers:
                prefix = f"Customer {payload.error_key()}:"
                error = next((e for e in result.errors if e.startswith(prefix)), None)
                if error:
                    row.last_error = error
                    continue
                row.synced, row.synced_at, row.last_error = True, now, None
                sent.append(row)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if result.errors:
            logger.warning("Sync upload finished with %d error(s): %s", len(result.errors), result.errors)
        logger.info(
            "Sync upload: %d sales synced, %d skipped, %d customers, %d queue rows cleared",
            result.sales_synced, result.sales_skipped, result.customers_synced, len(sent),
        )
        return result.model_dump()

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def sync(self) -> dict:
        """Upload first so the downloaded stock already reflects this desktop's sales."""
        uploaded = self.upload()
        downloaded = self.download()
        return {"upload": uploaded, "download": downloaded}

    def reset(self) -> None:
        """Forget the cursor; the next download is a full sync."""
        db = self.session_factory()
        try:
            self._set_cursor(db, None)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        logger.info("Sync cursor reset; next download will be a full sync")

    def status(self) -> dict:
        db = self.session_factory()
        try:
            cursor = self._get_cursor(db)
            pending = db.query(SyncQueue).filter(SyncQueue.synced.is_(False)).count()
        finally:
            db.close()
        return {
            "last_sync_at": cursor,
            "pending": pending,
            "server_url": self.server_url or None,
            "configured": bool(self.server_url),
        }

    # ------------------------------------------------------------------
    # Offline writes
    # ------------------------------------------------------------------

    def record_offline_sale(self, payload: SaleCreate, actor: Actor) -> Sale:
        """Create a sale against the local store and queue it for upload, in one transaction."""
        db = self.session_factory()
        try:
            sale = DispensingService.record_sale(db, payload, actor, offline=True)
            db.add(SyncQueue(entity_type="SALE", entity_id=sale.id))
            db.commit()
            sale = db.query(Sale).options(selectinload(Sale.items)).filter(Sale.id == sale.id).one()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        logger.info("Offline sale %s recorded and queued", sale.invoice_number)
        return sale

    def record_offline_customer(self, name: str, phone: Optional[str] = None, email: Optional[str] = None,
                                address: Optional[str] = None) -> Customer:
        """Create a customer locally and queue it for upload."""
        db = self.session_factory()
        try:
            customer = Customer(name=name, phone=phone, email=email, address=address)
            db.add(customer)
            db.flush()
            db.add(SyncQueue(entity_type="CUSTOMER", entity_id=customer.id))
            db.commit()
            db.refresh(customer)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        return customer
