from datetime import datetime, timezone

import pytest

from dawacare.exceptions import ValidationError
from dawacare.models import Branch, Customer, Medicine, Sale, StockMovement, SyncQueue
from dawacare.schemas.sale import SaleCreate, SaleLineItem
from dawacare.desktop.sync_client import SyncClient, SyncError, init_local_db
from dawacare.services.sync_service import SyncService
from dawacare.utils.auth_internal import create_access_token

from tests.conftest import actor_for, auth_headers


def _offline_sale(medicine, invoice_number="OFF-MAIN-20261019-0000AAAA", quantity=2, **extra):
    sale = {
        "invoice_number": invoice_number,
        "items": [{"medicine_id": str(medicine.id), "quantity": quantity, "unit_price": "140"}],
        "payment_method": "CASH",
    }
    sale.update(extra)
    return sale


class TestDownload:
    def test_full_sync_returns_everything_in_stock(self, client, make_medicine, cashier, supplier, customer):
        make_medicine(name="Amoxicillin 500mg", batch_number="A-1", quantity=5)
        make_medicine(name="Expired Stock", batch_number="X-1", quantity=0)

        body = client.get("/api/sync", headers=auth_headers(cashier)).json()

        assert body["full_sync"] is True
        assert [m["name"] for m in body["medicines"]] == ["Amoxicillin 500mg"]
        assert len(body["branches"]) == 1
        assert body["users"][0]["email"] == cashier.email
        assert "password" not in body["users"][0]
        assert body["suppliers"][0]["license_number"] == "PPB-2231"
        assert body["customers"][0]["phone"] == customer.phone

    def test_incremental_sync_only_sends_changes(self, client, db, make_medicine, cashier):
        old = make_medicine(name="Old Batch", batch_number="O-1", quantity=5)
        make_medicine(name="New Batch", batch_number="N-1", quantity=5)
        old.updated_at = datetime(2020, 1, 1, tzinfo=timezone.utc)
        db.commit()

        body = client.get(
            "/api/sync",
            params={"last_sync_at": "2021-01-01T00:00:00+00:00"},
            headers=auth_headers(cashier),
        ).json()

        assert body["full_sync"] is False
        assert [m["name"] for m in body["medicines"]] == ["New Batch"]

    def test_cursor_is_stepped_back(self, client, cashier):
        before = datetime.now(timezone.utc)
        body = client.get("/api/sync", headers=auth_headers(cashier)).json()
        synced_at = datetime.fromisoformat(body["synced_at"].replace("Z", "+00:00"))
        if synced_at.tzinfo is None:
            synced_at = synced_at.replace(tzinfo=timezone.utc)
        assert synced_at <= before

    def test_branch_filter(self, client, make_medicine, town_branch, cashier):
        make_medicine(name="Main Stock", batch_number="M-1", quantity=5)
        make_medicine(name="Town Stock", batch_number="T-1", quantity=5, branch=town_branch)

        body = client.get(
            "/api/sync", params={"branchId": str(town_branch.id)}, headers=auth_headers(cashier)
        ).json()
        assert [m["name"] for m in body["medicines"]] == ["Town Stock"]

    def test_requires_identity(self, client):
        response = client.get("/api/sync")
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}


class TestUpload:
    def test_same_invoice_twice_is_applied_once(self, client, db, make_medicine, cashier):
        medicine = make_medicine(quantity=10)
        payload = {"sales": [_offline_sale(medicine)], "customers": []}

        first = client.post("/api/sync", json=payload, headers=auth_headers(cashier)).json()
        second = client.post("/api/sync", json=payload, headers=auth_headers(cashier)).json()

        assert first["sales_synced"] == 1 and first["sales_skipped"] == 0
        assert second["sales_synced"] == 0 and second["sales_skipped"] == 1
        assert first["errors"] == [] and second["errors"] == []

        db.expire_all()
        assert db.query(Sale).count() == 1
        assert db.get(Medicine, medicine.id).quantity == 8
        assert db.query(StockMovement).count() == 1
        sale = db.query(Sale).one()
        assert sale.is_offline
        assert sale.invoice_number == "OFF-MAIN-20261019-0000AAAA"

    def test_failed_sale_is_reported_and_others_continue(self, client, db, make_medicine, cashier):
        medicine = make_medicine(quantity=3)
        payload = {
            "sales": [
                _offline_sale(medicine, invoice_number="OFF-MAIN-20261019-00000001", quantity=5),
                _offline_sale(medicine, invoice_number="OFF-MAIN-20261019-00000002", quantity=1),
            ],
        }
        body = client.post("/api/sync", json=payload, headers=auth_headers(cashier)).json()

        assert body["sales_synced"] == 1
        assert len(body["errors"]) == 1
        assert body["errors"][0].startswith("Sale OFF-MAIN-20261019-00000001:")
        db.expire_all()
        assert db.get(Medicine, medicine.id).quantity == 2

    def test_customers_deduplicated_and_linked(self, client, db, make_medicine, customer, cashier):
        medicine = make_medicine(quantity=10)
        desktop_id = "7d4c4f5e-8f7a-4a39-9c55-2f5b8f1f3e10"
        payload = {
            "customers": [
                {"name": "Mary W.", "phone": customer.phone},
                {"id": desktop_id, "name": "Baraka Njoroge", "phone": "0722333444"},
            ],
            "sales": [_offline_sale(medicine, customer_id=desktop_id, customer_name="Baraka Njoroge")],
        }
        body = client.post("/api/sync", json=payload, headers=auth_headers(cashier)).json()

        assert body["customers_synced"] == 1
        assert body["sales_synced"] == 1
        db.expire_all()
        assert db.query(Customer).count() == 2
        assert str(db.query(Sale).one().customer_id) == desktop_id

    def test_unknown_customer_is_dropped_from_sale(self, client, db, make_medicine, cashier):
        medicine = make_medicine(quantity=10)
        payload = {"sales": [_offline_sale(
            medicine, customer_id="11111111-2222-3333-4444-555555555555", customer_name="Walk-in"
        )]}
        body = client.post("/api/sync", json=payload, headers=auth_headers(cashier)).json()

        assert body["sales_synced"] == 1
        db.expire_all()
        sale = db.query(Sale).one()
        assert sale.customer_id is None
        assert sale.customer_name == "Walk-in"


@pytest.fixture
def desktop(client, admin):
    """A desktop install with its own local store, talking to the app through the test client."""
    return SyncClient(
        session_factory=init_local_db("sqlite://"),
        server_url="http://testserver",
        token=create_access_token(str(admin.id), admin.email),
        http=client,
        branch_id=admin.branch_id,
    )


class TestDesktopClient:
    def test_offline_sale_round_trip(self, desktop, db, make_medicine, admin):
        medicine = make_medicine(quantity=10)

        downloaded = desktop.download()
        assert downloaded["full_sync"] is True
        assert downloaded["medicines"] == 1
        assert desktop.status()["last_sync_at"] is not None

        sale = desktop.record_offline_sale(
            SaleCreate(items=[SaleLineItem(medicine_id=medicine.id, quantity=4)]),
            actor_for(admin),
        )
        assert sale.invoice_number.startswith("OFF-MAIN-")
        assert sale.is_offline
        assert desktop.status()["pending"] == 1

        local = desktop.session_factory()
        try:
            assert local.get(Medicine, medicine.id).quantity == 6
        finally:
            local.close()

        uploaded = desktop.upload()
        assert uploaded["sales_synced"] == 1
        assert desktop.status()["pending"] == 0

        db.expire_all()
        assert db.get(Medicine, medicine.id).quantity == 6
        assert db.query(Sale).one().invoice_number == sale.invoice_number

        assert desktop.upload()["sales_synced"] == 0

    def test_rejected_sale_stays_queued(self, desktop, db, make_medicine, admin):
        medicine = make_medicine(quantity=10)
        desktop.download()
        sale = desktop.record_offline_sale(
            SaleCreate(items=[SaleLineItem(medicine_id=medicine.id, quantity=8)]), actor_for(admin)
        )
        # Cloud stock drops below the offline sale before it is uploaded
        medicine.quantity = 5
        db.commit()

        result = desktop.upload()
        assert result["sales_synced"] == 0
        assert result["errors"][0].startswith(f"Sale {sale.invoice_number}:")

        local = desktop.session_factory()
        try:
            row = local.query(SyncQueue).one()
            assert row.synced is False
            assert row.last_error.startswith(f"Sale {sale.invoice_number}:")
        finally:
            local.close()

    def test_offline_customer_uploaded(self, desktop, db, admin):
        desktop.download()
        created = desktop.record_offline_customer("Zawadi Mutua", phone="0733000999")

        result = desktop.upload()
        assert result["customers_synced"] == 1
        db.expire_all()
        assert db.get(Customer, created.id).name == "Zawadi Mutua"

    def test_customer_errors_matched_by_id_not_name(self, desktop, db, admin, monkeypatch):
        desktop.download()
        accepted = desktop.record_offline_customer("Juma Otieno", phone="0700000002")
        rejected = desktop.record_offline_customer("Juma Otieno", phone="0700000001")
        original = SyncService.upload_customer

        def reject_one(db, payload):
            if payload.phone == rejected.phone:
                raise ValidationError("Customer record rejected")
            return original(db, payload)

        monkeypatch.setattr(SyncService, "upload_customer", staticmethod(reject_one))

        result = desktop.upload()
        assert result["customers_synced"] == 1
        assert result["errors"] == [f"Customer {rejected.id}: Customer record rejected"]

        local = desktop.session_factory()
        try:
            rows = {row.entity_id: row for row in local.query(SyncQueue).all()}
            assert rows[accepted.id].synced is True
            assert rows[rejected.id].synced is False
            assert rows[rejected.id].last_error.startswith(f"Customer {rejected.id}:")
        finally:
            local.close()

    def test_branch_matched_by_code_keeps_local_id(self, desktop, db, make_medicine, main_branch):
        medicine = make_medicine(quantity=10)
        local = desktop.session_factory()
        try:
            local_branch = Branch(name="Main (installed offline)", code="MAIN")
            local.add(local_branch)
            local.commit()
            local_branch_id = local_branch.id
        finally:
            local.close()
        assert local_branch_id != main_branch.id

        desktop.download()
        medicine.quantity = 7
        db.commit()
        desktop.download()

        local = desktop.session_factory()
        try:
            assert local.query(Branch).count() == 1
            assert local.query(Branch).one().name == "Main Branch"
            stocked = local.get(Medicine, medicine.id)
            assert stocked.quantity == 7
            assert stocked.branch_id == local_branch_id
        finally:
            local.close()

    def test_reset_forces_full_sync(self, desktop, make_medicine):
        make_medicine(quantity=3)
        desktop.download()
        assert desktop.download()["full_sync"] is False
        desktop.reset()
        assert desktop.status()["last_sync_at"] is None
        assert desktop.download()["full_sync"] is True

    def test_server_errors_surface(self, client):
        unauthenticated = SyncClient(
            session_factory=init_local_db("sqlite://"), server_url="http://testserver", token="", http=client
        )
        with pytest.raises(SyncError) as exc:
            unauthenticated.download()
        assert exc.value.status_code == 401

    def test_unconfigured_client(self):
        offline = SyncClient(session_factory=init_local_db("sqlite://"), server_url="")
        assert offline.status()["configured"] is False
        with pytest.raises(SyncError):
            offline.download()
