from decimal import Decimal

import pytest

from dawacare.exceptions import Forbidden, InsufficientStock, InvalidTransition, ValidationError
from dawacare.models import ControlledSubstanceEntry, Medicine, StockMovement
from dawacare.schemas.transfer import TransferLineItem
from dawacare.services.stock_ledger_service import StockLedgerService
from dawacare.services.transfer_service import TransferService

from tests.conftest import actor_for, auth_headers


def _batch_quantities(db, name, batch_number):
    db.expire_all()
    rows = db.query(Medicine).filter(Medicine.name == name, Medicine.batch_number == batch_number).all()
    return {row.branch_id: row.quantity for row in rows}


def test_completed_transfer_moves_stock(client, db, make_medicine, main_branch, town_branch, admin):
    source = make_medicine(batch_number="B100", quantity=50)

    created = client.post(
        "/api/stock-transfers",
        json={
            "from_branch_id": str(main_branch.id),
            "to_branch_id": str(town_branch.id),
            "items": [{"medicine_id": str(source.id), "quantity": 20}],
        },
        headers=auth_headers(admin),
    )
    assert created.status_code == 201
    transfer = created.json()
    assert transfer["status"] == "PENDING"
    assert transfer["transfer_number"].startswith("TRF-MAIN-")
    assert _batch_quantities(db, source.name, "B100") == {main_branch.id: 50}

    completed = client.put(
        f"/api/stock-transfers/{transfer['id']}", json={"status": "COMPLETED"}, headers=auth_headers(admin)
    )
    assert completed.status_code == 200
    assert completed.json()["status"] == "COMPLETED"
    assert completed.json()["completed_by"] == str(admin.id)

    quantities = _batch_quantities(db, source.name, "B100")
    assert quantities == {main_branch.id: 30, town_branch.id: 20}
    assert sum(quantities.values()) == 50

    again = client.put(
        f"/api/stock-transfers/{transfer['id']}", json={"status": "COMPLETED"}, headers=auth_headers(admin)
    )
    assert again.status_code == 409
    assert _batch_quantities(db, source.name, "B100") == {main_branch.id: 30, town_branch.id: 20}


def test_shortfall_at_completion_changes_nothing(db, make_medicine, main_branch, town_branch, admin):
    actor = actor_for(admin)
    source = make_medicine(batch_number="B100", quantity=50)
    transfer = TransferService.create(
        db, main_branch.id, town_branch.id, [TransferLineItem(medicine_id=source.id, quantity=20)], actor
    )
    StockLedgerService.adjust(db, source.id, -40, movement_type="SALE")
    db.commit()

    with pytest.raises(InsufficientStock):
        TransferService.set_status(db, transfer.id, "COMPLETED", actor)

    assert _batch_quantities(db, source.name, "B100") == {main_branch.id: 10}
    assert TransferService.get(db, transfer.id).status == "PENDING"
    assert db.query(StockMovement).filter(StockMovement.movement_type.like("TRANSFER%")).count() == 0


def test_controlled_transfer_writes_both_registers(db, make_medicine, main_branch, town_branch, admin):
    actor = actor_for(admin)
    source = make_medicine(
        name="Diazepam 5mg", batch_number="D-3", quantity=40, is_controlled=True, schedule_class="SCHEDULE_IV"
    )
    transfer = TransferService.create(
        db, main_branch.id, town_branch.id, [TransferLineItem(medicine_id=source.id, quantity=15)], actor
    )
    TransferService.set_status(db, transfer.id, "COMPLETED", actor)

    entries = {
        e.branch_id: e for e in db.query(ControlledSubstanceEntry).all()
    }
    assert entries[main_branch.id].transaction_type == "ADJUST"
    assert entries[main_branch.id].quantity_out == 15
    assert entries[main_branch.id].balance_after == 25
    assert entries[town_branch.id].transaction_type == "RECEIVE"
    assert entries[town_branch.id].balance_after == 15
    assert entries[town_branch.id].entry_number.startswith("CSR-TWN-")
    assert _batch_quantities(db, "Diazepam 5mg", "D-3") == {main_branch.id: 25, town_branch.id: 15}


def test_cancel_then_complete_is_invalid(db, make_medicine, main_branch, town_branch, admin):
    actor = actor_for(admin)
    source = make_medicine(quantity=5)
    transfer = TransferService.create(
        db, main_branch.id, town_branch.id, [TransferLineItem(medicine_id=source.id, quantity=5)], actor
    )
    cancelled = TransferService.set_status(db, transfer.id, "CANCELLED", actor)
    assert cancelled.cancelled_at is not None
    with pytest.raises(InvalidTransition):
        TransferService.set_status(db, transfer.id, "COMPLETED", actor)


def test_in_transit_then_completed(db, make_medicine, main_branch, town_branch, admin):
    actor = actor_for(admin)
    source = make_medicine(quantity=5)
    transfer = TransferService.create(
        db, main_branch.id, town_branch.id, [TransferLineItem(medicine_id=source.id, quantity=2)], actor
    )
    TransferService.set_status(db, transfer.id, "IN_TRANSIT", actor)
    assert _batch_quantities(db, source.name, source.batch_number) == {main_branch.id: 5}
    TransferService.set_status(db, transfer.id, "COMPLETED", actor)
    assert _batch_quantities(db, source.name, source.batch_number) == {main_branch.id: 3, town_branch.id: 2}


def test_same_branch_rejected(db, make_medicine, main_branch, admin):
    source = make_medicine()
    with pytest.raises(ValidationError):
        TransferService.create(
            db, main_branch.id, main_branch.id, [TransferLineItem(medicine_id=source.id, quantity=1)], actor_for(admin)
        )


def test_pharmacist_cannot_transfer(db, make_medicine, main_branch, town_branch, pharmacist):
    source = make_medicine()
    with pytest.raises(Forbidden):
        TransferService.create(
            db, main_branch.id, town_branch.id, [TransferLineItem(medicine_id=source.id, quantity=1)],
            actor_for(pharmacist),
        )


def test_destination_follows_snapshot_taken_at_creation(db, make_medicine, main_branch, town_branch, admin):
    actor = actor_for(admin)
    source = make_medicine(name="Amoxicillin 500mg", batch_number="B100", quantity=50)
    transfer = TransferService.create(
        db, main_branch.id, town_branch.id, [TransferLineItem(medicine_id=source.id, quantity=20)], actor
    )
    source.name = "Amoxil 500mg"
    source.unit_price = Decimal("999")
    db.commit()

    TransferService.set_status(db, transfer.id, "COMPLETED", actor)

    db.expire_all()
    received = db.query(Medicine).filter(Medicine.branch_id == town_branch.id).one()
    assert received.name == "Amoxicillin 500mg"
    assert received.batch_number == "B100"
    assert received.unit_price == Decimal("150")
    assert received.quantity == 20
    assert db.get(Medicine, source.id).quantity == 30


@pytest.mark.parametrize("status", ["PENDING", "BOGUS"])
def test_unsupported_status_rejected(db, make_medicine, main_branch, town_branch, admin, status):
    actor = actor_for(admin)
    source = make_medicine(quantity=50)
    transfer = TransferService.create(
        db, main_branch.id, town_branch.id, [TransferLineItem(medicine_id=source.id, quantity=5)], actor
    )

    with pytest.raises(InvalidTransition):
        TransferService.set_status(db, transfer.id, status, actor)

    assert TransferService.get(db, transfer.id).status == "PENDING"
    assert _batch_quantities(db, source.name, "B100") == {main_branch.id: 50}
