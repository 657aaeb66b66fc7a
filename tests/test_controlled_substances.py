import pytest

from dawacare.exceptions import InsufficientBalance, ValidationError
from dawacare.models import ControlledSubstanceEntry, StockMovement
from dawacare.services.controlled_substance_service import ControlledSubstanceService

from tests.conftest import actor_for, auth_headers


@pytest.fixture
def morphine(make_medicine):
    return make_medicine(
        name="Morphine 10mg", batch_number="M-01", quantity=10, is_controlled=True, schedule_class="SCHEDULE_II"
    )


def test_dispense_then_verify_by_second_pharmacist(client, db, morphine, pharmacist, second_pharmacist):
    response = client.post(
        "/api/controlled-substances-register",
        json={
            "medicine_id": str(morphine.id),
            "transaction_type": "DISPENSE",
            "quantity_out": 4,
            "patient_name": "John Otieno",
            "prescriber_name": "Dr. Achieng",
        },
        headers=auth_headers(pharmacist),
    )
    assert response.status_code == 201
    entry = response.json()
    assert entry["balance_before"] == 10
    assert entry["balance_after"] == 6
    assert entry["entry_number"].startswith("CSR-MAIN-")
    assert entry["recorded_by"] == str(pharmacist.id)
    assert entry["verified_by"] is None

    db.expire_all()
    assert db.get(type(morphine), morphine.id).quantity == 6

    own = client.put(
        f"/api/controlled-substances/{entry['id']}", json={"action": "verify"}, headers=auth_headers(pharmacist)
    )
    assert own.status_code == 403
    assert "error" in own.json()

    verified = client.put(
        f"/api/controlled-substances/{entry['id']}", json={"action": "verify"}, headers=auth_headers(second_pharmacist)
    )
    assert verified.status_code == 200
    assert verified.json()["verified_by"] == str(second_pharmacist.id)
    assert verified.json()["verified_by_name"] == second_pharmacist.name

    again = client.put(
        f"/api/controlled-substances/{entry['id']}", json={"action": "verify"}, headers=auth_headers(second_pharmacist)
    )
    assert again.status_code == 409


def test_cashier_cannot_record_entries(client, morphine, cashier):
    response = client.post(
        "/api/controlled-substances-register",
        json={"medicine_id": str(morphine.id), "transaction_type": "DISPENSE", "quantity_out": 1},
        headers=auth_headers(cashier),
    )
    assert response.status_code == 403


def test_entry_requires_a_quantity(client, morphine, pharmacist):
    response = client.post(
        "/api/controlled-substances-register",
        json={"medicine_id": str(morphine.id), "transaction_type": "ADJUST"},
        headers=auth_headers(pharmacist),
    )
    assert response.status_code == 400
    assert "error" in response.json()


def test_overdraw_rejected_and_nothing_written(db, morphine, pharmacist):
    with pytest.raises(InsufficientBalance):
        ControlledSubstanceService.create_entry(db, morphine.id, "DISPENSE", 0, 11, actor_for(pharmacist))

    assert db.query(ControlledSubstanceEntry).count() == 0
    assert db.query(StockMovement).count() == 0
    db.refresh(morphine)
    assert morphine.quantity == 10


def test_non_controlled_medicine_rejected(db, make_medicine, pharmacist):
    medicine = make_medicine()
    with pytest.raises(ValidationError):
        ControlledSubstanceService.create_entry(db, medicine.id, "DISPENSE", 0, 1, actor_for(pharmacist))


def test_entries_chain_balances(db, morphine, pharmacist):
    actor = actor_for(pharmacist)
    first = ControlledSubstanceService.create_entry(db, morphine.id, "DISPENSE", 0, 3, actor)
    second = ControlledSubstanceService.create_entry(
        db, morphine.id, "RECEIVE", 20, 0, actor, supplier_name="Kilimanjaro Pharma"
    )

    assert second.balance_before == first.balance_after == 7
    assert second.balance_after == 27
    db.refresh(morphine)
    assert morphine.quantity == 27


def test_register_only_entry_leaves_stock_alone(db, morphine, pharmacist):
    ControlledSubstanceService.create_entry(
        db, morphine.id, "DESTROY", 0, 2, actor_for(pharmacist),
        apply_to_stock=False, witness_name="Inspector Kamau", destruction_method="Incineration",
    )
    db.refresh(morphine)
    assert morphine.quantity == 10

    drift = ControlledSubstanceService.find_register_drift(db)
    assert len(drift) == 1
    assert drift[0]["register_balance"] == 8
    assert drift[0]["inventory_quantity"] == 10
    assert drift[0]["discrepancy"] == -2


def test_balance_and_listing(client, db, morphine, pharmacist):
    actor = actor_for(pharmacist)
    ControlledSubstanceService.create_entry(db, morphine.id, "DISPENSE", 0, 2, actor, patient_name="Jane Doe")
    ControlledSubstanceService.create_entry(db, morphine.id, "DISPENSE", 0, 1, actor, patient_name="Ali Hassan")

    balance = client.get(
        "/api/controlled-substances/balance", params={"medicine_id": str(morphine.id)},
        headers=auth_headers(pharmacist),
    ).json()
    assert balance["register_balance"] == 7
    assert balance["inventory_quantity"] == 7
    assert balance["has_discrepancy"] is False
    assert balance["total_out"] == 3
    assert balance["entry_count"] == 2
    assert balance["by_transaction_type"]["DISPENSE"]["count"] == 2

    listing = client.get(
        "/api/controlled-substances-register", params={"search": "jane"}, headers=auth_headers(pharmacist)
    ).json()
    assert listing["total"] == 1
    assert listing["entries"][0]["patient_name"] == "Jane Doe"


def test_medicine_without_entries_has_no_drift(db, morphine):
    assert ControlledSubstanceService.find_register_drift(db) == []
