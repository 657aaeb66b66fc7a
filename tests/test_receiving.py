from decimal import Decimal

import pytest

from dawacare.exceptions import Forbidden, InvalidTransition, ValidationError
from dawacare.models import ControlledSubstanceEntry, GoodsReceivedNote, Medicine, PurchaseOrder
from dawacare.schemas.purchase import PurchaseOrderItemCreate, ReceivingLineItem
from dawacare.services.receiving_service import ReceivingService, derive_order_status

from tests.conftest import actor_for, auth_headers


@pytest.fixture
def order(db, supplier, main_branch, admin):
    return ReceivingService.create_purchase_order(
        db,
        supplier.id,
        main_branch.id,
        [
            PurchaseOrderItemCreate(medicine_name="Amoxicillin 500mg", quantity=10, unit_cost=Decimal("80")),
            PurchaseOrderItemCreate(medicine_name="Ibuprofen 400mg", quantity=5, unit_cost=Decimal("20")),
        ],
        actor_for(admin),
        tax=Decimal("10"),
    )


def _line(name, batch, qty, cost="80", **extra):
    return ReceivingLineItem(
        medicine_name=name, batch_number=batch, quantity_received=qty, unit_cost=Decimal(cost), **extra
    )


def test_purchase_order_totals(order):
    assert order.status == "DRAFT"
    assert order.po_number.startswith("PO-MAIN-")
    assert order.subtotal == Decimal("900")
    assert order.total == Decimal("910")


def test_partial_then_complete_receipt(db, order, admin):
    actor = actor_for(admin)
    grn = ReceivingService.receive(
        db, order.id,
        [_line("Amoxicillin 500mg", "A-1", 10), _line("Ibuprofen 400mg", "I-1", 3, cost="20")],
        actor,
    )
    assert grn.grn_number.startswith("GRN-MAIN-")
    assert grn.total == Decimal("860")
    db.refresh(order)
    assert order.status == "PARTIAL"

    amoxicillin = db.query(Medicine).filter(Medicine.name == "Amoxicillin 500mg").one()
    assert amoxicillin.quantity == 10
    assert amoxicillin.unit_price == Decimal("104.00")

    ReceivingService.receive(db, order.id, [_line("Ibuprofen 400mg", "I-1", 2, cost="20")], actor)
    db.refresh(order)
    assert order.status == "RECEIVED"
    ibuprofen = db.query(Medicine).filter(Medicine.name == "Ibuprofen 400mg").one()
    assert ibuprofen.quantity == 5


def test_receipt_without_inventory_leaves_stock(db, order, admin):
    ReceivingService.receive(
        db, order.id, [_line("Amoxicillin 500mg", "A-1", 4)], actor_for(admin), add_to_inventory=False
    )
    assert db.query(Medicine).count() == 0
    db.refresh(order)
    assert order.status == "PARTIAL"


def test_cancelled_order_cannot_be_received(db, order, admin):
    actor = actor_for(admin)
    ReceivingService.set_purchase_order_status(db, order.id, "CANCELLED", actor)
    with pytest.raises(InvalidTransition):
        ReceivingService.receive(db, order.id, [_line("Amoxicillin 500mg", "A-1", 1)], actor)
    assert db.query(GoodsReceivedNote).count() == 0


def test_line_not_on_order_aborts_whole_grn(db, order, admin):
    with pytest.raises(ValidationError):
        ReceivingService.receive(
            db, order.id,
            [_line("Amoxicillin 500mg", "A-1", 10), _line("Cetirizine 10mg", "C-1", 1)],
            actor_for(admin),
        )
    assert db.query(GoodsReceivedNote).count() == 0
    assert db.query(Medicine).count() == 0
    db.refresh(order)
    assert order.status == "DRAFT"


def test_controlled_line_writes_register(db, supplier, main_branch, admin):
    actor = actor_for(admin)
    order = ReceivingService.create_purchase_order(
        db, supplier.id, main_branch.id,
        [PurchaseOrderItemCreate(
            medicine_name="Pethidine 50mg", quantity=30, unit_cost=Decimal("40"),
            is_controlled=True, schedule_class="SCHEDULE_II",
        )],
        actor,
    )
    grn = ReceivingService.receive(db, order.id, [_line("Pethidine 50mg", "PT-9", 30, cost="40")], actor)

    entry = db.query(ControlledSubstanceEntry).one()
    assert entry.transaction_type == "RECEIVE"
    assert entry.quantity_in == 30
    assert entry.balance_after == 30
    assert entry.reference_id == grn.id
    assert entry.supplier_license == "PPB-2231"
    assert db.query(Medicine).one().quantity == 30


def test_cashier_cannot_receive(db, order, cashier):
    with pytest.raises(Forbidden):
        ReceivingService.receive(db, order.id, [_line("Amoxicillin 500mg", "A-1", 1)], actor_for(cashier))


def test_status_moves(db, order, admin):
    actor = actor_for(admin)
    sent = ReceivingService.set_purchase_order_status(db, order.id, "SENT", actor)
    assert sent.status == "SENT"
    with pytest.raises(InvalidTransition):
        ReceivingService.set_purchase_order_status(db, order.id, "RECEIVED", actor)


def test_derive_order_status():
    class Item:
        def __init__(self, quantity, received_qty):
            self.quantity = quantity
            self.received_qty = received_qty

    assert derive_order_status("SENT", [Item(10, 0), Item(5, 0)]) == "SENT"
    assert derive_order_status("SENT", [Item(10, 10), Item(5, 3)]) == "PARTIAL"
    assert derive_order_status("PARTIAL", [Item(10, 10), Item(5, 5)]) == "RECEIVED"


def test_grn_endpoint(client, db, order, pharmacist):
    response = client.post(
        "/api/grn",
        json={
            "purchase_order_id": str(order.id),
            "items": [{
                "medicine_name": "Amoxicillin 500mg",
                "batch_number": "A-7",
                "expiry_date": "2028-01-31",
                "quantity_received": 10,
                "unit_cost": "80",
                "selling_price": "120",
            }],
        },
        headers=auth_headers(pharmacist),
    )
    assert response.status_code == 201
    body = response.json()
    assert body["purchase_order_status"] == "PARTIAL"
    assert len(body["items"]) == 1

    db.expire_all()
    medicine = db.query(Medicine).one()
    assert medicine.unit_price == Decimal("120")
    assert db.query(PurchaseOrder).one().status == "PARTIAL"
