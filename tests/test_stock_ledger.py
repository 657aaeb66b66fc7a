import re

import pytest

from dawacare.exceptions import InsufficientStock, NotFound, ValidationError
from dawacare.models import Medicine, StockMovement
from dawacare.services.document_service import DocumentService
from dawacare.services.stock_ledger_service import StockLedgerService

from tests.conftest import actor_for


class TestAdjust:
    def test_records_movement(self, db, make_medicine, pharmacist):
        medicine = make_medicine(quantity=20)

        movement = StockLedgerService.adjust(
            db, medicine.id, -5, movement_type="SALE", reference_type="sale", actor=actor_for(pharmacist)
        )
        db.commit()

        assert movement.quantity_before == 20
        assert movement.quantity_after == 15
        assert movement.quantity_delta == -5
        assert movement.created_by == pharmacist.id
        db.refresh(medicine)
        assert medicine.quantity == 15

    def test_insufficient_stock_writes_nothing(self, db, make_medicine):
        medicine = make_medicine(quantity=3)

        with pytest.raises(InsufficientStock) as exc:
            StockLedgerService.adjust(db, medicine.id, -4)
        db.rollback()

        assert exc.value.available == 3
        assert exc.value.requested == 4
        db.refresh(medicine)
        assert medicine.quantity == 3
        assert db.query(StockMovement).count() == 0

    def test_can_empty_a_row(self, db, make_medicine):
        medicine = make_medicine(quantity=3)
        StockLedgerService.adjust(db, medicine.id, -3)
        db.commit()
        db.refresh(medicine)
        assert medicine.quantity == 0

    def test_zero_delta_rejected(self, db, make_medicine):
        medicine = make_medicine()
        with pytest.raises(ValidationError):
            StockLedgerService.adjust(db, medicine.id, 0)

    def test_unknown_movement_type_rejected(self, db, make_medicine):
        medicine = make_medicine()
        with pytest.raises(ValidationError):
            StockLedgerService.adjust(db, medicine.id, 1, movement_type="GIFT")

    def test_branch_mismatch_is_not_found(self, db, make_medicine, town_branch):
        medicine = make_medicine()
        with pytest.raises(NotFound):
            StockLedgerService.adjust(db, medicine.id, -1, town_branch.id)


class TestFindOrCreateBatch:
    def test_creates_empty_row_then_reuses_it(self, db, main_branch):
        medicine, created = StockLedgerService.find_or_create_batch(
            db, "Paracetamol 500mg", "P-1", main_branch.id, defaults={"quantity": 99, "unit_price": 10}
        )
        db.commit()
        assert created
        assert medicine.quantity == 0

        again, created_again = StockLedgerService.find_or_create_batch(db, "Paracetamol 500mg", "P-1", main_branch.id)
        assert not created_again
        assert again.id == medicine.id
        assert db.query(Medicine).count() == 1


class TestDocumentNumbers:
    def test_sequential_per_branch_and_type(self, db, main_branch, town_branch):
        first = DocumentService.get_grn_number(db, main_branch.id)
        second = DocumentService.get_grn_number(db, main_branch.id)
        other_branch = DocumentService.get_grn_number(db, town_branch.id)
        other_type = DocumentService.get_purchase_order_number(db, main_branch.id)
        db.commit()

        assert re.fullmatch(r"GRN-MAIN-\d{4}-000001", first)
        assert second.endswith("-000002")
        assert other_branch.startswith("GRN-TWN-") and other_branch.endswith("-000001")
        assert other_type.startswith("PO-MAIN-") and other_type.endswith("-000001")

    def test_register_numbers_use_five_digits(self, db, main_branch):
        number = DocumentService.get_register_entry_number(db, main_branch.id)
        assert re.fullmatch(r"CSR-MAIN-\d{4}-00001", number)

    def test_branch_without_code_uses_default(self, db):
        assert DocumentService.get_invoice_number(db, None).startswith("INV-MAIN-")

    def test_offline_invoice_numbers_are_distinct(self, db, main_branch):
        a = DocumentService.get_offline_invoice_number(db, main_branch.id)
        b = DocumentService.get_offline_invoice_number(db, main_branch.id)
        assert re.fullmatch(r"OFF-MAIN-\d{8}-[0-9A-F]{8}", a)
        assert a != b

    def test_unknown_type_rejected(self, db, main_branch):
        with pytest.raises(ValueError):
            DocumentService.get_next_document_number(db, main_branch.id, "XYZ")
