"""
Dispensing: point-of-sale sales and prescription dispensing

Both paths take stock out through the ledger, and controlled medicines through
the register unit of work (DISPENSE). A sale or dispensing either lands with all
of its decrements or not at all.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from dawacare.exceptions import NotFound, ValidationError, InvalidTransition, DuplicateRecord
from dawacare.models import (
    Customer, Medicine, Sale, SaleItem,
    Prescription, PrescriptionItem, PrescriptionDispensing, PrescriptionDispensingItem,
)
from dawacare.permissions import Actor, SALES_ROLES, DISPENSING_ROLES, require_role
from dawacare.schemas.prescription import PrescriptionCreate, DispenseLineItem
from dawacare.schemas.sale import SaleCreate
from dawacare.schemas.sync import OfflineSale
from dawacare.services.controlled_substance_service import ControlledSubstanceService
from dawacare.services.document_service import DocumentService
from dawacare.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

# One loyalty point per this many currency units of the final total
POINTS_RATE = Decimal("100")


def _load_medicine_for_branch(db: Session, medicine_id: UUID, branch_id: Optional[UUID]) -> Medicine:
    medicine = StockLedgerService.lock_medicine(db, medicine_id)
    if branch_id is not None and medicine.branch_id is not None and medicine.branch_id != branch_id:
        raise NotFound(f"Medicine {medicine.name} is not stocked in this branch")
    if not medicine.is_active:
        raise ValidationError(f"{medicine.name} is not active")
    return medicine


class DispensingService:
    """Sales and prescriptions"""

    @staticmethod
    def _take_out(
        db: Session,
        medicine: Medicine,
        quantity: int,
        actor: Actor,
        movement_type: str,
        reference_type: str,
        reference_id: UUID,
        reference_number: Optional[str] = None,
        **register_details,
    ) -> None:
        if medicine.is_controlled:
            ControlledSubstanceService.apply_controlled_transaction(
                db, medicine, "DISPENSE", 0, quantity, actor,
                movement_type=movement_type,
                reference_type=reference_type,
                reference_id=reference_id,
                reference_number=reference_number,
                **register_details,
            )
        else:
            StockLedgerService.adjust(
                db, medicine.id, -quantity,
                movement_type=movement_type,
                reference_type=reference_type,
                reference_id=reference_id,
                actor=actor,
            )

    @staticmethod
    def record_sale(db: Session, payload: SaleCreate, actor: Actor, offline: bool = False) -> Sale:
        """
        Build a sale, its items and stock decrements. Flushes, never commits.

        Prices come from the medicine rows. offline=True marks the sale as made
        without the cloud and gives it an OFF- invoice number.
        """
        require_role(actor, SALES_ROLES, "create sales")
        if not payload.items:
            raise ValidationError("At least one item is required")
        branch_id = payload.branch_id or actor.branch_id

        customer = None
        if payload.customer_id:
            customer = (
                db.query(Customer)
                .filter(Customer.id == payload.customer_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not customer:
                raise NotFound("Customer not found")
        if payload.payment_method == "CREDIT" and customer is None:
            raise ValidationError("Customer is required for credit purchases")

        if payload.invoice_number:
            if db.query(Sale.id).filter(Sale.invoice_number == payload.invoice_number).first():
                raise DuplicateRecord(f"Invoice {payload.invoice_number} already exists")
            invoice_number = payload.invoice_number
        elif offline:
            invoice_number = DocumentService.get_offline_invoice_number(db, branch_id)
        else:
            invoice_number = DocumentService.get_invoice_number(db, branch_id)

        sale = Sale(
            invoice_number=invoice_number,
            customer_id=customer.id if customer else None,
            customer_name=payload.customer_name or (customer.name if customer else None),
            customer_phone=payload.customer_phone or (customer.phone if customer else None),
            payment_method=payload.payment_method,
            payment_status="PENDING" if payload.payment_method == "CREDIT" else "PAID",
            notes=payload.notes,
            sold_by=actor.id,
            sold_by_name=actor.name,
            branch_id=branch_id,
            is_offline=offline,
        )
        db.add(sale)
        db.flush()

        subtotal = Decimal("0")
        for line in payload.items:
            medicine = _load_medicine_for_branch(db, line.medicine_id, branch_id)
            unit_price = Decimal(medicine.unit_price or 0)
            line_total = unit_price * line.quantity
            subtotal += line_total
            DispensingService._take_out(
                db, medicine, line.quantity, actor,
                movement_type="SALE",
                reference_type="sale",
                reference_id=sale.id,
                reference_number=sale.invoice_number,
                patient_name=sale.customer_name,
            )
            db.add(SaleItem(
                sale_id=sale.id,
                medicine_id=medicine.id,
                medicine_name=medicine.name,
                batch_number=medicine.batch_number,
                quantity=line.quantity,
                unit_price=unit_price,
                total=line_total,
            ))

        discount = Decimal(payload.discount or 0)
        if discount > subtotal:
            raise ValidationError("Discount cannot exceed the sale subtotal")
        sale.subtotal = subtotal
        sale.discount = discount
        sale.total = subtotal - discount

        if customer is not None:
            if payload.payment_method == "CREDIT":
                available = Decimal(customer.credit_limit or 0) - Decimal(customer.credit_balance or 0)
                if available < sale.total:
                    raise ValidationError(
                        f"Insufficient credit limit. Available: {available}, required: {sale.total}"
                    )
                customer.credit_balance = Decimal(customer.credit_balance or 0) + sale.total
            customer.loyalty_points = (customer.loyalty_points or 0) + int(sale.total // POINTS_RATE)

        db.flush()
        return sale

    @staticmethod
    def create_sale(db: Session, payload: SaleCreate, actor: Actor, offline: bool = False) -> Sale:
        """Create a sale in one transaction. Any insufficiency aborts the whole sale. Commits."""
        try:
            sale = DispensingService.record_sale(db, payload, actor, offline=offline)
            db.commit()
        except IntegrityError:
            db.rollback()
            if payload.invoice_number:
                raise DuplicateRecord(f"Invoice {payload.invoice_number} already exists")
            raise
        except Exception:
            db.rollback()
            raise
        db.refresh(sale)
        logger.info("Sale %s created by %s: total %s", sale.invoice_number, actor.id, sale.total)
        return sale

    @staticmethod
    def replay_offline_sale(db: Session, payload: OfflineSale, actor: Actor) -> Sale:
        """
        Re-create a sale uploaded from a desktop. Keeps the desktop's invoice
        number, prices and totals; stock and register are decremented here.
        Customer loyalty and credit were already applied on the desktop and
        arrive with the customer records. Flushes, never commits.
        """
        branch_id = payload.branch_id or actor.branch_id
        customer_id = payload.customer_id
        if customer_id and not db.query(Customer.id).filter(Customer.id == customer_id).first():
            # Desktop-local customer id; the name and phone stay on the sale
            customer_id = None

        sale = Sale(
            invoice_number=payload.invoice_number,
            customer_id=customer_id,
            customer_name=payload.customer_name,
            customer_phone=payload.customer_phone,
            discount=payload.discount or 0,
            payment_method=payload.payment_method,
            payment_status=payload.payment_status or "PAID",
            notes=payload.notes,
            sold_by=payload.sold_by or actor.id,
            sold_by_name=payload.sold_by_name or actor.name,
            branch_id=branch_id,
            is_offline=True,
        )
        if payload.created_at:
            sale.created_at = payload.created_at
        db.add(sale)
        db.flush()

        subtotal = Decimal("0")
        for line in payload.items:
            medicine = StockLedgerService.lock_medicine(db, line.medicine_id)
            line_total = line.total if line.total is not None else Decimal(line.unit_price) * line.quantity
            subtotal += line_total
            DispensingService._take_out(
                db, medicine, line.quantity, actor,
                movement_type="SALE",
                reference_type="sale",
                reference_id=sale.id,
                reference_number=sale.invoice_number,
                patient_name=sale.customer_name,
                notes="Offline sale replayed from desktop",
            )
            db.add(SaleItem(
                sale_id=sale.id,
                medicine_id=medicine.id,
                medicine_name=line.medicine_name or medicine.name,
                batch_number=line.batch_number or medicine.batch_number,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total=line_total,
            ))

        sale.subtotal = payload.subtotal if payload.subtotal is not None else subtotal
        sale.total = payload.total if payload.total is not None else sale.subtotal - Decimal(sale.discount)
        db.flush()
        return sale

    @staticmethod
    def get_sale(db: Session, sale_id: UUID) -> Sale:
        sale = db.query(Sale).options(selectinload(Sale.items)).filter(Sale.id == sale_id).first()
        if not sale:
            raise NotFound("Sale not found")
        return sale

    @staticmethod
    def create_prescription(db: Session, payload: PrescriptionCreate, actor: Actor) -> Prescription:
        """Create a PENDING prescription with an RX number. Commits."""
        require_role(actor, DISPENSING_ROLES, "create prescriptions")
        issue_date = payload.issue_date or date.today()
        if payload.expiry_date and payload.expiry_date < issue_date:
            raise ValidationError("Prescription expiry date is before its issue date")
        branch_id = payload.branch_id or actor.branch_id
        try:
            if payload.customer_id and not db.query(Customer.id).filter(Customer.id == payload.customer_id).first():
                raise NotFound("Customer not found")
            prescription = Prescription(
                prescription_number=DocumentService.get_prescription_number(db, branch_id),
                customer_id=payload.customer_id,
                patient_name=payload.patient_name,
                patient_phone=payload.patient_phone,
                patient_address=payload.patient_address,
                prescriber_name=payload.prescriber_name,
                prescriber_reg_no=payload.prescriber_reg_no,
                prescriber_facility=payload.prescriber_facility,
                diagnosis=payload.diagnosis,
                status="PENDING",
                issue_date=issue_date,
                expiry_date=payload.expiry_date,
                refills_allowed=payload.refills_allowed,
                refills_used=0,
                notes=payload.notes,
                branch_id=branch_id,
                created_by=actor.id,
            )
            for item in payload.items:
                is_controlled = False
                if item.medicine_id:
                    medicine = db.query(Medicine).filter(Medicine.id == item.medicine_id).first()
                    if not medicine:
                        raise NotFound(f"Medicine {item.medicine_id} not found")
                    is_controlled = bool(medicine.is_controlled)
                prescription.items.append(PrescriptionItem(
                    medicine_id=item.medicine_id,
                    medicine_name=item.medicine_name,
                    dosage=item.dosage,
                    frequency=item.frequency,
                    duration=item.duration,
                    quantity_prescribed=item.quantity_prescribed,
                    quantity_dispensed=0,
                    substitution_allowed=item.substitution_allowed,
                    is_controlled=is_controlled,
                    instructions=item.instructions,
                ))
            db.add(prescription)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(prescription)
        logger.info("Prescription %s created by %s", prescription.prescription_number, actor.id)
        return prescription

    @staticmethod
    def get_prescription(db: Session, prescription_id: UUID) -> Prescription:
        prescription = (
            db.query(Prescription)
            .options(selectinload(Prescription.items))
            .filter(Prescription.id == prescription_id)
            .first()
        )
        if not prescription:
            raise NotFound("Prescription not found")
        return prescription

    @staticmethod
    def dispense_prescription(
        db: Session,
        prescription_id: UUID,
        items: List[DispenseLineItem],
        actor: Actor,
        sale_id: Optional[UUID] = None,
        verified_by: Optional[UUID] = None,
        dispensing_notes: Optional[str] = None,
        counseling_provided: bool = False,
        today: Optional[date] = None,
    ) -> PrescriptionDispensing:
        """
        Dispense against a prescription. Commits.

        Raises:
            NotFound: unknown prescription, sale or medicine
            InvalidTransition: prescription DISPENSED, EXPIRED (or past expiry) or CANCELLED
            ValidationError: line not on the prescription, over-dispensing, substitution not allowed
            InsufficientStock / InsufficientBalance: from the ledger or register
        """
        require_role(actor, DISPENSING_ROLES, "dispense prescriptions")
        if not items:
            raise ValidationError("At least one item must be dispensed")
        today = today or date.today()
        try:
            prescription = (
                db.query(Prescription)
                .options(selectinload(Prescription.items))
                .filter(Prescription.id == prescription_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not prescription:
                raise NotFound("Prescription not found")
            if prescription.status == "DISPENSED":
                raise InvalidTransition("Prescription already fully dispensed")
            if prescription.status == "CANCELLED":
                raise InvalidTransition("Prescription has been cancelled")
            if prescription.status == "EXPIRED" or (prescription.expiry_date and prescription.expiry_date < today):
                raise InvalidTransition("Prescription has expired")
            if sale_id and not db.query(Sale.id).filter(Sale.id == sale_id).first():
                raise NotFound("Sale not found")

            dispensing = PrescriptionDispensing(
                prescription_id=prescription.id,
                sale_id=sale_id,
                dispensed_by=actor.id,
                dispensed_by_name=actor.name,
                verified_by=verified_by,
                dispensing_notes=dispensing_notes,
                counseling_provided=counseling_provided,
            )
            db.add(dispensing)
            db.flush()

            items_by_id = {i.id: i for i in prescription.items}
            for line in items:
                rx_item = items_by_id.get(line.prescription_item_id)
                if rx_item is None:
                    raise ValidationError(f"Invalid prescription item: {line.prescription_item_id}")
                remaining = rx_item.quantity_prescribed - (rx_item.quantity_dispensed or 0)
                if line.quantity > remaining:
                    raise ValidationError(
                        f"Cannot dispense more than remaining quantity for {rx_item.medicine_name} "
                        f"(remaining {remaining}, requested {line.quantity})"
                    )

                medicine = _load_medicine_for_branch(db, line.medicine_id, prescription.branch_id)
                if rx_item.medicine_id is not None:
                    is_substitution = medicine.id != rx_item.medicine_id
                else:
                    is_substitution = medicine.name != rx_item.medicine_name
                if is_substitution and not rx_item.substitution_allowed:
                    raise ValidationError(f"Substitution not allowed for {rx_item.medicine_name}")

                DispensingService._take_out(
                    db, medicine, line.quantity, actor,
                    movement_type="DISPENSE",
                    reference_type="prescription_dispensing",
                    reference_id=dispensing.id,
                    reference_number=prescription.prescription_number,
                    patient_name=prescription.patient_name,
                    patient_address=prescription.patient_address,
                    prescription_id=prescription.id,
                    prescription_number=prescription.prescription_number,
                    prescriber_name=prescription.prescriber_name,
                    prescriber_reg_no=prescription.prescriber_reg_no,
                )
                rx_item.quantity_dispensed = (rx_item.quantity_dispensed or 0) + line.quantity
                db.add(PrescriptionDispensingItem(
                    dispensing_id=dispensing.id,
                    prescription_item_id=rx_item.id,
                    medicine_id=medicine.id,
                    medicine_name=medicine.name,
                    batch_number=medicine.batch_number,
                    quantity=line.quantity,
                    is_substitution=is_substitution,
                    substitution_reason=line.substitution_reason if is_substitution else None,
                ))

            all_dispensed = all(i.quantity_dispensed >= i.quantity_prescribed for i in prescription.items)
            some_dispensed = any(i.quantity_dispensed > 0 for i in prescription.items)
            if all_dispensed:
                prescription.status = "DISPENSED"
                if prescription.refills_used < prescription.refills_allowed:
                    prescription.refills_used += 1
            elif some_dispensed:
                prescription.status = "PARTIAL"
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(dispensing)
        logger.info(
            "Prescription %s dispensed by %s (%d lines, now %s)",
            prescription.prescription_number, actor.id, len(items), prescription.status,
        )
        return dispensing
