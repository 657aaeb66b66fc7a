"""
Receiving workflow: purchase orders and goods received notes (GRN)

A GRN is created in one transaction together with the purchase-order received
quantities, the stock increments and (for controlled lines) the register
entries. Order status PARTIAL/RECEIVED is derived from the items afterwards.
"""
import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from dawacare.exceptions import NotFound, ValidationError, InvalidTransition
from dawacare.models import Branch, Supplier, PurchaseOrder, PurchaseOrderItem, GoodsReceivedNote, GRNItem
from dawacare.permissions import Actor, RECEIVING_ROLES, require_role
from dawacare.schemas.purchase import PurchaseOrderItemCreate, ReceivingLineItem
from dawacare.services.controlled_substance_service import ControlledSubstanceService
from dawacare.services.document_service import DocumentService
from dawacare.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

# Selling price for a stock row first created by a receipt, when none is given
DEFAULT_MARKUP = Decimal("1.3")

# Explicit status moves; PARTIAL and RECEIVED are only ever derived
ALLOWED_PO_TRANSITIONS = {
    "DRAFT": {"SENT", "CANCELLED"},
    "SENT": {"CANCELLED"},
    "PARTIAL": {"CANCELLED"},
}


def derive_order_status(current: str, items) -> str:
    """RECEIVED when every item is fully received, PARTIAL when any has been received, else unchanged."""
    if not items:
        return current
    if all((i.received_qty or 0) >= i.quantity for i in items):
        return "RECEIVED"
    if any((i.received_qty or 0) > 0 for i in items):
        return "PARTIAL"
    return current


class ReceivingService:
    """Purchase orders and goods receipt"""

    @staticmethod
    def create_purchase_order(
        db: Session,
        supplier_id: UUID,
        branch_id: Optional[UUID],
        items: List[PurchaseOrderItemCreate],
        actor: Actor,
        expected_date=None,
        tax: Decimal = Decimal("0"),
        notes: Optional[str] = None,
    ) -> PurchaseOrder:
        """Create a DRAFT purchase order with totals. Commits."""
        require_role(actor, RECEIVING_ROLES, "create purchase orders")
        if not items:
            raise ValidationError("At least one item is required")
        branch_id = branch_id or actor.branch_id
        try:
            if not db.query(Supplier).filter(Supplier.id == supplier_id).first():
                raise NotFound("Supplier not found")
            if branch_id and not db.query(Branch).filter(Branch.id == branch_id).first():
                raise NotFound("Branch not found")

            order = PurchaseOrder(
                po_number=DocumentService.get_purchase_order_number(db, branch_id),
                supplier_id=supplier_id,
                branch_id=branch_id,
                status="DRAFT",
                expected_date=expected_date,
                notes=notes,
                created_by=actor.id,
            )
            subtotal = Decimal("0")
            for item in items:
                line_total = Decimal(item.unit_cost) * item.quantity
                subtotal += line_total
                order.items.append(PurchaseOrderItem(
                    medicine_name=item.medicine_name,
                    generic_name=item.generic_name,
                    category=item.category,
                    is_controlled=item.is_controlled,
                    schedule_class=item.schedule_class,
                    quantity=item.quantity,
                    received_qty=0,
                    unit_cost=item.unit_cost,
                    total=line_total,
                ))
            order.subtotal = subtotal
            order.tax = tax or Decimal("0")
            order.total = subtotal + order.tax
            db.add(order)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(order)
        logger.info("Purchase order %s created by %s", order.po_number, actor.id)
        return order

    @staticmethod
    def get_purchase_order(db: Session, purchase_order_id: UUID) -> PurchaseOrder:
        order = (
            db.query(PurchaseOrder)
            .options(selectinload(PurchaseOrder.items))
            .filter(PurchaseOrder.id == purchase_order_id)
            .first()
        )
        if not order:
            raise NotFound("Purchase order not found")
        return order

    @staticmethod
    def list_purchase_orders(
        db: Session,
        branch_id: Optional[UUID] = None,
        status: Optional[str] = None,
        supplier_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> List[PurchaseOrder]:
        query = db.query(PurchaseOrder).options(selectinload(PurchaseOrder.items))
        if branch_id:
            query = query.filter(PurchaseOrder.branch_id == branch_id)
        if status:
            query = query.filter(PurchaseOrder.status == status)
        if supplier_id:
            query = query.filter(PurchaseOrder.supplier_id == supplier_id)
        return query.order_by(PurchaseOrder.created_at.desc()).limit(limit).all()

    @staticmethod
    def set_purchase_order_status(db: Session, purchase_order_id: UUID, new_status: str, actor: Actor) -> PurchaseOrder:
        """DRAFT -> SENT and DRAFT|SENT|PARTIAL -> CANCELLED. Commits."""
        require_role(actor, RECEIVING_ROLES, "update purchase orders")
        try:
            order = (
                db.query(PurchaseOrder)
                .filter(PurchaseOrder.id == purchase_order_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not order:
                raise NotFound("Purchase order not found")
            if new_status not in ALLOWED_PO_TRANSITIONS.get(order.status, set()):
                raise InvalidTransition(f"Cannot change purchase order from {order.status} to {new_status}")
            order.status = new_status
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(order)
        logger.info("Purchase order %s -> %s by %s", order.po_number, new_status, actor.id)
        return order

    @staticmethod
    def _match_order_item(order: PurchaseOrder, line: ReceivingLineItem) -> PurchaseOrderItem:
        if line.purchase_order_item_id:
            for item in order.items:
                if item.id == line.purchase_order_item_id:
                    return item
            raise ValidationError(f"Item {line.purchase_order_item_id} is not on purchase order {order.po_number}")
        for item in order.items:
            if item.medicine_name == line.medicine_name:
                return item
        raise ValidationError(f"{line.medicine_name} is not on purchase order {order.po_number}")

    @staticmethod
    def receive(
        db: Session,
        purchase_order_id: UUID,
        items: List[ReceivingLineItem],
        actor: Actor,
        add_to_inventory: bool = True,
        notes: Optional[str] = None,
    ) -> GoodsReceivedNote:
        """
        Create a GRN against a purchase order and, when add_to_inventory, put the
        goods into stock. Any line failure aborts the whole GRN. Commits.

        Raises:
            NotFound: unknown purchase order
            InvalidTransition: order is CANCELLED
            ValidationError: a line is not on the order
        """
        require_role(actor, RECEIVING_ROLES, "receive goods")
        if not items:
            raise ValidationError("At least one item is required")
        try:
            order = (
                db.query(PurchaseOrder)
                .options(selectinload(PurchaseOrder.items))
                .filter(PurchaseOrder.id == purchase_order_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not order:
                raise NotFound("Purchase order not found")
            if order.status == "CANCELLED":
                raise InvalidTransition(f"Purchase order {order.po_number} is cancelled")

            branch_id = order.branch_id or actor.branch_id
            supplier = db.query(Supplier).filter(Supplier.id == order.supplier_id).first()
            grn = GoodsReceivedNote(
                grn_number=DocumentService.get_grn_number(db, branch_id),
                purchase_order_id=order.id,
                branch_id=branch_id,
                received_by=actor.id,
                received_by_name=actor.name,
                notes=notes,
            )
            db.add(grn)
            db.flush()

            grn_total = Decimal("0")
            for line in items:
                order_item = ReceivingService._match_order_item(order, line)
                order_item.received_qty = (order_item.received_qty or 0) + line.quantity_received
                if order_item.received_qty > order_item.quantity:
                    logger.warning(
                        "Over-receipt on %s line %s: ordered %s, received %s",
                        order.po_number, order_item.medicine_name, order_item.quantity, order_item.received_qty,
                    )

                line_total = Decimal(line.unit_cost) * line.quantity_received
                grn_total += line_total
                grn_item = GRNItem(
                    grn_id=grn.id,
                    purchase_order_item_id=order_item.id,
                    medicine_name=line.medicine_name,
                    batch_number=line.batch_number,
                    expiry_date=line.expiry_date,
                    quantity_received=line.quantity_received,
                    unit_cost=line.unit_cost,
                    total=line_total,
                    added_to_inventory=add_to_inventory,
                )

                if add_to_inventory:
                    medicine, _ = StockLedgerService.find_or_create_batch(
                        db,
                        line.medicine_name,
                        line.batch_number,
                        branch_id,
                        defaults={
                            "generic_name": order_item.generic_name,
                            "category": order_item.category or "General",
                            "expiry_date": line.expiry_date,
                            "cost_price": line.unit_cost,
                            "unit_price": line.selling_price if line.selling_price is not None
                            else (Decimal(line.unit_cost) * DEFAULT_MARKUP).quantize(Decimal("0.01")),
                            "reorder_level": line.reorder_level if line.reorder_level is not None else 10,
                            "is_controlled": order_item.is_controlled,
                            "schedule_class": order_item.schedule_class,
                        },
                    )
                    if medicine.is_controlled:
                        ControlledSubstanceService.apply_controlled_transaction(
                            db,
                            medicine,
                            "RECEIVE",
                            line.quantity_received,
                            0,
                            actor,
                            movement_type="RECEIVE",
                            reference_type="grn",
                            reference_id=grn.id,
                            reference_number=grn.grn_number,
                            supplier_name=supplier.name if supplier else None,
                            supplier_license=supplier.license_number if supplier else None,
                        )
                    else:
                        StockLedgerService.adjust(
                            db,
                            medicine.id,
                            line.quantity_received,
                            movement_type="RECEIVE",
                            reference_type="grn",
                            reference_id=grn.id,
                            actor=actor,
                        )
                    grn_item.medicine_id = medicine.id
                db.add(grn_item)

            grn.total = grn_total
            order.status = derive_order_status(order.status, order.items)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(grn)
        logger.info(
            "GRN %s received against %s (%d lines, order now %s)",
            grn.grn_number, order.po_number, len(items), order.status,
        )
        return grn

    @staticmethod
    def get_grn(db: Session, grn_id: UUID) -> GoodsReceivedNote:
        grn = (
            db.query(GoodsReceivedNote)
            .options(selectinload(GoodsReceivedNote.items))
            .filter(GoodsReceivedNote.id == grn_id)
            .first()
        )
        if not grn:
            raise NotFound("GRN not found")
        return grn

    @staticmethod
    def list_grns(
        db: Session,
        purchase_order_id: Optional[UUID] = None,
        branch_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> List[GoodsReceivedNote]:
        query = db.query(GoodsReceivedNote).options(selectinload(GoodsReceivedNote.items))
        if purchase_order_id:
            query = query.filter(GoodsReceivedNote.purchase_order_id == purchase_order_id)
        if branch_id:
            query = query.filter(GoodsReceivedNote.branch_id == branch_id)
        return query.order_by(GoodsReceivedNote.received_at.desc()).limit(limit).all()
