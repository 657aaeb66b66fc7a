"""
Document Numbering Service - sequential, branch-scoped document numbers

Every number comes from a DocumentSequence row per (branch code, type, year).
The row is bootstrapped with INSERT ... ON CONFLICT DO NOTHING, then locked
FOR UPDATE and incremented inside the caller's transaction, so two writers in
the same branch serialize on the counter instead of issuing the same number.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from dawacare.config import settings
from dawacare.models import Branch, DocumentSequence

logger = logging.getLogger(__name__)

# document_type -> (prefix, digits)
DOCUMENT_FORMATS = {
    "CSR": ("CSR", 5),
    "GRN": ("GRN", 6),
    "PO": ("PO", 6),
    "TRF": ("TRF", 6),
    "INV": ("INV", 6),
    "RX": ("RX", 6),
}


def _dialect_insert(db: Session):
    name = db.get_bind().dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


class DocumentService:
    """Service for generating sequential document numbers"""

    @staticmethod
    def get_branch_code(db: Session, branch_id: Optional[UUID]) -> str:
        """Branch code used in numbers; DEFAULT_BRANCH_CODE when the branch has none."""
        if branch_id is None:
            return settings.DEFAULT_BRANCH_CODE
        branch = db.query(Branch).filter(Branch.id == branch_id).first()
        if branch and branch.code:
            return branch.code.upper()
        return settings.DEFAULT_BRANCH_CODE

    @staticmethod
    def next_sequence(db: Session, branch_code: str, document_type: str, year: int) -> int:
        """Advance and return the counter for (branch_code, document_type, year). Flushes, never commits."""
        insert = _dialect_insert(db)
        if insert is not None:
            stmt = insert(DocumentSequence).values(
                id=uuid.uuid4(),
                branch_code=branch_code,
                document_type=document_type,
                year=year,
                current_number=0,
            ).on_conflict_do_nothing(index_elements=["branch_code", "document_type", "year"])
            db.execute(stmt)

        sequence = (
            db.query(DocumentSequence)
            .filter(
                DocumentSequence.branch_code == branch_code,
                DocumentSequence.document_type == document_type,
                DocumentSequence.year == year,
            )
            .with_for_update()
            .populate_existing()
            .first()
        )
        if sequence is None:
            sequence = DocumentSequence(
                branch_code=branch_code,
                document_type=document_type,
                year=year,
                current_number=0,
            )
            db.add(sequence)

        sequence.current_number = (sequence.current_number or 0) + 1
        db.flush()
        return sequence.current_number

    @staticmethod
    def get_next_document_number(
        db: Session,
        branch_id: Optional[UUID],
        document_type: str,
        when: Optional[datetime] = None,
    ) -> str:
        """
        Get next sequential document number.

        Format: {PREFIX}-{BRANCH_CODE}-{YYYY}-{seq}, e.g. "GRN-MAIN-2026-000001".
        Register entries use five digits: "CSR-MAIN-2026-00001".
        """
        if document_type not in DOCUMENT_FORMATS:
            raise ValueError(f"Unknown document type: {document_type}")
        prefix, digits = DOCUMENT_FORMATS[document_type]
        year = (when or datetime.now(timezone.utc)).year
        code = DocumentService.get_branch_code(db, branch_id)
        seq = DocumentService.next_sequence(db, code, document_type, year)
        number = f"{prefix}-{code}-{year}-{seq:0{digits}d}"
        logger.debug("Issued document number %s", number)
        return number

    @staticmethod
    def get_register_entry_number(db: Session, branch_id: Optional[UUID]) -> str:
        return DocumentService.get_next_document_number(db, branch_id, "CSR")

    @staticmethod
    def get_grn_number(db: Session, branch_id: Optional[UUID]) -> str:
        return DocumentService.get_next_document_number(db, branch_id, "GRN")

    @staticmethod
    def get_purchase_order_number(db: Session, branch_id: Optional[UUID]) -> str:
        return DocumentService.get_next_document_number(db, branch_id, "PO")

    @staticmethod
    def get_transfer_number(db: Session, branch_id: Optional[UUID]) -> str:
        return DocumentService.get_next_document_number(db, branch_id, "TRF")

    @staticmethod
    def get_invoice_number(db: Session, branch_id: Optional[UUID]) -> str:
        return DocumentService.get_next_document_number(db, branch_id, "INV")

    @staticmethod
    def get_prescription_number(db: Session, branch_id: Optional[UUID]) -> str:
        return DocumentService.get_next_document_number(db, branch_id, "RX")

    @staticmethod
    def get_offline_invoice_number(db: Session, branch_id: Optional[UUID]) -> str:
        """
        Invoice number for a sale made on a desktop while offline.

        Format: OFF-{BRANCH_CODE}-{YYYYMMDD}-{random}. Desktop counters are not
        shared with the cloud, so these never reuse the INV sequence.
        """
        code = DocumentService.get_branch_code(db, branch_id)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
        return f"OFF-{code}-{stamp}-{uuid.uuid4().hex[:8].upper()}"
