"""
Module: erp_kernel.models.settlement
Responsibility: ORM persistence for payments and credit-note applications
    against invoices.
Architecture position: Kernel > Models.  May import from db/ and domain
    value types only.

Invariants enforced:
    - amount > 0 (ck_settlement_amount_positive).
    - amount == applied_amount + unapplied_amount; unapplied_amount is only
      non-zero under the CLAMP over-payment policy.
    - Sum of applied_amount over an invoice's settlements equals
      invoice.total_amount - invoice.balance_amount.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import TrackedBase, UUIDString
from erp_kernel.db.types import round_money
from erp_kernel.domain.documents import SettlementKind
from erp_kernel.domain.dtos import SettlementInfo


class SettlementModel(TrackedBase):
    """A payment or credit application that reduced an invoice balance."""

    __tablename__ = "settlements"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlement_amount_positive"),
        Index("idx_settlement_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=False,
    )
    kind: Mapped[SettlementKind] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    applied_amount: Mapped[Decimal] = mapped_column(nullable=False)
    unapplied_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    settled_on: Mapped[date] = mapped_column(Date, nullable=False)
    method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    credit_note_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=True,
    )

    def to_dto(self) -> SettlementInfo:
        return SettlementInfo(
            id=self.id,
            invoice_id=self.invoice_id,
            kind=SettlementKind(self.kind),
            amount=round_money(self.amount),
            applied_amount=round_money(self.applied_amount),
            unapplied_amount=round_money(self.unapplied_amount),
            settled_on=self.settled_on,
            method=self.method,
            reference=self.reference,
            credit_note_id=self.credit_note_id,
        )
