"""
Module: erp_kernel.models.party
Responsibility: ORM persistence for vendors and customers, and the per-party
    balance projection plus the raw balance event log it is derived from.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain enums only.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - party_code is globally unique (uq_party_code).
    - One PartyBalance row per party (uq_party_balance_party).
    - outstanding_balance == max(0, total_invoiced - total_paid - total_credit_noted)
      after every mutation (maintained by BalanceLedger, checked by reconcile()).
    - BalanceEvent rows are append-only and ordered per party by ``seq``
      (uq_balance_event_seq); seq is allocated from the locked balance row.

Failure modes:
    - IntegrityError on duplicate party_code or concurrent first creation of a
      balance row (handled by BalanceLedger with a savepoint retry).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import Base, TrackedBase, UUIDString
from erp_kernel.domain.documents import BalanceDirection, BalanceEventType, PartyType


class Party(TrackedBase):
    """
    A vendor or customer.

    Guarantees:
        - party_type is fixed at creation and decides the balance direction.
    """

    __tablename__ = "parties"
    __table_args__ = (
        UniqueConstraint("party_code", name="uq_party_code"),
        Index("idx_party_type", "party_type"),
    )

    party_code: Mapped[str] = mapped_column(String(50), nullable=False)
    party_type: Mapped[PartyType] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def balance_direction(self) -> BalanceDirection:
        return BalanceDirection.for_party_type(PartyType(self.party_type))

    def __repr__(self) -> str:
        return f"<Party {self.party_code}: {self.name} ({self.party_type})>"


class PartyBalance(TrackedBase):
    """
    Running AP/AR totals for one party.

    A projection, not a source of truth: it can always be rebuilt from
    BalanceEvent rows and cross-checked against invoices and settlements.
    """

    __tablename__ = "party_balances"
    __table_args__ = (
        UniqueConstraint("party_id", name="uq_party_balance_party"),
    )

    party_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("parties.id"), nullable=False,
    )
    direction: Mapped[BalanceDirection] = mapped_column(String(20), nullable=False)
    total_invoiced: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_credit_noted: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    unapplied_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    outstanding_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    event_count: Mapped[int] = mapped_column(nullable=False, default=0)


class BalanceEvent(Base):
    """One posting that moved a party balance (append-only)."""

    __tablename__ = "balance_events"
    __table_args__ = (
        UniqueConstraint("party_id", "seq", name="uq_balance_event_seq"),
        Index("idx_balance_event_document", "document_id"),
    )

    party_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("parties.id"), nullable=False,
    )
    seq: Mapped[int] = mapped_column(nullable=False)
    event_type: Mapped[BalanceEventType] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    document_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    settlement_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
