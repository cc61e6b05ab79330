"""
BalanceLedger -- per-party AP/AR running balances.

Responsibility:
    Applies invoice postings, voids, payments and credit notes to the
    party's PartyBalance row and appends the raw BalanceEvent each one
    came from.  Payables (vendors) and receivables (customers) share the
    arithmetic; only receivables take credit notes.

Architecture position:
    Kernel > Services -- flush-only; always runs inside the unit of work of
    the posting that caused it, so a failure anywhere rolls back both.

Invariants enforced:
    - outstanding_balance = max(0, total_invoiced - total_paid - total_credit_noted)
      after every event.
    - The balance row is locked (SELECT ... FOR UPDATE) for the whole
      mutation, serializing concurrent postings for one party.
    - BalanceEvent.seq is allocated from the locked row, so the per-party
      event log is gap-free and ordered.
    - rebuild() folds the event log with the same arithmetic, so a rebuilt
      snapshot always equals the incrementally maintained row.

Failure modes:
    - PartyNotFoundError: unknown party.
    - ValidationFailedError: non-positive amount, or a credit note posted
      against a payable balance.

Audit relevance:
    reconcile() compares the stored projection, the event-log rebuild and
    the source documents; mismatches are logged as
    ``reconciliation_mismatch``.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from erp_kernel.db.types import round_money
from erp_kernel.domain.clock import Clock
from erp_kernel.domain.documents import (
    BalanceDirection,
    BalanceEventType,
    DocumentType,
    SettlementKind,
    Status,
)
from erp_kernel.exceptions import PartyNotFoundError, ValidationFailedError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.document import DocumentModel
from erp_kernel.models.party import BalanceEvent, Party, PartyBalance
from erp_kernel.models.settlement import SettlementModel
from erp_kernel.services.base import BaseService

logger = get_logger("services.balance_ledger")

ZERO = Decimal("0")


@dataclass(frozen=True)
class BalanceSnapshot:
    """Party totals at a point in time."""
    party_id: UUID
    direction: BalanceDirection
    total_invoiced: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_credit_noted: Decimal = ZERO
    unapplied_amount: Decimal = ZERO

    @property
    def outstanding_balance(self) -> Decimal:
        return outstanding(self.total_invoiced, self.total_paid, self.total_credit_noted)

    def same_totals(self, other: "BalanceSnapshot") -> bool:
        return (
            self.total_invoiced == other.total_invoiced
            and self.total_paid == other.total_paid
            and self.total_credit_noted == other.total_credit_noted
            and self.unapplied_amount == other.unapplied_amount
        )


@dataclass(frozen=True)
class ReconciliationReport:
    party_id: UUID
    stored: BalanceSnapshot
    rebuilt: BalanceSnapshot
    from_documents: BalanceSnapshot

    @property
    def is_consistent(self) -> bool:
        return self.stored.same_totals(self.rebuilt) and self.stored.same_totals(self.from_documents)


def outstanding(invoiced: Decimal, paid: Decimal, credit_noted: Decimal) -> Decimal:
    """max(0, invoiced - paid - credit_noted), rounded to cents."""
    value = round_money(invoiced - paid - credit_noted)
    return value if value > 0 else round_money(ZERO)


def apply_event(
    snapshot: BalanceSnapshot,
    event_type: BalanceEventType,
    amount: Decimal,
) -> BalanceSnapshot:
    """Pure step function shared by incremental updates and rebuilds."""
    invoiced = snapshot.total_invoiced
    paid = snapshot.total_paid
    credit = snapshot.total_credit_noted
    unapplied = snapshot.unapplied_amount
    if event_type == BalanceEventType.INVOICE_POSTED:
        invoiced += amount
    elif event_type == BalanceEventType.INVOICE_VOIDED:
        invoiced = max(ZERO, invoiced - amount)
    elif event_type == BalanceEventType.PAYMENT_RECORDED:
        paid += amount
    elif event_type == BalanceEventType.CREDIT_NOTE_APPLIED:
        credit += amount
    elif event_type == BalanceEventType.UNAPPLIED_RECEIVED:
        unapplied += amount
    else:
        raise ValueError(f"Unknown balance event: {event_type}")
    return BalanceSnapshot(
        party_id=snapshot.party_id,
        direction=snapshot.direction,
        total_invoiced=round_money(invoiced),
        total_paid=round_money(paid),
        total_credit_noted=round_money(credit),
        unapplied_amount=round_money(unapplied),
    )


def fold_events(
    party_id: UUID,
    direction: BalanceDirection,
    events: Iterable[tuple[BalanceEventType, Decimal]],
) -> BalanceSnapshot:
    snapshot = BalanceSnapshot(party_id=party_id, direction=direction)
    for event_type, amount in events:
        snapshot = apply_event(snapshot, event_type, amount)
    return snapshot


def _snapshot_of(row: PartyBalance) -> BalanceSnapshot:
    return BalanceSnapshot(
        party_id=row.party_id,
        direction=BalanceDirection(row.direction),
        total_invoiced=round_money(row.total_invoiced),
        total_paid=round_money(row.total_paid),
        total_credit_noted=round_money(row.total_credit_noted),
        unapplied_amount=round_money(row.unapplied_amount),
    )


class BalanceLedger(BaseService[PartyBalance]):
    """Maintains PartyBalance from posting events."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    # -- row access ---------------------------------------------------------

    def _party(self, party_id: UUID) -> Party:
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        return party

    def _lock_balance(self, party_id: UUID) -> PartyBalance | None:
        return self.session.execute(
            select(PartyBalance)
            .where(PartyBalance.party_id == party_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _balance_for_update(self, party: Party, actor_id: UUID) -> PartyBalance:
        row = self._lock_balance(party.id)
        if row is not None:
            return row
        savepoint = self.session.begin_nested()
        try:
            row = PartyBalance(
                party_id=party.id,
                direction=party.balance_direction.value,
                total_invoiced=ZERO,
                total_paid=ZERO,
                total_credit_noted=ZERO,
                unapplied_amount=ZERO,
                outstanding_balance=ZERO,
                event_count=0,
                created_by_id=actor_id,
            )
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
            return row
        except IntegrityError:
            savepoint.rollback()
            row = self._lock_balance(party.id)
            if row is None:
                raise
            return row

    # -- events -------------------------------------------------------------

    def _post(
        self,
        party_id: UUID,
        event_type: BalanceEventType,
        amount: Decimal,
        actor_id: UUID,
        document_id: UUID | None = None,
        settlement_id: UUID | None = None,
    ) -> BalanceSnapshot:
        if amount <= 0:
            raise ValidationFailedError("amount", f"must be positive, got {amount}")
        party = self._party(party_id)
        if (
            event_type == BalanceEventType.CREDIT_NOTE_APPLIED
            and party.balance_direction != BalanceDirection.RECEIVABLE
        ):
            raise ValidationFailedError("party_id", "credit notes apply to receivable balances only")

        row = self._balance_for_update(party, actor_id)
        snapshot = apply_event(_snapshot_of(row), event_type, round_money(amount))

        row.total_invoiced = snapshot.total_invoiced
        row.total_paid = snapshot.total_paid
        row.total_credit_noted = snapshot.total_credit_noted
        row.unapplied_amount = snapshot.unapplied_amount
        row.outstanding_balance = snapshot.outstanding_balance
        row.event_count += 1
        row.updated_by_id = actor_id

        self.session.add(BalanceEvent(
            party_id=party_id,
            seq=row.event_count,
            event_type=event_type.value,
            amount=round_money(amount),
            document_id=document_id,
            settlement_id=settlement_id,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
        ))
        self.session.flush()

        logger.info(
            "balance_event_applied",
            extra={
                "party_id": str(party_id),
                "event_type": event_type.value,
                "amount": amount,
                "outstanding_balance": snapshot.outstanding_balance,
                "seq": row.event_count,
            },
        )
        return snapshot

    def invoice_posted(self, party_id: UUID, amount: Decimal, actor_id: UUID,
                       document_id: UUID | None = None) -> BalanceSnapshot:
        return self._post(party_id, BalanceEventType.INVOICE_POSTED, amount, actor_id, document_id)

    def invoice_voided(self, party_id: UUID, amount: Decimal, actor_id: UUID,
                       document_id: UUID | None = None) -> BalanceSnapshot:
        return self._post(party_id, BalanceEventType.INVOICE_VOIDED, amount, actor_id, document_id)

    def payment_recorded(self, party_id: UUID, amount: Decimal, actor_id: UUID,
                         document_id: UUID | None = None,
                         settlement_id: UUID | None = None) -> BalanceSnapshot:
        return self._post(
            party_id, BalanceEventType.PAYMENT_RECORDED, amount, actor_id, document_id, settlement_id,
        )

    def credit_note_applied(self, party_id: UUID, amount: Decimal, actor_id: UUID,
                            document_id: UUID | None = None,
                            settlement_id: UUID | None = None) -> BalanceSnapshot:
        return self._post(
            party_id, BalanceEventType.CREDIT_NOTE_APPLIED, amount, actor_id, document_id, settlement_id,
        )

    def unapplied_received(self, party_id: UUID, amount: Decimal, actor_id: UUID,
                           document_id: UUID | None = None,
                           settlement_id: UUID | None = None) -> BalanceSnapshot:
        return self._post(
            party_id, BalanceEventType.UNAPPLIED_RECEIVED, amount, actor_id, document_id, settlement_id,
        )

    # -- reads / reconciliation ---------------------------------------------

    def get(self, party_id: UUID) -> BalanceSnapshot:
        """Stored totals (zeros when the party has never posted)."""
        party = self._party(party_id)
        row = self.session.execute(
            select(PartyBalance).where(PartyBalance.party_id == party_id)
        ).scalar_one_or_none()
        if row is None:
            return BalanceSnapshot(party_id=party_id, direction=party.balance_direction)
        return _snapshot_of(row)

    def rebuild(self, party_id: UUID, persist: bool = False) -> BalanceSnapshot:
        """
        Recompute totals from the raw event log.

        With ``persist=True`` the stored row is overwritten with the rebuilt
        totals (repair after a manual data fix).
        """
        party = self._party(party_id)
        rows = self.session.execute(
            select(BalanceEvent.event_type, BalanceEvent.amount)
            .where(BalanceEvent.party_id == party_id)
            .order_by(BalanceEvent.seq)
        ).all()
        snapshot = fold_events(
            party_id,
            party.balance_direction,
            ((BalanceEventType(event_type), amount) for event_type, amount in rows),
        )
        if persist:
            row = self._lock_balance(party_id)
            if row is not None:
                row.total_invoiced = snapshot.total_invoiced
                row.total_paid = snapshot.total_paid
                row.total_credit_noted = snapshot.total_credit_noted
                row.unapplied_amount = snapshot.unapplied_amount
                row.outstanding_balance = snapshot.outstanding_balance
                self.session.flush()
                logger.info("balance_rebuilt", extra={"party_id": str(party_id)})
        return snapshot

    def from_documents(self, party_id: UUID) -> BalanceSnapshot:
        """Totals derived from the source documents and settlements."""
        party = self._party(party_id)
        invoice_types = (DocumentType.AR_INVOICE.value, DocumentType.AP_INVOICE.value)
        invoiced = self.session.execute(
            select(func.coalesce(func.sum(DocumentModel.total_amount), 0)).where(
                DocumentModel.party_id == party_id,
                DocumentModel.doc_type.in_(invoice_types),
                DocumentModel.status != Status.CANCELLED.value,
                DocumentModel.deleted_at.is_(None),
            )
        ).scalar_one()

        def settled(kind: SettlementKind | None, column) -> Decimal:
            stmt = (
                select(func.coalesce(func.sum(column), 0))
                .select_from(SettlementModel)
                .join(DocumentModel, DocumentModel.id == SettlementModel.invoice_id)
                .where(DocumentModel.party_id == party_id)
            )
            if kind is not None:
                stmt = stmt.where(SettlementModel.kind == kind.value)
            total = self.session.execute(stmt).scalar_one()
            return round_money(Decimal(str(total)))

        return BalanceSnapshot(
            party_id=party_id,
            direction=party.balance_direction,
            total_invoiced=round_money(Decimal(str(invoiced))),
            total_paid=settled(SettlementKind.PAYMENT, SettlementModel.applied_amount),
            total_credit_noted=settled(SettlementKind.CREDIT_NOTE, SettlementModel.applied_amount),
            unapplied_amount=settled(None, SettlementModel.unapplied_amount),
        )

    def reconcile(self, party_id: UUID) -> ReconciliationReport:
        """Compare stored totals with the event-log rebuild and the documents."""
        report = ReconciliationReport(
            party_id=party_id,
            stored=self.get(party_id),
            rebuilt=self.rebuild(party_id),
            from_documents=self.from_documents(party_id),
        )
        if not report.is_consistent:
            logger.warning(
                "reconciliation_mismatch",
                extra={
                    "party_id": str(party_id),
                    "stored_outstanding": report.stored.outstanding_balance,
                    "rebuilt_outstanding": report.rebuilt.outstanding_balance,
                    "document_outstanding": report.from_documents.outstanding_balance,
                },
            )
        return report
