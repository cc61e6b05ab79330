"""
InvoiceSettlementService -- applies payments and credit notes to invoices.

Responsibility:
    Validates a settlement against the invoice's open balance, writes the
    Settlement row, lowers ``balance_amount`` and posts the matching events
    to the BalanceLedger.  Choosing the invoice's next status
    (PartiallyPaid or Paid) is left to the workflow layer, which reads
    ``SettlementResult.fully_settled``.

Architecture position:
    Kernel > Services -- flush-only.  The caller holds the invoice row lock.

Invariants enforced:
    - balance_amount = total - sum(applied settlements), never below zero.
    - amount = applied + unapplied on every settlement row.
    - Payments follow the over-payment policy: REJECT raises, CLAMP books
      the excess as unapplied.  Credit notes always clamp: the excess
      becomes unapplied credit for the customer.

Failure modes:
    - ValidationFailedError: non-positive amount, or target is not an invoice.
    - InvalidTransitionError: invoice is cancelled.
    - OverPaymentError: payment on a settled invoice, or above the balance
      under REJECT.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from erp_kernel.db.types import round_money
from erp_kernel.domain.clock import Clock
from erp_kernel.domain.documents import (
    DocumentType,
    OverPaymentPolicy,
    SettlementKind,
    Status,
)
from erp_kernel.domain.dtos import SettlementInfo
from erp_kernel.exceptions import (
    InvalidTransitionError,
    OverPaymentError,
    ValidationFailedError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.document import DocumentModel
from erp_kernel.models.settlement import SettlementModel
from erp_kernel.services.balance_ledger import BalanceLedger
from erp_kernel.services.base import BaseService

logger = get_logger("services.invoice_settlement")

ZERO = Decimal("0")


@dataclass(frozen=True)
class SettlementResult:
    settlement: SettlementInfo
    applied: Decimal
    unapplied: Decimal
    new_balance: Decimal

    @property
    def fully_settled(self) -> bool:
        return self.applied > 0 and self.new_balance == 0


class InvoiceSettlementService(BaseService[SettlementModel]):
    """Reduces invoice balances by payments and credit notes."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        balance_ledger: BalanceLedger,
        policy: OverPaymentPolicy = OverPaymentPolicy.REJECT,
    ):
        super().__init__(session)
        self._clock = clock
        self._ledger = balance_ledger
        self._policy = OverPaymentPolicy(policy)

    def _split(self, invoice: DocumentModel, amount: Decimal, kind: SettlementKind) -> tuple[Decimal, Decimal]:
        balance = round_money(invoice.balance_amount or ZERO)
        if kind == SettlementKind.CREDIT_NOTE:
            applied = min(amount, balance)
            return applied, amount - applied

        if invoice.status == Status.PAID.value or balance == 0:
            raise OverPaymentError(str(invoice.id), amount, balance)
        if amount <= balance:
            return amount, ZERO
        if self._policy == OverPaymentPolicy.REJECT:
            logger.warning(
                "over_payment_rejected",
                extra={"invoice_id": str(invoice.id), "amount": amount, "balance": balance},
            )
            raise OverPaymentError(str(invoice.id), amount, balance)
        return balance, amount - balance

    def apply(
        self,
        invoice: DocumentModel,
        amount: Decimal,
        kind: SettlementKind,
        actor_id: UUID,
        settled_on: date | None = None,
        method: str | None = None,
        reference: str | None = None,
        credit_note_id: UUID | None = None,
    ) -> SettlementResult:
        """
        Settle ``amount`` against ``invoice`` (which the caller has locked).

        Returns:
            SettlementResult with the applied/unapplied split and the new
            invoice balance.
        """
        if not DocumentType(invoice.doc_type).is_invoice:
            raise ValidationFailedError("invoice_id", f"{invoice.number} is not an invoice")
        amount = round_money(amount)
        if amount <= 0:
            raise ValidationFailedError("amount", f"must be positive, got {amount}")
        if invoice.status == Status.CANCELLED.value:
            raise InvalidTransitionError(
                invoice.doc_type, str(invoice.id), invoice.status, "settle",
                reason="invoice is cancelled",
            )

        applied, unapplied = self._split(invoice, amount, kind)

        settlement = SettlementModel(
            invoice_id=invoice.id,
            kind=kind.value,
            amount=amount,
            applied_amount=applied,
            unapplied_amount=unapplied,
            settled_on=settled_on or self._clock.today(),
            method=method,
            reference=reference,
            credit_note_id=credit_note_id,
            created_by_id=actor_id,
        )
        self.session.add(settlement)
        new_balance = round_money((invoice.balance_amount or ZERO) - applied)
        invoice.balance_amount = new_balance if new_balance > 0 else round_money(ZERO)
        invoice.updated_by_id = actor_id
        self.session.flush()

        if applied > 0:
            if kind == SettlementKind.PAYMENT:
                self._ledger.payment_recorded(
                    invoice.party_id, applied, actor_id, invoice.id, settlement.id,
                )
            else:
                self._ledger.credit_note_applied(
                    invoice.party_id, applied, actor_id, invoice.id, settlement.id,
                )
        if unapplied > 0:
            self._ledger.unapplied_received(
                invoice.party_id, unapplied, actor_id, invoice.id, settlement.id,
            )

        logger.info(
            "settlement_applied",
            extra={
                "invoice_id": str(invoice.id),
                "settlement_kind": kind.value,
                "amount": amount,
                "applied": applied,
                "unapplied": unapplied,
                "balance": invoice.balance_amount,
            },
        )
        return SettlementResult(
            settlement=settlement.to_dto(),
            applied=applied,
            unapplied=unapplied,
            new_balance=invoice.balance_amount,
        )
