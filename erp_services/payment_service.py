"""
erp_services.payment_service -- Record payments against invoices.

Locks the invoice, applies the payment through InvoiceSettlementService
(which enforces the over-payment policy and posts to the party balance),
then moves the invoice to PartiallyPaid or Paid via the workflow executor.
All of it commits or rolls back together.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from erp_config import EngineConfig, get_active_config
from erp_kernel.db.types import to_decimal
from erp_kernel.domain.activity import ActivityEvent, ActivitySink, LoggingActivitySink
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.documents import SettlementKind
from erp_kernel.domain.dtos import SettlementInfo
from erp_kernel.exceptions import StaleStateError
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.selectors import DocumentSelector
from erp_kernel.services.activity_publisher import ActivityPublisher
from erp_kernel.services.balance_ledger import BalanceLedger
from erp_kernel.services.invoice_settlement import InvoiceSettlementService
from erp_services._documents import lock_document
from erp_services._unit_of_work import unit_of_work
from erp_services.workflow_executor import DocumentWorkflowExecutor

logger = get_logger("services.payment")


class PaymentService:
    """Records customer receipts and vendor payments."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
        activity_sink: ActivitySink | None = None,
        executor: DocumentWorkflowExecutor | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        sink = activity_sink or LoggingActivitySink()
        self._activity = ActivityPublisher(session, sink)
        self._settlements = InvoiceSettlementService(
            session,
            self._clock,
            BalanceLedger(session, self._clock),
            self._config.overpayment_policy,
        )
        self._executor = executor or DocumentWorkflowExecutor(
            session, self._clock, self._config, sink,
        )

    def record_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        settled_on: date | None = None,
        method: str | None = None,
        reference: str | None = None,
        expected_version: int | None = None,
    ) -> SettlementInfo:
        """
        Apply a payment of ``amount`` to the invoice.

        Raises:
            OverPaymentError: the invoice is already settled, or ``amount``
                exceeds the open balance under the REJECT policy.
            InvalidTransitionError: the invoice is cancelled.
            StaleStateError: ``expected_version`` is outdated.
        """
        amount = to_decimal(amount)
        with LogContext.bind(actor_id=actor_id, document_id=invoice_id, action="record_payment"):
            with unit_of_work(self._session, "record_payment"):
                invoice = lock_document(self._session, invoice_id)
                if expected_version is not None and invoice.version != expected_version:
                    raise StaleStateError("document", str(invoice_id), expected_version, invoice.version)

                result = self._settlements.apply(
                    invoice,
                    amount,
                    SettlementKind.PAYMENT,
                    actor_id,
                    settled_on=settled_on,
                    method=method,
                    reference=reference,
                )
                self._executor.settle(invoice, result, actor_id)
                self._executor.flush(invoice, expected_version)

                self._activity.record(ActivityEvent(
                    actor_id=actor_id,
                    action="record_payment",
                    document_type=invoice.doc_type,
                    document_id=invoice.id,
                    description=(
                        f"payment {result.settlement.amount} on {invoice.number}; "
                        f"balance {result.new_balance}"
                    ),
                    timestamp=self._clock.now(),
                ))
                logger.info(
                    "payment_recorded",
                    extra={
                        "invoice_number": invoice.number,
                        "amount": result.settlement.amount,
                        "applied": result.applied,
                        "unapplied": result.unapplied,
                        "balance": result.new_balance,
                        "status": invoice.status,
                    },
                )
        return result.settlement

    def payments_for(self, invoice_id: UUID) -> list[SettlementInfo]:
        """Every settlement (payments and credit notes) on the invoice."""
        return DocumentSelector(self._session).settlements_for(invoice_id)
