"""
erp_services.workflow_executor -- Document transition execution.

Responsibility:
    Executes state transitions on documents: looks up the edge in the
    document type's transition table, evaluates its guards through the
    GuardExecutor registry, persists status and stamps, re-derives totals
    when asked and runs the edge's named effect (quantity release, invoice
    void, credit application, stock movement, parent cascades).

Architecture position:
    Services layer.  Owns the unit of work for ``apply``; kernel services
    it calls only flush.  Conversion and payment services reuse
    ``fire_system`` inside their own unit of work.

Invariants enforced:
    - Status moves only along table edges; system-only edges are refused
      to callers.
    - One activity event per committed ``apply``; cascades ride along in
      the same unit of work and are traced, not separately published.
    - A version mismatch (caller's expected_version, or a concurrent writer
      caught by the version column) raises StaleStateError.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from erp_config import EngineConfig, get_active_config
from erp_kernel.domain.activity import ActivityEvent, ActivitySink, LoggingActivitySink
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.documents import (
    ApprovalStatus,
    ConsumptionKind,
    DocumentType,
    GoodsReceiptStatus,
    SettlementKind,
    Status,
)
from erp_kernel.domain.dtos import DocumentInfo
from erp_kernel.domain.workflow import Guard, Transition
from erp_kernel.exceptions import InvalidTransitionError, StaleStateError
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.document import DocumentModel
from erp_kernel.services.activity_publisher import ActivityPublisher
from erp_kernel.services.balance_ledger import BalanceLedger
from erp_kernel.services.invoice_settlement import InvoiceSettlementService, SettlementResult
from erp_kernel.services.quantity_ledger import QuantityLedger
from erp_kernel.services.stock_ledger import StockLedger
from erp_modules import _common as wf
from erp_modules import get_workflow
from erp_services._documents import lock_document, rederive
from erp_services._unit_of_work import unit_of_work

logger = get_logger("services.workflow_executor")

TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_GUARD_FAILED = "guard_failed"
OUTCOME_NO_TRANSITION = "no_transition"
OUTCOME_REJECTED = "rejected"


def _emit_workflow_trace(
    workflow_name: str,
    action: str,
    document_type: str,
    document_id: UUID,
    from_state: str,
    outcome: str,
    reason: str,
    duration_ms: float,
    to_state: str | None = None,
    cascade: bool = False,
) -> None:
    """Structured workflow transition record."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "workflow": workflow_name,
        "transition_action": action,
        "entity_type": document_type,
        "entity_id": str(document_id),
        "from_state": from_state,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
        "cascade": cascade,
    }
    if to_state is not None:
        record["to_state"] = to_state
    logger.info("workflow_transition", extra=record)


# ---------------------------------------------------------------------------
# Guard evaluation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentGuardContext:
    """What a guard evaluator sees: the locked document and the actor."""
    document: DocumentModel
    actor_id: UUID


def _has_lines(ctx: DocumentGuardContext) -> bool:
    return len(ctx.document.lines) > 0


def _approval_pending(ctx: DocumentGuardContext) -> bool:
    return ctx.document.approval_status == ApprovalStatus.PENDING.value


def _no_downstream_consumption(ctx: DocumentGuardContext) -> bool:
    return not ctx.document.has_downstream_consumption()


def _balance_untouched(ctx: DocumentGuardContext) -> bool:
    doc = ctx.document
    return doc.balance_amount is not None and doc.balance_amount == doc.total_amount


def _goods_receipt_none(ctx: DocumentGuardContext) -> bool:
    return ctx.document.goods_receipt_status == GoodsReceiptStatus.NONE.value


def _goods_receipt_completed(ctx: DocumentGuardContext) -> bool:
    return ctx.document.goods_receipt_status == GoodsReceiptStatus.COMPLETED.value


def _all_lines_consumed(kind: ConsumptionKind) -> Callable[[DocumentGuardContext], bool]:
    def check(ctx: DocumentGuardContext) -> bool:
        lines = ctx.document.lines
        return bool(lines) and all(line.consumed(kind) >= line.quantity for line in lines)
    return check


class GuardExecutor:
    """Evaluates workflow guards against a document.

    Guards are declared on transitions (name + description).  This executor
    holds the evaluation logic per guard name.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, Callable[[DocumentGuardContext], bool]] = {}

    def register(self, guard_name: str, evaluator: Callable[[DocumentGuardContext], bool]) -> None:
        """Register an evaluator for a guard by name."""
        self._evaluators[guard_name] = evaluator

    def evaluate(self, guard: Guard, context: DocumentGuardContext) -> bool:
        """Evaluate a guard. Returns True if it passes; unknown guards fail."""
        fn = self._evaluators.get(guard.name)
        if fn is None:
            logger.warning("guard_no_evaluator", extra={"guard_name": guard.name})
            return False
        try:
            return bool(fn(context))
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "guard_evaluation_error",
                extra={"guard_name": guard.name, "error": str(e)},
            )
            return False


def default_guard_executor() -> GuardExecutor:
    """Return a GuardExecutor with the built-in document guards registered."""
    ex = GuardExecutor()
    ex.register(wf.HAS_LINES.name, _has_lines)
    ex.register(wf.APPROVAL_PENDING.name, _approval_pending)
    ex.register(wf.NO_DOWNSTREAM_CONSUMPTION.name, _no_downstream_consumption)
    ex.register(wf.BALANCE_UNTOUCHED.name, _balance_untouched)
    ex.register(wf.GOODS_RECEIPT_NONE.name, _goods_receipt_none)
    ex.register(wf.GOODS_RECEIPT_COMPLETED.name, _goods_receipt_completed)
    ex.register(wf.ALL_LINES_RECEIVED.name, _all_lines_consumed(ConsumptionKind.RECEIVED))
    ex.register(wf.ALL_LINES_DELIVERED.name, _all_lines_consumed(ConsumptionKind.DELIVERED))
    return ex


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class DocumentWorkflowExecutor:
    """Applies workflow actions to documents.

    ``apply`` is the public entry point and owns its unit of work.
    ``fire_system`` runs an edge (system-only or not) on an already locked
    document inside the caller's unit of work.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
        activity_sink: ActivitySink | None = None,
        guard_executor: GuardExecutor | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._guards = guard_executor or default_guard_executor()
        self._activity = ActivityPublisher(session, activity_sink or LoggingActivitySink())
        self._quantities = QuantityLedger(session, self._clock)
        self._balances = BalanceLedger(session, self._clock)
        self._stock = StockLedger(session, self._clock)
        self._settlements = InvoiceSettlementService(
            session, self._clock, self._balances, self._config.overpayment_policy,
        )
        self._effects: dict[str, Callable[[DocumentModel, UUID], None]] = {
            wf.RELEASE_CONSUMPTION: self._release_consumption,
            wf.VOID_INVOICE: self._void_invoice,
            wf.APPLY_CREDIT_NOTE: self._apply_credit_note,
            wf.RECEIPT_COMPLETED: self._receipt_completed,
            wf.RECEIPT_VOIDED: self._receipt_voided,
            wf.DELIVERY_COMPLETED: self._delivery_completed,
            wf.DELIVERY_SHIPPED: self._delivery_shipped,
            wf.SHIPMENT_CANCELLED: self._shipment_cancelled,
        }

    # -- public -------------------------------------------------------------

    def apply(
        self,
        document_id: UUID,
        action: str,
        actor_id: UUID,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> DocumentInfo:
        """
        Apply ``action`` to the document.

        Raises:
            DocumentNotFoundError: unknown or soft-deleted document.
            StaleStateError: ``expected_version`` is outdated.
            InvalidTransitionError: no such edge, system-only edge, or a
                guard failed.
        """
        with LogContext.bind(actor_id=actor_id, document_id=document_id, action=action):
            with unit_of_work(self._session, "apply"):
                document = lock_document(self._session, document_id)
                if expected_version is not None and document.version != expected_version:
                    logger.warning(
                        "stale_version_rejected",
                        extra={"expected_version": expected_version, "actual_version": document.version},
                    )
                    raise StaleStateError("document", str(document_id), expected_version, document.version)

                from_state = document.status
                self._transition(document, action, actor_id, system=False)
                self.flush(document, expected_version)

                description = f"{action} {document.number}: {from_state} -> {document.status}"
                if reason:
                    description = f"{description} ({reason})"
                self._activity.record(ActivityEvent(
                    actor_id=actor_id,
                    action=action,
                    document_type=document.doc_type,
                    document_id=document.id,
                    description=description,
                    timestamp=self._clock.now(),
                ))
                info = document.to_dto()
        return info

    def fire_system(self, document: DocumentModel, action: str, actor_id: UUID) -> None:
        """Run ``action`` on a locked document inside the caller's unit of work."""
        self._transition(document, action, actor_id, system=True)

    def settle(self, invoice: DocumentModel, result: SettlementResult, actor_id: UUID) -> None:
        """Move an invoice to PartiallyPaid or Paid after money was applied."""
        if result.applied <= 0:
            return
        action = wf.SETTLE_FULL if result.fully_settled else wf.SETTLE_PARTIAL
        self.fire_system(invoice, action, actor_id)

    def flush(self, document: DocumentModel, expected_version: int | None = None) -> None:
        try:
            self._session.flush()
        except StaleDataError as exc:
            raise StaleStateError("document", str(document.id), expected_version, None) from exc

    # -- transition ---------------------------------------------------------

    def _transition(self, document: DocumentModel, action: str, actor_id: UUID, system: bool) -> Transition:
        start = time.monotonic()
        workflow = get_workflow(document.doc_type)
        from_state = document.status
        transition = workflow.find(from_state, action)

        def reject(outcome: str, reason: str) -> InvalidTransitionError:
            _emit_workflow_trace(
                workflow.name, action, document.doc_type, document.id, from_state,
                outcome, reason, (time.monotonic() - start) * 1000, cascade=system,
            )
            return InvalidTransitionError(
                document.doc_type, str(document.id), from_state, action,
                workflow.allowed_actions(from_state), reason=reason,
            )

        if transition is None:
            raise reject(OUTCOME_NO_TRANSITION, "no such transition")
        if transition.system_only and not system:
            raise reject(OUTCOME_REJECTED, "action is performed by the system")

        context = DocumentGuardContext(document=document, actor_id=actor_id)
        for guard in transition.guards:
            if not self._guards.evaluate(guard, context):
                raise reject(OUTCOME_GUARD_FAILED, f"guard '{guard.name}' failed: {guard.description}")

        document.status = transition.to_state
        document.updated_by_id = actor_id
        if transition.stamps_approval:
            document.approved_by_id = actor_id
            document.approved_at = self._clock.now()
        if transition.sets_approval is not None:
            document.approval_status = transition.sets_approval
        if transition.rederive:
            rederive(document)
        if transition.effect is not None:
            self._effects[transition.effect](document, actor_id)

        _emit_workflow_trace(
            workflow.name, action, document.doc_type, document.id, from_state,
            OUTCOME_SUCCESS, "transition applied", (time.monotonic() - start) * 1000,
            to_state=transition.to_state, cascade=system,
        )
        logger.info(
            "transition_applied",
            extra={
                "doc_type": document.doc_type,
                "number": document.number,
                "from_state": from_state,
                "to_state": transition.to_state,
            },
        )
        return transition

    # -- effects ------------------------------------------------------------

    def _parent(self, document: DocumentModel) -> DocumentModel | None:
        if document.parent_id is None:
            return None
        return lock_document(self._session, document.parent_id)

    def _open_children(self, parent: DocumentModel, doc_type: DocumentType, exclude: UUID) -> int:
        """Live children of ``parent`` of ``doc_type`` not yet in a terminal state."""
        workflow = get_workflow(doc_type)
        children = self._session.execute(
            select(DocumentModel).where(
                DocumentModel.parent_id == parent.id,
                DocumentModel.doc_type == doc_type.value,
                DocumentModel.deleted_at.is_(None),
                DocumentModel.id != exclude,
            )
        ).scalars().all()
        return sum(1 for child in children if not workflow.is_terminal(child.status))

    def _release_consumption(self, document: DocumentModel, actor_id: UUID) -> None:
        self._quantities.release_document(document, actor_id)

    def _void_invoice(self, document: DocumentModel, actor_id: UUID) -> None:
        self._quantities.release_document(document, actor_id)
        if document.total_amount > 0:
            self._balances.invoice_voided(document.party_id, document.total_amount, actor_id, document.id)

    def _apply_credit_note(self, document: DocumentModel, actor_id: UUID) -> None:
        invoice = self._parent(document)
        if invoice is None:
            raise InvalidTransitionError(
                document.doc_type, str(document.id), document.status, "apply",
                reason="credit note has no invoice",
            )
        result = self._settlements.apply(
            invoice,
            document.total_amount,
            SettlementKind.CREDIT_NOTE,
            actor_id,
            reference=document.number,
            credit_note_id=document.id,
        )
        self.settle(invoice, result, actor_id)

    def _warehouse(self, document: DocumentModel) -> str:
        return document.warehouse_code or self._config.default_warehouse

    def _receipt_completed(self, document: DocumentModel, actor_id: UUID) -> None:
        self._stock.receive_document(document, self._warehouse(document), actor_id)
        parent = self._parent(document)
        if parent is None:
            return
        if parent.doc_type == DocumentType.RETURN_ORDER.value:
            self._sync_return_receipt(parent, document, actor_id)
            return
        if (
            parent.doc_type == DocumentType.PURCHASE_ORDER.value
            and parent.status == Status.SENT.value
            and _all_lines_consumed(ConsumptionKind.RECEIVED)(DocumentGuardContext(parent, actor_id))
            and self._open_children(parent, DocumentType.GOODS_RECEIPT, document.id) == 0
        ):
            self.fire_system(parent, "complete", actor_id)

    def _receipt_voided(self, document: DocumentModel, actor_id: UUID) -> None:
        self.release_receipt(document, actor_id)

    def release_receipt(self, receipt: DocumentModel, actor_id: UUID) -> int:
        """
        Give back what a cancelled, rejected or deleted receipt consumed.

        A return order the receipt came from has its goods-receipt
        sub-state recomputed.  Runs inside the caller's unit of work.
        """
        released = self._quantities.release_document(receipt, actor_id)
        parent = self._parent(receipt)
        if parent is not None and parent.doc_type == DocumentType.RETURN_ORDER.value:
            self._sync_return_receipt(parent, receipt, actor_id)
        return released

    def _sync_return_receipt(self, order: DocumentModel, receipt: DocumentModel, actor_id: UUID) -> None:
        # None: nothing received.  Completed: every line received and no
        # other receipt still open.  Pending otherwise.
        received = [line.consumed(ConsumptionKind.RECEIVED) for line in order.lines]
        if not any(qty > 0 for qty in received):
            state = GoodsReceiptStatus.NONE.value
        elif (
            all(qty >= line.quantity for qty, line in zip(received, order.lines))
            and self._open_children(order, DocumentType.GOODS_RECEIPT, receipt.id) == 0
        ):
            state = GoodsReceiptStatus.COMPLETED.value
        else:
            state = GoodsReceiptStatus.PENDING.value
        if order.goods_receipt_status == state:
            return
        logger.info(
            "return_receipt_status_changed",
            extra={
                "number": order.number,
                "from_status": order.goods_receipt_status,
                "to_status": state,
            },
        )
        order.goods_receipt_status = state
        order.updated_by_id = actor_id

    def _delivery_shipped(self, document: DocumentModel, actor_id: UUID) -> None:
        self._stock.issue_document(document, self._warehouse(document), actor_id)

    def _shipment_cancelled(self, document: DocumentModel, actor_id: UUID) -> None:
        self._quantities.release_document(document, actor_id)
        self._stock.receive_document(document, self._warehouse(document), actor_id)

    def _delivery_completed(self, document: DocumentModel, actor_id: UUID) -> None:
        parent = self._parent(document)
        if (
            parent is not None
            and parent.doc_type == DocumentType.SALES_ORDER.value
            and parent.status == Status.APPROVED.value
            and _all_lines_consumed(ConsumptionKind.DELIVERED)(DocumentGuardContext(parent, actor_id))
            and self._open_children(parent, DocumentType.DELIVERY, document.id) == 0
        ):
            self.fire_system(parent, "fulfil", actor_id)
