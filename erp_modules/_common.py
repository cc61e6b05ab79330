"""
Shared workflow vocabulary (``erp_modules._common``).

Responsibility
--------------
Guards and effect names used by more than one document area, the invoice
lifecycle shared by AR and AP, and the registration log helper.  The
executor in ``erp_services.workflow_executor`` registers an evaluator for
every guard and a handler for every effect named here.
"""

import logging

from erp_kernel.domain.documents import DocumentType, Status
from erp_kernel.domain.workflow import Guard, Transition, Workflow

# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_LINES = Guard(
    name="has_lines",
    description="Document has at least one line",
)

APPROVAL_PENDING = Guard(
    name="approval_pending",
    description="Approval sub-state is Pending",
)

NO_DOWNSTREAM_CONSUMPTION = Guard(
    name="no_downstream_consumption",
    description="No line of the document has been consumed downstream",
)

BALANCE_UNTOUCHED = Guard(
    name="balance_untouched",
    description="No payment or credit has been applied (balance == total)",
)

GOODS_RECEIPT_NONE = Guard(
    name="goods_receipt_none",
    description="Return order has no inbound receipt in progress",
)

GOODS_RECEIPT_COMPLETED = Guard(
    name="goods_receipt_completed",
    description="Return order's inbound receipt is completed",
)

ALL_LINES_RECEIVED = Guard(
    name="all_lines_received",
    description="Every line fully received",
)

ALL_LINES_DELIVERED = Guard(
    name="all_lines_delivered",
    description="Every line fully delivered",
)

ALL_GUARDS: tuple[Guard, ...] = (
    HAS_LINES,
    APPROVAL_PENDING,
    NO_DOWNSTREAM_CONSUMPTION,
    BALANCE_UNTOUCHED,
    GOODS_RECEIPT_NONE,
    GOODS_RECEIPT_COMPLETED,
    ALL_LINES_RECEIVED,
    ALL_LINES_DELIVERED,
)

# -----------------------------------------------------------------------------
# Effects
# -----------------------------------------------------------------------------

RELEASE_CONSUMPTION = "release_consumption"
VOID_INVOICE = "void_invoice"
APPLY_CREDIT_NOTE = "apply_credit_note"
RECEIPT_COMPLETED = "receipt_completed"
RECEIPT_VOIDED = "receipt_voided"
DELIVERY_COMPLETED = "delivery_completed"
DELIVERY_SHIPPED = "delivery_shipped"
SHIPMENT_CANCELLED = "shipment_cancelled"

ALL_EFFECTS: tuple[str, ...] = (
    RELEASE_CONSUMPTION,
    VOID_INVOICE,
    APPLY_CREDIT_NOTE,
    RECEIPT_COMPLETED,
    RECEIPT_VOIDED,
    DELIVERY_COMPLETED,
    DELIVERY_SHIPPED,
    SHIPMENT_CANCELLED,
)

# Actions the engine fires itself
SETTLE_PARTIAL = "settle_partial"
SETTLE_FULL = "settle_full"


def invoice_workflow(name: str, document_type: DocumentType, description: str) -> Workflow:
    """Unpaid -> PartiallyPaid -> Paid, cancellable until money is applied."""
    unpaid = Status.UNPAID.value
    partially_paid = Status.PARTIALLY_PAID.value
    paid = Status.PAID.value
    cancelled = Status.CANCELLED.value
    return Workflow(
        name=name,
        document_type=document_type,
        description=description,
        initial_state=unpaid,
        states=(unpaid, partially_paid, paid, cancelled),
        terminal_states=(paid, cancelled),
        transitions=(
            Transition(unpaid, partially_paid, action=SETTLE_PARTIAL, system_only=True),
            Transition(partially_paid, partially_paid, action=SETTLE_PARTIAL, system_only=True),
            Transition(unpaid, paid, action=SETTLE_FULL, system_only=True),
            Transition(partially_paid, paid, action=SETTLE_FULL, system_only=True),
            Transition(unpaid, cancelled, action="cancel",
                       guards=(BALANCE_UNTOUCHED, NO_DOWNSTREAM_CONSUMPTION), effect=VOID_INVOICE),
            Transition(partially_paid, cancelled, action="cancel",
                       guards=(BALANCE_UNTOUCHED, NO_DOWNSTREAM_CONSUMPTION), effect=VOID_INVOICE),
        ),
    )


def log_registered(logger: logging.Logger, workflow: Workflow) -> None:
    logger.info(
        f"{workflow.name}_workflow_registered",
        extra={
            "workflow_name": workflow.name,
            "state_count": len(workflow.states),
            "transition_count": len(workflow.transitions),
            "initial_state": workflow.initial_state,
        },
    )
