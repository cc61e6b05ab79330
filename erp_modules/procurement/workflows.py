"""
Procurement Workflows (``erp_modules.procurement.workflows``).

Responsibility
--------------
State machines for the purchase side: requisition, request for quotation,
purchase quotation, purchase order and goods receipt (inbound delivery).

Architecture position
---------------------
**Modules layer** -- declarative tables.  Imports Guard, Transition and
Workflow from ``erp_kernel.domain.workflow``.

Invariants enforced
-------------------
* Every table is validated when built (unknown states, edges leaving a
  terminal state and duplicate edges raise at import).
* ``convert`` and ``order`` are system-only: they fire when a conversion
  has consumed every line of the document.

Audit relevance
---------------
Workflow definitions are logged at module-load time with state and
transition counts.
"""

from erp_kernel.domain.documents import ApprovalStatus, DocumentType, Status
from erp_kernel.domain.workflow import Transition, Workflow
from erp_kernel.logging_config import get_logger
from erp_modules._common import (
    ALL_LINES_RECEIVED,
    APPROVAL_PENDING,
    HAS_LINES,
    NO_DOWNSTREAM_CONSUMPTION,
    RECEIPT_COMPLETED,
    RECEIPT_VOIDED,
    RELEASE_CONSUMPTION,
    log_registered,
)

logger = get_logger("modules.procurement.workflows")

DRAFT = Status.DRAFT.value
PENDING = Status.PENDING.value
APPROVED = Status.APPROVED.value
REJECTED = Status.REJECTED.value
CONVERTED = Status.CONVERTED.value
CANCELLED = Status.CANCELLED.value
SENT = Status.SENT.value
COMPLETED = Status.COMPLETED.value
ORDERED = Status.ORDERED.value


# -----------------------------------------------------------------------------
# Requisition
# -----------------------------------------------------------------------------

REQUISITION_WORKFLOW = Workflow(
    name="requisition",
    document_type=DocumentType.REQUISITION,
    description="Internal purchase request",
    initial_state=DRAFT,
    states=(DRAFT, PENDING, APPROVED, REJECTED, CONVERTED, CANCELLED),
    terminal_states=(CONVERTED, CANCELLED),
    editable_states=(DRAFT,),
    transitions=(
        Transition(DRAFT, PENDING, action="submit", guards=(HAS_LINES,), rederive=True),
        Transition(PENDING, APPROVED, action="approve", stamps_approval=True),
        Transition(PENDING, REJECTED, action="reject"),
        Transition(REJECTED, DRAFT, action="revise"),
        Transition(APPROVED, CONVERTED, action="convert", system_only=True),
        Transition(DRAFT, CANCELLED, action="cancel"),
        Transition(PENDING, CANCELLED, action="cancel"),
        Transition(APPROVED, CANCELLED, action="cancel", guards=(NO_DOWNSTREAM_CONSUMPTION,)),
    ),
)
log_registered(logger, REQUISITION_WORKFLOW)


# -----------------------------------------------------------------------------
# Request for quotation
# -----------------------------------------------------------------------------

RFQ_WORKFLOW = Workflow(
    name="rfq",
    document_type=DocumentType.RFQ,
    description="Request for quotation sent to vendors",
    initial_state=DRAFT,
    states=(DRAFT, SENT, COMPLETED, CANCELLED),
    terminal_states=(COMPLETED, CANCELLED),
    editable_states=(DRAFT,),
    transitions=(
        Transition(DRAFT, SENT, action="send", guards=(HAS_LINES,)),
        Transition(SENT, COMPLETED, action="close"),
        Transition(DRAFT, CANCELLED, action="cancel", effect=RELEASE_CONSUMPTION),
        Transition(SENT, CANCELLED, action="cancel", effect=RELEASE_CONSUMPTION),
    ),
)
log_registered(logger, RFQ_WORKFLOW)


# -----------------------------------------------------------------------------
# Purchase quotation
# -----------------------------------------------------------------------------

PURCHASE_QUOTATION_WORKFLOW = Workflow(
    name="purchase_quotation",
    document_type=DocumentType.PURCHASE_QUOTATION,
    description="Vendor quotation awaiting acceptance",
    initial_state=PENDING,
    states=(PENDING, APPROVED, REJECTED, ORDERED, CANCELLED),
    terminal_states=(REJECTED, ORDERED, CANCELLED),
    editable_states=(PENDING,),
    transitions=(
        Transition(PENDING, APPROVED, action="approve", guards=(HAS_LINES,),
                   stamps_approval=True, rederive=True),
        Transition(PENDING, REJECTED, action="reject"),
        Transition(APPROVED, ORDERED, action="order", system_only=True),
        Transition(PENDING, CANCELLED, action="cancel"),
        Transition(APPROVED, CANCELLED, action="cancel", guards=(NO_DOWNSTREAM_CONSUMPTION,)),
    ),
)
log_registered(logger, PURCHASE_QUOTATION_WORKFLOW)


# -----------------------------------------------------------------------------
# Purchase order
# -----------------------------------------------------------------------------

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    document_type=DocumentType.PURCHASE_ORDER,
    description="Purchase order with approval sub-state",
    initial_state=PENDING,
    states=(PENDING, APPROVED, REJECTED, SENT, COMPLETED, CANCELLED),
    terminal_states=(REJECTED, COMPLETED, CANCELLED),
    editable_states=(PENDING,),
    initial_approval_status=ApprovalStatus.PENDING.value,
    transitions=(
        Transition(PENDING, APPROVED, action="approve",
                   guards=(APPROVAL_PENDING, HAS_LINES),
                   sets_approval=ApprovalStatus.APPROVED.value,
                   stamps_approval=True, rederive=True),
        Transition(PENDING, REJECTED, action="reject",
                   guards=(APPROVAL_PENDING,),
                   sets_approval=ApprovalStatus.REJECTED.value,
                   effect=RELEASE_CONSUMPTION),
        Transition(APPROVED, SENT, action="send"),
        Transition(SENT, COMPLETED, action="complete", guards=(ALL_LINES_RECEIVED,)),
        Transition(PENDING, CANCELLED, action="cancel",
                   guards=(NO_DOWNSTREAM_CONSUMPTION,), effect=RELEASE_CONSUMPTION),
        Transition(APPROVED, CANCELLED, action="cancel",
                   guards=(NO_DOWNSTREAM_CONSUMPTION,), effect=RELEASE_CONSUMPTION),
        Transition(SENT, CANCELLED, action="cancel",
                   guards=(NO_DOWNSTREAM_CONSUMPTION,), effect=RELEASE_CONSUMPTION),
    ),
)
log_registered(logger, PURCHASE_ORDER_WORKFLOW)


# -----------------------------------------------------------------------------
# Goods receipt / inbound delivery
# -----------------------------------------------------------------------------

GOODS_RECEIPT_WORKFLOW = Workflow(
    name="goods_receipt",
    document_type=DocumentType.GOODS_RECEIPT,
    description="Inbound receipt against a purchase order or return order",
    initial_state=DRAFT,
    states=(DRAFT, PENDING, COMPLETED, REJECTED, CANCELLED),
    terminal_states=(COMPLETED, REJECTED, CANCELLED),
    editable_states=(DRAFT,),
    transitions=(
        Transition(DRAFT, PENDING, action="submit", guards=(HAS_LINES,)),
        Transition(PENDING, COMPLETED, action="approve",
                   stamps_approval=True, effect=RECEIPT_COMPLETED),
        Transition(PENDING, REJECTED, action="reject", effect=RECEIPT_VOIDED),
        Transition(DRAFT, CANCELLED, action="cancel", effect=RECEIPT_VOIDED),
        Transition(PENDING, CANCELLED, action="cancel", effect=RECEIPT_VOIDED),
    ),
)
log_registered(logger, GOODS_RECEIPT_WORKFLOW)


WORKFLOWS: tuple[Workflow, ...] = (
    REQUISITION_WORKFLOW,
    RFQ_WORKFLOW,
    PURCHASE_QUOTATION_WORKFLOW,
    PURCHASE_ORDER_WORKFLOW,
    GOODS_RECEIPT_WORKFLOW,
)
