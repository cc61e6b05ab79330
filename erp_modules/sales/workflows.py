"""
Sales Workflows (``erp_modules.sales.workflows``).

Responsibility
--------------
State machines for the sell side: sales quotation, sales order, delivery
and return order.

Invariants enforced
-------------------
* Sales orders carry an approval sub-state that starts at Draft and moves
  to Pending on submit.
* Return orders carry a goods-receipt sub-state (None -> Pending ->
  Completed) maintained by the inbound receipt converted from them; they
  can only complete once that receipt has completed and can only be
  cancelled while no receipt exists.  The sub-state is Completed only
  once every line is received and no other receipt is still open.
* Shipping a delivery issues its product lines from stock; cancelling a
  shipped delivery puts them back.
"""

from erp_kernel.domain.documents import ApprovalStatus, DocumentType, GoodsReceiptStatus, Status
from erp_kernel.domain.workflow import Transition, Workflow
from erp_kernel.logging_config import get_logger
from erp_modules._common import (
    ALL_LINES_DELIVERED,
    APPROVAL_PENDING,
    DELIVERY_COMPLETED,
    DELIVERY_SHIPPED,
    GOODS_RECEIPT_COMPLETED,
    GOODS_RECEIPT_NONE,
    HAS_LINES,
    NO_DOWNSTREAM_CONSUMPTION,
    RELEASE_CONSUMPTION,
    SHIPMENT_CANCELLED,
    log_registered,
)

logger = get_logger("modules.sales.workflows")

DRAFT = Status.DRAFT.value
PENDING = Status.PENDING.value
APPROVED = Status.APPROVED.value
REJECTED = Status.REJECTED.value
CONVERTED = Status.CONVERTED.value
CANCELLED = Status.CANCELLED.value
COMPLETED = Status.COMPLETED.value
ACTIVE = Status.ACTIVE.value
EXPIRED = Status.EXPIRED.value
FULFILLED = Status.FULFILLED.value
PICKED = Status.PICKED.value
SHIPPED = Status.SHIPPED.value
DELIVERED = Status.DELIVERED.value


SALES_QUOTATION_WORKFLOW = Workflow(
    name="sales_quotation",
    document_type=DocumentType.SALES_QUOTATION,
    description="Quotation offered to a customer",
    initial_state=DRAFT,
    states=(DRAFT, ACTIVE, CONVERTED, EXPIRED, CANCELLED),
    terminal_states=(CONVERTED, EXPIRED, CANCELLED),
    editable_states=(DRAFT,),
    transitions=(
        Transition(DRAFT, ACTIVE, action="activate", guards=(HAS_LINES,), rederive=True),
        Transition(ACTIVE, CONVERTED, action="convert", system_only=True),
        Transition(ACTIVE, EXPIRED, action="expire"),
        Transition(DRAFT, CANCELLED, action="cancel"),
        Transition(ACTIVE, CANCELLED, action="cancel", guards=(NO_DOWNSTREAM_CONSUMPTION,)),
    ),
)
log_registered(logger, SALES_QUOTATION_WORKFLOW)


SALES_ORDER_WORKFLOW = Workflow(
    name="sales_order",
    document_type=DocumentType.SALES_ORDER,
    description="Customer order with approval sub-state",
    initial_state=DRAFT,
    states=(DRAFT, PENDING, APPROVED, REJECTED, FULFILLED, CANCELLED),
    terminal_states=(REJECTED, FULFILLED, CANCELLED),
    editable_states=(DRAFT,),
    initial_approval_status=ApprovalStatus.DRAFT.value,
    transitions=(
        Transition(DRAFT, PENDING, action="submit", guards=(HAS_LINES,),
                   sets_approval=ApprovalStatus.PENDING.value, rederive=True),
        Transition(PENDING, APPROVED, action="approve", guards=(APPROVAL_PENDING,),
                   sets_approval=ApprovalStatus.APPROVED.value, stamps_approval=True),
        Transition(PENDING, REJECTED, action="reject", guards=(APPROVAL_PENDING,),
                   sets_approval=ApprovalStatus.REJECTED.value, effect=RELEASE_CONSUMPTION),
        Transition(APPROVED, FULFILLED, action="fulfil", guards=(ALL_LINES_DELIVERED,)),
        Transition(DRAFT, CANCELLED, action="cancel", effect=RELEASE_CONSUMPTION),
        Transition(PENDING, CANCELLED, action="cancel", effect=RELEASE_CONSUMPTION),
        Transition(APPROVED, CANCELLED, action="cancel",
                   guards=(NO_DOWNSTREAM_CONSUMPTION,), effect=RELEASE_CONSUMPTION),
    ),
)
log_registered(logger, SALES_ORDER_WORKFLOW)


DELIVERY_WORKFLOW = Workflow(
    name="delivery",
    document_type=DocumentType.DELIVERY,
    description="Outbound delivery against a sales order",
    initial_state=DRAFT,
    states=(DRAFT, PICKED, SHIPPED, DELIVERED, CANCELLED),
    terminal_states=(DELIVERED, CANCELLED),
    editable_states=(DRAFT,),
    transitions=(
        Transition(DRAFT, PICKED, action="pick", guards=(HAS_LINES,)),
        Transition(PICKED, SHIPPED, action="ship", effect=DELIVERY_SHIPPED),
        Transition(SHIPPED, DELIVERED, action="deliver", effect=DELIVERY_COMPLETED),
        Transition(DRAFT, CANCELLED, action="cancel", effect=RELEASE_CONSUMPTION),
        Transition(PICKED, CANCELLED, action="cancel", effect=RELEASE_CONSUMPTION),
        Transition(SHIPPED, CANCELLED, action="cancel", effect=SHIPMENT_CANCELLED),
    ),
)
log_registered(logger, DELIVERY_WORKFLOW)


RETURN_ORDER_WORKFLOW = Workflow(
    name="return_order",
    document_type=DocumentType.RETURN_ORDER,
    description="Customer return against a delivery",
    initial_state=DRAFT,
    states=(DRAFT, APPROVED, COMPLETED, CANCELLED),
    terminal_states=(COMPLETED, CANCELLED),
    editable_states=(DRAFT,),
    initial_goods_receipt_status=GoodsReceiptStatus.NONE.value,
    transitions=(
        Transition(DRAFT, APPROVED, action="approve", guards=(HAS_LINES,), stamps_approval=True),
        Transition(APPROVED, COMPLETED, action="complete", guards=(GOODS_RECEIPT_COMPLETED,)),
        Transition(DRAFT, CANCELLED, action="cancel",
                   guards=(GOODS_RECEIPT_NONE,), effect=RELEASE_CONSUMPTION),
        Transition(APPROVED, CANCELLED, action="cancel",
                   guards=(GOODS_RECEIPT_NONE,), effect=RELEASE_CONSUMPTION),
    ),
)
log_registered(logger, RETURN_ORDER_WORKFLOW)


WORKFLOWS: tuple[Workflow, ...] = (
    SALES_QUOTATION_WORKFLOW,
    SALES_ORDER_WORKFLOW,
    DELIVERY_WORKFLOW,
    RETURN_ORDER_WORKFLOW,
)
