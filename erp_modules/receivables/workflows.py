"""
Receivables Workflows (``erp_modules.receivables.workflows``).

Customer invoices and the credit notes raised against them.  Invoice
settlement edges are system-only: PaymentService and credit-note
application choose between ``settle_partial`` and ``settle_full`` from the
remaining balance.
"""

from erp_kernel.domain.documents import DocumentType, Status
from erp_kernel.domain.workflow import Transition, Workflow
from erp_kernel.logging_config import get_logger
from erp_modules._common import (
    APPLY_CREDIT_NOTE,
    HAS_LINES,
    RELEASE_CONSUMPTION,
    invoice_workflow,
    log_registered,
)

logger = get_logger("modules.receivables.workflows")

AR_INVOICE_WORKFLOW = invoice_workflow(
    "ar_invoice",
    DocumentType.AR_INVOICE,
    "Customer invoice settled by receipts and credit notes",
)
log_registered(logger, AR_INVOICE_WORKFLOW)

DRAFT = Status.DRAFT.value
ISSUED = Status.ISSUED.value
APPLIED = Status.APPLIED.value
CANCELLED = Status.CANCELLED.value

CREDIT_NOTE_WORKFLOW = Workflow(
    name="credit_note",
    document_type=DocumentType.CREDIT_NOTE,
    description="Credit note against a customer invoice",
    initial_state=DRAFT,
    states=(DRAFT, ISSUED, APPLIED, CANCELLED),
    terminal_states=(APPLIED, CANCELLED),
    editable_states=(DRAFT,),
    transitions=(
        Transition(DRAFT, ISSUED, action="issue", guards=(HAS_LINES,), rederive=True),
        Transition(ISSUED, APPLIED, action="apply", effect=APPLY_CREDIT_NOTE),
        Transition(DRAFT, CANCELLED, action="cancel", effect=RELEASE_CONSUMPTION),
    ),
)
log_registered(logger, CREDIT_NOTE_WORKFLOW)

WORKFLOWS: tuple[Workflow, ...] = (AR_INVOICE_WORKFLOW, CREDIT_NOTE_WORKFLOW)
