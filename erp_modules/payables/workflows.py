"""
Payables Workflows (``erp_modules.payables.workflows``).

Vendor invoices.  Same lifecycle as receivables invoices; credit notes are
a receivables-only document.
"""

from erp_kernel.domain.documents import DocumentType
from erp_kernel.domain.workflow import Workflow
from erp_kernel.logging_config import get_logger
from erp_modules._common import invoice_workflow, log_registered

logger = get_logger("modules.payables.workflows")

AP_INVOICE_WORKFLOW = invoice_workflow(
    "ap_invoice",
    DocumentType.AP_INVOICE,
    "Vendor invoice settled by payments",
)
log_registered(logger, AP_INVOICE_WORKFLOW)

WORKFLOWS: tuple[Workflow, ...] = (AP_INVOICE_WORKFLOW,)
