"""
ERP orchestration services.

Each public method here is one unit of work: it locks what it touches,
drives the kernel services (which only flush) and commits or rolls back
as a whole.  Activity events are delivered after the commit.
"""

from erp_services.conversion_service import ConversionService
from erp_services.document_service import DocumentService
from erp_services.payment_service import PaymentService
from erp_services.workflow_executor import (
    DocumentGuardContext,
    DocumentWorkflowExecutor,
    GuardExecutor,
    default_guard_executor,
)

__all__ = [
    "ConversionService",
    "DocumentGuardContext",
    "DocumentService",
    "DocumentWorkflowExecutor",
    "GuardExecutor",
    "PaymentService",
    "default_guard_executor",
]
