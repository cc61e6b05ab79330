"""
Workflow Registry (``erp_modules._workflow_registry``).

Responsibility
--------------
Maps each DocumentType tag to its one transition table.  This is the only
dispatch point: the executor never branches on document classes.

Failure modes
-------------
* Import fails if a document type has no table or two tables.
"""

from types import MappingProxyType
from typing import Mapping

from erp_kernel.domain.documents import DocumentType
from erp_kernel.domain.workflow import Workflow
from erp_kernel.logging_config import get_logger
from erp_modules.payables import workflows as payables
from erp_modules.procurement import workflows as procurement
from erp_modules.receivables import workflows as receivables
from erp_modules.sales import workflows as sales

logger = get_logger("modules.workflow_registry")


def _build() -> Mapping[DocumentType, Workflow]:
    registry: dict[DocumentType, Workflow] = {}
    for workflow in (
        *procurement.WORKFLOWS,
        *sales.WORKFLOWS,
        *receivables.WORKFLOWS,
        *payables.WORKFLOWS,
    ):
        if workflow.document_type in registry:
            raise ValueError(f"Two workflows for {workflow.document_type.value}")
        registry[workflow.document_type] = workflow
    missing = set(DocumentType) - set(registry)
    if missing:
        raise ValueError(f"No workflow for {sorted(t.value for t in missing)}")
    return MappingProxyType(registry)


WORKFLOWS: Mapping[DocumentType, Workflow] = _build()

logger.info("workflow_registry_built", extra={"workflow_count": len(WORKFLOWS)})


def get_workflow(doc_type: DocumentType | str) -> Workflow:
    """The transition table for ``doc_type``."""
    return WORKFLOWS[DocumentType(doc_type)]
