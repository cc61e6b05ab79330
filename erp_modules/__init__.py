"""
ERP Modules.

Declarative, per-area definitions over the ERP kernel:
- Procurement: requisitions, RFQs, purchase quotations, purchase orders, goods receipts
- Sales: sales quotations, sales orders, deliveries, return orders
- Receivables: customer invoices, credit notes
- Payables: vendor invoices

Each area holds its transition tables; ``get_workflow`` selects one by
document type, and ``conversions`` declares how documents flow into each
other.  Processing logic lives in the kernel and in ``erp_services``.
"""

from erp_modules import payables, procurement, receivables, sales
from erp_modules._workflow_registry import WORKFLOWS, get_workflow
from erp_modules.conversions import ROUTES, ConversionRoute, get_route

__all__ = [
    "ROUTES",
    "WORKFLOWS",
    "ConversionRoute",
    "get_route",
    "get_workflow",
    "payables",
    "procurement",
    "receivables",
    "sales",
]
