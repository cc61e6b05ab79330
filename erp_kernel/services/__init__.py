"""Services for the ERP workflow kernel (write side, flush-only)."""

from erp_kernel.services.activity_publisher import ActivityPublisher, register_activity_listeners
from erp_kernel.services.balance_ledger import BalanceLedger, BalanceSnapshot, ReconciliationReport
from erp_kernel.services.document_number_service import DocumentNumberService
from erp_kernel.services.invoice_settlement import InvoiceSettlementService, SettlementResult
from erp_kernel.services.party_service import PartyInfo, PartyService
from erp_kernel.services.quantity_ledger import QuantityLedger
from erp_kernel.services.sequence_service import SequenceService
from erp_kernel.services.stock_ledger import StockLedger

__all__ = [
    "ActivityPublisher",
    "BalanceLedger",
    "BalanceSnapshot",
    "DocumentNumberService",
    "InvoiceSettlementService",
    "PartyInfo",
    "PartyService",
    "QuantityLedger",
    "ReconciliationReport",
    "SequenceService",
    "SettlementResult",
    "StockLedger",
    "register_activity_listeners",
]
