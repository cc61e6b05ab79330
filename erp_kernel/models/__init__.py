"""ORM models for the ERP workflow kernel."""

from erp_kernel.models.consumption import LineConsumption
from erp_kernel.models.document import DocumentLineModel, DocumentModel
from erp_kernel.models.party import BalanceEvent, Party, PartyBalance
from erp_kernel.models.settlement import SettlementModel
from erp_kernel.models.stock import StockLevel
from erp_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "BalanceEvent",
    "DocumentLineModel",
    "DocumentModel",
    "LineConsumption",
    "Party",
    "PartyBalance",
    "SequenceCounter",
    "SettlementModel",
    "StockLevel",
]
