"""
Conversion Routes (``erp_modules.conversions``).

Responsibility
--------------
Declares which document may be converted into which, the consumption
kind each new line takes on its upstream line, the source states a
conversion may start from, and what happens to the source when every line
has been fully consumed.

Invariants enforced
-------------------
* ``(source_type, target_type)`` is unique.
* Untracked routes (``kind is None``) copy lines without touching the
  Quantity Ledger.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from erp_kernel.domain.documents import ConsumptionKind, DocumentType, GoodsReceiptStatus, Status
from erp_kernel.logging_config import get_logger

logger = get_logger("modules.conversions")


@dataclass(frozen=True)
class ConversionRoute:
    source_type: DocumentType
    target_type: DocumentType
    kind: ConsumptionKind | None
    eligible_states: tuple[str, ...]
    # Bound this kind by another counter on the same line (if enabled)
    cap_kind: ConsumptionKind | None = None
    # System action fired on the source once every line is fully consumed
    on_full_action: str | None = None
    # Sub-state written on the source when a conversion succeeds
    sets_source_goods_receipt: str | None = None

    @property
    def tracked(self) -> bool:
        return self.kind is not None


_ROUTES = (
    ConversionRoute(
        DocumentType.REQUISITION, DocumentType.RFQ, ConsumptionKind.SOURCED,
        (Status.APPROVED.value,), on_full_action="convert",
    ),
    ConversionRoute(
        DocumentType.RFQ, DocumentType.PURCHASE_QUOTATION, None,
        (Status.SENT.value,),
    ),
    ConversionRoute(
        DocumentType.PURCHASE_QUOTATION, DocumentType.PURCHASE_ORDER, ConsumptionKind.ORDERED,
        (Status.APPROVED.value,), on_full_action="order",
    ),
    ConversionRoute(
        DocumentType.PURCHASE_ORDER, DocumentType.GOODS_RECEIPT, ConsumptionKind.RECEIVED,
        (Status.SENT.value,),
    ),
    ConversionRoute(
        DocumentType.PURCHASE_ORDER, DocumentType.AP_INVOICE, ConsumptionKind.INVOICED,
        (Status.SENT.value, Status.COMPLETED.value), cap_kind=ConsumptionKind.RECEIVED,
    ),
    ConversionRoute(
        DocumentType.SALES_QUOTATION, DocumentType.SALES_ORDER, ConsumptionKind.ORDERED,
        (Status.ACTIVE.value,), on_full_action="convert",
    ),
    ConversionRoute(
        DocumentType.SALES_ORDER, DocumentType.DELIVERY, ConsumptionKind.DELIVERED,
        (Status.APPROVED.value,),
    ),
    ConversionRoute(
        DocumentType.DELIVERY, DocumentType.AR_INVOICE, ConsumptionKind.INVOICED,
        (Status.DELIVERED.value,),
    ),
    ConversionRoute(
        DocumentType.DELIVERY, DocumentType.RETURN_ORDER, ConsumptionKind.RETURNED,
        (Status.DELIVERED.value,),
    ),
    ConversionRoute(
        DocumentType.RETURN_ORDER, DocumentType.GOODS_RECEIPT, ConsumptionKind.RECEIVED,
        (Status.APPROVED.value,),
        sets_source_goods_receipt=GoodsReceiptStatus.PENDING.value,
    ),
    ConversionRoute(
        DocumentType.AR_INVOICE, DocumentType.CREDIT_NOTE, ConsumptionKind.CREDITED,
        (Status.UNPAID.value, Status.PARTIALLY_PAID.value, Status.PAID.value),
    ),
)

ROUTES: Mapping[tuple[DocumentType, DocumentType], ConversionRoute] = MappingProxyType(
    {(r.source_type, r.target_type): r for r in _ROUTES}
)
if len(ROUTES) != len(_ROUTES):
    raise ValueError("Duplicate conversion route")

logger.info("conversion_routes_registered", extra={"route_count": len(ROUTES)})


def get_route(source_type: DocumentType | str, target_type: DocumentType | str) -> ConversionRoute | None:
    return ROUTES.get((DocumentType(source_type), DocumentType(target_type)))


def targets_for(source_type: DocumentType | str) -> tuple[DocumentType, ...]:
    source = DocumentType(source_type)
    return tuple(target for (src, target) in ROUTES if src == source)
