"""
Document DTOs -- frozen read models handed across the service boundary.

Callers never receive ORM instances; they get these snapshots, built by
``to_dto()`` on the models, and pass ``LineSpec`` values back in.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from erp_kernel.domain.documents import ConsumptionKind, DocumentType, SettlementKind


@dataclass(frozen=True)
class LineSpec:
    """
    Caller input for a manually created line.

    Either ``product_id`` or ``description`` identifies the line.  Omitted
    ``unit_price``/``tax_rate``/``uom``/``sku`` are filled from the product
    catalog.  At most one of ``discount_percent`` / ``discount_value`` may
    be set.
    """

    quantity: Decimal
    product_id: str | None = None
    description: str | None = None
    unit_price: Decimal | None = None
    tax_rate: Decimal | None = None
    discount_percent: Decimal | None = None
    discount_value: Decimal | None = None
    uom: str | None = None
    sku: str | None = None


@dataclass(frozen=True)
class HeaderDiscountSpec:
    """Header discount input: a percent of the subtotal or a flat amount."""

    percent: Decimal | None = None
    value: Decimal | None = None


@dataclass(frozen=True)
class LineInfo:
    id: UUID
    document_id: UUID
    line_no: int
    product_id: str | None
    description: str | None
    sku: str | None
    uom: str | None
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    discount_percent: Decimal | None
    discount_value: Decimal | None
    discount_amount: Decimal
    net_amount: Decimal
    header_discount_share: Decimal
    tax_amount: Decimal
    line_total: Decimal
    upstream_line_id: UUID | None
    consumption_kind: ConsumptionKind | None
    consumed: dict[ConsumptionKind, Decimal] = field(default_factory=dict)

    def consumed_qty(self, kind: ConsumptionKind) -> Decimal:
        return self.consumed.get(kind, Decimal("0"))

    @property
    def received_qty(self) -> Decimal:
        return self.consumed_qty(ConsumptionKind.RECEIVED)

    @property
    def invoiced_qty(self) -> Decimal:
        return self.consumed_qty(ConsumptionKind.INVOICED)

    @property
    def delivered_qty(self) -> Decimal:
        return self.consumed_qty(ConsumptionKind.DELIVERED)

    @property
    def returned_qty(self) -> Decimal:
        return self.consumed_qty(ConsumptionKind.RETURNED)


@dataclass(frozen=True)
class DocumentInfo:
    id: UUID
    doc_type: DocumentType
    number: str
    status: str
    party_id: UUID | None
    parent_id: UUID | None
    approval_status: str | None
    goods_receipt_status: str | None
    warehouse_code: str | None
    subtotal: Decimal
    header_discount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    balance_amount: Decimal | None
    notes: str | None
    version: int
    created_by_id: UUID
    updated_by_id: UUID | None
    approved_by_id: UUID | None
    approved_at: datetime | None
    deleted_at: datetime | None
    lines: tuple[LineInfo, ...] = ()

    def line(self, line_no: int) -> LineInfo:
        for line in self.lines:
            if line.line_no == line_no:
                return line
        raise KeyError(line_no)


@dataclass(frozen=True)
class SettlementInfo:
    id: UUID
    invoice_id: UUID
    kind: SettlementKind
    amount: Decimal
    applied_amount: Decimal
    unapplied_amount: Decimal
    settled_on: date
    method: str | None
    reference: str | None
    credit_note_id: UUID | None
