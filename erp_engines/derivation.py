"""
Derivation Engine - Line and document totals.

Pure functions with no I/O: the same inputs always produce identical
outputs, so re-deriving an unchanged document is a no-op.

Rules:
    - gross     = round2(quantity * unit_price)
    - discount  = round2(gross * pct / 100), or a flat amount clamped to gross
    - net       = gross - discount
    - header discount (percent of subtotal or flat, clamped to the subtotal)
      is allocated to lines by value share; the last non-zero line absorbs
      the rounding remainder so the shares sum to the header discount
    - taxable   = max(0, net - header share)
    - tax       = round2(taxable * rate / 100), rounded per line then summed
    - total     = sum(taxable) + sum(tax)

All rounding is ROUND_HALF_UP to 2 decimal places.

Usage:
    from decimal import Decimal
    from erp_engines.derivation import LineInput, derive_document

    totals = derive_document([
        LineInput(quantity=Decimal("100"), unit_price=Decimal("10.00"),
                  tax_rate=Decimal("10")),
    ])
    print(totals.total_amount)  # 1100.00
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence

from erp_kernel.db.types import round_money
from erp_kernel.exceptions import ValidationFailedError
from erp_kernel.logging_config import get_logger

logger = get_logger("engines.derivation")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class DiscountKind(str, Enum):
    PERCENT = "percent"
    VALUE = "value"


@dataclass(frozen=True)
class Discount:
    """A line or header discount: a percent of the base or a flat amount."""

    kind: DiscountKind
    amount: Decimal

    def __post_init__(self) -> None:
        if self.amount < ZERO:
            raise ValidationFailedError("discount", "cannot be negative")
        if self.kind == DiscountKind.PERCENT and self.amount > HUNDRED:
            raise ValidationFailedError("discount", "percent cannot exceed 100")

    @classmethod
    def percent(cls, value: Decimal) -> Discount:
        return cls(DiscountKind.PERCENT, Decimal(value))

    @classmethod
    def value(cls, amount: Decimal) -> Discount:
        return cls(DiscountKind.VALUE, Decimal(amount))

    @classmethod
    def from_fields(
        cls,
        percent: Decimal | None,
        value: Decimal | None,
        field: str = "discount",
    ) -> Discount | None:
        """Build from the (percent, value) column pair; at most one may be set."""
        if percent is not None and value is not None:
            raise ValidationFailedError(field, "set either a percent or a value, not both")
        if percent is not None:
            return cls.percent(percent)
        if value is not None:
            return cls.value(value)
        return None

    def amount_on(self, base: Decimal) -> Decimal:
        """The discount amount for ``base``; never more than ``base``."""
        if self.kind == DiscountKind.PERCENT:
            return round_money(base * self.amount / HUNDRED)
        return min(round_money(self.amount), base)


@dataclass(frozen=True)
class LineInput:
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal = ZERO
    discount: Discount | None = None
    # Opaque caller reference carried through to LineTotals
    key: Any = None


@dataclass(frozen=True)
class LineTotals:
    key: Any
    gross_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal
    header_discount_share: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    lines: tuple[LineTotals, ...]
    subtotal: Decimal
    header_discount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def _validate(line: LineInput, index: int) -> None:
    if line.quantity <= ZERO:
        raise ValidationFailedError(f"lines[{index}].quantity", "must be greater than zero")
    if line.unit_price < ZERO:
        raise ValidationFailedError(f"lines[{index}].unit_price", "cannot be negative")
    if line.tax_rate < ZERO:
        raise ValidationFailedError(f"lines[{index}].tax_rate", "cannot be negative")


def _net(line: LineInput) -> tuple[Decimal, Decimal, Decimal]:
    gross = round_money(line.quantity * line.unit_price)
    discount = line.discount.amount_on(gross) if line.discount else round_money(ZERO)
    return gross, discount, gross - discount


def derive_line(line: LineInput) -> LineTotals:
    """Totals for a single line with no header discount."""
    _validate(line, 0)
    gross, discount, net = _net(line)
    tax = round_money(net * line.tax_rate / HUNDRED)
    return LineTotals(
        key=line.key,
        gross_amount=gross,
        discount_amount=discount,
        net_amount=net,
        header_discount_share=round_money(ZERO),
        taxable_amount=net,
        tax_amount=tax,
        line_total=net + tax,
    )


def allocate_header_discount(nets: Sequence[Decimal], header_amount: Decimal) -> tuple[Decimal, ...]:
    """
    Split ``header_amount`` across lines in proportion to their net amounts.

    The last line with a non-zero net takes the remainder so the shares sum
    to ``header_amount`` exactly.
    """
    zero = round_money(ZERO)
    subtotal = sum(nets, ZERO)
    if header_amount == 0 or subtotal == 0:
        return tuple(zero for _ in nets)

    last = max(i for i, net in enumerate(nets) if net != 0)
    shares: list[Decimal] = []
    allocated = ZERO
    for i, net in enumerate(nets):
        if i == last:
            share = header_amount - allocated
        elif net == 0:
            share = zero
        else:
            share = round_money(net * header_amount / subtotal)
            allocated += share
        shares.append(round_money(share))
    return tuple(shares)


def derive_document(
    lines: Sequence[LineInput],
    header_discount: Discount | None = None,
) -> DocumentTotals:
    """
    Derive every line and the document totals.

    Raises:
        ValidationFailedError: quantity <= 0, a negative price, rate or
            discount, or a percent above 100.
    """
    for index, line in enumerate(lines):
        _validate(line, index)

    nets = [_net(line) for line in lines]
    subtotal = sum((net for _, _, net in nets), round_money(ZERO))
    header_amount = header_discount.amount_on(subtotal) if header_discount else round_money(ZERO)
    shares = allocate_header_discount([net for _, _, net in nets], header_amount)

    derived: list[LineTotals] = []
    for line, (gross, discount, net), share in zip(lines, nets, shares):
        taxable = net - share
        if taxable < 0:
            taxable = round_money(ZERO)
        tax = round_money(taxable * line.tax_rate / HUNDRED)
        derived.append(LineTotals(
            key=line.key,
            gross_amount=gross,
            discount_amount=discount,
            net_amount=net,
            header_discount_share=share,
            taxable_amount=taxable,
            tax_amount=tax,
            line_total=taxable + tax,
        ))

    taxable_total = sum((d.taxable_amount for d in derived), round_money(ZERO))
    tax_total = sum((d.tax_amount for d in derived), round_money(ZERO))
    totals = DocumentTotals(
        lines=tuple(derived),
        subtotal=subtotal,
        header_discount=header_amount,
        taxable_amount=taxable_total,
        tax_amount=tax_total,
        total_amount=taxable_total + tax_total,
    )
    logger.debug("document_derived", extra={
        "line_count": len(derived),
        "subtotal": str(subtotal),
        "header_discount": str(header_amount),
        "total_amount": str(totals.total_amount),
    })
    return totals
