"""
Module: erp_engines
Responsibility:
    Pure calculation layer.  Re-exports the Derivation Engine, which turns
    line inputs into line and document totals.

Architecture position:
    Engines -- zero I/O.  May import erp_kernel value helpers and
    exceptions.  MUST NOT import erp_services or erp_modules.

Invariants enforced:
    - Decimal-only arithmetic; identical inputs give identical outputs.
"""

from erp_engines.derivation import (
    Discount,
    DiscountKind,
    DocumentTotals,
    LineInput,
    LineTotals,
    allocate_header_discount,
    derive_document,
    derive_line,
)

__all__ = [
    "Discount",
    "DiscountKind",
    "DocumentTotals",
    "LineInput",
    "LineTotals",
    "allocate_header_discount",
    "derive_document",
    "derive_line",
]
