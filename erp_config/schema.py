"""
Configuration Schema (``erp_config.schema``).

Responsibility
--------------
Typed, frozen dataclass for the engine's tunable policy: over-payment
handling, document number formatting, the receipt cap on vendor
invoicing and the warehouse that moves stock when a document names none.

Invariants enforced
-------------------
* ``from_dict`` rejects unknown keys, unknown policies, unknown document
  types and number widths outside 1..12 with ``ValueError``.
* Every document type has a prefix (defaults fill the gaps).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

from erp_kernel.domain.documents import DocumentType, OverPaymentPolicy

MIN_NUMBER_WIDTH = 1
MAX_NUMBER_WIDTH = 12

DEFAULT_PREFIXES: Mapping[DocumentType, str] = MappingProxyType({
    DocumentType.REQUISITION: "PR",
    DocumentType.RFQ: "RFQ",
    DocumentType.PURCHASE_QUOTATION: "PQ",
    DocumentType.PURCHASE_ORDER: "PO",
    DocumentType.GOODS_RECEIPT: "GR",
    DocumentType.SALES_QUOTATION: "SQ",
    DocumentType.SALES_ORDER: "SO",
    DocumentType.DELIVERY: "DLV",
    DocumentType.RETURN_ORDER: "RO",
    DocumentType.AR_INVOICE: "INV",
    DocumentType.AP_INVOICE: "API",
    DocumentType.CREDIT_NOTE: "CN",
})


@dataclass(frozen=True)
class EngineConfig:
    """Runtime policy for the workflow engine."""

    overpayment_policy: OverPaymentPolicy = OverPaymentPolicy.REJECT
    number_width: int = 6
    number_prefixes: Mapping[DocumentType, str] = field(
        default_factory=lambda: dict(DEFAULT_PREFIXES)
    )
    invoice_requires_receipt: bool = True
    default_currency: str = "USD"
    default_warehouse: str = "MAIN"
    checksum: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not MIN_NUMBER_WIDTH <= self.number_width <= MAX_NUMBER_WIDTH:
            raise ValueError(
                f"number_width must be between {MIN_NUMBER_WIDTH} and "
                f"{MAX_NUMBER_WIDTH}, got {self.number_width}"
            )
        for doc_type, prefix in self.number_prefixes.items():
            if not prefix or "-" in prefix:
                raise ValueError(f"Invalid number prefix for {doc_type.value}: {prefix!r}")
        if not self.default_warehouse.strip():
            raise ValueError("default_warehouse must not be blank")

    @classmethod
    def with_defaults(cls) -> EngineConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EngineConfig:
        """
        Build a config from parsed YAML.

        Missing keys keep their defaults; ``number_prefixes`` overrides are
        merged into the default prefix table.

        Raises:
            ValueError: Unknown key, policy, document type or bad width.
        """
        allowed = {
            "overpayment_policy",
            "number_width",
            "number_prefixes",
            "invoice_requires_receipt",
            "default_currency",
            "default_warehouse",
        }
        unknown = set(data) - allowed
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

        kwargs: dict[str, Any] = {}
        if "overpayment_policy" in data:
            try:
                kwargs["overpayment_policy"] = OverPaymentPolicy(str(data["overpayment_policy"]).lower())
            except ValueError:
                raise ValueError(
                    f"Unknown overpayment_policy: {data['overpayment_policy']!r} "
                    f"(expected one of {[p.value for p in OverPaymentPolicy]})"
                ) from None
        if "number_width" in data:
            width = data["number_width"]
            if not isinstance(width, int) or isinstance(width, bool):
                raise ValueError(f"number_width must be an integer, got {width!r}")
            kwargs["number_width"] = width
        if "number_prefixes" in data:
            prefixes = dict(DEFAULT_PREFIXES)
            for key, prefix in (data["number_prefixes"] or {}).items():
                try:
                    prefixes[DocumentType(key)] = str(prefix)
                except ValueError:
                    raise ValueError(f"Unknown document type in number_prefixes: {key!r}") from None
            kwargs["number_prefixes"] = prefixes
        if "invoice_requires_receipt" in data:
            kwargs["invoice_requires_receipt"] = bool(data["invoice_requires_receipt"])
        if "default_currency" in data:
            kwargs["default_currency"] = str(data["default_currency"])
        if "default_warehouse" in data:
            kwargs["default_warehouse"] = str(data["default_warehouse"])
        return cls(**kwargs)

    def merged(self, data: Mapping[str, Any]) -> EngineConfig:
        """This config with the keys in ``data`` overridden."""
        override = EngineConfig.from_dict(data)
        changes = {key: getattr(override, key) for key in data}
        if "number_prefixes" in data:
            prefixes = dict(self.number_prefixes)
            prefixes.update({DocumentType(k): str(v) for k, v in (data["number_prefixes"] or {}).items()})
            changes["number_prefixes"] = prefixes
        return replace(self, **changes)

    def as_dict(self) -> dict[str, Any]:
        return {
            "overpayment_policy": self.overpayment_policy.value,
            "number_width": self.number_width,
            "number_prefixes": {k.value: v for k, v in sorted(
                self.number_prefixes.items(), key=lambda item: item[0].value
            )},
            "invoice_requires_receipt": self.invoice_requires_receipt,
            "default_currency": self.default_currency,
            "default_warehouse": self.default_warehouse,
        }
