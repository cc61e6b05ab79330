"""
Typed Exception Hierarchy for the ERP workflow kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP adapters, batch jobs, tests) must react to business-rule
violations without parsing message strings.  Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. Structured DATA attributes (document id, quantities, amounts)
  4. A RETRYABLE flag: business-rule violations are never retried;
     infrastructure failures (lock timeout, lost connection) are.

Example:
    try:
        conversions.convert(po_id, DocumentType.GOODS_RECEIPT, actor_id,
                            quantities={line_id: Decimal("50")})
    except OverConsumptionError as e:
        return {"error": e.code, "remaining": str(e.remaining)}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ErpKernelError (base)
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- NothingToConvertError
    |
    +-- QuantityLedgerError
    |   +-- OverConsumptionError
    |   +-- UnderConsumptionError
    |
    +-- BalanceError
    |   +-- OverPaymentError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- GenerationExhaustedError
    |
    +-- NotFoundError
    |   +-- DocumentNotFoundError
    |   +-- LineNotFoundError
    |   +-- PartyNotFoundError
    |
    +-- ValidationFailedError
    |
    +-- ConcurrencyError
        +-- StaleStateError
        +-- TransientStorageError   (retryable)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                  | When Raised
-------------|-----------------------|------------------------------------------
Workflow     | INVALID_TRANSITION    | No edge for (state, action) or guard failed
             | NOTHING_TO_CONVERT    | Upstream has no remaining quantity
-------------|-----------------------|------------------------------------------
Quantity     | OVER_CONSUMPTION      | consumed + delta > upstream quantity
             | UNDER_CONSUMPTION     | release would drive a counter negative
-------------|-----------------------|------------------------------------------
Balance      | OVER_PAYMENT          | Settlement exceeds invoice balance
-------------|-----------------------|------------------------------------------
Stock        | INSUFFICIENT_STOCK    | Issue would drive on-hand below zero
-------------|-----------------------|------------------------------------------
Numbering    | GENERATION_EXHAUSTED  | Sequence overflowed its padding width
-------------|-----------------------|------------------------------------------
Lookup       | NOT_FOUND             | Document / line / party does not exist
-------------|-----------------------|------------------------------------------
Input        | VALIDATION_FAILED     | Malformed input (negative quantity, ...)
-------------|-----------------------|------------------------------------------
Concurrency  | STALE_STATE           | Document moved since the caller read it
             | TRANSIENT_STORAGE     | Lock timeout / connection loss (retry)
"""

from decimal import Decimal
from typing import Iterable


class ErpKernelError(Exception):
    """
    Base exception for all ERP kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "ERP_KERNEL_ERROR"
    retryable: bool = False


# Workflow-related exceptions


class WorkflowError(ErpKernelError):
    """Base exception for document lifecycle errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """The requested action is not legal from the document's current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        document_type: str,
        document_id: str,
        current_state: str,
        action: str,
        allowed_actions: Iterable[str] = (),
        reason: str | None = None,
    ):
        self.document_type = document_type
        self.document_id = document_id
        self.current_state = current_state
        self.action = action
        self.allowed_actions = tuple(allowed_actions)
        self.reason = reason
        allowed = ", ".join(self.allowed_actions) or "none"
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Cannot '{action}' {document_type} {document_id} in state "
            f"'{current_state}' (allowed: {allowed}){detail}"
        )


class NothingToConvertError(WorkflowError):
    """The upstream document has no line with remaining unconsumed quantity."""

    code: str = "NOTHING_TO_CONVERT"

    def __init__(self, document_id: str, source_type: str, target_type: str):
        self.document_id = document_id
        self.source_type = source_type
        self.target_type = target_type
        super().__init__(
            f"{source_type} {document_id} has nothing left to convert "
            f"into {target_type}"
        )


# Quantity-ledger exceptions


class QuantityLedgerError(ErpKernelError):
    """Base exception for line-quantity rollup errors."""

    code: str = "QUANTITY_LEDGER_ERROR"


class OverConsumptionError(QuantityLedgerError):
    """Consuming ``requested`` would push the counter past its bound."""

    code: str = "OVER_CONSUMPTION"

    def __init__(
        self,
        line_id: str,
        kind: str,
        requested: Decimal,
        consumed: Decimal,
        limit: Decimal,
    ):
        self.line_id = line_id
        self.kind = kind
        self.requested = requested
        self.consumed = consumed
        self.limit = limit
        self.remaining = limit - consumed
        super().__init__(
            f"Cannot consume {requested} ({kind}) on line {line_id}: "
            f"only {self.remaining} of {limit} remain"
        )


class UnderConsumptionError(QuantityLedgerError):
    """Releasing ``requested`` would push the counter below zero."""

    code: str = "UNDER_CONSUMPTION"

    def __init__(
        self,
        line_id: str,
        kind: str,
        requested: Decimal,
        consumed: Decimal,
    ):
        self.line_id = line_id
        self.kind = kind
        self.requested = requested
        self.consumed = consumed
        super().__init__(
            f"Cannot release {requested} ({kind}) on line {line_id}: "
            f"only {consumed} consumed"
        )


# Balance-related exceptions


class BalanceError(ErpKernelError):
    """Base exception for invoice/party balance errors."""

    code: str = "BALANCE_ERROR"


class OverPaymentError(BalanceError):
    """Settlement amount exceeds the invoice's open balance."""

    code: str = "OVER_PAYMENT"

    def __init__(self, invoice_id: str, amount: Decimal, balance: Decimal):
        self.invoice_id = invoice_id
        self.amount = amount
        self.balance = balance
        super().__init__(
            f"Amount {amount} exceeds open balance {balance} "
            f"of invoice {invoice_id}"
        )


# Stock exceptions


class StockError(ErpKernelError):
    """Base exception for warehouse stock errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Issuing ``requested`` would take on-hand stock below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, warehouse_code: str, product_id: str, requested: Decimal, on_hand: Decimal):
        self.warehouse_code = warehouse_code
        self.product_id = product_id
        self.requested = requested
        self.on_hand = on_hand
        super().__init__(
            f"Cannot issue {requested} of {product_id} from {warehouse_code}: "
            f"only {on_hand} on hand"
        )


# Numbering exceptions


class GenerationExhaustedError(ErpKernelError):
    """The per-type/per-year sequence no longer fits its padding width."""

    code: str = "GENERATION_EXHAUSTED"

    def __init__(self, document_type: str, year: int, width: int):
        self.document_type = document_type
        self.year = year
        self.width = width
        super().__init__(
            f"Document numbers for {document_type} {year} exhausted "
            f"({width}-digit sequence)"
        )


# Lookup exceptions


class NotFoundError(ErpKernelError):
    """A referenced entity does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class DocumentNotFoundError(NotFoundError):
    """Document does not exist or has been soft-deleted."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__("Document", document_id)


class LineNotFoundError(NotFoundError):
    """Document line does not exist."""

    def __init__(self, line_id: str):
        self.line_id = line_id
        super().__init__("DocumentLine", line_id)


class PartyNotFoundError(NotFoundError):
    """Vendor/customer does not exist."""

    def __init__(self, party_id: str):
        self.party_id = party_id
        super().__init__("Party", party_id)


# Input validation


class ValidationFailedError(ErpKernelError):
    """Malformed caller input (negative quantity, unknown product, ...)."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Concurrency-related exceptions


class ConcurrencyError(ErpKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StaleStateError(ConcurrencyError):
    """The document changed after the caller read it."""

    code: str = "STALE_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stale {entity_type} {entity_id}: expected version "
            f"{expected_version}, found {actual_version}"
        )


class TransientStorageError(ConcurrencyError):
    """
    The store failed for a reason unrelated to business rules.

    The whole action may be retried; consumption is deduplicated on the
    downstream line id, so a retry cannot double count.
    """

    code: str = "TRANSIENT_STORAGE"
    retryable: bool = True

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")
