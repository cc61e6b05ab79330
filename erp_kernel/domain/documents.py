"""
Document vocabulary -- type tags, statuses, sub-states and consumption kinds.

Responsibility:
    Defines the closed set of document types and the enums every layer
    shares.  Status names are the union over all document types; which of
    them a given type may occupy is decided by its transition table in
    ``erp_modules``.

Architecture position:
    Kernel > Domain -- pure values, zero I/O.
"""

from enum import Enum


class DocumentType(str, Enum):
    """Type tag used to select a document's transition table."""

    REQUISITION = "requisition"
    RFQ = "rfq"
    PURCHASE_QUOTATION = "purchase_quotation"
    PURCHASE_ORDER = "purchase_order"
    GOODS_RECEIPT = "goods_receipt"
    SALES_QUOTATION = "sales_quotation"
    SALES_ORDER = "sales_order"
    DELIVERY = "delivery"
    RETURN_ORDER = "return_order"
    AR_INVOICE = "ar_invoice"
    AP_INVOICE = "ap_invoice"
    CREDIT_NOTE = "credit_note"

    @property
    def is_invoice(self) -> bool:
        return self in (DocumentType.AR_INVOICE, DocumentType.AP_INVOICE)


class Status(str, Enum):
    DRAFT = "Draft"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CONVERTED = "Converted"
    CANCELLED = "Cancelled"
    SENT = "Sent"
    COMPLETED = "Completed"
    ORDERED = "Ordered"
    ACTIVE = "Active"
    EXPIRED = "Expired"
    FULFILLED = "Fulfilled"
    PICKED = "Picked"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    UNPAID = "Unpaid"
    PARTIALLY_PAID = "PartiallyPaid"
    PAID = "Paid"
    ISSUED = "Issued"
    APPLIED = "Applied"


class ApprovalStatus(str, Enum):
    """Approval sub-state carried by purchase and sales orders."""

    DRAFT = "Draft"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class GoodsReceiptStatus(str, Enum):
    """Return-order sub-state tracking its inbound receipt."""

    NONE = "None"
    PENDING = "Pending"
    COMPLETED = "Completed"


class ConsumptionKind(str, Enum):
    """
    Which counter on an upstream line a downstream line consumes.

    ``counter`` is the DocumentLine attribute holding the running total.
    """

    SOURCED = "sourced"
    ORDERED = "ordered"
    RECEIVED = "received"
    INVOICED = "invoiced"
    DELIVERED = "delivered"
    RETURNED = "returned"
    CREDITED = "credited"

    @property
    def counter(self) -> str:
        return f"{self.value}_qty"


class PartyType(str, Enum):
    VENDOR = "vendor"
    CUSTOMER = "customer"


class BalanceDirection(str, Enum):
    """Payable balances belong to vendors, receivable balances to customers."""

    PAYABLE = "payable"
    RECEIVABLE = "receivable"

    @classmethod
    def for_party_type(cls, party_type: PartyType) -> "BalanceDirection":
        if party_type == PartyType.VENDOR:
            return cls.PAYABLE
        return cls.RECEIVABLE


class SettlementKind(str, Enum):
    PAYMENT = "payment"
    CREDIT_NOTE = "credit_note"


class OverPaymentPolicy(str, Enum):
    """
    What happens when a settlement exceeds the open invoice balance.

    REJECT raises OverPaymentError.  CLAMP settles the invoice to zero and
    books the excess as an unapplied amount on the party.
    """

    REJECT = "reject"
    CLAMP = "clamp"


class BalanceEventType(str, Enum):
    INVOICE_POSTED = "invoice_posted"
    INVOICE_VOIDED = "invoice_voided"
    PAYMENT_RECORDED = "payment_recorded"
    CREDIT_NOTE_APPLIED = "credit_note_applied"
    UNAPPLIED_RECEIVED = "unapplied_received"


# Party type a document's counterparty must have; None means either or none.
REQUIRED_PARTY_TYPE: dict[DocumentType, PartyType | None] = {
    DocumentType.REQUISITION: None,
    DocumentType.RFQ: None,
    DocumentType.PURCHASE_QUOTATION: PartyType.VENDOR,
    DocumentType.PURCHASE_ORDER: PartyType.VENDOR,
    DocumentType.GOODS_RECEIPT: None,
    DocumentType.AP_INVOICE: PartyType.VENDOR,
    DocumentType.SALES_QUOTATION: PartyType.CUSTOMER,
    DocumentType.SALES_ORDER: PartyType.CUSTOMER,
    DocumentType.DELIVERY: PartyType.CUSTOMER,
    DocumentType.RETURN_ORDER: PartyType.CUSTOMER,
    DocumentType.AR_INVOICE: PartyType.CUSTOMER,
    DocumentType.CREDIT_NOTE: PartyType.CUSTOMER,
}

# Documents that may exist without a counterparty.
PARTY_OPTIONAL: frozenset[DocumentType] = frozenset(
    {DocumentType.REQUISITION, DocumentType.RFQ}
)
