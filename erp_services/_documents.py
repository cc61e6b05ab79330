"""
Document assembly helpers shared by the orchestration services.

Builds new DocumentModel rows in their workflow's initial state, writes
Derivation Engine output back onto documents and lines, and validates the
counterparty.  Everything here flushes at most; the calling service owns
the commit.
"""

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_engines.derivation import Discount, LineInput, derive_document
from erp_kernel.db.types import round_money
from erp_kernel.domain.documents import PARTY_OPTIONAL, REQUIRED_PARTY_TYPE, DocumentType, PartyType
from erp_kernel.exceptions import DocumentNotFoundError, PartyNotFoundError, ValidationFailedError
from erp_kernel.models.document import DocumentModel
from erp_kernel.models.party import Party
from erp_kernel.services.balance_ledger import BalanceLedger
from erp_kernel.services.document_number_service import DocumentNumberService
from erp_modules import get_workflow


def lock_document(session: Session, document_id: UUID, include_deleted: bool = False) -> DocumentModel:
    """SELECT ... FOR UPDATE on the document row."""
    document = session.execute(
        select(DocumentModel)
        .where(DocumentModel.id == document_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if document is None or (document.is_deleted and not include_deleted):
        raise DocumentNotFoundError(str(document_id))
    return document


def check_party(session: Session, doc_type: DocumentType, party_id: UUID | None) -> Party | None:
    """
    The counterparty must exist, be active and sit on the document's side.

    Raises:
        ValidationFailedError: missing, inactive or wrong-type party.
        PartyNotFoundError: unknown party id.
    """
    required = REQUIRED_PARTY_TYPE[doc_type]
    if party_id is None:
        if required is None or doc_type in PARTY_OPTIONAL:
            return None
        raise ValidationFailedError("party_id", f"{doc_type.value} requires a {required.value}")
    party = session.get(Party, party_id)
    if party is None:
        raise PartyNotFoundError(str(party_id))
    if not party.is_active:
        raise ValidationFailedError("party_id", f"party {party.party_code} is inactive")
    if required is not None and PartyType(party.party_type) != required:
        raise ValidationFailedError(
            "party_id",
            f"{doc_type.value} requires a {required.value}, {party.party_code} is a {party.party_type}",
        )
    return party


def new_document(
    numbers: DocumentNumberService,
    doc_type: DocumentType,
    actor_id: UUID,
    party_id: UUID | None = None,
    parent_id: UUID | None = None,
    header_discount_percent: Decimal | None = None,
    header_discount_value: Decimal | None = None,
    notes: str | None = None,
    warehouse_code: str | None = None,
) -> DocumentModel:
    """An unsaved document in its workflow's initial state, already numbered."""
    workflow = get_workflow(doc_type)
    Discount.from_fields(header_discount_percent, header_discount_value, field="header_discount")
    return DocumentModel(
        id=uuid4(),
        doc_type=doc_type.value,
        number=numbers.next(doc_type),
        status=workflow.initial_state,
        party_id=party_id,
        parent_id=parent_id,
        approval_status=workflow.initial_approval_status,
        goods_receipt_status=workflow.initial_goods_receipt_status,
        header_discount_percent=header_discount_percent,
        header_discount_value=header_discount_value,
        notes=notes,
        warehouse_code=warehouse_code,
        created_by_id=actor_id,
    )


def rederive(document: DocumentModel) -> None:
    """Recompute line and document totals from the stored inputs."""
    lines = list(document.lines)
    totals = derive_document(
        [
            LineInput(
                quantity=line.quantity,
                unit_price=line.unit_price,
                tax_rate=line.tax_rate,
                discount=Discount.from_fields(
                    line.discount_percent, line.discount_value, field=f"lines[{line.line_no}].discount",
                ),
                key=line.line_no,
            )
            for line in lines
        ],
        header_discount=Discount.from_fields(
            document.header_discount_percent, document.header_discount_value, field="header_discount",
        ),
    )
    for line, derived in zip(lines, totals.lines):
        line.discount_amount = derived.discount_amount
        line.net_amount = derived.net_amount
        line.header_discount_share = derived.header_discount_share
        line.tax_amount = derived.tax_amount
        line.line_total = derived.line_total
    document.subtotal = totals.subtotal
    document.header_discount = totals.header_discount
    document.tax_amount = totals.tax_amount
    document.total_amount = totals.total_amount


def post_invoice(balances: BalanceLedger, invoice: DocumentModel, actor_id: UUID) -> None:
    """Open the invoice balance and post it to the party ledger."""
    invoice.balance_amount = round_money(invoice.total_amount)
    if invoice.total_amount > 0:
        balances.invoice_posted(invoice.party_id, invoice.total_amount, actor_id, invoice.id)
