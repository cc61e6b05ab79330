"""
Tests for DocumentService (manual create, line replacement, delete).

Verifies:
- Catalog defaults fill omitted price, tax rate, SKU and unit
- Line input validation names the offending field
- Counterparty side checks
- Numbering per type and year
- Invoices post to the party balance at creation
- update_lines only in editable states and never on converted lines
- Soft delete releases upstream quantity and keeps the number reserved
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from erp_kernel.domain.documents import DocumentType
from erp_kernel.domain.dtos import LineSpec
from erp_kernel.exceptions import (
    DocumentNotFoundError,
    InvalidTransitionError,
    PartyNotFoundError,
    StaleStateError,
    ValidationFailedError,
)
from erp_kernel.selectors import DocumentSelector
from tests.builders import line

D = Decimal


class TestCreate:

    def test_catalog_fills_line(self, make_document, customer):
        so = make_document(DocumentType.SALES_ORDER, customer.id, [LineSpec(quantity=D("3"), product_id="WIDGET")])
        widget = so.lines[0]
        assert widget.unit_price == D("10.00")
        assert widget.tax_rate == D("10")
        assert widget.sku == "WGT-1"
        assert widget.uom == "EA"
        assert widget.description == "Widget"
        assert so.total_amount == D("33.00")

    def test_explicit_values_override_catalog(self, make_document, customer):
        so = make_document(
            DocumentType.SALES_ORDER, customer.id,
            [LineSpec(quantity=D("1"), product_id="WIDGET", unit_price=D("8.00"), tax_rate=D("0"))],
        )
        assert so.total_amount == D("8.00")

    def test_catalog_without_tax_defaults_to_zero(self, make_document, customer):
        so = make_document(DocumentType.SALES_ORDER, customer.id, [LineSpec(quantity=D("100"), product_id="BOLT")])
        assert so.tax_amount == D("0.00")
        assert so.total_amount == D("25.00")

    def test_missing_price_rejected(self, make_document, customer):
        with pytest.raises(ValidationFailedError) as exc_info:
            make_document(DocumentType.SALES_ORDER, customer.id, [LineSpec(quantity=D("1"), description="misc")])
        assert exc_info.value.field == "lines[1].unit_price"

    def test_unknown_product_without_price_rejected(self, make_document, customer):
        with pytest.raises(ValidationFailedError):
            make_document(DocumentType.SALES_ORDER, customer.id, [LineSpec(quantity=D("1"), product_id="NOPE")])

    def test_line_needs_product_or_description(self, make_document, customer):
        with pytest.raises(ValidationFailedError) as exc_info:
            make_document(DocumentType.SALES_ORDER, customer.id, [LineSpec(quantity=D("1"), unit_price=D("1"))])
        assert exc_info.value.field == "lines[1]"

    def test_float_quantity_rejected(self, make_document, customer):
        with pytest.raises(ValidationFailedError, match="float"):
            make_document(
                DocumentType.SALES_ORDER, customer.id,
                [LineSpec(quantity=1.5, description="x", unit_price=D("1.00"))],
            )

    def test_non_positive_quantity_rejected(self, make_document, customer):
        with pytest.raises(ValidationFailedError):
            make_document(DocumentType.SALES_ORDER, customer.id, [(0, "1.00")])

    def test_both_discounts_rejected(self, make_document, customer):
        with pytest.raises(ValidationFailedError, match="not both"):
            make_document(
                DocumentType.SALES_ORDER, customer.id,
                [line(1, "10.00", discount_percent=D("5"), discount_value=D("1.00"))],
            )

    def test_rejected_input_leaves_no_document(self, session, make_document, customer):
        with pytest.raises(ValidationFailedError):
            make_document(DocumentType.SALES_ORDER, customer.id, [(1, "1.00"), (1, "-1.00")])
        assert DocumentSelector(session).list_for_party(customer.id) == []

    def test_party_side_checked(self, make_document, vendor):
        with pytest.raises(ValidationFailedError, match="customer"):
            make_document(DocumentType.SALES_ORDER, vendor.id, [(1, "1.00")])

    def test_party_required(self, make_document):
        with pytest.raises(ValidationFailedError):
            make_document(DocumentType.PURCHASE_ORDER, None, [(1, "1.00")])

    def test_unknown_party(self, make_document):
        with pytest.raises(PartyNotFoundError):
            make_document(DocumentType.PURCHASE_ORDER, uuid4(), [(1, "1.00")])

    def test_requisition_without_party(self, make_document):
        req = make_document(DocumentType.REQUISITION, None, [(2, "3.00")])
        assert req.party_id is None
        assert req.status == "Draft"

    def test_credit_note_only_by_conversion(self, make_document, customer):
        with pytest.raises(ValidationFailedError, match="from an invoice"):
            make_document(DocumentType.CREDIT_NOTE, customer.id, [(1, "1.00")])

    def test_header_discount_applied(self, make_document, customer):
        so = make_document(
            DocumentType.SALES_ORDER, customer.id, [(1, "100.00", "10"), (1, "200.00")],
            header_discount={"percent": D("10")},
        )
        assert so.header_discount == D("30.00")
        assert so.total_amount == D("279.00")

    def test_activity_published_on_commit(self, make_document, customer, activity_sink):
        so = make_document(DocumentType.SALES_ORDER, customer.id, [(1, "1.00")])
        assert activity_sink.events[-1].action == "create"
        assert activity_sink.events[-1].document_id == so.id


class TestNumbering:

    def test_sequential_per_type(self, make_document, customer, vendor):
        first = make_document(DocumentType.SALES_ORDER, customer.id, [(1, "1.00")])
        second = make_document(DocumentType.SALES_ORDER, customer.id, [(1, "1.00")])
        po = make_document(DocumentType.PURCHASE_ORDER, vendor.id, [(1, "1.00")])
        assert first.number == "SO-2024-000001"
        assert second.number == "SO-2024-000002"
        assert po.number == "PO-2024-000001"

    def test_lookup_by_number(self, session, make_document, customer):
        so = make_document(DocumentType.SALES_ORDER, customer.id, [(1, "1.00")])
        found = DocumentSelector(session).get_by_number(DocumentType.SALES_ORDER, so.number)
        assert found.id == so.id

    def test_deleted_number_not_reused(self, make_document, document_service, customer, test_actor_id):
        first = make_document(DocumentType.SALES_ORDER, customer.id, [(1, "1.00")])
        document_service.delete(first.id, test_actor_id)
        second = make_document(DocumentType.SALES_ORDER, customer.id, [(1, "1.00")])
        assert second.number == "SO-2024-000002"


class TestInvoiceCreation:

    def test_invoice_posted_at_creation(self, make_document, customer, balance_ledger):
        invoice = make_document(DocumentType.AR_INVOICE, customer.id, [(2, "50.00", "10")])
        assert invoice.status == "Unpaid"
        assert invoice.balance_amount == D("110.00")
        assert balance_ledger.get(customer.id).total_invoiced == D("110.00")

    def test_invoice_requires_lines(self, make_document, customer):
        with pytest.raises(ValidationFailedError, match="at least one line"):
            make_document(DocumentType.AR_INVOICE, customer.id, [])


class TestUpdateLines:

    def test_replace_lines_rederives(self, make_document, document_service, test_actor_id):
        req = make_document(DocumentType.REQUISITION, None, [(1, "10.00"), (2, "5.00")])
        updated = document_service.update_lines(req.id, [line(4, "2.50")], test_actor_id)
        assert len(updated.lines) == 1
        assert updated.lines[0].line_no == 1
        assert updated.total_amount == D("10.00")
        assert updated.version > req.version

    def test_not_editable_after_submit(self, make_document, drive, document_service, test_actor_id):
        req = make_document(DocumentType.REQUISITION, None, [(1, "10.00")])
        drive(req.id, "submit")
        with pytest.raises(InvalidTransitionError) as exc_info:
            document_service.update_lines(req.id, [line(1, "1.00")], test_actor_id)
        assert exc_info.value.action == "update_lines"

    def test_invoice_never_editable(self, make_document, customer, document_service, test_actor_id):
        invoice = make_document(DocumentType.AR_INVOICE, customer.id, [(1, "10.00")])
        with pytest.raises(InvalidTransitionError):
            document_service.update_lines(invoice.id, [line(1, "1.00")], test_actor_id)

    def test_converted_lines_cannot_be_replaced(
        self, sent_purchase_order, conversion_service, document_service, test_actor_id,
    ):
        gr = conversion_service.convert(sent_purchase_order.id, DocumentType.GOODS_RECEIPT, test_actor_id)
        with pytest.raises(ValidationFailedError, match="converted"):
            document_service.update_lines(gr.id, [line(1, "1.00")], test_actor_id)

    def test_stale_version(self, make_document, document_service, test_actor_id):
        req = make_document(DocumentType.REQUISITION, None, [(1, "10.00")])
        document_service.update_lines(req.id, [line(2, "10.00")], test_actor_id, expected_version=req.version)
        with pytest.raises(StaleStateError):
            document_service.update_lines(req.id, [line(3, "10.00")], test_actor_id, expected_version=req.version)


class TestDelete:

    def test_soft_delete(self, session, make_document, document_service, test_actor_id):
        req = make_document(DocumentType.REQUISITION, None, [(1, "10.00")])
        deleted = document_service.delete(req.id, test_actor_id)
        assert deleted.deleted_at is not None

        with pytest.raises(DocumentNotFoundError):
            document_service.get(req.id)
        assert DocumentSelector(session).get(req.id, include_deleted=True).number == req.number

    def test_delete_only_in_initial_state(self, make_document, drive, document_service, test_actor_id):
        req = make_document(DocumentType.REQUISITION, None, [(1, "10.00")])
        drive(req.id, "submit")
        with pytest.raises(InvalidTransitionError, match="only Draft"):
            document_service.delete(req.id, test_actor_id)

    def test_invoice_cannot_be_deleted(self, make_document, customer, document_service, test_actor_id):
        invoice = make_document(DocumentType.AR_INVOICE, customer.id, [(1, "10.00")])
        with pytest.raises(InvalidTransitionError, match="cancelled, not deleted"):
            document_service.delete(invoice.id, test_actor_id)

    def test_delete_releases_upstream(
        self, sent_purchase_order, conversion_service, document_service, test_actor_id, activity_sink,
    ):
        gr = conversion_service.convert(sent_purchase_order.id, DocumentType.GOODS_RECEIPT, test_actor_id)
        assert document_service.get(sent_purchase_order.id).lines[0].received_qty == D("60")

        document_service.delete(gr.id, test_actor_id)
        assert document_service.get(sent_purchase_order.id).lines[0].received_qty == D("0")
        assert activity_sink.actions()[-1] == "delete"

        again = conversion_service.convert(sent_purchase_order.id, DocumentType.GOODS_RECEIPT, test_actor_id)
        assert again.lines[0].quantity == D("60")

    def test_delete_logged(self, make_document, document_service, test_actor_id, captured_logs):
        req = make_document(DocumentType.REQUISITION, None, [(1, "10.00")])
        document_service.delete(req.id, test_actor_id)
        record = next(r for r in captured_logs() if r["message"] == "document_deleted")
        assert record["number"] == req.number
        assert record["action"] == "delete"
