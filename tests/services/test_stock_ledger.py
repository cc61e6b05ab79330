"""
Tests for StockLedger and the stock movements driven by transitions.

Verifies:
- receive/issue keep on_hand >= 0 and refuse non-positive quantities
- Approved goods receipts add stock in the document's warehouse
- Shipping a delivery issues stock; a short warehouse refuses the ship
- Cancelling a shipped delivery puts the goods back
- Free-text lines never move stock
"""

from decimal import Decimal

import pytest

from erp_config import EngineConfig
from erp_kernel.domain.documents import DocumentType
from erp_kernel.domain.dtos import LineSpec
from erp_kernel.exceptions import InsufficientStockError, ValidationFailedError
from erp_kernel.models.document import DocumentLineModel, DocumentModel
from erp_kernel.services.stock_ledger import product_quantities
from erp_services import ConversionService, DocumentService, DocumentWorkflowExecutor

D = Decimal


def widgets(quantity):
    return LineSpec(quantity=D(quantity), product_id="WIDGET")


@pytest.fixture
def receive_widgets(make_document, drive, conversion_service, vendor, test_actor_id):
    """Buy and receive ``quantity`` widgets; returns the approved receipt."""
    def _receive(quantity, **kwargs):
        po = make_document(DocumentType.PURCHASE_ORDER, vendor.id, [widgets(quantity)], **kwargs)
        drive(po.id, "approve", "send")
        gr = conversion_service.convert(po.id, DocumentType.GOODS_RECEIPT, test_actor_id)
        return drive(gr.id, "submit", "approve")
    return _receive


@pytest.fixture
def picked_delivery(make_document, drive, conversion_service, customer, test_actor_id):
    """Sell ``lines`` and pick the delivery for all of them."""
    def _picked(lines):
        so = make_document(DocumentType.SALES_ORDER, customer.id, lines)
        drive(so.id, "submit", "approve")
        dlv = conversion_service.convert(so.id, DocumentType.DELIVERY, test_actor_id)
        return so, drive(dlv.id, "pick")
    return _picked


class TestLedger:

    def test_receive_then_issue(self, stock_ledger, test_actor_id):
        assert stock_ledger.receive("MAIN", "WIDGET", D("8"), test_actor_id) == D("8")
        assert stock_ledger.issue("MAIN", "WIDGET", D("3"), test_actor_id) == D("5")
        assert stock_ledger.on_hand("MAIN", "WIDGET") == D("5")

    def test_issue_beyond_on_hand_refused(self, stock_ledger, test_actor_id, captured_logs):
        stock_ledger.receive("MAIN", "WIDGET", D("2"), test_actor_id)
        with pytest.raises(InsufficientStockError) as exc_info:
            stock_ledger.issue("MAIN", "WIDGET", D("3"), test_actor_id)
        assert exc_info.value.on_hand == D("2")
        assert exc_info.value.code == "INSUFFICIENT_STOCK"
        assert stock_ledger.on_hand("MAIN", "WIDGET") == D("2")
        assert any(r["message"] == "stock_issue_refused" for r in captured_logs())

    def test_unknown_product_has_nothing_on_hand(self, stock_ledger):
        assert stock_ledger.on_hand("MAIN", "NOPE") == D("0")

    def test_warehouses_are_separate(self, stock_ledger, test_actor_id):
        stock_ledger.receive("EAST", "BOLT", D("100"), test_actor_id)
        assert stock_ledger.on_hand("MAIN", "BOLT") == D("0")
        with pytest.raises(InsufficientStockError):
            stock_ledger.issue("MAIN", "BOLT", D("1"), test_actor_id)

    @pytest.mark.parametrize("quantity", [D("0"), D("-1")])
    def test_non_positive_quantity_rejected(self, stock_ledger, test_actor_id, quantity):
        with pytest.raises(ValidationFailedError):
            stock_ledger.receive("MAIN", "WIDGET", quantity, test_actor_id)

    def test_product_quantities_sums_per_product(self):
        document = DocumentModel(lines=[
            DocumentLineModel(line_no=1, product_id="WIDGET", quantity=D("2")),
            DocumentLineModel(line_no=2, description="Installation", quantity=D("1")),
            DocumentLineModel(line_no=3, product_id="WIDGET", quantity=D("3")),
            DocumentLineModel(line_no=4, product_id="BOLT", quantity=D("10")),
        ])
        assert product_quantities(document) == {"BOLT": D("10"), "WIDGET": D("5")}


class TestReceipts:

    def test_approved_receipt_adds_stock(self, receive_widgets, stock_ledger):
        receive_widgets("20")
        assert stock_ledger.on_hand("MAIN", "WIDGET") == D("20")

    def test_draft_receipt_moves_nothing(
        self, make_document, drive, conversion_service, vendor, stock_ledger, test_actor_id,
    ):
        po = make_document(DocumentType.PURCHASE_ORDER, vendor.id, [widgets("5")])
        drive(po.id, "approve", "send")
        conversion_service.convert(po.id, DocumentType.GOODS_RECEIPT, test_actor_id)
        assert stock_ledger.on_hand("MAIN", "WIDGET") == D("0")

    def test_receipt_inherits_order_warehouse(self, receive_widgets, stock_ledger):
        gr = receive_widgets("7", warehouse_code="EAST")
        assert gr.warehouse_code == "EAST"
        assert stock_ledger.on_hand("EAST", "WIDGET") == D("7")
        assert stock_ledger.on_hand("MAIN", "WIDGET") == D("0")


class TestShipments:

    def test_ship_issues_stock(self, receive_widgets, picked_delivery, drive, stock_ledger):
        receive_widgets("20")
        _, dlv = picked_delivery([widgets("5")])
        assert drive(dlv.id, "ship").status == "Shipped"
        assert stock_ledger.on_hand("MAIN", "WIDGET") == D("15")

    def test_short_stock_refuses_ship(self, receive_widgets, picked_delivery, drive, document_service, stock_ledger):
        receive_widgets("2")
        _, dlv = picked_delivery([widgets("5")])
        with pytest.raises(InsufficientStockError):
            drive(dlv.id, "ship")
        assert document_service.get(dlv.id).status == "Picked"
        assert stock_ledger.on_hand("MAIN", "WIDGET") == D("2")

    def test_cancel_after_ship_restores_stock(
        self, receive_widgets, picked_delivery, drive, document_service, stock_ledger,
    ):
        receive_widgets("20")
        so, dlv = picked_delivery([widgets("5")])
        drive(dlv.id, "ship", "cancel")
        assert stock_ledger.on_hand("MAIN", "WIDGET") == D("20")
        assert document_service.get(so.id).lines[0].delivered_qty == D("0")

    def test_delivered_keeps_stock_issued(self, receive_widgets, picked_delivery, drive, stock_ledger):
        receive_widgets("20")
        _, dlv = picked_delivery([widgets("5")])
        drive(dlv.id, "ship", "deliver")
        assert stock_ledger.on_hand("MAIN", "WIDGET") == D("15")

    def test_free_text_lines_ship_without_stock(self, picked_delivery, drive, stock_ledger):
        _, dlv = picked_delivery([LineSpec(quantity=D("1"), description="Installation", unit_price=D("50.00"))])
        assert drive(dlv.id, "ship").status == "Shipped"
        assert stock_ledger.on_hand("MAIN", "Installation") == D("0")

    def test_return_receipt_puts_goods_back(
        self, receive_widgets, picked_delivery, drive, conversion_service, stock_ledger, test_actor_id,
    ):
        receive_widgets("20")
        _, dlv = picked_delivery([widgets("5")])
        drive(dlv.id, "ship", "deliver")

        ro = conversion_service.convert(dlv.id, DocumentType.RETURN_ORDER, test_actor_id)
        drive(ro.id, "approve")
        gr = conversion_service.convert(ro.id, DocumentType.GOODS_RECEIPT, test_actor_id)
        drive(gr.id, "submit", "approve")
        assert stock_ledger.on_hand("MAIN", "WIDGET") == D("20")

    def test_configured_default_warehouse(
        self, session, deterministic_clock, activity_sink, catalog, vendor, stock_ledger, test_actor_id,
    ):
        config = EngineConfig(default_warehouse="WEST")
        executor = DocumentWorkflowExecutor(session, deterministic_clock, config, activity_sink)
        documents = DocumentService(session, deterministic_clock, config, activity_sink, catalog, executor=executor)
        conversions = ConversionService(session, deterministic_clock, config, activity_sink, executor=executor)

        po = documents.create(DocumentType.PURCHASE_ORDER, test_actor_id, party_id=vendor.id, lines=[widgets("4")])
        executor.apply(po.id, "approve", test_actor_id)
        executor.apply(po.id, "send", test_actor_id)
        gr = conversions.convert(po.id, DocumentType.GOODS_RECEIPT, test_actor_id)
        executor.apply(gr.id, "submit", test_actor_id)
        executor.apply(gr.id, "approve", test_actor_id)

        assert stock_ledger.on_hand("WEST", "WIDGET") == D("4")
        assert stock_ledger.on_hand("MAIN", "WIDGET") == D("0")
