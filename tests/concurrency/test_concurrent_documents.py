"""
Concurrency tests for numbering, quantity consumption and settlement.

Each thread works in its own session from ``session_factory`` and commits
for real.  On SQLite every transaction starts with BEGIN IMMEDIATE, so
writers serialize on the database lock; on PostgreSQL (DATABASE_URL) the
row locks taken by the services do the same job.

Verifies:
- N concurrent creations of one document type get N distinct numbers
- Competing receipts against one purchase order never exceed its quantity
- Competing payments against one invoice never exceed its total

Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

import pytest

from erp_config import EngineConfig
from erp_kernel.domain.clock import DeterministicClock
from erp_kernel.domain.documents import DocumentType, PartyType
from erp_kernel.exceptions import OverConsumptionError, OverPaymentError
from erp_kernel.services.balance_ledger import BalanceLedger
from erp_kernel.services.party_service import PartyService
from erp_services import ConversionService, DocumentService, DocumentWorkflowExecutor, PaymentService
from tests.builders import line

pytestmark = pytest.mark.slow_locks

ACTOR = uuid4()
THREADS = 8
D = Decimal


def _run_concurrently(count, fn):
    """Start ``count`` calls of ``fn(i)`` together; return results or exceptions."""
    barrier = Barrier(count, timeout=30)

    def call(i):
        barrier.wait()
        try:
            return fn(i)
        except Exception as exc:  # noqa: BLE001
            return exc

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(call, range(count)))


@pytest.fixture
def config():
    return EngineConfig.with_defaults()


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def party(session_factory):
    def _make(code, party_type):
        with session_factory() as s:
            info = PartyService(s).create_party(code, party_type, code, ACTOR)
            s.commit()
            return info
    return _make


class TestConcurrentNumbering:

    def test_unique_numbers(self, session_factory, party, clock, config):
        customer = party("CUST-C1", PartyType.CUSTOMER)

        def create(i):
            with session_factory() as s:
                return DocumentService(s, clock, config).create(
                    DocumentType.SALES_ORDER, ACTOR, party_id=customer.id, lines=[line(1, "1.00")],
                ).number

        numbers = _run_concurrently(THREADS, create)
        errors = [n for n in numbers if isinstance(n, Exception)]
        assert errors == []
        assert len(set(numbers)) == THREADS
        assert sorted(numbers) == [f"SO-2024-{i:06d}" for i in range(1, THREADS + 1)]


class TestConcurrentConsumption:

    def test_receipts_never_exceed_order(self, session_factory, party, clock, config):
        vendor = party("VEND-C1", PartyType.VENDOR)
        with session_factory() as s:
            po = DocumentService(s, clock, config).create(
                DocumentType.PURCHASE_ORDER, ACTOR, party_id=vendor.id, lines=[line(60, "5.00")],
            )
            executor = DocumentWorkflowExecutor(s, clock, config)
            executor.apply(po.id, "approve", ACTOR)
            executor.apply(po.id, "send", ACTOR)
        line_id = po.lines[0].id

        def receive(i):
            with session_factory() as s:
                return ConversionService(s, clock, config).convert(
                    po.id, DocumentType.GOODS_RECEIPT, ACTOR, quantities={line_id: D("25")},
                )

        results = _run_concurrently(THREADS, receive)
        succeeded = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, OverConsumptionError)]
        assert len(succeeded) == 2
        assert len(rejected) == THREADS - 2

        with session_factory() as s:
            order = DocumentService(s, clock, config).get(po.id)
        assert order.lines[0].received_qty == D("50")


class TestConcurrentSettlement:

    def test_payments_never_exceed_invoice(self, session_factory, party, clock, config):
        customer = party("CUST-C2", PartyType.CUSTOMER)
        with session_factory() as s:
            invoice = DocumentService(s, clock, config).create(
                DocumentType.AR_INVOICE, ACTOR, party_id=customer.id, lines=[line(1, "1000.00")],
            )

        def pay(i):
            with session_factory() as s:
                return PaymentService(s, clock, config).record_payment(invoice.id, D("300.00"), ACTOR)

        results = _run_concurrently(THREADS, pay)
        succeeded = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, OverPaymentError)]
        assert len(succeeded) == 3
        assert len(rejected) == THREADS - 3

        with session_factory() as s:
            final = DocumentService(s, clock, config).get(invoice.id)
            ledger = BalanceLedger(s, clock)
            assert final.balance_amount == D("100.00")
            assert final.status == "PartiallyPaid"
            assert ledger.get(customer.id).total_paid == D("900.00")
            assert ledger.reconcile(customer.id).is_consistent
