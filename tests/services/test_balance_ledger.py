"""
Tests for BalanceLedger.

Verifies:
- outstanding = max(0, invoiced - paid - credit_noted) after every event
- Per-party event log is sequenced without gaps
- rebuild() from the event log equals the stored projection
- reconcile() agrees with documents after real invoice/payment flows
- Credit notes only apply to receivable balances
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from erp_kernel.domain.documents import BalanceDirection, BalanceEventType, DocumentType
from erp_kernel.exceptions import PartyNotFoundError, ValidationFailedError
from erp_kernel.models.party import BalanceEvent
from erp_kernel.services.balance_ledger import BalanceSnapshot, apply_event, fold_events, outstanding

D = Decimal


class TestEvents:

    def test_posting_and_payment(self, balance_ledger, customer, test_actor_id):
        balance_ledger.invoice_posted(customer.id, D("1000.00"), test_actor_id)
        snapshot = balance_ledger.payment_recorded(customer.id, D("400.00"), test_actor_id)
        assert snapshot.total_invoiced == D("1000.00")
        assert snapshot.total_paid == D("400.00")
        assert snapshot.outstanding_balance == D("600.00")

    def test_void_reduces_invoiced(self, balance_ledger, customer, test_actor_id):
        balance_ledger.invoice_posted(customer.id, D("250.00"), test_actor_id)
        snapshot = balance_ledger.invoice_voided(customer.id, D("250.00"), test_actor_id)
        assert snapshot.total_invoiced == D("0.00")
        assert snapshot.outstanding_balance == D("0.00")

    def test_outstanding_never_negative(self, balance_ledger, customer, test_actor_id):
        balance_ledger.invoice_posted(customer.id, D("100.00"), test_actor_id)
        balance_ledger.payment_recorded(customer.id, D("80.00"), test_actor_id)
        snapshot = balance_ledger.credit_note_applied(customer.id, D("50.00"), test_actor_id)
        assert snapshot.outstanding_balance == D("0.00")

    def test_unapplied_does_not_touch_outstanding(self, balance_ledger, customer, test_actor_id):
        balance_ledger.invoice_posted(customer.id, D("100.00"), test_actor_id)
        snapshot = balance_ledger.unapplied_received(customer.id, D("30.00"), test_actor_id)
        assert snapshot.unapplied_amount == D("30.00")
        assert snapshot.outstanding_balance == D("100.00")

    def test_credit_note_against_vendor_rejected(self, balance_ledger, vendor, test_actor_id):
        balance_ledger.invoice_posted(vendor.id, D("10.00"), test_actor_id)
        with pytest.raises(ValidationFailedError, match="receivable"):
            balance_ledger.credit_note_applied(vendor.id, D("5.00"), test_actor_id)

    @pytest.mark.parametrize("amount", [D("0"), D("-5.00")])
    def test_non_positive_amount_rejected(self, balance_ledger, customer, test_actor_id, amount):
        with pytest.raises(ValidationFailedError):
            balance_ledger.invoice_posted(customer.id, amount, test_actor_id)

    def test_unknown_party(self, balance_ledger, test_actor_id):
        with pytest.raises(PartyNotFoundError):
            balance_ledger.invoice_posted(uuid4(), D("1.00"), test_actor_id)

    def test_direction_follows_party_type(self, balance_ledger, customer, vendor):
        assert balance_ledger.get(customer.id).direction == BalanceDirection.RECEIVABLE
        assert balance_ledger.get(vendor.id).direction == BalanceDirection.PAYABLE

    def test_event_log_is_gap_free(self, session, balance_ledger, customer, test_actor_id):
        balance_ledger.invoice_posted(customer.id, D("10.00"), test_actor_id)
        balance_ledger.payment_recorded(customer.id, D("3.00"), test_actor_id)
        balance_ledger.payment_recorded(customer.id, D("2.00"), test_actor_id)
        seqs = [
            e.seq for e in session.query(BalanceEvent)
            .filter_by(party_id=customer.id)
            .order_by(BalanceEvent.seq)
        ]
        assert seqs == [1, 2, 3]

    def test_balance_event_logged(self, balance_ledger, customer, test_actor_id, captured_logs):
        balance_ledger.invoice_posted(customer.id, D("10.00"), test_actor_id)
        record = next(r for r in captured_logs() if r["message"] == "balance_event_applied")
        assert record["event_type"] == "invoice_posted"
        assert record["outstanding_balance"] == "10.00"


class TestRebuildAndReconcile:

    def test_rebuild_matches_stored(self, balance_ledger, customer, test_actor_id):
        balance_ledger.invoice_posted(customer.id, D("500.00"), test_actor_id)
        balance_ledger.payment_recorded(customer.id, D("120.00"), test_actor_id)
        balance_ledger.credit_note_applied(customer.id, D("30.00"), test_actor_id)
        assert balance_ledger.rebuild(customer.id).same_totals(balance_ledger.get(customer.id))

    def test_party_without_events_is_zero(self, balance_ledger, customer):
        snapshot = balance_ledger.rebuild(customer.id)
        assert snapshot.outstanding_balance == D("0.00")
        assert balance_ledger.reconcile(customer.id).is_consistent

    def test_reconcile_after_invoice_and_payments(
        self, approved_sales_order, conversion_service, drive, payment_service,
        balance_ledger, customer, test_actor_id,
    ):
        dlv = conversion_service.convert(approved_sales_order.id, DocumentType.DELIVERY, test_actor_id)
        drive(dlv.id, "pick", "ship", "deliver")
        invoice = conversion_service.convert(dlv.id, DocumentType.AR_INVOICE, test_actor_id)
        payment_service.record_payment(invoice.id, D("300.00"), test_actor_id)

        report = balance_ledger.reconcile(customer.id)
        assert report.is_consistent
        assert report.stored.total_invoiced == D("1100.00")
        assert report.stored.outstanding_balance == D("800.00")

    def test_reconcile_detects_tampered_projection(
        self, session, balance_ledger, customer, test_actor_id, captured_logs,
    ):
        balance_ledger.invoice_posted(customer.id, D("75.00"), test_actor_id)
        row = balance_ledger._lock_balance(customer.id)
        row.total_paid = D("10.00")
        session.flush()

        assert not balance_ledger.reconcile(customer.id).is_consistent
        assert any(r["message"] == "reconciliation_mismatch" for r in captured_logs())

    def test_rebuild_persist_repairs_projection(self, session, balance_ledger, customer, test_actor_id):
        balance_ledger.invoice_posted(customer.id, D("75.00"), test_actor_id)
        row = balance_ledger._lock_balance(customer.id)
        row.total_invoiced = D("1.00")
        session.flush()

        balance_ledger.rebuild(customer.id, persist=True)
        assert balance_ledger.get(customer.id).total_invoiced == D("75.00")


amounts = st.decimals(min_value=D("0.01"), max_value=D("5000"), places=2, allow_nan=False, allow_infinity=False)
events = st.lists(
    st.tuples(st.sampled_from(list(BalanceEventType)), amounts),
    max_size=30,
)


class TestFoldProperties:

    @settings(max_examples=200, deadline=None)
    @given(stream=events)
    def test_outstanding_is_clamped_difference(self, stream):
        party_id = uuid4()
        snapshot = fold_events(party_id, BalanceDirection.RECEIVABLE, stream)
        assert snapshot.outstanding_balance >= 0
        assert snapshot.outstanding_balance == outstanding(
            snapshot.total_invoiced, snapshot.total_paid, snapshot.total_credit_noted,
        )

    @settings(max_examples=100, deadline=None)
    @given(stream=events)
    def test_fold_equals_stepwise(self, stream):
        party_id = uuid4()
        stepwise = BalanceSnapshot(party_id=party_id, direction=BalanceDirection.PAYABLE)
        for event_type, amount in stream:
            stepwise = apply_event(stepwise, event_type, amount)
        assert fold_events(party_id, BalanceDirection.PAYABLE, stream) == stepwise
