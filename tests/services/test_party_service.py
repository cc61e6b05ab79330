"""
Tests for PartyService.

Covers:
- Party creation and lookup
- Balance direction follows the party type
- Inactive parties cannot be used on new documents
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from erp_kernel.domain.documents import BalanceDirection, DocumentType, PartyType
from erp_kernel.exceptions import PartyNotFoundError, ValidationFailedError


class TestPartyService:

    def test_create_and_get(self, party_service, customer):
        found = party_service.get_by_id(customer.id)
        assert found == customer
        assert found.is_active

    def test_unknown_party(self, party_service):
        with pytest.raises(PartyNotFoundError):
            party_service.get_by_id(uuid4())

    def test_find_by_code(self, party_service, vendor):
        assert party_service.find_by_code("VEND-001").id == vendor.id
        assert party_service.find_by_code("VEND-404") is None

    def test_empty_code_rejected(self, party_service, test_actor_id):
        with pytest.raises(ValidationFailedError):
            party_service.create_party("  ", PartyType.CUSTOMER, "Blank", test_actor_id)

    def test_duplicate_code_rejected(self, party_service, customer, test_actor_id):
        with pytest.raises(IntegrityError):
            party_service.create_party("CUST-001", PartyType.CUSTOMER, "Again", test_actor_id)

    def test_balance_direction(self, customer, vendor):
        assert customer.balance_direction == BalanceDirection.RECEIVABLE
        assert vendor.balance_direction == BalanceDirection.PAYABLE

    def test_list_by_type(self, party_service, customer, vendor, test_actor_id):
        other = party_service.create_party("CUST-002", PartyType.CUSTOMER, "Beta", test_actor_id)
        party_service.deactivate(other.id, test_actor_id)

        assert [p.party_code for p in party_service.list_by_type(PartyType.CUSTOMER)] == ["CUST-001"]
        everyone = party_service.list_by_type(PartyType.CUSTOMER, active_only=False)
        assert [p.party_code for p in everyone] == ["CUST-001", "CUST-002"]


class TestInactiveParty:

    def test_inactive_party_cannot_trade(self, party_service, customer, make_document, test_actor_id):
        party_service.deactivate(customer.id, test_actor_id)
        with pytest.raises(ValidationFailedError, match="inactive"):
            make_document(DocumentType.SALES_ORDER, customer.id, [(1, "1.00")])
