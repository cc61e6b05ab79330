"""
Tests for engine-level transactional scope.

These commit for real, so they run on ``session_factory`` (which deletes
committed rows at teardown) and never on the per-test ``session``.
"""

from uuid import uuid4

import pytest

from erp_kernel.db.engine import session_scope
from erp_kernel.domain.documents import PartyType
from erp_kernel.services.party_service import PartyService

ACTOR = uuid4()


class TestSessionScope:

    def test_commits_on_success(self, session_factory):
        with session_scope() as s:
            PartyService(s).create_party("CUST-SCOPE", PartyType.CUSTOMER, "Scoped", ACTOR)

        with session_factory() as s:
            assert PartyService(s).find_by_code("CUST-SCOPE") is not None

    def test_rolls_back_on_error(self, session_factory, captured_logs):
        with pytest.raises(RuntimeError):
            with session_scope() as s:
                PartyService(s).create_party("CUST-GONE", PartyType.CUSTOMER, "Gone", ACTOR)
                raise RuntimeError("abort")

        with session_factory() as s:
            assert PartyService(s).find_by_code("CUST-GONE") is None
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())
