"""Tests for ClientSelector read queries."""

from decimal import Decimal

import pytest

from loanbook_ingestion.services.client_merge import ClientUpsertEngine
from loanbook_kernel.models.client import ConsolidatedClient
from loanbook_kernel.selectors.client_selector import MAX_SEARCH_LIMIT, ClientSelector


@pytest.fixture
def seeded(session, deterministic_clock, make_record):
    engine = ClientUpsertEngine(session, deterministic_clock)
    engine.merge(make_record(identity_key="phone:0978559684", full_name="Jane Banda", balance="300"))
    deterministic_clock.advance(60)
    engine.merge(make_record(identity_key="email:peter@example.com", full_name="Peter Phiri",
                             phone=None, email="peter@example.com", balance="0",
                             loan_status="Fully Paid", status_bucket="cleared"))
    deterministic_clock.advance(60)
    engine.merge(make_record(identity_key="phone:0966123456", full_name="Mary Mwale",
                             phone="0966123456", balance="75.25", status_bucket="extended",
                             loan_status="Restructured", is_extended=True))
    return ClientSelector(session)


class TestLookups:

    def test_get_by_key(self, seeded):
        jane = seeded.get_by_key("phone:0978559684")
        assert jane.full_name == "Jane Banda"
        assert jane.balance == Decimal("300")
        assert seeded.get_by_key("phone:missing") is None

    @pytest.mark.parametrize("phone", ["0978559684", "978559684", "+260 97 855 9684"])
    def test_find_by_phone_any_spelling(self, seeded, phone):
        assert seeded.find_by_phone(phone).identity_key == "phone:0978559684"

    def test_find_by_phone_legacy_key(self, session, seeded):
        session.add(ConsolidatedClient(identity_key="phone:977000111", full_name="Legacy"))
        session.commit()
        assert seeded.find_by_phone("0977000111").full_name == "Legacy"

    def test_find_by_phone_prefers_canonical_key(self, session, seeded):
        session.add(ConsolidatedClient(identity_key="phone:978559684", full_name="Stale"))
        session.commit()
        assert seeded.find_by_phone("978559684").full_name == "Jane Banda"

    def test_find_by_phone_no_digits(self, seeded):
        assert seeded.find_by_phone("n/a") is None


class TestSearch:

    def test_empty_query_newest_first(self, seeded):
        names = [c.full_name for c in seeded.search()]
        assert names == ["Mary Mwale", "Peter Phiri", "Jane Banda"]

    def test_case_insensitive_substring(self, seeded):
        assert [c.full_name for c in seeded.search("PHIRI")] == ["Peter Phiri"]
        assert [c.full_name for c in seeded.search("0966")] == ["Mary Mwale"]
        assert [c.full_name for c in seeded.search("example.com")] == ["Peter Phiri"]

    def test_limit(self, seeded):
        assert len(seeded.search(limit=2)) == 2
        assert len(seeded.search(limit=0)) == 1

    def test_limit_capped(self, session):
        for i in range(3):
            session.add(ConsolidatedClient(identity_key=f"phone:{i}"))
        session.commit()
        assert len(ClientSelector(session).search(limit=MAX_SEARCH_LIMIT * 10)) == 3


class TestStats:

    def test_counts_and_total(self, seeded):
        stats = seeded.stats()
        assert stats.total_clients == 3
        assert stats.by_bucket == {"balance": 1, "cleared": 1, "extended": 1}
        assert stats.total_balance == Decimal("375.25")

    def test_empty(self, session):
        stats = ClientSelector(session).stats()
        assert stats.total_clients == 0
        assert stats.total_balance == Decimal("0")
