"""Tests for search.record_search module."""

from core.modules import COMPLIANCE
from core.record_store import RecordStore, sequential_ids
from core.schemas import ComplianceRecord
from search.record_search import RecordSearchIndex, filter_records

from conftest import compliance_item

FIELDS = COMPLIANCE.searchable_fields


def build_store():
    ids = sequential_ids("cmp")
    items = [
        compliance_item("AC-1", domainTag="Access Control", requirement="Review user access"),
        compliance_item("BC-1", domainTag="Business Continuity", requirement="Test the DR plan"),
        compliance_item("AC-2", domainTag="Access Control", requirement="Revoke leaver ACCESS"),
        compliance_item("FN-1", domainTag="Finance", requirement="Reconcile bank accounts",
                        procedure="Compare ledger to statement"),
    ]
    store = RecordStore()
    store.replace_all([ComplianceRecord.model_validate({**i, "id": ids()}) for i in items])
    return store


class TestFilterRecords:
    """Tests for filter_records."""

    def test_empty_query_is_identity(self):
        store = build_store()
        assert filter_records(store.all(), "", FIELDS) == store.all()

    def test_whitespace_query_is_identity(self):
        store = build_store()
        assert filter_records(store.all(), "   \t", FIELDS) == store.all()

    def test_case_insensitive_substring(self):
        store = build_store()
        result = filter_records(store.all(), "access", FIELDS)
        assert [r.ref_id for r in result] == ["AC-1", "AC-2"]

    def test_preserves_store_order(self):
        store = build_store()
        result = filter_records(store.all(), "-1", FIELDS)
        assert [r.ref_id for r in result] == ["AC-1", "BC-1", "FN-1"]

    def test_only_configured_fields_are_searched(self):
        store = build_store()
        # "Signed review log" is the evidence text, not a searchable field
        assert filter_records(store.all(), "signed review", FIELDS) == []

    def test_matches_any_configured_field(self):
        store = build_store()
        result = filter_records(store.all(), "LEDGER", FIELDS)
        assert [r.ref_id for r in result] == ["FN-1"]

    def test_result_is_subsequence_with_matching_field(self):
        store = build_store()
        everything = store.all()
        for query in ["a", "control", "1", "zz", "Test"]:
            result = filter_records(everything, query, FIELDS)
            positions = [everything.index(r) for r in result]
            assert positions == sorted(positions)
            for r in result:
                assert any(query.casefold() in str(getattr(r, f)).casefold() for f in FIELDS)

    def test_no_match(self):
        assert filter_records(build_store().all(), "nothing like this", FIELDS) == []


class TestRecordSearchIndex:
    """Tests for RecordSearchIndex over a live store."""

    def test_filter_over_store(self):
        index = RecordSearchIndex(FIELDS)
        store = build_store()
        assert [r.ref_id for r in index.filter(store, "finance")] == ["FN-1"]

    def test_recomputes_after_patch(self):
        index = RecordSearchIndex(FIELDS)
        store = build_store()
        target = store.all()[1]
        store.patch(target.id, domain_tag="Finance")
        assert [r.ref_id for r in index.filter(store, "finance")] == ["BC-1", "FN-1"]
