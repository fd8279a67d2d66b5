"""
Tests for source compliance gates.
"""

import pytest

from scraper.services.gates import (
    ADAPTER_DISABLED,
    ADAPTER_PAUSED,
    ROBOTS_BLOCKED,
    SCRAPE_NOT_APPROVED,
    SOURCE_DISABLED,
    TOS_NOT_SATISFIED,
    SourceGateError,
    assert_source_gates,
    check_source_gates,
)


@pytest.mark.django_db
class TestSourceGates:
    def test_all_gates_pass(self, approved_source, adapter_status):
        assert check_source_gates(approved_source) == []
        assert_source_gates(approved_source)

    def test_violations_in_gate_order(self, approved_source, adapter_status):
        approved_source.enabled = False
        approved_source.scrape_enabled = False
        approved_source.robots_compliant = False
        approved_source.tos_approved_by = ""

        assert check_source_gates(approved_source) == [
            SOURCE_DISABLED,
            SCRAPE_NOT_APPROVED,
            ROBOTS_BLOCKED,
            TOS_NOT_SATISFIED,
        ]

    def test_missing_tos_review_date(self, approved_source, adapter_status):
        approved_source.tos_reviewed_at = None

        assert check_source_gates(approved_source) == [TOS_NOT_SATISFIED]

    def test_missing_adapter_status_counts_as_disabled(self, approved_source):
        assert check_source_gates(approved_source) == [ADAPTER_DISABLED]

    def test_adapter_paused(self, approved_source, adapter_status):
        adapter_status.ingestion_paused = True
        adapter_status.save()

        assert check_source_gates(approved_source) == [ADAPTER_PAUSED]

    def test_adapter_disabled_reported_over_paused(self, approved_source, adapter_status):
        adapter_status.enabled = False
        adapter_status.ingestion_paused = True

        assert check_source_gates(approved_source, adapter_status=adapter_status) == [
            ADAPTER_DISABLED
        ]

    def test_adapter_gates_can_be_skipped(self, approved_source):
        assert check_source_gates(approved_source, include_adapter=False) == []

    def test_assert_raises_with_violations(self, approved_source, adapter_status):
        approved_source.scrape_enabled = False

        with pytest.raises(SourceGateError) as exc_info:
            assert_source_gates(approved_source)

        assert exc_info.value.violations == [SCRAPE_NOT_APPROVED]
        assert str(exc_info.value) == SCRAPE_NOT_APPROVED
