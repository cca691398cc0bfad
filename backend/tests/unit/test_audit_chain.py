"""Unit tests for the audit hash chain

Tests cover:
- Linking of consecutive records
- Detection of edited, removed and reordered records
- Retention anchor (first remaining record points at a deleted hash)
- Month arithmetic used by retention cleanup
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from warden.audit.chain import GENESIS_HASH, compute_entry_hash, entry_payload, verify_chain
from warden.audit.service import subtract_months

pytestmark = pytest.mark.unit

KEY = b"unit-test-chain-key"
START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def build_chain(count, previous=GENESIS_HASH):
    records = []
    for index in range(count):
        record = SimpleNamespace(
            id=index + 1,
            tenant_id=1,
            actor_id=7,
            target_id=None,
            action="DMS.SUBMIT",
            entity_type="DOCUMENT",
            entity_id=f"doc-{index}",
            details=f"step {index}",
            metadata_json={"fromStatus": "DRAFT", "toStatus": "SUBMITTED"},
            ip_address="203.0.113.10",
            user_agent="pytest",
            created_at=START + timedelta(minutes=index),
            previous_hash=previous,
        )
        record.entry_hash = compute_entry_hash(previous, entry_payload(record), KEY)
        previous = record.entry_hash
        records.append(record)
    return records


class TestVerifyChain:
    """Test tamper detection"""

    def test_intact_chain_verifies(self):
        result = verify_chain(build_chain(5), KEY)
        assert result.valid is True
        assert result.checked == 5

    def test_empty_chain_verifies(self):
        assert verify_chain([], KEY).valid is True

    def test_edited_record_detected(self):
        records = build_chain(4)
        records[2].details = "rewritten"

        result = verify_chain(records, KEY)
        assert result.valid is False
        assert result.first_invalid_id == 3

    def test_edited_metadata_detected(self):
        records = build_chain(3)
        records[0].metadata_json = {"fromStatus": "DRAFT", "toStatus": "APPROVED"}

        assert verify_chain(records, KEY).first_invalid_id == 1

    def test_removed_record_detected(self):
        records = build_chain(4)
        del records[1]

        result = verify_chain(records, KEY)
        assert result.valid is False
        assert result.first_invalid_id == 3

    def test_wrong_key_detected(self):
        assert verify_chain(build_chain(2), b"other-key").valid is False

    def test_retention_anchor_accepted(self):
        """Cleanup removes the oldest records; the survivor's link is not checked"""
        records = build_chain(5)
        assert verify_chain(records[2:], KEY).valid is True

    def test_naive_timestamps_hash_like_aware_ones(self):
        """SQLite returns naive datetimes for stored records"""
        records = build_chain(2)
        for record in records:
            record.created_at = record.created_at.replace(tzinfo=None)
        assert verify_chain(records, KEY).valid is True


class TestSubtractMonths:
    """Test retention cutoff arithmetic"""

    def test_same_day_earlier_month(self):
        assert subtract_months(datetime(2026, 10, 17), 24) == datetime(2024, 10, 17)

    def test_clamps_to_end_of_month(self):
        assert subtract_months(datetime(2026, 3, 31), 1) == datetime(2026, 2, 28)

    def test_leap_year(self):
        assert subtract_months(datetime(2024, 3, 31), 1) == datetime(2024, 2, 29)

    def test_crosses_year_boundary(self):
        assert subtract_months(datetime(2026, 1, 15), 2) == datetime(2025, 11, 15)
