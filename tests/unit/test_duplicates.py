"""
Unit tests for duplicate detection
"""

import pytest
from unittest.mock import AsyncMock
from ingestion.duplicates import DuplicateDetector, compare_fingerprints
from schemas.records import ExistingFingerprints, LinkFingerprint
from models.base import MediaType
from core.exceptions import DuplicateViolation, StoreError


def fingerprint(position, url, content_hash="", row_number=2, valid=True):
    return LinkFingerprint(
        position=position,
        row_number=row_number,
        original_url=url,
        final_url=url,
        normalized_url=url,
        media_type=MediaType.ONLINE_NEWS,
        content_hash=content_hash,
        status_code=200 if valid else 404,
        is_valid=valid,
    )


class TestCompareFingerprints:
    """Pure comparison"""

    def test_no_duplicates(self):
        current = [fingerprint(0, "https://a.example.com/1", "h1"), fingerprint(1, "https://a.example.com/2", "h2")]

        report = compare_fingerprints(current, ExistingFingerprints())

        assert not report.has_duplicates
        assert report.duplicate_report_ids == []

    def test_intra_report_url_repeat_flags_second_occurrence_only(self):
        current = [
            fingerprint(0, "https://a.example.com/1", "h1"),
            fingerprint(1, "https://a.example.com/1", "h1b", row_number=3),
            fingerprint(2, "https://a.example.com/1", "h1c", row_number=4),
        ]

        report = compare_fingerprints(current, ExistingFingerprints())

        assert [f.is_duplicate_url for f in report.findings] == [False, True, True]
        assert not report.has_cross_report_duplicates

    def test_intra_report_content_repeat(self):
        current = [fingerprint(0, "https://a.example.com/1", "same"), fingerprint(1, "https://b.example.com/2", "same")]

        report = compare_fingerprints(current, ExistingFingerprints())

        assert report.finding_for(0).is_duplicate is False
        assert report.finding_for(1).is_duplicate_content is True
        assert report.finding_for(1).is_duplicate_url is False

    def test_empty_hashes_never_match(self):
        current = [fingerprint(0, "https://a.example.com/1", ""), fingerprint(1, "https://b.example.com/2", "")]
        existing = ExistingFingerprints(content_hashes={"": ["other"]})

        report = compare_fingerprints(current, existing)

        assert not report.has_duplicates

    def test_cross_report_matches_cite_report_ids_in_first_seen_order(self):
        current = [
            fingerprint(0, "https://a.example.com/1", "h1"),
            fingerprint(1, "https://b.example.com/2", "h2"),
        ]
        existing = ExistingFingerprints(
            urls={"https://b.example.com/2": ["report-b"]},
            content_hashes={"h1": ["report-a"], "h2": ["report-b", "report-c"]},
        )

        report = compare_fingerprints(current, existing)

        assert report.finding_for(0).is_duplicate_content
        assert report.finding_for(1).is_duplicate_url and report.finding_for(1).is_duplicate_content
        assert report.duplicate_report_ids == ["report-a", "report-b", "report-c"]
        assert report.has_cross_report_duplicates

    def test_findings_follow_link_order(self):
        current = [fingerprint(1, "https://a.example.com/2"), fingerprint(0, "https://a.example.com/1")]

        report = compare_fingerprints(current, ExistingFingerprints())

        assert [f.position for f in report.findings] == [0, 1]


class TestDuplicateDetector:
    """Snapshot read and policy"""

    @pytest.mark.asyncio
    async def test_detect_queries_only_current_fingerprints(self):
        store = AsyncMock()
        store.load_existing_fingerprints.return_value = ExistingFingerprints()
        current = [fingerprint(0, "https://a.example.com/1", "h1"), fingerprint(1, "https://a.example.com/1", "")]

        await DuplicateDetector(store).detect(current, "report-x")

        store.load_existing_fingerprints.assert_awaited_once_with(
            exclude_report_id="report-x",
            urls=["https://a.example.com/1"],
            content_hashes=["h1"],
        )

    @pytest.mark.asyncio
    async def test_store_failure_is_a_hard_failure(self):
        store = AsyncMock()
        store.load_existing_fingerprints.side_effect = RuntimeError("connection reset")

        with pytest.raises(StoreError) as exc_info:
            await DuplicateDetector(store).detect([fingerprint(0, "https://a.example.com/1")], "report-x")

        assert isinstance(exc_info.value.original_exception, RuntimeError)

    @pytest.mark.asyncio
    async def test_store_error_propagates_unchanged(self):
        store = AsyncMock()
        error = StoreError("db down", context={"operation": "load_existing_fingerprints"})
        store.load_existing_fingerprints.side_effect = error

        with pytest.raises(StoreError) as exc_info:
            await DuplicateDetector(store).detect([fingerprint(0, "https://a.example.com/1")], "report-x")

        assert exc_info.value is error

    def test_enforce_rejects_cross_report_duplicates(self):
        report = compare_fingerprints(
            [fingerprint(0, "https://a.example.com/1", "h1")],
            ExistingFingerprints(urls={"https://a.example.com/1": ["report-a"]}),
        )

        with pytest.raises(DuplicateViolation) as exc_info:
            DuplicateDetector.enforce(report)

        assert exc_info.value.report_ids == ["report-a"]
        assert "report-a" in exc_info.value.message

    def test_enforce_allows_intra_report_duplicates(self):
        report = compare_fingerprints(
            [fingerprint(0, "https://a.example.com/1"), fingerprint(1, "https://a.example.com/1")],
            ExistingFingerprints(),
        )

        DuplicateDetector.enforce(report)

        assert report.has_duplicates
