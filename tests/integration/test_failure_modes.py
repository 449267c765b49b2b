"""
Failure scenarios: each stage failing leaves one terminal outcome with a
reason that names what went wrong
"""

import pytest
from sqlalchemy.exc import OperationalError
from ingestion.kpi_catalog import default_kpis
from ingestion.notifications import DatabaseNotificationSink, NotificationType
from ingestion.runner import ReportPipeline, failure_reason
from models.base import ReportStatus
from core.exceptions import (
    NonRetryableError,
    PipelineError,
    ReportNotFoundError,
    RetryableError,
    SchemaError,
    ScoringConfigError,
    StoreError,
    StoreUnavailableError,
)

ROW = [[1, "https://news.example.com/failure", "", ""]]


@pytest.fixture
def published(media_server):
    media_server.add("https://news.example.com/failure", b"failure article")
    return media_server


class TestFailureReason:
    """Reason prefixes"""

    def test_prefix_by_error_kind(self):
        assert failure_reason(SchemaError("bad header")) == "Spreadsheet schema error: bad header"
        assert failure_reason(ScoringConfigError("gap")) == "Scoring configuration error: gap"
        assert failure_reason(StoreError("down")) == "Report store error: down"
        assert failure_reason(PipelineError("boom")) == "Processing error: boom"

    def test_original_exception_is_appended(self):
        error = PipelineError("Unexpected error during processing", original_exception=KeyError("records"))

        assert failure_reason(error) == (
            "Processing error: Unexpected error during processing (KeyError: 'records')"
        )

    def test_store_errors_have_one_retry_class(self):
        unavailable = StoreUnavailableError("db down")
        missing = ReportNotFoundError("gone")

        assert isinstance(unavailable, RetryableError)
        assert not isinstance(unavailable, NonRetryableError)
        assert isinstance(missing, NonRetryableError)
        assert not isinstance(missing, RetryableError)
        assert failure_reason(unavailable) == "Report store error: db down"


class TestPipelineFailures:
    """Report ends failed with a typed reason"""

    @pytest.mark.asyncio
    async def test_schema_error(self, upload_report, pipeline, seeded_store, notifier):
        report = await upload_report([["x", "y"]], headers=["Kolom A", "Kolom B"])

        status = await pipeline.process_report(report.id)

        assert status == ReportStatus.FAILED
        failed = await seeded_store.get_report(report.id)
        assert failed.rejection_reason.startswith("Spreadsheet schema error:")
        assert failed.calculated_score is None
        assert await seeded_store.list_items(report.id) == []
        assert notifier.types_for(report.id)[-1] == NotificationType.REPORT_ERROR

    @pytest.mark.asyncio
    async def test_missing_sheet_data(self, upload_report, pipeline, seeded_store, session_factory):
        from sqlalchemy import update
        from models.report import Report

        report = await upload_report(ROW)
        async with session_factory() as session:
            await session.execute(update(Report).where(Report.id == report.id).values(raw_data={}))
            await session.commit()

        assert await pipeline.process_report(report.id) == ReportStatus.FAILED
        failed = await seeded_store.get_report(report.id)
        assert failed.rejection_reason == "Spreadsheet schema error: No spreadsheet data found in report"

    @pytest.mark.asyncio
    async def test_no_active_kpi(self, upload_report, pipeline, seeded_store, published):
        kpi = [k for k in default_kpis() if k.indicator_type == "skoring-publikasi-media"][0]
        await seeded_store.save_kpi(kpi.model_copy(update={"is_active": False}))
        report = await upload_report(ROW)

        assert await pipeline.process_report(report.id) == ReportStatus.FAILED
        failed = await seeded_store.get_report(report.id)
        assert failed.rejection_reason.startswith("Scoring configuration error:")
        assert "skoring-publikasi-media" in failed.rejection_reason

    @pytest.mark.asyncio
    async def test_duplicate_snapshot_unavailable(self, upload_report, pipeline, seeded_store, published):
        report = await upload_report(ROW)

        async def unavailable(**kwargs):
            raise StoreError("Report store operation 'load_existing_fingerprints' failed")

        seeded_store.load_existing_fingerprints = unavailable

        assert await pipeline.process_report(report.id) == ReportStatus.FAILED
        failed = await seeded_store.get_report(report.id)
        assert failed.rejection_reason.startswith("Report store error:")

    @pytest.mark.asyncio
    async def test_unexpected_exception(self, upload_report, seeded_store, notifier, resolver, published):
        class ExplodingScorer:
            def score(self, *args):
                raise RuntimeError("division by zero in custom rule")

        pipeline = ReportPipeline(seeded_store, notifier, resolver=resolver, scorer=ExplodingScorer())
        report = await upload_report(ROW)

        assert await pipeline.process_report(report.id) == ReportStatus.FAILED
        failed = await seeded_store.get_report(report.id)
        assert failed.rejection_reason == (
            "Processing error: Unexpected error during processing "
            "(RuntimeError: division by zero in custom rule)"
        )

    @pytest.mark.asyncio
    async def test_failure_while_marking_failed_leaves_report_processing(
        self, upload_report, pipeline, seeded_store, notifier
    ):
        report = await upload_report([["x"]], headers=["Kolom A"])

        async def unavailable(*args, **kwargs):
            raise StoreError("Report store operation 'mark_failed' failed")

        seeded_store.mark_failed = unavailable

        assert await pipeline.process_report(report.id) is None
        stuck = await seeded_store.get_report(report.id)
        assert stuck.status == ReportStatus.PROCESSING
        assert NotificationType.REPORT_ERROR not in notifier.types_for(report.id)

    @pytest.mark.asyncio
    async def test_failed_report_is_not_retried(self, upload_report, pipeline):
        report = await upload_report([["x"]], headers=["Kolom A"])
        await pipeline.process_report(report.id)

        result = await pipeline.process_queued()

        assert result["reports_found"] == 0


class TestFinalizationFailures:
    """approved -> completed retries"""

    @pytest.mark.asyncio
    async def test_finalization_failure_keeps_report_approved(
        self, upload_report, pipeline, approval, seeded_store, published
    ):
        report = await upload_report(ROW)
        await pipeline.process_report(report.id)

        kpi = [k for k in default_kpis() if k.indicator_type == "skoring-publikasi-media"][0]
        await seeded_store.save_kpi(kpi.model_copy(update={"is_active": False}))

        approved = await approval.approve(report.id, "admin-1")

        assert approved.status == ReportStatus.APPROVED
        assert approved.calculated_score == pytest.approx(0.2)

        # Fix the configuration and finalize again
        await seeded_store.save_kpi(kpi)
        assert await pipeline.process_report(report.id) == ReportStatus.COMPLETED

        completed = await seeded_store.get_report(report.id)
        assert completed.status == ReportStatus.COMPLETED
        assert completed.processed_data["candidate_score"]["aggregate_score"] == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_final_score_uses_current_kpis(self, upload_report, pipeline, approval, seeded_store, published):
        report = await upload_report(ROW)
        await pipeline.process_report(report.id)

        kpi = [k for k in default_kpis() if k.indicator_type == "skoring-publikasi-media"][0]
        await seeded_store.save_kpi(kpi.model_copy(update={"target_value": 1}))

        completed = await approval.approve(report.id, "admin-1")

        # 1 usable link against target 1 -> 100% -> band score 5, weight 20%
        assert completed.calculated_score == pytest.approx(1.0)


class TestNotificationSink:
    """Notification writes never fail a transition"""

    @pytest.mark.asyncio
    async def test_write_failure_is_logged_not_raised(self, caplog):
        def broken_factory():
            raise OperationalError("INSERT INTO notifications", {}, Exception("database is locked"))

        sink = DatabaseNotificationSink(broken_factory)

        await sink.notify("sbu-jatim", NotificationType.REPORT_RECEIVED, "Laporan Diterima", "pesan")

        assert "Failed to write report_received notification" in caplog.text
