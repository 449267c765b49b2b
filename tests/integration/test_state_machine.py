"""
Status transitions: claims, leases and admin decisions
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock
import asyncio
import uuid
import pytest
from sqlalchemy import update
from ingestion.notifications import NotificationType
from ingestion.runner import ReportPipeline
from ingestion.scoring import Scorer
from models.base import ReportStatus
from models.report import Report
from core.exceptions import InvalidDecisionError, InvalidStateError, ReportNotFoundError

ROW = [[1, "https://news.example.com/state", "", ""]]


@pytest.fixture
def published(media_server):
    media_server.add("https://news.example.com/state", b"state article")
    return media_server


def lease_cutoff(minutes=15):
    return datetime.utcnow() - timedelta(minutes=minutes)


class PausingResolver:
    """Runs a hook in the middle of link resolution, then resolves for real"""

    def __init__(self, resolver, during):
        self.resolver = resolver
        self.during = during

    async def resolve_many(self, urls):
        await self.during()
        return await self.resolver.resolve_many(urls)


class TestClaims:
    """Atomic claim and lease"""

    @pytest.mark.asyncio
    async def test_second_claim_loses(self, upload_report, seeded_store):
        report = await upload_report(ROW)

        token = await seeded_store.claim_report(report.id, lease_cutoff())
        second = await seeded_store.claim_report(report.id, lease_cutoff())

        assert token
        assert second is None
        claimed = await seeded_store.get_report(report.id)
        assert claimed.status == ReportStatus.PROCESSING
        assert claimed.claim_token == token

    @pytest.mark.asyncio
    async def test_claimed_report_is_not_listed_until_lease_expires(self, upload_report, seeded_store):
        report = await upload_report(ROW)
        await seeded_store.claim_report(report.id, lease_cutoff())

        assert await seeded_store.list_claimable(10, lease_cutoff()) == []
        # A cutoff in the future treats every lease as expired
        assert await seeded_store.list_claimable(10, datetime.utcnow() + timedelta(minutes=1)) == [report.id]

    @pytest.mark.asyncio
    async def test_stale_claim_cannot_write_terminal_outcome(self, upload_report, seeded_store):
        report = await upload_report(ROW)
        stale_token = await seeded_store.claim_report(report.id, lease_cutoff())

        # Lease expired; another worker takes over
        fresh_token = await seeded_store.claim_report(report.id, datetime.utcnow() + timedelta(minutes=1))
        assert fresh_token and fresh_token != stale_token

        won = await seeded_store.complete_processing(
            report.id, stale_token, {}, {}, 1.0, [], []
        )
        assert won is False
        assert await seeded_store.mark_failed(report.id, stale_token, "late failure") is False

        current = await seeded_store.get_report(report.id)
        assert current.status == ReportStatus.PROCESSING
        assert current.claim_token == fresh_token

    @pytest.mark.asyncio
    async def test_pipeline_skips_report_held_by_another_worker(self, upload_report, seeded_store, pipeline, notifier):
        report = await upload_report(ROW)
        await seeded_store.claim_report(report.id, lease_cutoff())

        assert await pipeline.process_report(report.id) is None
        assert NotificationType.REPORT_PROCESSING not in notifier.types_for(report.id)

    @pytest.mark.asyncio
    async def test_expired_lease_is_reprocessed(self, upload_report, seeded_store, notifier, resolver, published):

        report = await upload_report(ROW)
        await seeded_store.claim_report(report.id, lease_cutoff())

        # lease_minutes=0: any claim older than now is stale
        eager = ReportPipeline(seeded_store, notifier, resolver=resolver, lease_minutes=0)
        result = await eager.process_queued()

        assert result["outcomes"] == {str(report.id): "pending_approval"}

    @pytest.mark.asyncio
    async def test_concurrent_workers_process_report_once(
        self, upload_report, seeded_store, notifier, resolver, published
    ):
        report = await upload_report(ROW)
        first = ReportPipeline(seeded_store, notifier, resolver=resolver)
        second = ReportPipeline(seeded_store, notifier, resolver=resolver)

        results = await asyncio.gather(first.process_queued(), second.process_queued())

        assert sum(r["reports_processed"] for r in results) == 1
        assert [r["outcomes"] for r in results if r["outcomes"]] == [{str(report.id): "pending_approval"}]
        types = notifier.types_for(report.id)
        assert types.count(NotificationType.REPORT_PROCESSING) == 1
        assert types.count(NotificationType.REPORT_COMPLETED) == 1

    @pytest.mark.asyncio
    async def test_renew_lease_requires_current_token(self, upload_report, seeded_store):
        report = await upload_report(ROW)
        token = await seeded_store.claim_report(report.id, lease_cutoff())
        claimed_at = (await seeded_store.get_report(report.id)).claimed_at

        await asyncio.sleep(0.01)

        assert await seeded_store.renew_lease(report.id, token) is True
        assert (await seeded_store.get_report(report.id)).claimed_at > claimed_at
        assert await seeded_store.renew_lease(report.id, "another-worker") is False

    @pytest.mark.asyncio
    async def test_lease_is_renewed_while_links_resolve(
        self, upload_report, seeded_store, notifier, resolver, published
    ):
        report = await upload_report(ROW)
        seen = []

        async def slow_links():
            seen.append((await seeded_store.get_report(report.id)).claimed_at)
            await asyncio.sleep(0.2)
            seen.append((await seeded_store.get_report(report.id)).claimed_at)

        worker = ReportPipeline(
            seeded_store, notifier,
            resolver=PausingResolver(resolver, slow_links),
            lease_renew_seconds=0.02,
        )

        assert await worker.process_report(report.id) == ReportStatus.PENDING_APPROVAL
        assert seen[1] > seen[0]

    @pytest.mark.asyncio
    async def test_run_is_abandoned_when_lease_is_taken_over(
        self, upload_report, seeded_store, notifier, resolver, published
    ):
        report = await upload_report(ROW)
        rival = {}

        async def rival_claims():
            # The lease counts as expired for the rival worker
            rival["token"] = await seeded_store.claim_report(report.id, datetime.utcnow() + timedelta(minutes=1))

        scorer = MagicMock(wraps=Scorer())
        worker = ReportPipeline(
            seeded_store, notifier,
            resolver=PausingResolver(resolver, rival_claims),
            scorer=scorer,
        )

        assert await worker.process_report(report.id) is None

        current = await seeded_store.get_report(report.id)
        assert current.status == ReportStatus.PROCESSING
        assert current.claim_token == rival["token"]
        scorer.score.assert_not_called()
        assert await seeded_store.list_items(report.id) == []
        assert NotificationType.REPORT_ERROR not in notifier.types_for(report.id)

    @pytest.mark.asyncio
    async def test_terminal_reports_are_left_alone(self, upload_report, pipeline, approval, published):
        report = await upload_report(ROW)
        await pipeline.process_report(report.id)
        await approval.reject(report.id, "admin-1", "Tidak lengkap")

        assert await pipeline.process_report(report.id) is None


class TestAdminDecisions:
    """pending_approval -> approved/rejected"""

    @pytest.mark.asyncio
    async def test_reject_clears_score_and_records_reason(
        self, upload_report, pipeline, approval, notifier, published
    ):
        report = await upload_report(ROW)
        await pipeline.process_report(report.id)

        rejected = await approval.reject(report.id, "admin-1", "  Bukti tidak valid  ")

        assert rejected.status == ReportStatus.REJECTED
        assert rejected.calculated_score is None
        assert rejected.rejection_reason == "Bukti tidak valid"
        assert rejected.rejected_by == "admin-1"
        assert rejected.rejected_at is not None
        last = notifier.sent[-1]
        assert last["type"] == NotificationType.REPORT_REJECTED
        assert "Bukti tidak valid" in last["message"]

    @pytest.mark.asyncio
    async def test_blank_reason_is_refused(self, upload_report, pipeline, approval, seeded_store, published):
        report = await upload_report(ROW)
        await pipeline.process_report(report.id)

        with pytest.raises(InvalidDecisionError):
            await approval.reject(report.id, "admin-1", "   ")

        unchanged = await seeded_store.get_report(report.id)
        assert unchanged.status == ReportStatus.PENDING_APPROVAL

    @pytest.mark.asyncio
    async def test_approve_requires_pending_approval(self, upload_report, approval):
        report = await upload_report(ROW)

        with pytest.raises(InvalidStateError) as exc_info:
            await approval.approve(report.id, "admin-1")

        assert exc_info.value.context["current_status"] == "queued"
        assert exc_info.value.context["required_status"] == "pending_approval"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("decision", ["approve", "reject"])
    @pytest.mark.parametrize("status", [
        ReportStatus.QUEUED,
        ReportStatus.PROCESSING,
        ReportStatus.APPROVED,
        ReportStatus.REJECTED,
        ReportStatus.FAILED,
        ReportStatus.COMPLETED,
        ReportStatus.SYSTEM_REJECTED,
    ])
    async def test_decision_outside_pending_approval_changes_nothing(
        self, upload_report, approval, seeded_store, session_factory, notifier, status, decision
    ):
        report = await upload_report(ROW)
        async with session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(Report)
                    .where(Report.id == report.id)
                    .values(status=status, rejection_reason="Alasan sebelumnya")
                )

        with pytest.raises(InvalidStateError) as exc_info:
            if decision == "approve":
                await approval.approve(report.id, "admin-1", "OK")
            else:
                await approval.reject(report.id, "admin-1", "Tidak valid")

        assert exc_info.value.context["current_status"] == status.value
        unchanged = await seeded_store.get_report(report.id)
        assert unchanged.status == status
        assert unchanged.rejection_reason == "Alasan sebelumnya"
        assert unchanged.approved_by is None
        assert notifier.types_for(report.id) == [NotificationType.REPORT_RECEIVED]

    @pytest.mark.asyncio
    async def test_no_second_decision(self, upload_report, pipeline, approval, published):
        report = await upload_report(ROW)
        await pipeline.process_report(report.id)
        await approval.reject(report.id, "admin-1", "Tidak lengkap")

        with pytest.raises(InvalidStateError):
            await approval.approve(report.id, "admin-2")
        with pytest.raises(InvalidStateError):
            await approval.reject(report.id, "admin-2", "Lagi")

    @pytest.mark.asyncio
    async def test_lost_race_is_reported_as_invalid_state(self, upload_report, pipeline, approval, seeded_store, published):
        report = await upload_report(ROW)
        await pipeline.process_report(report.id)

        # Another admin's approval lands between the read and the update
        original_approve = seeded_store.approve

        async def approve_after_rival(report_id, admin_id, note):
            await original_approve(report_id, "admin-rival", None)
            return await original_approve(report_id, admin_id, note)

        seeded_store.approve = approve_after_rival

        with pytest.raises(InvalidStateError) as exc_info:
            await approval.approve(report.id, "admin-1")

        assert exc_info.value.context["current_status"] == "approved"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("report_id", ["not-a-uuid", str(uuid.uuid4())])
    async def test_unknown_report(self, approval, report_id):
        with pytest.raises(ReportNotFoundError):
            await approval.approve(report_id, "admin-1")
