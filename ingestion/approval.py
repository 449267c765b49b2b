"""
Admin decision boundary: approve or reject reports awaiting approval
"""

from typing import Optional
from ingestion.loaders.report_store import ReportStore
from ingestion.notifications import NotificationSink, NotificationType
from ingestion.runner import ReportPipeline
from models.base import ReportStatus
from models.report import Report
from core.exceptions import InvalidDecisionError, InvalidStateError
import logging

logger = logging.getLogger(__name__)


class ApprovalService:
    """
    Apply admin decisions to pending_approval reports.

    Approval records the approver and note, then finalizes the report
    (approved -> completed) in the same call. Finalization failures leave the
    report approved; the returned report reflects whatever status it reached.
    """

    def __init__(self, store: ReportStore, notifier: NotificationSink, pipeline: ReportPipeline):
        self.store = store
        self.notifier = notifier
        self.pipeline = pipeline

    async def _pending(self, report_id, decision: str) -> Report:
        report = await self.store.get_report(report_id)
        if report.status != ReportStatus.PENDING_APPROVAL:
            raise self._invalid_state(report, decision)
        return report

    @staticmethod
    def _invalid_state(report: Report, decision: str) -> InvalidStateError:
        status = report.status.value if isinstance(report.status, ReportStatus) else str(report.status)
        return InvalidStateError(
            f"Cannot {decision} report {report.id}: status is {status}, "
            f"expected {ReportStatus.PENDING_APPROVAL.value}",
            context={
                "report_id": str(report.id),
                "current_status": status,
                "required_status": ReportStatus.PENDING_APPROVAL.value,
            }
        )

    async def approve(self, report_id, admin_id: str, note: Optional[str] = None) -> Report:
        """
        pending_approval -> approved -> completed.

        Raises:
            ReportNotFoundError: Unknown report id
            InvalidStateError: Report is not pending approval (including a
                concurrent decision that landed first)
        """
        report = await self._pending(report_id, "approve")
        note = note.strip() if note and note.strip() else None

        if not await self.store.approve(report.id, admin_id, note):
            raise self._invalid_state(await self.store.get_report(report.id), "approve")

        logger.info(f"Report {report.id} approved by {admin_id}")

        message = f'Laporan "{report.file_name}" telah disetujui oleh admin.'
        if note:
            message += f" Catatan: {note}"
        await self.notifier.notify(
            report.user_id,
            NotificationType.REPORT_APPROVED,
            "Laporan Disetujui Admin",
            message,
            report.id,
        )

        await self.pipeline.process_report(report.id)
        return await self.store.get_report(report.id)

    async def reject(self, report_id, admin_id: str, reason: Optional[str]) -> Report:
        """
        pending_approval -> rejected. The candidate score is cleared.

        Raises:
            InvalidDecisionError: Reason is missing or blank
            ReportNotFoundError: Unknown report id
            InvalidStateError: Report is not pending approval
        """
        if not reason or not reason.strip():
            raise InvalidDecisionError(
                "A rejection reason is required",
                context={"report_id": str(report_id), "admin_id": admin_id}
            )
        reason = reason.strip()

        report = await self._pending(report_id, "reject")

        if not await self.store.reject(report.id, admin_id, reason):
            raise self._invalid_state(await self.store.get_report(report.id), "reject")

        logger.info(f"Report {report.id} rejected by {admin_id}: {reason}")
        await self.notifier.notify(
            report.user_id,
            NotificationType.REPORT_REJECTED,
            "Laporan Ditolak Admin",
            f'Laporan "{report.file_name}" ditolak oleh admin. Alasan: {reason}',
            report.id,
        )
        return await self.store.get_report(report.id)
