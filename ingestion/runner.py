# ============================================================================
# File: ingestion/runner.py
# Description: Report pipeline orchestrator and status state machine
# ============================================================================
"""
Report Pipeline - Orchestrates extract, transform, resolve, dedupe and score.

State machine:

    queued -> processing -> pending_approval -> approved -> completed
                         -> system_rejected  -> rejected
                         -> failed

This module provides:
- Claim-safe batch processing (atomic conditional claim + lease, renewed while a report runs)
- One terminal outcome per claimed report, written atomically with its items
- Distinct failure reasons for schema, scoring configuration and store errors
- Notifications on every transition, in transition order
- Finalization (re-score with current KPIs) for approved reports
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import asyncio
import logging

from ingestion.indicators import IndicatorConfig, get_indicator
from ingestion.extractors.column_mapper import extract
from ingestion.extractors.link_resolver import LinkResolver
from ingestion.transformers.record_transformer import RecordTransformer
from ingestion.transformers.fingerprint import normalize_url
from ingestion.duplicates import DuplicateDetector
from ingestion.scoring import Scorer
from ingestion.loaders.report_store import ReportStore
from ingestion.notifications import NotificationSink, NotificationType
from schemas.records import (
    DomainRecord,
    DuplicateReport,
    ExtractedRow,
    LinkFingerprint,
    LinkRef,
    LinkResolution,
    ProcessedItem,
    SheetGrid,
    parse_record,
)
from schemas.scoring import ScoreResult
from models.base import ReportStatus
from models.report import Report
from core.config import settings
from core.exceptions import (
    PipelineError,
    SchemaError,
    DuplicateViolation,
    ScoringConfigError,
    StoreError,
    LeaseLostError,
)

logger = logging.getLogger(__name__)


def failure_reason(error: PipelineError) -> str:
    """Rejection reason persisted for a failed report, prefixed by error kind."""
    if isinstance(error, SchemaError):
        prefix = "Spreadsheet schema error"
    elif isinstance(error, ScoringConfigError):
        prefix = "Scoring configuration error"
    elif isinstance(error, StoreError):
        prefix = "Report store error"
    else:
        prefix = "Processing error"

    message = error.message
    if error.original_exception is not None and not isinstance(error.original_exception, PipelineError):
        message = f"{message} ({type(error.original_exception).__name__}: {error.original_exception})"
    return f"{prefix}: {message}"


class LeaseKeeper:
    """
    Keeps a worker's claim on a processing report alive.

    Used as an async context manager around the pipeline stages: a background
    task renews ``claimed_at`` every ``interval`` seconds, and ``check()``
    renews once more at stage boundaries, raising LeaseLostError when the
    claim token is no longer the report's.
    """

    def __init__(self, store: ReportStore, report_id: Any, claim_token: str, interval: float):
        self.store = store
        self.report_id = report_id
        self.claim_token = claim_token
        self.interval = max(interval, 0.01)
        self.lost = False
        self._task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "LeaseKeeper":
        self._task = asyncio.create_task(self._keep_alive())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _keep_alive(self) -> None:
        while not self.lost:
            await asyncio.sleep(self.interval)
            await self.renew()

    async def renew(self) -> bool:
        """Renew the lease; a store outage keeps the current answer."""
        if self.lost:
            return False
        try:
            renewed = await self.store.renew_lease(self.report_id, self.claim_token)
        except StoreError as e:
            logger.warning(
                f"Could not renew lease on report {self.report_id}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return True

        if not renewed:
            self.lost = True
            logger.warning(f"Lease on report {self.report_id} is no longer held by this worker")
        return renewed

    async def check(self, stage: str) -> None:
        """
        Raises:
            LeaseLostError: The report is no longer held under this claim
        """
        if not await self.renew():
            raise LeaseLostError(
                f"Lease on report {self.report_id} lost before {stage}",
                context={"report_id": str(self.report_id), "stage": stage}
            )


class ReportPipeline:
    """
    Report pipeline orchestrator.

    Responsibilities:
    - Claim queued (or lease-expired) reports, oldest first
    - Run extract -> transform -> resolve + hash -> dedupe -> score
    - Persist exactly one terminal outcome per claim
    - Emit notifications for every transition
    - Finalize approved reports

    All collaborators are injected; nothing here reads a global session.
    """

    def __init__(
        self,
        store: ReportStore,
        notifier: NotificationSink,
        resolver: Optional[LinkResolver] = None,
        scorer: Optional[Scorer] = None,
        batch_size: Optional[int] = None,
        lease_minutes: Optional[float] = None,
        lease_renew_seconds: Optional[float] = None
    ):
        self.store = store
        self.notifier = notifier
        self.resolver = resolver or LinkResolver()
        self.scorer = scorer or Scorer()
        self.detector = DuplicateDetector(store)
        self.batch_size = batch_size or settings.WORKER_BATCH_SIZE
        self.lease_minutes = lease_minutes if lease_minutes is not None else settings.PROCESSING_LEASE_MINUTES
        self.lease_renew_seconds = lease_renew_seconds or settings.LEASE_RENEW_SECONDS

    def _stale_before(self) -> datetime:
        return datetime.utcnow() - timedelta(minutes=self.lease_minutes)

    # ========================================================================
    # Worker entry points
    # ========================================================================

    async def process_queued(self) -> Dict[str, Any]:
        """
        Process one batch of claimable reports sequentially.

        Returns:
            Dictionary with run statistics:
            - reports_found: Claimable reports seen
            - reports_processed: Reports this invocation claimed and finished
            - reports_skipped: Reports claimed by someone else meanwhile
            - outcomes: {report_id: final status}
        """
        report_ids = await self.store.list_claimable(self.batch_size, self._stale_before())

        if not report_ids:
            logger.info("No queued reports found")
            return {"reports_found": 0, "reports_processed": 0, "reports_skipped": 0, "outcomes": {}}

        logger.info(f"Found {len(report_ids)} reports to process")

        outcomes: Dict[str, str] = {}
        skipped = 0
        for report_id in report_ids:
            status = await self.process_report(report_id)
            if status is None:
                skipped += 1
            else:
                outcomes[str(report_id)] = status.value

        logger.info(f"Batch complete: {len(outcomes)} processed, {skipped} skipped")
        return {
            "reports_found": len(report_ids),
            "reports_processed": len(outcomes),
            "reports_skipped": skipped,
            "outcomes": outcomes,
        }

    async def process_report(self, report_id: Any) -> Optional[ReportStatus]:
        """
        Process one report by id.

        Queued or lease-expired processing reports run the pipeline; approved
        reports run finalization. Anything else is left alone.

        Returns:
            The status this call moved the report to, or None if it did not
            move it (not claimable, claim lost, or finalization failed)

        Raises:
            ReportNotFoundError: Unknown report id
            StoreError: The report could not be read or claimed
        """
        report = await self.store.get_report(report_id)

        if report.status == ReportStatus.APPROVED:
            return await self.finalize(report)

        if report.status not in (ReportStatus.QUEUED, ReportStatus.PROCESSING):
            logger.info(f"Report {report.id} is {report.status.value}; nothing to process")
            return None

        claim_token = await self.store.claim_report(report.id, self._stale_before())
        if claim_token is None:
            return None

        logger.info(f"Processing report {report.id} ({report.file_name}, {report.indicator_type})")
        await self._notify(
            report,
            NotificationType.REPORT_PROCESSING,
            "Laporan Sedang Diproses",
            f'Laporan "{report.file_name}" sedang diproses oleh sistem.',
        )

        try:
            async with LeaseKeeper(self.store, report.id, claim_token, self.lease_renew_seconds) as lease:
                return await self._run_stages(report, claim_token, lease)

        except LeaseLostError as e:
            # Another worker owns the report now; it writes the outcome
            logger.warning(
                f"Abandoning report {report.id}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return None

        except PipelineError as e:
            logger.error(
                f"Report {report.id} failed: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return await self._fail(report, claim_token, e)

        except Exception as e:
            logger.exception(f"Unexpected error while processing report {report.id}")
            error = PipelineError(
                "Unexpected error during processing",
                context={"report_id": str(report.id)},
                original_exception=e
            )
            return await self._fail(report, claim_token, error)

    # ========================================================================
    # Stages
    # ========================================================================

    async def _run_stages(self, report: Report, claim_token: str, lease: LeaseKeeper) -> Optional[ReportStatus]:
        # --------------------------------------------------
        # STAGE 1: EXTRACT
        # --------------------------------------------------
        indicator = get_indicator(report.indicator_type)
        sheet = self._sheet(report)
        rows = extract(sheet.headers, sheet.rows, indicator)
        logger.info(f"Extracted {len(rows)} rows from report {report.id}")

        # --------------------------------------------------
        # STAGE 2: TRANSFORM
        # --------------------------------------------------
        records = RecordTransformer(indicator).transform(rows)
        links: List[Tuple[DomainRecord, LinkRef]] = [
            (record, link) for record in records for link in record.links
        ]

        # --------------------------------------------------
        # STAGE 3: RESOLVE + FINGERPRINT
        # --------------------------------------------------
        await lease.check("link resolution")
        resolutions = await self.resolver.resolve_many([link.url for _, link in links])
        await lease.check("duplicate detection")
        fingerprints = [
            self._fingerprint(position, record, link, resolution)
            for position, ((record, link), resolution) in enumerate(zip(links, resolutions))
        ]

        # --------------------------------------------------
        # STAGE 4: DUPLICATE DETECTION (after every link is fingerprinted)
        # --------------------------------------------------
        duplicates = await self.detector.detect(fingerprints, report.id)
        items = self._items(fingerprints, duplicates, links, resolutions)

        raw_data = {**(report.raw_data or {}), "rows": [row.model_dump(mode="json") for row in rows]}
        processed_data = self._processed_data(indicator, records, items, duplicates)

        try:
            DuplicateDetector.enforce(duplicates)
        except DuplicateViolation as e:
            logger.warning(
                f"Report {report.id} rejected: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            won = await self.store.reject_as_duplicate(
                report.id, claim_token, raw_data, processed_data, e.message, items
            )
            if not won:
                return None
            await self._notify(
                report,
                NotificationType.REPORT_ERROR,
                "Laporan Ditolak - Media Duplikat",
                f'Laporan "{report.file_name}" ditolak karena mengandung media yang sudah '
                f'pernah digunakan dalam laporan lain. Alasan: {e.message}',
            )
            return ReportStatus.SYSTEM_REJECTED

        # --------------------------------------------------
        # STAGE 5: SCORE
        # --------------------------------------------------
        await lease.check("scoring")
        kpis = await self.store.load_kpis(indicator.key)
        score = self.scorer.score(indicator, records, items, kpis)
        processed_data["score"] = score.model_dump(mode="json")

        video_hashes: List[str] = []
        for fp in fingerprints:
            if fp.content_hash and fp.content_hash not in video_hashes:
                video_hashes.append(fp.content_hash)

        # --------------------------------------------------
        # STAGE 6: PERSIST
        # --------------------------------------------------
        won = await self.store.complete_processing(
            report.id,
            claim_token,
            raw_data,
            processed_data,
            score.aggregate_score,
            video_hashes,
            items,
        )
        if not won:
            return None

        logger.info(f"Report {report.id} awaiting approval with score {score.aggregate_score}")
        await self._notify(
            report,
            NotificationType.REPORT_COMPLETED,
            "Laporan Berhasil Diproses",
            f'Laporan "{report.file_name}" telah berhasil diproses dan menunggu persetujuan admin. '
            f'Skor sementara: {score.aggregate_score:g}.',
        )
        return ReportStatus.PENDING_APPROVAL

    @staticmethod
    def _sheet(report: Report) -> SheetGrid:
        raw = report.raw_data or {}
        if not isinstance(raw.get("sheet"), dict):
            raise SchemaError(
                "No spreadsheet data found in report",
                context={"report_id": str(report.id), "indicator_type": report.indicator_type}
            )
        return SheetGrid(**raw["sheet"])

    @staticmethod
    def _fingerprint(position: int, record: DomainRecord, link: LinkRef, resolution: LinkResolution) -> LinkFingerprint:
        return LinkFingerprint(
            position=position,
            row_number=record.row_number,
            original_url=link.url,
            final_url=resolution.final_url,
            normalized_url=normalize_url(resolution.final_url),
            media_type=link.media_type,
            content_hash=resolution.content_hash,
            status_code=resolution.status_code,
            is_valid=resolution.ok,
            validation_error=resolution.validation_error,
        )

    @staticmethod
    def _items(
        fingerprints: List[LinkFingerprint],
        duplicates: DuplicateReport,
        links: List[Tuple[DomainRecord, LinkRef]],
        resolutions: List[LinkResolution]
    ) -> List[ProcessedItem]:
        items = []
        for fp, (_, link), resolution in zip(fingerprints, links, resolutions):
            finding = duplicates.finding_for(fp.position)
            items.append(ProcessedItem(
                position=fp.position,
                row_number=fp.row_number,
                original_url=fp.original_url,
                final_url=fp.final_url,
                normalized_url=fp.normalized_url,
                media_type=fp.media_type,
                content_hash=fp.content_hash or None,
                is_valid=fp.is_valid,
                is_duplicate=finding.is_duplicate,
                validation_error=fp.validation_error,
                extra_metadata={
                    "status_code": fp.status_code,
                    "field": link.field,
                    "request_url": resolution.request_url,
                    "content_length": resolution.content_length,
                    "is_duplicate_url": finding.is_duplicate_url,
                    "is_duplicate_content": finding.is_duplicate_content,
                    "duplicate_of_reports": finding.duplicate_of_reports,
                },
            ))
        return items

    @staticmethod
    def _processed_data(
        indicator: IndicatorConfig,
        records: List[DomainRecord],
        items: List[ProcessedItem],
        duplicates: DuplicateReport
    ) -> Dict[str, Any]:
        by_media_type: Dict[str, int] = {}
        for item in items:
            if item.is_usable:
                key = item.media_type.value
                by_media_type[key] = by_media_type.get(key, 0) + 1

        return {
            "indicator_type": indicator.key,
            "family": indicator.family.value,
            "processed_at": datetime.utcnow().isoformat(),
            "records": [record.model_dump(mode="json") for record in records],
            "summary": {
                "total_rows": len(records),
                "rows_with_links": sum(1 for r in records if r.links),
                "total_items": len(items),
                "valid_items": sum(1 for i in items if i.is_usable),
                "invalid_items": sum(1 for i in items if not i.is_valid),
                "duplicate_items": sum(1 for i in items if i.is_duplicate),
                "by_media_type": by_media_type,
            },
            "duplicates": {
                "has_duplicates": duplicates.has_duplicates,
                "duplicate_report_ids": duplicates.duplicate_report_ids,
                "findings": [f.model_dump() for f in duplicates.findings if f.is_duplicate],
            },
        }

    # ========================================================================
    # Failure
    # ========================================================================

    async def _fail(self, report: Report, claim_token: str, error: PipelineError) -> Optional[ReportStatus]:
        reason = failure_reason(error)
        try:
            won = await self.store.mark_failed(report.id, claim_token, reason)
        except StoreError as e:
            # Report stays processing and is re-claimed once the lease expires
            logger.error(
                f"Could not mark report {report.id} as failed: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return None

        if not won:
            return None

        await self._notify(
            report,
            NotificationType.REPORT_ERROR,
            "Gagal Memproses Laporan",
            f'Terjadi kesalahan saat memproses laporan "{report.file_name}". {reason}',
        )
        return ReportStatus.FAILED

    # ========================================================================
    # Finalization (approved -> completed)
    # ========================================================================

    async def finalize(self, report: Report) -> Optional[ReportStatus]:
        """
        Re-score an approved report with the current KPI configuration and
        complete it. On failure the report stays approved and can be
        finalized again through process_report.
        """
        try:
            indicator = get_indicator(report.indicator_type)
            processed = dict(report.processed_data or {})
            records = [parse_record(r) for r in processed.get("records", [])]
            items = [ProcessedItem.model_validate(i) for i in await self.store.list_items(report.id)]
            kpis = await self.store.load_kpis(indicator.key)
            score: ScoreResult = self.scorer.score(indicator, records, items, kpis)

            processed["candidate_score"] = processed.get("score")
            processed["score"] = score.model_dump(mode="json")
            processed["finalized_at"] = datetime.utcnow().isoformat()

            won = await self.store.complete_finalization(report.id, processed, score.aggregate_score)

        except PipelineError as e:
            logger.error(
                f"Finalization of report {report.id} failed: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return None

        except Exception:
            logger.exception(f"Unexpected error while finalizing report {report.id}")
            return None

        if not won:
            logger.info(f"Report {report.id} was finalized by another worker")
            return None

        logger.info(f"Report {report.id} completed with final score {score.aggregate_score}")
        await self._notify(
            report,
            NotificationType.REPORT_SCORED,
            "Skor Laporan Final",
            f'Laporan "{report.file_name}" selesai dinilai dengan skor final {score.aggregate_score:g}.',
        )
        return ReportStatus.COMPLETED

    # ========================================================================

    async def _notify(self, report: Report, notification_type: str, title: str, message: str) -> None:
        await self.notifier.notify(report.user_id, notification_type, title, message, report.id)
