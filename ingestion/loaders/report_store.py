"""
Report store: every read and write the pipeline makes against the database.

Status transitions are single-row conditional UPDATEs keyed by report id and
the expected status, so two workers (or a worker and an admin) racing on the
same report cannot both win. Worker writes are additionally conditional on
the claim token written when the report was claimed.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid
from sqlalchemy import select, update, func, and_, or_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload
from models.base import ReportStatus
from models.report import Report
from models.media_item import ProcessedMediaItem
from models.kpi import KPIDefinition, ScoringRange
from schemas.records import ExistingFingerprints, ProcessedItem
from schemas.kpi import KPIConfig, validate_scoring_ranges, validate_weights
from core.exceptions import StoreUnavailableError, ReportNotFoundError
import logging

logger = logging.getLogger(__name__)

# Reports whose links were never accepted do not take part in URL duplicate checks
URL_SNAPSHOT_EXCLUDED_STATUSES = (ReportStatus.FAILED, ReportStatus.SYSTEM_REJECTED)


def as_report_id(report_id: Any) -> uuid.UUID:
    """
    Coerce a report id (UUID or string) to UUID.

    Raises:
        ReportNotFoundError: Not a valid UUID
    """
    if isinstance(report_id, uuid.UUID):
        return report_id
    try:
        return uuid.UUID(str(report_id))
    except (ValueError, TypeError, AttributeError):
        raise ReportNotFoundError(
            f"Report {report_id} not found",
            context={"report_id": str(report_id)}
        )


class ReportStore:
    """
    Async SQLAlchemy implementation of the report store.

    Args:
        session_factory: async_sessionmaker producing AsyncSession objects
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    @staticmethod
    def _error(operation: str, e: Exception, report_id: Any = None) -> StoreUnavailableError:
        context = {"operation": operation}
        if report_id is not None:
            context["report_id"] = str(report_id)
        return StoreUnavailableError(f"Report store operation '{operation}' failed", context=context, original_exception=e)

    # ========================================================================
    # Reports
    # ========================================================================

    async def create_report(
        self,
        user_id: str,
        file_name: str,
        file_path: Optional[str],
        indicator_type: str,
        raw_data: Dict[str, Any],
        report_id: Optional[uuid.UUID] = None
    ) -> Report:
        report = Report(
            id=report_id or uuid.uuid4(),
            user_id=user_id,
            file_name=file_name,
            file_path=file_path,
            indicator_type=indicator_type,
            status=ReportStatus.QUEUED,
            raw_data=raw_data,
        )
        try:
            async with self.session_factory() as session:
                session.add(report)
                await session.commit()
        except SQLAlchemyError as e:
            raise self._error("create_report", e, report.id)

        logger.info(f"Created report {report.id} ({file_name}, {indicator_type}) for user {user_id}")
        return report

    async def get_report(self, report_id: Any) -> Report:
        """
        Raises:
            ReportNotFoundError: No report with this id
            StoreUnavailableError: Database failure
        """
        rid = as_report_id(report_id)
        try:
            async with self.session_factory() as session:
                report = await session.get(Report, rid)
        except SQLAlchemyError as e:
            raise self._error("get_report", e, rid)

        if report is None:
            raise ReportNotFoundError(f"Report {rid} not found", context={"report_id": str(rid)})
        return report

    async def list_reports(
        self,
        user_id: Optional[str] = None,
        status: Optional[ReportStatus] = None,
        limit: int = 50
    ) -> List[Report]:
        query = select(Report).order_by(Report.created_at.desc()).limit(limit)
        if user_id:
            query = query.where(Report.user_id == user_id)
        if status:
            query = query.where(Report.status == status)
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._error("list_reports", e)

    async def list_items(self, report_id: Any) -> List[ProcessedMediaItem]:
        rid = as_report_id(report_id)
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ProcessedMediaItem)
                    .where(ProcessedMediaItem.report_id == rid)
                    .order_by(ProcessedMediaItem.position)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._error("list_items", e, rid)

    # ========================================================================
    # Worker claim
    # ========================================================================

    async def list_claimable(self, limit: int, stale_before: datetime) -> List[uuid.UUID]:
        """Ids of queued reports and processing reports with an expired lease, oldest first."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Report.id)
                    .where(self._claimable(stale_before))
                    .order_by(Report.created_at.asc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._error("list_claimable", e)

    @staticmethod
    def _claimable(stale_before: datetime):
        return or_(
            Report.status == ReportStatus.QUEUED,
            and_(
                Report.status == ReportStatus.PROCESSING,
                or_(Report.claimed_at.is_(None), Report.claimed_at < stale_before),
            ),
        )

    async def claim_report(self, report_id: Any, stale_before: datetime) -> Optional[str]:
        """
        Atomically move a claimable report to processing.

        Returns:
            The new claim token, or None if another worker holds the report or
            it is no longer claimable
        """
        rid = as_report_id(report_id)
        token = uuid.uuid4().hex
        now = datetime.utcnow()

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(Report)
                        .where(Report.id == rid, self._claimable(stale_before))
                        .values(
                            status=ReportStatus.PROCESSING,
                            claim_token=token,
                            claimed_at=now,
                            updated_at=now,
                        )
                        .execution_options(synchronize_session=False)
                    )
        except SQLAlchemyError as e:
            raise self._error("claim_report", e, rid)

        if result.rowcount != 1:
            logger.info(f"Report {rid} not claimed (taken by another worker or no longer claimable)")
            return None
        return token

    async def renew_lease(self, report_id: Any, claim_token: str) -> bool:
        """
        Push claimed_at forward for a report this worker still holds.

        Returns:
            False if the report left processing or was re-claimed under
            another token
        """
        rid = as_report_id(report_id)
        now = datetime.utcnow()

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(Report)
                        .where(
                            Report.id == rid,
                            Report.status == ReportStatus.PROCESSING,
                            Report.claim_token == claim_token,
                        )
                        .values(claimed_at=now)
                        .execution_options(synchronize_session=False)
                    )
        except SQLAlchemyError as e:
            raise self._error("renew_lease", e, rid)

        return result.rowcount == 1

    # ========================================================================
    # Worker terminal writes (conditional on status=processing + claim token)
    # ========================================================================

    async def _finish_processing(
        self,
        operation: str,
        report_id: Any,
        claim_token: str,
        values: Dict[str, Any],
        items: Optional[List[ProcessedItem]] = None
    ) -> bool:
        rid = as_report_id(report_id)
        values = {**values, "updated_at": datetime.utcnow()}

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(Report)
                        .where(
                            Report.id == rid,
                            Report.status == ReportStatus.PROCESSING,
                            Report.claim_token == claim_token,
                        )
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    won = result.rowcount == 1
                    if won and items:
                        session.add_all([
                            ProcessedMediaItem(report_id=rid, **item.model_dump())
                            for item in items
                        ])
        except SQLAlchemyError as e:
            raise self._error(operation, e, rid)

        if not won:
            logger.warning(f"{operation}: lease on report {rid} was lost, result discarded")
        return won

    async def complete_processing(
        self,
        report_id: Any,
        claim_token: str,
        raw_data: Dict[str, Any],
        processed_data: Dict[str, Any],
        calculated_score: float,
        video_hashes: List[str],
        items: List[ProcessedItem]
    ) -> bool:
        """processing -> pending_approval, with items, in one transaction."""
        return await self._finish_processing(
            "complete_processing",
            report_id,
            claim_token,
            {
                "status": ReportStatus.PENDING_APPROVAL,
                "raw_data": raw_data,
                "processed_data": processed_data,
                "calculated_score": calculated_score,
                "video_hashes": video_hashes,
                "rejection_reason": None,
            },
            items,
        )

    async def reject_as_duplicate(
        self,
        report_id: Any,
        claim_token: str,
        raw_data: Dict[str, Any],
        processed_data: Dict[str, Any],
        reason: str,
        items: List[ProcessedItem]
    ) -> bool:
        """processing -> system_rejected; items are kept for audit."""
        return await self._finish_processing(
            "reject_as_duplicate",
            report_id,
            claim_token,
            {
                "status": ReportStatus.SYSTEM_REJECTED,
                "raw_data": raw_data,
                "processed_data": processed_data,
                "calculated_score": None,
                "rejection_reason": reason,
            },
            items,
        )

    async def mark_failed(self, report_id: Any, claim_token: str, reason: str) -> bool:
        """processing -> failed."""
        return await self._finish_processing(
            "mark_failed",
            report_id,
            claim_token,
            {
                "status": ReportStatus.FAILED,
                "calculated_score": None,
                "rejection_reason": reason,
            },
        )

    # ========================================================================
    # Admin decisions and finalization
    # ========================================================================

    async def _transition(self, operation: str, report_id: Any, from_status: ReportStatus, values: Dict[str, Any]) -> bool:
        rid = as_report_id(report_id)
        values = {**values, "updated_at": datetime.utcnow()}
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(Report)
                        .where(Report.id == rid, Report.status == from_status)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
        except SQLAlchemyError as e:
            raise self._error(operation, e, rid)
        return result.rowcount == 1

    async def approve(self, report_id: Any, admin_id: str, note: Optional[str]) -> bool:
        """pending_approval -> approved."""
        return await self._transition("approve", report_id, ReportStatus.PENDING_APPROVAL, {
            "status": ReportStatus.APPROVED,
            "approved_by": admin_id,
            "approval_note": note,
            "approved_at": datetime.utcnow(),
        })

    async def reject(self, report_id: Any, admin_id: str, reason: str) -> bool:
        """pending_approval -> rejected; the candidate score is cleared."""
        return await self._transition("reject", report_id, ReportStatus.PENDING_APPROVAL, {
            "status": ReportStatus.REJECTED,
            "rejection_reason": reason,
            "calculated_score": None,
            "rejected_by": admin_id,
            "rejected_at": datetime.utcnow(),
        })

    async def complete_finalization(
        self,
        report_id: Any,
        processed_data: Dict[str, Any],
        calculated_score: float
    ) -> bool:
        """approved -> completed with the final score."""
        now = datetime.utcnow()
        return await self._transition("complete_finalization", report_id, ReportStatus.APPROVED, {
            "status": ReportStatus.COMPLETED,
            "processed_data": processed_data,
            "calculated_score": calculated_score,
            "completed_at": now,
        })

    # ========================================================================
    # Duplicate snapshot
    # ========================================================================

    async def load_existing_fingerprints(
        self,
        exclude_report_id: Any,
        urls: List[str],
        content_hashes: List[str]
    ) -> ExistingFingerprints:
        """
        Fingerprints of every other report that match the given candidates.

        URLs come from other reports' valid items (reports that ended failed or
        system_rejected excluded). Content hashes come from other reports'
        video_hashes.
        """
        rid = as_report_id(exclude_report_id)
        snapshot = ExistingFingerprints()

        try:
            async with self.session_factory() as session:
                if urls:
                    result = await session.execute(
                        select(ProcessedMediaItem.normalized_url, ProcessedMediaItem.report_id)
                        .join(Report, Report.id == ProcessedMediaItem.report_id)
                        .where(
                            ProcessedMediaItem.report_id != rid,
                            ProcessedMediaItem.normalized_url.in_(urls),
                            ProcessedMediaItem.is_valid.is_(True),
                            Report.status.notin_(URL_SNAPSHOT_EXCLUDED_STATUSES),
                        )
                        .order_by(Report.created_at.asc())
                    )
                    for normalized_url, owner_id in result.all():
                        owners = snapshot.urls.setdefault(normalized_url, [])
                        if str(owner_id) not in owners:
                            owners.append(str(owner_id))

                if content_hashes:
                    wanted = set(content_hashes)
                    result = await session.execute(
                        select(Report.id, Report.video_hashes)
                        .where(Report.id != rid, Report.video_hashes.isnot(None))
                        .order_by(Report.created_at.asc())
                    )
                    for owner_id, hashes in result.all():
                        for content_hash in wanted.intersection(hashes or []):
                            owners = snapshot.content_hashes.setdefault(content_hash, [])
                            if str(owner_id) not in owners:
                                owners.append(str(owner_id))
        except SQLAlchemyError as e:
            raise self._error("load_existing_fingerprints", e, rid)

        return snapshot

    # ========================================================================
    # KPI configuration
    # ========================================================================

    async def load_kpis(self, indicator_type: Optional[str] = None, active_only: bool = True) -> List[KPIConfig]:
        query = select(KPIDefinition).options(selectinload(KPIDefinition.scoring_ranges)).order_by(KPIDefinition.code)
        if indicator_type:
            query = query.where(KPIDefinition.indicator_type == indicator_type)
        if active_only:
            query = query.where(KPIDefinition.is_active.is_(True))

        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                definitions = result.scalars().all()
                return [KPIConfig.model_validate(d) for d in definitions]
        except SQLAlchemyError as e:
            raise self._error("load_kpis", e)

    async def save_kpi(self, config: KPIConfig) -> KPIConfig:
        """
        Create or update a KPI (matched by code), replacing its scoring ranges.

        Raises:
            ScoringConfigError: Invalid ranges, or active weights above 100
                once this KPI is saved
            StoreUnavailableError: Database failure
        """
        if config.is_active:
            validate_scoring_ranges(config)

        others = [k for k in await self.load_kpis() if k.code != config.code]
        validate_weights(others + [config])

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(KPIDefinition)
                        .options(selectinload(KPIDefinition.scoring_ranges))
                        .where(KPIDefinition.code == config.code)
                    )
                    definition = result.scalar_one_or_none()
                    if definition is None:
                        definition = KPIDefinition(code=config.code)
                        session.add(definition)

                    for field in (
                        "name", "description", "indicator_type", "dimension", "calculation_type",
                        "target_value", "monthly_target", "semester_target", "weight_percentage",
                        "unit", "scoring_period", "is_active",
                    ):
                        setattr(definition, field, getattr(config, field))

                    definition.scoring_ranges = [
                        ScoringRange(
                            min_percentage=band.min_percentage,
                            max_percentage=band.max_percentage,
                            score_value=band.score_value,
                        )
                        for band in config.sorted_ranges()
                    ]
        except SQLAlchemyError as e:
            raise self._error("save_kpi", e)

        logger.info(f"Saved KPI {config.code} ({len(config.scoring_ranges)} scoring ranges)")
        return config

    # ========================================================================

    async def count_by_status(self) -> Dict[str, int]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Report.status, func.count(Report.id)).group_by(Report.status)
                )
                return {status.value: count for status, count in result.all()}
        except SQLAlchemyError as e:
            raise self._error("count_by_status", e)

    async def ping(self) -> bool:
        """True when the database answers."""
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database ping failed: {str(e)}")
            return False
