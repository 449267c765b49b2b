"""
Health check endpoint with database and worker status
"""

from fastapi import APIRouter, Depends, Request
from api.dependencies import get_store
from ingestion.loaders.report_store import ReportStore
from schemas.api import HealthCheckResponse
from core.config import settings
from core.exceptions import StoreError
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(request: Request, store: ReportStore = Depends(get_store)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Worker scheduler status
    - Report counts by status
    """
    db_connected = await store.ping()

    reports_by_status = {}
    if db_connected:
        try:
            reports_by_status = await store.count_by_status()
        except StoreError as e:
            logger.error(
                f"Failed to count reports: {e.message}",
                extra={"error_context": e.to_dict()}
            )

    scheduler = getattr(request.app.state, "scheduler", None)

    # Status calculation is handled by the validator in HealthCheckResponse
    return HealthCheckResponse(
        status="healthy",
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        scheduler_enabled=settings.WORKER_SCHEDULER_ENABLED,
        scheduler_running=bool(scheduler and scheduler.scheduler.running),
        reports_by_status=reports_by_status,
    )
