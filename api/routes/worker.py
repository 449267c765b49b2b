"""
Worker trigger endpoint
"""

from fastapi import APIRouter, Depends, Request
from typing import Optional
from api.dependencies import get_pipeline, require_admin
from ingestion.runner import ReportPipeline
from schemas.api import CurrentUser, WorkerRunRequest, WorkerRunResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/worker", tags=["Worker"])


@router.post("/run", response_model=WorkerRunResponse)
async def run_worker(
    request: Request,
    body: Optional[WorkerRunRequest] = None,
    admin: CurrentUser = Depends(require_admin),
    pipeline: ReportPipeline = Depends(get_pipeline)
):
    """
    Run the worker now.

    Without a body, processes one batch of queued reports. With `report_id`,
    processes that report only (or finalizes it if it is approved).
    """
    request_id = getattr(request.state, "request_id", "-")

    if body is None or body.report_id is None:
        logger.info(f"[{request_id}] POST /worker/run - batch, triggered by {admin.user_id}")
        result = await pipeline.process_queued()
        return WorkerRunResponse(**result)

    logger.info(f"[{request_id}] POST /worker/run - report {body.report_id}, triggered by {admin.user_id}")
    outcome = await pipeline.process_report(body.report_id)

    if outcome is None:
        return WorkerRunResponse(reports_found=1, reports_skipped=1)
    return WorkerRunResponse(
        reports_found=1,
        reports_processed=1,
        outcomes={str(body.report_id): outcome.value},
    )
