"""
Admin decision endpoints
"""

from fastapi import APIRouter, Depends, Request
from typing import Optional
from api.dependencies import get_approval_service, require_admin
from ingestion.approval import ApprovalService
from schemas.api import ApprovalRequest, CurrentUser, RejectionRequest, ReportResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/reports", tags=["Admin"])


@router.post("/{report_id}/approve", response_model=ReportResponse)
async def approve_report(
    report_id: str,
    request: Request,
    body: Optional[ApprovalRequest] = None,
    admin: CurrentUser = Depends(require_admin),
    service: ApprovalService = Depends(get_approval_service)
):
    """
    Approve a pending report.

    The report is re-scored with the current KPI configuration and completed
    in the same request; if that fails it stays `approved`.
    """
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] POST /reports/{report_id}/approve - admin={admin.user_id}")

    note = body.note if body else None
    report = await service.approve(report_id, admin.user_id, note)
    return ReportResponse.model_validate(report)


@router.post("/{report_id}/reject", response_model=ReportResponse)
async def reject_report(
    report_id: str,
    body: RejectionRequest,
    request: Request,
    admin: CurrentUser = Depends(require_admin),
    service: ApprovalService = Depends(get_approval_service)
):
    """Reject a pending report. A reason is required."""
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] POST /reports/{report_id}/reject - admin={admin.user_id}")

    report = await service.reject(report_id, admin.user_id, body.reason)
    return ReportResponse.model_validate(report)
