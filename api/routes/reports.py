"""
Report upload and retrieval endpoints
"""

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from typing import Optional
from api.dependencies import get_current_user, get_store, get_upload_service
from ingestion.loaders.report_store import ReportStore
from ingestion.upload import ReportUploadService
from models.base import ReportStatus
from models.report import Report
from schemas.api import (
    CurrentUser,
    MediaItemListResponse,
    MediaItemResponse,
    ReportListResponse,
    ReportResponse,
    ReportSummary,
)
from core.exceptions import ReportNotFoundError
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/reports", tags=["Reports"])


async def _visible_report(report_id: str, user: CurrentUser, store: ReportStore) -> Report:
    """Submitters only see their own reports; others are reported as missing."""
    report = await store.get_report(report_id)
    if not user.is_admin and report.user_id != user.user_id:
        raise ReportNotFoundError(f"Report {report_id} not found", context={"report_id": str(report_id)})
    return report


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def upload_report(
    request: Request,
    file: UploadFile = File(..., description="Spreadsheet (.xlsx, .xls or .csv)"),
    indicator_type: str = Form(..., description="Indicator the sheet reports on"),
    user: CurrentUser = Depends(get_current_user),
    service: ReportUploadService = Depends(get_upload_service)
):
    """
    Upload a spreadsheet and queue it for processing.

    The report is created as `queued`; the worker picks it up on its next run.
    """
    request_id = getattr(request.state, "request_id", "-")
    content = await file.read()

    logger.info(
        f"[{request_id}] POST /reports - user={user.user_id}, indicator_type={indicator_type}, "
        f"file={file.filename}, size={len(content)}"
    )

    report = await service.upload(
        file_name=file.filename or "",
        content=content,
        indicator_type=indicator_type,
        user_id=user.user_id,
        content_type=file.content_type,
    )
    return ReportResponse.model_validate(report)


@router.get("", response_model=ReportListResponse)
async def list_reports(
    status_filter: Optional[ReportStatus] = Query(None, alias="status", description="Filter by status"),
    user_id: Optional[str] = Query(None, description="Filter by submitter (admins only)"),
    limit: int = Query(50, ge=1, le=500, description="Maximum reports to return"),
    user: CurrentUser = Depends(get_current_user),
    store: ReportStore = Depends(get_store)
):
    """List reports, newest first. Submitters only see their own."""
    owner = user_id if user.is_admin else user.user_id
    reports = await store.list_reports(user_id=owner, status=status_filter, limit=limit)

    filters_applied = {}
    if owner:
        filters_applied["user_id"] = owner
    if status_filter:
        filters_applied["status"] = status_filter.value

    return ReportListResponse(
        reports=[ReportSummary.model_validate(r) for r in reports],
        total=len(reports),
        filters_applied=filters_applied,
    )


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(
    report_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: ReportStore = Depends(get_store)
):
    report = await _visible_report(report_id, user, store)
    return ReportResponse.model_validate(report)


@router.get("/{report_id}/items", response_model=MediaItemListResponse)
async def get_report_items(
    report_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: ReportStore = Depends(get_store)
):
    """Processed links of a report, in submission order."""
    report = await _visible_report(report_id, user, store)
    items = await store.list_items(report.id)
    return MediaItemListResponse(
        report_id=report.id,
        items=[MediaItemResponse.model_validate(i) for i in items],
        total=len(items),
    )
