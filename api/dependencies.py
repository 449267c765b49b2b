"""
FastAPI dependencies: database access, pipeline services and caller identity
"""

from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from core.database import async_session_maker
from ingestion.approval import ApprovalService
from ingestion.extractors.link_resolver import LinkResolver
from ingestion.loaders.object_storage import LocalObjectStorage, ObjectStorage
from ingestion.loaders.report_store import ReportStore
from ingestion.notifications import DatabaseNotificationSink, NotificationSink
from ingestion.runner import ReportPipeline
from ingestion.upload import ReportUploadService
from schemas.api import CurrentUser


def get_session_factory():
    """Session factory shared by the store and the notification sink"""
    return async_session_maker


def get_store(session_factory=Depends(get_session_factory)) -> ReportStore:
    return ReportStore(session_factory)


def get_notifier(session_factory=Depends(get_session_factory)) -> NotificationSink:
    return DatabaseNotificationSink(session_factory)


def get_storage() -> ObjectStorage:
    return LocalObjectStorage()


def get_resolver() -> LinkResolver:
    return LinkResolver()


def get_pipeline(
    store: ReportStore = Depends(get_store),
    notifier: NotificationSink = Depends(get_notifier),
    resolver: LinkResolver = Depends(get_resolver)
) -> ReportPipeline:
    return ReportPipeline(store, notifier, resolver=resolver)


def get_upload_service(
    store: ReportStore = Depends(get_store),
    storage: ObjectStorage = Depends(get_storage),
    notifier: NotificationSink = Depends(get_notifier)
) -> ReportUploadService:
    return ReportUploadService(store, storage, notifier)


def get_approval_service(
    store: ReportStore = Depends(get_store),
    notifier: NotificationSink = Depends(get_notifier),
    pipeline: ReportPipeline = Depends(get_pipeline)
) -> ApprovalService:
    return ApprovalService(store, notifier, pipeline)


# ============================================================================
# Caller identity (set by the upstream auth gateway)
# ============================================================================

async def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> CurrentUser:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header"
        )
    role = (x_user_role or "user").strip().lower() or "user"
    return CurrentUser(user_id=x_user_id.strip(), role=role)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required"
        )
    return user
