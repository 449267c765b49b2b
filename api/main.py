"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from api.routes import health, reports, admin, worker
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.database import async_session_maker
from core.logging import setup_logging
from core.exceptions import (
    PipelineError,
    InvalidUploadError,
    ReportNotFoundError,
    RetryableError,
    InvalidStateError,
    InvalidDecisionError,
)
from ingestion.loaders.report_store import ReportStore
from ingestion.notifications import DatabaseNotificationSink
from ingestion.runner import ReportPipeline
from ingestion.scheduler import ReportWorkerScheduler
from schemas.api import ErrorResponse
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Hint sent with 503 responses for transient store failures
RETRY_AFTER_SECONDS = 30

# Create FastAPI app
app = FastAPI(
    title="Media Report Intake API",
    description="Report intake, link validation, duplicate detection and KPI scoring",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)


# Include routers
app.include_router(health.router)
app.include_router(reports.router)
app.include_router(admin.router)
app.include_router(worker.router)


# ============================================================================
# Error mapping
# ============================================================================

def _status_code_for(error: PipelineError) -> int:
    if isinstance(error, InvalidUploadError):
        if "max_upload_bytes" in error.context:
            return status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, ReportNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, InvalidStateError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, InvalidDecisionError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(error, RetryableError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    status_code = _status_code_for(exc)
    request_id = getattr(request.state, "request_id", "-")

    if status_code >= 500:
        logger.error(
            f"[{request_id}] {request.method} {request.url.path} failed: {exc.message}",
            extra={"error_context": exc.to_dict()}
        )
    else:
        logger.info(f"[{request_id}] {request.method} {request.url.path} -> {status_code}: {exc.message}")

    context = {k: v for k, v in exc.context.items() if k != "error_timestamp"}
    body = ErrorResponse(error=type(exc).__name__, detail=exc.message, context=context)
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if isinstance(exc, RetryableError) else None
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


# ============================================================================
# Lifecycle
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Media Report Intake API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    app.state.scheduler = None
    if settings.WORKER_SCHEDULER_ENABLED:
        pipeline = ReportPipeline(
            ReportStore(async_session_maker),
            DatabaseNotificationSink(async_session_maker),
        )
        app.state.scheduler = ReportWorkerScheduler(pipeline)
        app.state.scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Media Report Intake API")
    if getattr(app.state, "scheduler", None):
        app.state.scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Media Report Intake API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "reports": "/reports",
            "worker": "/worker/run"
        }
    }
