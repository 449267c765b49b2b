"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import ReportStatus, MediaType
from uuid import UUID


# ============================================================================
# Caller Identity
# ============================================================================

class CurrentUser(BaseModel):
    """Caller identity forwarded by the auth gateway"""
    user_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# ============================================================================
# Report Schemas
# ============================================================================

class ReportResponse(BaseModel):
    """Report with its durable contract fields"""
    id: UUID
    user_id: str
    file_name: str
    indicator_type: str
    status: ReportStatus

    raw_data: Optional[Dict[str, Any]] = None
    processed_data: Optional[Dict[str, Any]] = None
    calculated_score: Optional[float] = None
    rejection_reason: Optional[str] = None
    video_hashes: Optional[List[str]] = None

    approved_by: Optional[str] = None
    approval_note: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "user_id": "sbu-jatim",
                "file_name": "laporan_mei.xlsx",
                "indicator_type": "skoring-publikasi-media",
                "status": "pending_approval",
                "calculated_score": 14.5,
                "rejection_reason": None,
                "video_hashes": ["9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08"],
                "created_at": "2024-05-02T08:00:00Z",
                "updated_at": "2024-05-02T08:01:10Z"
            }
        }


class ReportSummary(BaseModel):
    """Report row for list views (no payloads)"""
    id: UUID
    user_id: str
    file_name: str
    indicator_type: str
    status: ReportStatus
    calculated_score: Optional[float] = None
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


class ReportListResponse(BaseModel):
    reports: List[ReportSummary]
    total: int
    filters_applied: Dict[str, Any] = Field(default_factory=dict)


class MediaItemResponse(BaseModel):
    """One processed link"""
    position: int
    row_number: Optional[int] = None
    original_url: str
    final_url: Optional[str] = None
    normalized_url: Optional[str] = None
    media_type: MediaType
    content_hash: Optional[str] = None
    is_valid: bool
    is_duplicate: bool
    validation_error: Optional[str] = None
    extra_metadata: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class MediaItemListResponse(BaseModel):
    report_id: UUID
    items: List[MediaItemResponse]
    total: int


# ============================================================================
# Admin Decision Schemas
# ============================================================================

class ApprovalRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=2000)


class RejectionRequest(BaseModel):
    reason: str = Field(..., max_length=2000)


# ============================================================================
# Worker Schemas
# ============================================================================

class WorkerRunRequest(BaseModel):
    """Run one batch, or a single report when report_id is given"""
    report_id: Optional[UUID] = None


class WorkerRunResponse(BaseModel):
    reports_found: int = 0
    reports_processed: int = 0
    reports_skipped: int = 0
    outcomes: Dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    scheduler_enabled: bool = False
    scheduler_running: bool = False
    reports_by_status: Dict[str, int] = Field(default_factory=dict)
    # Declared last so the validator sees every other field
    status: Optional[str] = Field(None, description="Overall system status: healthy, degraded, unhealthy")

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"

        if values.get("scheduler_enabled") and not values.get("scheduler_running"):
            return "degraded"

        return "healthy"

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "scheduler_enabled": True,
                "scheduler_running": True,
                "reports_by_status": {"queued": 2, "pending_approval": 5, "completed": 40}
            }
        }


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "InvalidStateError",
                "detail": "Cannot approve report 550e8400-...: status is completed, expected pending_approval",
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }
