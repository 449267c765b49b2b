"""
Custom exceptions for the report pipeline with structured error context.

Every exception carries a human-readable message (persisted verbatim as a
report's rejection reason), a context dictionary for logs, and the original
exception when one was caught.

Exception Hierarchy:
    PipelineError (base)
    ├── ExtractionError
    │   ├── SchemaError
    │   └── LinkResolutionFailure
    ├── DuplicateViolation
    ├── ScoringError
    │   └── ScoringConfigError
    ├── StoreError
    │   ├── StoreUnavailableError (retryable)
    │   ├── ReportNotFoundError
    │   └── LeaseLostError
    ├── WorkflowError
    │   ├── InvalidStateError
    │   └── InvalidDecisionError
    ├── InvalidUploadError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any, List
from datetime import datetime


class PipelineError(Exception):
    """
    Base exception for all report pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (report id, stage, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(PipelineError):
    """
    Mixin for errors caused by transient conditions.

    Use this for:
    - Network timeouts and unreachable hosts
    - Temporary database connection issues
    """
    pass


class NonRetryableError(PipelineError):
    """
    Mixin for errors that will fail the same way on every attempt.

    Use this for:
    - Spreadsheets missing required columns
    - Invalid KPI configuration
    - Illegal workflow transitions
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(PipelineError):
    """Base exception for spreadsheet and link extraction failures."""
    pass


class SchemaError(NonRetryableError, ExtractionError):
    """
    Raised when a sheet does not satisfy its indicator's column requirements.

    Context should include:
        - indicator_type: Indicator being extracted
        - found_fields: Canonical fields that were mapped
        - expected_fields: Canonical fields the indicator knows about
        - min_fields: Minimum number of fields required
    """
    pass


class LinkResolutionFailure(RetryableError, ExtractionError):
    """
    A single link could not be fetched.

    Never raised out of the link resolver: it is recorded on the processed
    item as data so one bad link cannot abort the batch.

    Context should include:
        - url: The URL that was requested
        - timeout: Configured timeout in seconds
    """
    pass


# ============================================================================
# Duplicate Errors
# ============================================================================

class DuplicateViolation(NonRetryableError):
    """
    Raised when a report reuses links or content from other reports.

    Attributes:
        report_ids: Ids of the reports whose fingerprints were matched
    """

    def __init__(
        self,
        message: str,
        report_ids: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message, context, original_exception)
        self.report_ids = report_ids or []
        self.context["duplicate_report_ids"] = self.report_ids


# ============================================================================
# Scoring Errors
# ============================================================================

class ScoringError(PipelineError):
    """Base exception for scoring failures."""
    pass


class ScoringConfigError(NonRetryableError, ScoringError):
    """
    KPI definitions or scoring ranges are inconsistent.

    This is a configuration bug: administrators must fix the KPI catalog,
    resubmitting the report will not help.

    Context should include:
        - kpi_code: KPI whose configuration is invalid
        - achievement_percentage: Percentage that could not be scored (if any)
    """
    pass


# ============================================================================
# Store Errors
# ============================================================================

class StoreError(PipelineError):
    """
    Raised when the report store or object storage cannot serve a request.

    Context should include:
        - operation: Store operation that failed
        - report_id: Report being read or written (if applicable)
    """
    pass


class StoreUnavailableError(RetryableError, StoreError):
    """The database or storage backend failed; the same call may succeed later."""
    pass


class ReportNotFoundError(NonRetryableError, StoreError):
    """Report id does not exist."""
    pass


class LeaseLostError(NonRetryableError, StoreError):
    """
    The worker's claim on a processing report expired or was taken over.

    Context should include:
        - report_id: Report whose lease was lost
        - stage: Pipeline stage that noticed the loss
    """
    pass


# ============================================================================
# Workflow Errors
# ============================================================================

class WorkflowError(PipelineError):
    """Base exception for admin decision failures."""
    pass


class InvalidStateError(NonRetryableError, WorkflowError):
    """
    Raised when a transition is requested from a status that does not allow it.

    Context should include:
        - report_id: Report the transition was requested for
        - current_status: Status the report is in
        - required_status: Status the transition requires
    """
    pass


class InvalidDecisionError(NonRetryableError, WorkflowError):
    """Raised when an admin decision is missing required input (e.g. a reason)."""
    pass


# ============================================================================
# Upload Errors
# ============================================================================

class InvalidUploadError(NonRetryableError):
    """
    Raised when an upload is rejected at the boundary.

    Context should include:
        - file_name: Name of the uploaded file
        - file_size: Size in bytes (if applicable)
        - indicator_type: Requested indicator type
    """
    pass
