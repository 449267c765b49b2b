"""
Core utilities and configuration for the report scoring backend.

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factory
    exceptions: Exception hierarchy for the report pipeline
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import SchemaError, ScoringConfigError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    # Exceptions
    "PipelineError",
    "RetryableError",
    "NonRetryableError",
    "ExtractionError",
    "SchemaError",
    "LinkResolutionFailure",
    "DuplicateViolation",
    "ScoringError",
    "ScoringConfigError",
    "StoreError",
    "StoreUnavailableError",
    "ReportNotFoundError",
    "LeaseLostError",
    "WorkflowError",
    "InvalidStateError",
    "InvalidDecisionError",
    "InvalidUploadError",
]
