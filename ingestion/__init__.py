"""
Report intake pipeline components.

This package contains everything between an uploaded spreadsheet and a
scored, admin-approved report:

Modules:
    indicators: Indicator registry (canonical fields, aliases, minimum fields)
    upload: Upload boundary that validates files and queues reports
    runner: Pipeline orchestrator and report status state machine
    duplicates: URL and content duplicate detection
    scoring: KPI scoring with percentage bands
    kpi_catalog: Default KPI catalog
    approval: Admin approve/reject boundary
    notifications: Notification sink for lifecycle events
    scheduler: APScheduler integration for the worker

Subpackages:
    extractors: Spreadsheet reader, column mapper, link resolver
    transformers: Record transformer, URL normalization and content hashing
    loaders: Report store and object storage

Architecture:
    The pipeline runs per report in stages:

    1. Extract - Map header columns to canonical fields
    2. Transform - Build typed records per indicator family
    3. Resolve - Fetch every link and fingerprint its content
    4. Dedupe - Compare fingerprints against other reports
    5. Score - Apply the indicator's KPI bands

    Each report ends in exactly one terminal or approval state.

Usage:
    from ingestion.runner import ReportPipeline
    from ingestion.loaders.report_store import ReportStore
    from ingestion.notifications import DatabaseNotificationSink

    store = ReportStore(async_session_maker)
    pipeline = ReportPipeline(store, DatabaseNotificationSink(async_session_maker))
    result = await pipeline.process_queued()

Error Handling:
    All components raise exceptions from core.exceptions; the runner maps
    them to a report's failure reason.
"""

__all__ = [
    "ReportPipeline",
    "ReportUploadService",
    "ApprovalService",
    "ReportWorkerScheduler",
]
