"""
Script to process one batch of queued reports (or a single report by id)
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import async_session_maker, engine
from core.exceptions import PipelineError
from core.logging import setup_logging
from ingestion.loaders.report_store import ReportStore
from ingestion.notifications import DatabaseNotificationSink
from ingestion.runner import ReportPipeline

setup_logging()
logger = logging.getLogger(__name__)


async def run_worker(report_id: str = None) -> int:
    """Run the worker once. Returns a process exit code."""
    pipeline = ReportPipeline(
        ReportStore(async_session_maker),
        DatabaseNotificationSink(async_session_maker),
    )

    try:
        if report_id:
            outcome = await pipeline.process_report(report_id)
            logger.info(f"Report {report_id}: {outcome.value if outcome else 'not processed'}")
        else:
            result = await pipeline.process_queued()
            logger.info("=" * 60)
            logger.info("Worker run summary")
            logger.info("=" * 60)
            logger.info(f"Reports found:     {result['reports_found']}")
            logger.info(f"Reports processed: {result['reports_processed']}")
            logger.info(f"Reports skipped:   {result['reports_skipped']}")
            for rid, status in result["outcomes"].items():
                logger.info(f"  {rid}: {status}")
        return 0

    except PipelineError as e:
        logger.error(f"Worker run failed: {e.message}", extra={"error_context": e.to_dict()})
        return 1

    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Process queued reports")
    parser.add_argument("--report-id", help="Process (or finalize) a single report")
    args = parser.parse_args()

    sys.exit(asyncio.run(run_worker(args.report_id)))
