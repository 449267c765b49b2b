import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import settings
from ingestion.runner import ReportPipeline

logger = logging.getLogger(__name__)


class ReportWorkerScheduler:
    """Runs ReportPipeline.process_queued on a fixed interval."""

    def __init__(self, pipeline: ReportPipeline, interval_seconds: int = None):
        self.pipeline = pipeline
        self.interval_seconds = interval_seconds or settings.WORKER_INTERVAL_SECONDS
        self.scheduler = AsyncIOScheduler()

    async def run_worker_job(self):
        """Job to process one batch of queued reports"""
        logger.info("Scheduler: Starting report worker job")
        try:
            result = await self.pipeline.process_queued()
            logger.info(
                f"Scheduler: Worker job finished - {result['reports_processed']} processed, "
                f"{result['reports_skipped']} skipped"
            )
        except Exception as e:
            # Next tick retries; stale claims are recovered through the lease
            logger.error(f"Scheduler: Worker job failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_worker_job,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="report_worker_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        logger.info(f"Report worker scheduler started (every {self.interval_seconds}s)")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Report worker scheduler stopped")
