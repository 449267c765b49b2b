import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from core.config import settings
from core.logging import setup_logging
# Importing the package registers every model on Base.metadata
from models import Base
from ingestion.kpi_catalog import default_kpis
from ingestion.loaders.report_store import ReportStore

setup_logging()
logger = logging.getLogger(__name__)


async def init_database(seed_kpis: bool = True):
    logger.info("Connecting to database...")
    engine = create_async_engine(settings.DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        logger.info("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables created successfully.")

    if seed_kpis:
        store = ReportStore(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
        existing = {k.code for k in await store.load_kpis(active_only=False)}
        for kpi in default_kpis():
            if kpi.code in existing:
                logger.info(f"KPI {kpi.code} already configured, leaving it unchanged")
                continue
            await store.save_kpi(kpi)
        logger.info("Default KPI catalog seeded.")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_database(seed_kpis="--no-seed" not in sys.argv))
