"""
Pytest configuration and fixtures
"""

import os

# Must be set before core.config is imported
os.environ.setdefault("WORKER_SCHEDULER_ENABLED", "false")

import csv
import io
from typing import AsyncGenerator, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from models import Base
from ingestion.extractors.link_resolver import LinkResolver
from ingestion.kpi_catalog import default_kpis
from ingestion.loaders.object_storage import LocalObjectStorage
from ingestion.loaders.report_store import ReportStore
from ingestion.notifications import NotificationSink
from ingestion.runner import ReportPipeline
from ingestion.upload import ReportUploadService
from ingestion.approval import ApprovalService

MEDIA_HEADERS = ["No", "Link Berita Media Online", "Link Media Sosial", "Monitoring Radio"]


class RecordingNotifier(NotificationSink):
    """In-memory notification sink"""

    def __init__(self):
        self.sent = []

    async def notify(self, user_id, notification_type, title, message, related_report_id=None):
        self.sent.append({
            "user_id": user_id,
            "type": notification_type,
            "title": title,
            "message": message,
            "related_report_id": str(related_report_id) if related_report_id else None,
        })

    def types_for(self, report_id) -> List[str]:
        return [n["type"] for n in self.sent if n["related_report_id"] == str(report_id)]


class MediaServer:
    """
    Fake link host for httpx.MockTransport.

    pages maps a full URL to (status_code, body), or to an exception instance
    to raise. ("redirect", location) answers 302. Unknown URLs answer 404.
    """

    def __init__(self):
        self.pages: Dict[str, object] = {}
        self.requests: List[str] = []

    def add(self, url: str, body: bytes = b"", status_code: int = 200):
        self.pages[url] = (status_code, body)

    def redirect(self, url: str, location: str):
        self.pages[url] = ("redirect", location)

    def fail(self, url: str, error: Exception):
        self.pages[url] = error

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if request.url.scheme not in ("http", "https"):
            raise httpx.UnsupportedProtocol("Request URL is missing a protocol", request=request)
        page = self.pages.get(url)

        if page is None:
            return httpx.Response(404, content=b"not found")
        if isinstance(page, Exception):
            raise page
        if page[0] == "redirect":
            return httpx.Response(302, headers={"Location": page[1]})
        status_code, body = page
        return httpx.Response(status_code, content=body)


def make_csv(headers: List[str], rows: List[List[object]]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue().encode("utf-8")


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine (SQLite file per test)"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'reports.db'}",
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def store(session_factory) -> ReportStore:
    return ReportStore(session_factory)


@pytest_asyncio.fixture
async def seeded_store(store) -> ReportStore:
    """Store with the default KPI catalog"""
    for kpi in default_kpis():
        await store.save_kpi(kpi)
    return store


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def media_server() -> MediaServer:
    return MediaServer()


@pytest.fixture
def resolver(media_server) -> LinkResolver:
    return LinkResolver(
        timeout=5,
        max_retries=0,
        retry_delay=0,
        concurrency=2,
        transport=httpx.MockTransport(media_server.handler),
    )


@pytest.fixture
def storage(tmp_path) -> LocalObjectStorage:
    return LocalObjectStorage(str(tmp_path / "storage"))


@pytest.fixture
def pipeline(seeded_store, notifier, resolver) -> ReportPipeline:
    return ReportPipeline(seeded_store, notifier, resolver=resolver, batch_size=5, lease_minutes=15)


@pytest.fixture
def approval(seeded_store, notifier, pipeline) -> ApprovalService:
    return ApprovalService(seeded_store, notifier, pipeline)


@pytest.fixture
def upload_report(seeded_store, storage, notifier):
    """Upload a CSV built from headers + rows and return the queued report"""
    service = ReportUploadService(seeded_store, storage, notifier)

    async def upload(
        rows: List[List[object]],
        headers: Optional[List[str]] = None,
        indicator_type: str = "skoring-publikasi-media",
        user_id: str = "sbu-jatim",
        file_name: str = "laporan.csv"
    ):
        content = make_csv(headers or MEDIA_HEADERS, rows)
        return await service.upload(file_name, content, indicator_type, user_id, "text/csv")

    return upload
