"""
Upload boundary: validate an uploaded spreadsheet and queue it as a report
"""

from datetime import datetime, timezone
from pathlib import PurePath
from typing import Optional
import re
import uuid
from ingestion.indicators import INDICATORS
from ingestion.extractors.spreadsheet_reader import read_spreadsheet
from ingestion.loaders.object_storage import ObjectStorage
from ingestion.loaders.report_store import ReportStore
from ingestion.notifications import NotificationSink, NotificationType
from models.report import Report
from core.config import settings
from core.exceptions import InvalidUploadError, SchemaError
import logging

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
    "text/csv",
    "application/csv",
    "application/octet-stream",
}

UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ReportUploadService:
    """
    Accept an upload and create a queued report.

    Checks, in order: indicator type, extension, MIME type, empty file, size
    ceiling, readable first worksheet. The parsed sheet grid is stored in the
    report's raw_data so the worker never reads the file back.
    """

    def __init__(
        self,
        store: ReportStore,
        storage: ObjectStorage,
        notifier: NotificationSink,
        max_upload_bytes: Optional[int] = None
    ):
        self.store = store
        self.storage = storage
        self.notifier = notifier
        self.max_upload_bytes = max_upload_bytes or settings.MAX_UPLOAD_BYTES

    async def upload(
        self,
        file_name: str,
        content: bytes,
        indicator_type: str,
        user_id: str,
        content_type: Optional[str] = None
    ) -> Report:
        """
        Raises:
            InvalidUploadError: The file or indicator type is not acceptable
            StoreError: The file or report could not be stored
        """
        context = {
            "file_name": file_name,
            "file_size": len(content) if content is not None else 0,
            "indicator_type": indicator_type,
        }

        if indicator_type not in INDICATORS:
            raise InvalidUploadError(f"Unknown indicator type '{indicator_type}'", context=context)

        extension = PurePath(file_name or "").suffix.lower()
        if extension not in settings.ALLOWED_UPLOAD_EXTENSIONS:
            raise InvalidUploadError(
                f"File type '{extension or file_name}' is not supported; "
                f"upload one of {', '.join(settings.ALLOWED_UPLOAD_EXTENSIONS)}",
                context=context
            )

        if content_type:
            mime = content_type.split(";")[0].strip().lower()
            if mime not in ALLOWED_CONTENT_TYPES:
                raise InvalidUploadError(f"Content type '{mime}' is not a spreadsheet", context=context)

        if not content:
            raise InvalidUploadError("Uploaded file is empty", context=context)

        if len(content) > self.max_upload_bytes:
            raise InvalidUploadError(
                f"File is {len(content)} bytes; the limit is {self.max_upload_bytes} bytes",
                context={**context, "max_upload_bytes": self.max_upload_bytes}
            )

        try:
            sheet = read_spreadsheet(content, file_name)
        except SchemaError as e:
            raise InvalidUploadError(e.message, context=context, original_exception=e)

        if not sheet.headers:
            raise InvalidUploadError("Spreadsheet has no data", context=context)

        now = datetime.utcnow()
        report_id = uuid.uuid4()
        path = self.storage_path(user_id, file_name, now)
        await self.storage.put(path, content, content_type or "application/octet-stream")

        raw_data = {
            "file_name": file_name,
            "file_size": len(content),
            "upload_date": now.isoformat(),
            "indicator_type": indicator_type,
            "sheet": sheet.model_dump(),
        }
        report = await self.store.create_report(
            user_id=user_id,
            file_name=file_name,
            file_path=path,
            indicator_type=indicator_type,
            raw_data=raw_data,
            report_id=report_id,
        )

        await self.notifier.notify(
            user_id,
            NotificationType.REPORT_RECEIVED,
            "Laporan Diterima",
            f'Laporan "{file_name}" berhasil diunggah dan masuk antrian pemrosesan.',
            report.id,
        )
        return report

    @staticmethod
    def storage_path(user_id: str, file_name: str, when: datetime) -> str:
        """
        uploads/{userId}/{timestamp}_{filename}

        ``when`` is naive UTC (datetime.utcnow()); timestamp is epoch milliseconds.
        """
        safe_user = UNSAFE_FILENAME_CHARS.sub("_", str(user_id)) or "anonymous"
        safe_name = UNSAFE_FILENAME_CHARS.sub("_", PurePath(file_name).name) or "upload"
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        timestamp = int(when.timestamp() * 1000)
        return f"uploads/{safe_user}/{timestamp}_{safe_name}"
