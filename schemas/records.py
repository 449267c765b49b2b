"""
Pydantic schemas for records flowing through the report pipeline.

Stages:
    extract   -> ExtractedRow
    transform -> MediaLinkRecord | TargetRealizationRecord (tagged by ``kind``)
    resolve   -> LinkResolution
    hash      -> LinkFingerprint
    dedupe    -> DuplicateFinding / DuplicateReport
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any, Union, Literal
from models.base import MediaType


# ============================================================================
# Extraction
# ============================================================================

class ExtractedRow(BaseModel):
    """One spreadsheet data row after column mapping."""
    row_number: int = Field(..., ge=2, description="1-based sheet row, header is row 1")
    fields: Dict[str, Any] = Field(default_factory=dict)
    additional_data: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Domain records
# ============================================================================

class LinkRef(BaseModel):
    """A link found in a row, tagged with the media channel of its column."""
    url: str = Field(..., min_length=1)
    media_type: MediaType
    field: str

    @validator("url")
    def strip_url(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("URL cannot be empty after stripping")
        return v


class MediaLinkRecord(BaseModel):
    """Row of a media-links indicator: every link it contains, in column order."""
    kind: Literal["media_links"] = "media_links"
    row_number: int
    links: List[LinkRef] = Field(default_factory=list)
    fields: Dict[str, Any] = Field(default_factory=dict)
    additional_data: Dict[str, Any] = Field(default_factory=dict)


class TargetRealizationRecord(BaseModel):
    """Row of a target/realization indicator."""
    kind: Literal["target_realization"] = "target_realization"
    row_number: int
    indikator: str = ""
    target: float = 0.0
    realisasi: float = 0.0
    percentage: float = 0.0
    links: List[LinkRef] = Field(default_factory=list)
    additional_data: Dict[str, Any] = Field(default_factory=dict)


DomainRecord = Union[MediaLinkRecord, TargetRealizationRecord]


# ============================================================================
# Link resolution and fingerprints
# ============================================================================

class LinkResolution(BaseModel):
    """
    Result of fetching one link.

    The body is never kept: only its SHA-256 digest and size. A failed fetch
    is still a LinkResolution: status_code 0, empty content_hash, final_url
    equal to the original URL and the failure message in ``error``.
    """
    original_url: str
    request_url: str
    final_url: str
    status_code: int = 0
    content_hash: str = ""
    content_length: int = 0
    truncated: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status_code < 400

    @property
    def validation_error(self) -> Optional[str]:
        if self.error:
            return self.error
        if self.status_code >= 400:
            return f"HTTP {self.status_code}"
        return None


class LinkFingerprint(BaseModel):
    """A resolved and hashed link of the report being processed."""
    position: int
    row_number: int
    original_url: str
    final_url: str
    normalized_url: str
    media_type: MediaType
    content_hash: str = ""
    status_code: int = 0
    is_valid: bool = False
    validation_error: Optional[str] = None


class ExistingFingerprints(BaseModel):
    """Snapshot of every other report's fingerprints, keyed to the owning report ids."""
    urls: Dict[str, List[str]] = Field(default_factory=dict)
    content_hashes: Dict[str, List[str]] = Field(default_factory=dict)


class DuplicateFinding(BaseModel):
    """Duplicate verdict for one link, by position in the report's link list."""
    position: int
    is_duplicate_url: bool = False
    is_duplicate_content: bool = False
    duplicate_of_reports: List[str] = Field(default_factory=list)

    @property
    def is_duplicate(self) -> bool:
        return self.is_duplicate_url or self.is_duplicate_content

    @property
    def is_cross_report(self) -> bool:
        return bool(self.duplicate_of_reports)


class DuplicateReport(BaseModel):
    """Outcome of duplicate detection for a whole report."""
    findings: List[DuplicateFinding] = Field(default_factory=list)

    @property
    def has_duplicates(self) -> bool:
        return any(f.is_duplicate for f in self.findings)

    @property
    def has_cross_report_duplicates(self) -> bool:
        return any(f.is_cross_report for f in self.findings)

    @property
    def duplicate_report_ids(self) -> List[str]:
        """Offending report ids in first-seen order."""
        ids: List[str] = []
        for finding in self.findings:
            for report_id in finding.duplicate_of_reports:
                if report_id not in ids:
                    ids.append(report_id)
        return ids

    def finding_for(self, position: int) -> DuplicateFinding:
        for finding in self.findings:
            if finding.position == position:
                return finding
        return DuplicateFinding(position=position)


# ============================================================================
# Uploaded sheet
# ============================================================================

class SheetGrid(BaseModel):
    """First worksheet of an upload: header row plus data rows, JSON-safe cells."""
    headers: List[str] = Field(default_factory=list)
    rows: List[List[Any]] = Field(default_factory=list)


# ============================================================================
# Processed items
# ============================================================================

class ProcessedItem(BaseModel):
    """A link ready to persist as a ProcessedMediaItem and to score."""
    position: int
    row_number: Optional[int] = None
    original_url: str
    final_url: Optional[str] = None
    normalized_url: Optional[str] = None
    media_type: MediaType
    content_hash: Optional[str] = None
    is_valid: bool = False
    is_duplicate: bool = False
    validation_error: Optional[str] = None
    extra_metadata: Dict[str, Any] = Field(default_factory=dict)

    @validator("extra_metadata", pre=True)
    def clean_extra_metadata(cls, v):
        """Ensure metadata is a dict"""
        if not isinstance(v, dict):
            return {}
        return v

    @property
    def is_usable(self) -> bool:
        return self.is_valid and not self.is_duplicate

    class Config:
        from_attributes = True


def parse_record(data: Dict[str, Any]) -> DomainRecord:
    """Rebuild a stored record from its ``kind`` tag."""
    if data.get("kind") == "target_realization":
        return TargetRealizationRecord(**data)
    return MediaLinkRecord(**data)
