"""
Duplicate detection across a report's own links and the whole report corpus.

Two independent axes; a link is a duplicate if either triggers:

- URL: the normalized final URL repeats within the report (second and later
  occurrences) or belongs to another report's accepted items
- Content: a non-empty content hash was seen earlier in the report or is in
  another report's video_hashes

Cross-report duplicates reject the whole report (DuplicateViolation).
Repeats inside the report only flag the repeated items.
"""

from typing import List
from schemas.records import (
    DuplicateFinding,
    DuplicateReport,
    ExistingFingerprints,
    LinkFingerprint,
)
from core.exceptions import DuplicateViolation, StoreError, StoreUnavailableError
import logging

logger = logging.getLogger(__name__)


def _merge_ids(target: List[str], ids: List[str]) -> None:
    for report_id in ids:
        if report_id not in target:
            target.append(report_id)


def compare_fingerprints(
    current: List[LinkFingerprint],
    existing: ExistingFingerprints
) -> DuplicateReport:
    """
    Compare the current report's fingerprints against a snapshot of the others.

    Pure function. Findings are returned in link order, one per fingerprint.
    """
    seen_urls = set()
    seen_hashes = set()
    findings = []

    for fp in sorted(current, key=lambda f: f.position):
        duplicate_of: List[str] = []

        url_key = fp.normalized_url
        cross_url = existing.urls.get(url_key, []) if url_key else []
        is_duplicate_url = bool(url_key) and (url_key in seen_urls or bool(cross_url))
        _merge_ids(duplicate_of, cross_url)
        if url_key:
            seen_urls.add(url_key)

        is_duplicate_content = False
        if fp.content_hash:
            cross_content = existing.content_hashes.get(fp.content_hash, [])
            is_duplicate_content = fp.content_hash in seen_hashes or bool(cross_content)
            _merge_ids(duplicate_of, cross_content)
            seen_hashes.add(fp.content_hash)

        findings.append(DuplicateFinding(
            position=fp.position,
            is_duplicate_url=is_duplicate_url,
            is_duplicate_content=is_duplicate_content,
            duplicate_of_reports=duplicate_of,
        ))

    return DuplicateReport(findings=findings)


class DuplicateDetector:
    """
    Reads the existing-fingerprint snapshot from the store and compares.

    The snapshot must be read after every link of the current report has been
    fingerprinted. A store failure is a hard failure: skipping detection would
    let duplicates through silently.
    """

    def __init__(self, store):
        self.store = store

    async def detect(self, fingerprints: List[LinkFingerprint], exclude_report_id) -> DuplicateReport:
        urls = sorted({fp.normalized_url for fp in fingerprints if fp.normalized_url})
        hashes = sorted({fp.content_hash for fp in fingerprints if fp.content_hash})

        try:
            existing = await self.store.load_existing_fingerprints(
                exclude_report_id=exclude_report_id,
                urls=urls,
                content_hashes=hashes,
            )
        except StoreError:
            raise
        except Exception as e:
            raise StoreUnavailableError(
                "Failed to read existing fingerprints for duplicate detection",
                context={"operation": "load_existing_fingerprints", "report_id": str(exclude_report_id)},
                original_exception=e
            )

        report = compare_fingerprints(fingerprints, existing)

        duplicates = [f for f in report.findings if f.is_duplicate]
        logger.info(
            f"Duplicate check for report {exclude_report_id}: "
            f"{len(duplicates)}/{len(report.findings)} links flagged, "
            f"cross-report matches: {report.duplicate_report_ids or 'none'}"
        )
        return report

    @staticmethod
    def enforce(report: DuplicateReport) -> None:
        """
        Apply the report-level policy.

        Raises:
            DuplicateViolation: Any link duplicates another report
        """
        if not report.has_cross_report_duplicates:
            return

        offending = [f for f in report.findings if f.is_cross_report]
        report_ids = report.duplicate_report_ids
        raise DuplicateViolation(
            f"Duplicate media found in existing reports: {', '.join(report_ids)} "
            f"({len(offending)} link(s) already submitted)",
            report_ids=report_ids,
            context={"duplicate_positions": [f.position for f in offending]}
        )
