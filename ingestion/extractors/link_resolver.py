"""
Link resolver: fetch submitted media links so their content can be hashed.

This module provides:
- Rewriting of cloud-storage share links into direct-download URLs
- Redirect-following GET with a browser-like User-Agent
- A hard per-link timeout and a cap on downloaded bytes
- Streaming SHA-256 of the body (content is hashed, never buffered)
- Retry with exponential backoff for timeouts and network errors
- Bounded concurrency across the links of one report

A link that cannot be fetched is not an error for the report. The resolver
never raises: failures come back as a LinkResolution with status_code 0,
an empty content_hash and the failure message, and are stored on the item.
"""

import asyncio
import re
from typing import List, Optional, Sequence, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
import httpx
from ingestion.transformers.fingerprint import ContentHasher
from schemas.records import LinkResolution
from core.config import settings
from core.exceptions import LinkResolutionFailure
import logging

logger = logging.getLogger(__name__)

# Status code recorded for links that produced no HTTP response at all
FAILED_STATUS_CODE = 0

DRIVE_FILE_PATTERN = re.compile(r"drive\.google\.com/file/d/([^/?#]+)", re.IGNORECASE)
DRIVE_OPEN_PATTERN = re.compile(r"drive\.google\.com/open\?(?:[^#]*&)?id=([^&#]+)", re.IGNORECASE)
DRIVE_DOWNLOAD_URL = "https://drive.google.com/uc?export=download&id={file_id}"

CLOUD_STORAGE_HOSTS = (
    "drive.google.com",
    "docs.google.com",
    "dropbox.com",
    "sharepoint.com",
    "onedrive.live.com",
    "1drv.ms",
)


def _host(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def is_cloud_storage_link(url: str) -> bool:
    """True for links hosted on a known cloud-storage service."""
    host = _host(url)
    return bool(host) and any(_host_matches(host, domain) for domain in CLOUD_STORAGE_HOSTS)


def _with_query_param(url: str, key: str, value: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != key]
    query.append((key, value))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def rewrite_share_link(url: str) -> str:
    """
    Rewrite a known share/viewer link into its direct-content form.

    - Google Drive /file/d/<id>/view and open?id=<id> -> uc?export=download&id=<id>
    - Dropbox ?dl=0 (or no dl) -> ?dl=1
    - SharePoint / OneDrive share links -> download=1

    Anything else is returned unchanged. Pure string transform.
    """
    match = DRIVE_FILE_PATTERN.search(url) or DRIVE_OPEN_PATTERN.search(url)
    if match:
        return DRIVE_DOWNLOAD_URL.format(file_id=match.group(1))

    host = _host(url)
    if not host:
        return url

    if _host_matches(host, "dropbox.com"):
        return _with_query_param(url, "dl", "1")

    if _host_matches(host, "sharepoint.com") or _host_matches(host, "onedrive.live.com"):
        return _with_query_param(url, "download", "1")

    return url


class LinkResolver:
    """
    Resolve links over HTTP.

    Attributes:
        timeout: Hard limit in seconds for one fetch attempt (default: LINK_TIMEOUT_SECONDS)
        max_retries: Extra attempts after a timeout or network error
        retry_delay: Initial retry delay in seconds, doubled per attempt
        max_content_bytes: Bytes read per link before the body is truncated
        concurrency: Links of one report fetched at the same time
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        max_content_bytes: Optional[int] = None,
        concurrency: Optional[int] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.timeout = timeout if timeout is not None else settings.LINK_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.LINK_MAX_RETRIES
        self.retry_delay = retry_delay if retry_delay is not None else settings.LINK_RETRY_DELAY_SECONDS
        self.max_content_bytes = max_content_bytes or settings.LINK_MAX_CONTENT_BYTES
        self.concurrency = max(1, concurrency or settings.LINK_CONCURRENCY)
        self.user_agent = user_agent or settings.LINK_USER_AGENT
        self.transport = transport

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(self.timeout),
            headers={"User-Agent": self.user_agent, "Accept": "*/*"},
            transport=self.transport,
        )

    async def resolve(self, url: str, client: Optional[httpx.AsyncClient] = None) -> LinkResolution:
        """Resolve one link. Never raises."""
        if client is None:
            async with self._build_client() as own_client:
                return await self._resolve(url, own_client)
        return await self._resolve(url, client)

    async def resolve_many(self, urls: Sequence[str]) -> List[LinkResolution]:
        """Resolve links concurrently (bounded). Results keep input order."""
        if not urls:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)

        async with self._build_client() as client:
            async def bounded(url: str) -> LinkResolution:
                async with semaphore:
                    return await self._resolve(url, client)

            results = await asyncio.gather(*(bounded(url) for url in urls))

        failed = sum(1 for r in results if not r.ok)
        logger.info(f"Resolved {len(results)} links ({failed} not reachable or HTTP error)")
        return list(results)

    async def _resolve(self, url: str, client: httpx.AsyncClient) -> LinkResolution:
        request_url = rewrite_share_link(url.strip())

        try:
            final_url, status_code, hasher, truncated = await self._fetch_with_retry(client, request_url)
        except LinkResolutionFailure as e:
            logger.warning(
                f"Link could not be resolved: {url} ({e.message})",
                extra={"error_context": e.to_dict()}
            )
            return LinkResolution(
                original_url=url,
                request_url=request_url,
                final_url=url,
                status_code=FAILED_STATUS_CODE,
                error=e.message,
            )

        logger.debug(f"{url} -> {final_url} [{status_code}] {hasher.size} bytes")
        return LinkResolution(
            original_url=url,
            request_url=request_url,
            final_url=final_url,
            status_code=status_code,
            content_hash=hasher.hexdigest(),
            content_length=hasher.size,
            truncated=truncated,
        )

    async def _fetch_with_retry(
        self, client: httpx.AsyncClient, url: str
    ) -> Tuple[str, int, ContentHasher, bool]:
        """
        Fetch with retries on timeouts and network errors.

        Raises:
            LinkResolutionFailure: The link produced no HTTP response
        """
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            try:
                return await asyncio.wait_for(self._fetch(client, url), timeout=self.timeout)

            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                reason = f"Timed out after {self.timeout:g}s"
                last_error: Exception = e

            except httpx.NetworkError as e:
                reason = f"Network error: {e or type(e).__name__}"
                last_error = e

            except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
                raise LinkResolutionFailure(
                    f"Invalid URL: {e}",
                    context={"url": url},
                    original_exception=e
                )

            except httpx.HTTPError as e:
                raise LinkResolutionFailure(
                    f"{type(e).__name__}: {e}",
                    context={"url": url},
                    original_exception=e
                )

            except Exception as e:
                raise LinkResolutionFailure(
                    f"Unexpected error: {type(e).__name__}: {e}",
                    context={"url": url},
                    original_exception=e
                )

            if attempt < attempts - 1:
                delay = self.retry_delay * (2 ** attempt)
                logger.debug(f"{reason} for {url}. Retrying in {delay}s (attempt {attempt + 1}/{attempts})")
                await asyncio.sleep(delay)

        raise LinkResolutionFailure(
            reason,
            context={"url": url, "timeout": self.timeout, "attempts": attempts},
            original_exception=last_error
        )

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> Tuple[str, int, ContentHasher, bool]:
        hasher = ContentHasher()
        async with client.stream("GET", url) as response:
            final_url = str(response.url)

            # Error responses carry no content to fingerprint
            if response.status_code >= 400:
                return final_url, response.status_code, hasher, False

            # Chunks are hashed and dropped; the body is never held in memory
            async for chunk in response.aiter_bytes():
                remaining = self.max_content_bytes - hasher.size
                if len(chunk) > remaining:
                    hasher.update(chunk[:remaining])
                    logger.warning(f"Content of {url} truncated at {self.max_content_bytes} bytes")
                    return final_url, response.status_code, hasher, True
                hasher.update(chunk)

            return final_url, response.status_code, hasher, False
