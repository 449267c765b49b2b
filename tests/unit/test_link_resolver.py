"""
Unit tests for the link resolver (httpx.MockTransport, no network)
"""

import asyncio
import httpx
import pytest
from ingestion.transformers.fingerprint import hash_content
from ingestion.extractors.link_resolver import (
    FAILED_STATUS_CODE,
    LinkResolver,
    is_cloud_storage_link,
    rewrite_share_link,
)


def build_resolver(handler, **kwargs) -> LinkResolver:
    options = {"timeout": 5, "max_retries": 0, "retry_delay": 0, "concurrency": 2}
    options.update(kwargs)
    return LinkResolver(transport=httpx.MockTransport(handler), **options)


class TestShareLinks:
    """Share-link rewriting"""

    @pytest.mark.parametrize("url", [
        "https://drive.google.com/file/d/1AbC_d-9/view?usp=sharing",
        "https://drive.google.com/open?id=1AbC_d-9",
    ])
    def test_google_drive_links_become_direct_downloads(self, url):
        assert rewrite_share_link(url) == "https://drive.google.com/uc?export=download&id=1AbC_d-9"

    def test_dropbox_link_forces_download(self):
        assert rewrite_share_link("https://www.dropbox.com/s/abc/video.mp4?dl=0") == \
            "https://www.dropbox.com/s/abc/video.mp4?dl=1"

    def test_sharepoint_link_gets_download_flag(self):
        rewritten = rewrite_share_link("https://pertamina.sharepoint.com/:v:/s/humas/EaBc?e=xyz")
        assert rewritten.endswith("e=xyz&download=1")

    def test_other_links_are_unchanged(self):
        url = "https://news.example.com/a?id=3"
        assert rewrite_share_link(url) == url

    def test_cloud_storage_detection(self):
        assert is_cloud_storage_link("https://pertamina.sharepoint.com/x")
        assert is_cloud_storage_link("https://1drv.ms/v/s!abc")
        assert not is_cloud_storage_link("https://notsharepoint.com/x")
        assert not is_cloud_storage_link("lihat lampiran")


class TestResolve:
    """Single-link resolution"""

    @pytest.mark.asyncio
    async def test_success_follows_redirects(self):
        def handler(request):
            if request.url.path == "/short":
                return httpx.Response(301, headers={"Location": "https://news.example.com/article"})
            return httpx.Response(200, content=b"article body")

        result = await build_resolver(handler).resolve("https://news.example.com/short")

        assert result.ok
        assert result.status_code == 200
        assert result.final_url == "https://news.example.com/article"
        assert result.content_hash == hash_content(b"article body")
        assert result.content_length == len(b"article body")
        assert result.validation_error is None

    @pytest.mark.asyncio
    async def test_http_error_status_is_invalid_without_content(self):
        def handler(request):
            return httpx.Response(404, content=b"<html>not found</html>")

        result = await build_resolver(handler).resolve("https://news.example.com/missing")

        assert not result.ok
        assert result.status_code == 404
        assert result.content_hash == ""
        assert result.validation_error == "HTTP 404"

    @pytest.mark.asyncio
    async def test_network_error_never_raises(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        result = await build_resolver(handler).resolve("https://down.example.com/a")

        assert not result.ok
        assert result.status_code == FAILED_STATUS_CODE
        assert result.final_url == "https://down.example.com/a"
        assert result.content_hash == ""
        assert "Connection refused" in result.validation_error

    @pytest.mark.asyncio
    async def test_timeout_is_recorded(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, content=b"late")

        result = await build_resolver(handler, timeout=0.05).resolve("https://slow.example.com/a")

        assert result.status_code == FAILED_STATUS_CODE
        assert result.error.startswith("Timed out")

    @pytest.mark.asyncio
    async def test_invalid_url_is_recorded(self):
        def handler(request):
            # Mirrors the real transport, which refuses scheme-less URLs
            if request.url.scheme not in ("http", "https"):
                raise httpx.UnsupportedProtocol("Request URL is missing a protocol", request=request)
            return httpx.Response(200)

        result = await build_resolver(handler).resolve("lihat lampiran")

        assert result.status_code == FAILED_STATUS_CODE
        assert result.error.startswith("Invalid URL")

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            if len(calls) == 1:
                raise httpx.ConnectError("reset", request=request)
            return httpx.Response(200, content=b"ok")

        result = await build_resolver(handler, max_retries=1).resolve("https://flaky.example.com/a")

        assert result.ok
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_content_is_truncated_at_limit(self):
        def handler(request):
            return httpx.Response(200, content=b"0123456789")

        result = await build_resolver(handler, max_content_bytes=4).resolve("https://big.example.com/v")

        assert result.content_hash == hash_content(b"0123")
        assert result.content_length == 4
        assert result.truncated

    @pytest.mark.asyncio
    async def test_share_link_is_fetched_in_download_form(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, content=b"video")

        result = await build_resolver(handler).resolve("https://drive.google.com/file/d/XYZ/view")

        assert seen == ["https://drive.google.com/uc?export=download&id=XYZ"]
        assert result.original_url == "https://drive.google.com/file/d/XYZ/view"
        assert result.request_url == seen[0]


@pytest.mark.asyncio
async def test_resolve_many_keeps_input_order():
    def handler(request):
        if request.url.host == "down.example.com":
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, content=request.url.path.encode())

    urls = [
        "https://a.example.com/1",
        "https://down.example.com/2",
        "https://a.example.com/3",
    ]

    results = await build_resolver(handler, concurrency=1).resolve_many(urls)

    assert [r.original_url for r in results] == urls
    assert [r.ok for r in results] == [True, False, True]
    assert results[2].content_hash == hash_content(b"/3")


@pytest.mark.asyncio
async def test_resolve_many_with_no_links():
    resolver = build_resolver(lambda request: httpx.Response(200))
    assert await resolver.resolve_many([]) == []
