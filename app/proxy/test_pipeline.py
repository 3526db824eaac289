from unittest.mock import AsyncMock

import pytest

from app.proxy.errors import FetchFailed, InvalidURL
from app.proxy.fetcher import FetchResult
from app.proxy.pipeline import ProxiedResponse, run_pipeline
from app.proxy.rewriter import SoupRewriter

PROXY = "/proxy"


def _fetch_result(
    body=b"",
    headers=(),
    status_code=200,
    content_type="text/html",
    url="https://site.test/",
):
    return FetchResult(
        status_code=status_code,
        headers=tuple(headers),
        body=body,
        url=url,
        content_type=content_type,
    )


@pytest.fixture
def fetcher():
    """Fetcher double returning a small HTML page."""
    return AsyncMock(
        return_value=_fetch_result(
            body=b'<a href="/about">About</a>',
            headers=[("Content-Type", "text/html"), ("X-Frame-Options", "DENY")],
        )
    )


class TestRunPipeline:
    """Test validate -> fetch -> filter -> rewrite."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, fetcher):
        result = await run_pipeline("https://site.test/", fetcher, PROXY)

        fetcher.assert_awaited_once_with("https://site.test/")
        assert isinstance(result, ProxiedResponse)
        assert result.status_code == 200
        assert result.headers == (("Content-Type", "text/html"),)
        assert result.body == b'<a href="/proxy?url=https%3A%2F%2Fsite.test%2Fabout">About</a>'

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw_url",
        [None, "", "site.test/page", "/about", "file:///etc/passwd", "https://", "https://x.test/%zz"],
    )
    async def test_invalid_url_never_fetches(self, fetcher, raw_url):
        with pytest.raises(InvalidURL):
            await run_pipeline(raw_url, fetcher, PROXY)

        assert fetcher.await_count == 0

    @pytest.mark.asyncio
    async def test_base_url_comes_from_target(self, fetcher):
        fetcher.return_value = _fetch_result(body=b'<img src="img/logo.png">')

        result = await run_pipeline("http://site.test:8080/deep/page.html?x=1", fetcher, PROXY)

        assert result.body == (
            b'<img src="/proxy?url=http%3A%2F%2Fsite.test%3A8080%2Fimg%2Flogo.png">'
        )

    @pytest.mark.asyncio
    async def test_upstream_error_page_is_passed_through_and_rewritten(self, fetcher):
        fetcher.return_value = _fetch_result(
            status_code=404,
            body=b'<p>Not found</p><a href="/">Home</a>',
            headers=[("Content-Security-Policy", "frame-ancestors 'none'"), ("Server", "nginx")],
        )

        result = await run_pipeline("https://site.test/missing", fetcher, PROXY)

        assert result.status_code == 404
        assert result.headers == (("Server", "nginx"),)
        assert result.body == b'<p>Not found</p><a href="/proxy?url=https%3A%2F%2Fsite.test%2F">Home</a>'

    @pytest.mark.asyncio
    async def test_javascript_payload(self, fetcher):
        fetcher.return_value = _fetch_result(
            body=b'window.location.href = "/page";',
            content_type="application/javascript",
        )

        result = await run_pipeline("https://example.com/app.js", fetcher, PROXY)

        assert result.body == b'window.location.href="/proxy?url=https%3A%2F%2Fexample.com/page";'

    @pytest.mark.asyncio
    async def test_binary_payload_untouched(self, fetcher):
        png = b'\x89PNG\r\n\x1a\n\x00\x00src="/x"'
        fetcher.return_value = _fetch_result(body=png, content_type="image/png")

        result = await run_pipeline("https://site.test/logo.png", fetcher, PROXY)

        assert result.body is png

    @pytest.mark.asyncio
    async def test_no_matches_is_not_an_error(self, fetcher):
        fetcher.return_value = _fetch_result(body=b"<p>static</p>")

        result = await run_pipeline("https://site.test/", fetcher, PROXY)

        assert result.body == b"<p>static</p>"

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, fetcher):
        fetcher.side_effect = FetchFailed("boom", "https://site.test/", reason="connect")

        with pytest.raises(FetchFailed) as exc_info:
            await run_pipeline("https://site.test/", fetcher, PROXY)

        assert exc_info.value.reason == "connect"

    @pytest.mark.asyncio
    async def test_custom_endpoint_and_strategy(self, fetcher):
        fetcher.return_value = _fetch_result(
            body=b'<!-- <a href="/x"> --><a href="/y">y</a>'
        )

        result = await run_pipeline(
            "https://site.test/",
            fetcher,
            "https://embed.example.org/p",
            rewriter=SoupRewriter(),
        )

        assert b'<!-- <a href="/x"> -->' in result.body
        assert b'href="https://embed.example.org/p?url=https%3A%2F%2Fsite.test%2Fy"' in result.body
