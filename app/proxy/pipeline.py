import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from app.proxy.fetcher import FetchResult
from app.proxy.headers import filter_headers
from app.proxy.rewriter import RegexRewriter, rewrite_body
from app.proxy.validator import base_url, validate_target_url

logger = logging.getLogger("uvicorn.error")

Fetcher = Callable[[str], Awaitable[FetchResult]]


@dataclass(frozen=True)
class ProxiedResponse:
    """Everything the responder needs, produced before any I/O towards the caller."""

    status_code: int
    headers: Tuple[Tuple[str, str], ...]
    body: bytes


async def run_pipeline(
    raw_url: Optional[str],
    fetcher: Fetcher,
    proxy_endpoint: str,
    rewriter: Optional[RegexRewriter] = None,
) -> ProxiedResponse:
    """
    Validate, fetch, filter and rewrite one target URL.

    Upstream error statuses are not special: their pages go through the same
    header filter and rewriting as successful ones.

    Raises:
        InvalidURL: before the fetcher is called
        FetchFailed: from the fetcher
    """
    url = validate_target_url(raw_url)
    base = base_url(url)

    result = await fetcher(url)

    headers = filter_headers(result.headers)
    body = rewrite_body(result.body, result.content_type, base, proxy_endpoint, rewriter)
    if body is result.body:
        logger.debug(f"No rewrites applied to {result.url}")

    return ProxiedResponse(
        status_code=result.status_code,
        headers=tuple(headers),
        body=body,
    )
