import asyncio
import contextlib
import logging
from typing import Awaitable, Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response
from opentelemetry import trace

from app.proxy.errors import ClientDisconnected, FetchFailed, InvalidURL
from app.proxy.fetcher import FetchResult, fetch_target
from app.proxy.pipeline import run_pipeline
from app.proxy.responder import build_response
from app.proxy.rewriter import get_rewriter
from app.utils import mask_url
from app.utils.traced_requests import traced_request
from app.vars import PROXY_BASE_PATH, PROXY_ENDPOINT, PROXY_ROUTE, REWRITE_STRATEGY

router = APIRouter(prefix=PROXY_BASE_PATH)
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Fails at import for unknown strategy names
REWRITER = get_rewriter(REWRITE_STRATEGY)

INVALID_URL_MESSAGE = "Invalid URL."
FETCH_FAILED_MESSAGE = "Failed to fetch the requested URL."
FETCH_TIMEOUT_MESSAGE = "Timed out fetching the requested URL."
PROXY_ERROR_MESSAGE = "Proxy error."
DISCONNECT_POLL_INTERVAL = 0.5


def _text_response(text: str, status_code: int) -> Response:
    return Response(content=text, status_code=status_code, media_type="text/plain")


async def _cancel(task: asyncio.Future) -> None:
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


async def fetch_until_disconnect(
    request: Request, fetch: Awaitable[FetchResult]
) -> FetchResult:
    """
    Await the upstream fetch, cancelling it if the caller disconnects first.
    """
    task = asyncio.ensure_future(fetch)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                return task.result()
            if await request.is_disconnected():
                await _cancel(task)
                raise ClientDisconnected("Caller disconnected during fetch")
    finally:
        if not task.done():
            await _cancel(task)


@router.get(PROXY_ROUTE)
async def proxy(
    request: Request,
    url: Optional[str] = Query(None, description="Absolute http(s) URL to fetch"),
):
    """Fetch the target, strip framing headers and rewrite links back through this endpoint."""
    http_client = getattr(request.app.state, "http_client", None)

    async def _fetch(target_url: str) -> FetchResult:
        return await fetch_until_disconnect(
            request, fetch_target(target_url, client=http_client)
        )

    masked = mask_url(url or "")
    with traced_request(
        tracer,
        operation="proxy_request",
        target_url=url,
        start_message=f"[Proxy] Request for {masked}",
        extra_attrs={"proxy.rewrite_strategy": REWRITER.name},
    ) as span:
        try:
            proxied = await run_pipeline(
                url,
                fetcher=_fetch,
                proxy_endpoint=PROXY_ENDPOINT,
                rewriter=REWRITER,
            )

        except InvalidURL as e:
            logger.warning(f"[Proxy] Rejected target {masked!r}: {e}")
            span.set_attribute("proxy.error", "invalid_url")
            return _text_response(INVALID_URL_MESSAGE, 400)

        except ClientDisconnected:
            logger.info(f"[Proxy] Caller disconnected, fetch of {masked} cancelled")
            span.set_attribute("proxy.error", "client_disconnected")
            return _text_response("", 499)

        except FetchFailed as e:
            logger.warning(f"[Proxy] Fetch failed ({e.reason}) for {mask_url(e.url)}: {e}")
            span.set_attribute("proxy.error", e.reason)
            if e.reason == "timeout":
                return _text_response(FETCH_TIMEOUT_MESSAGE, 504)
            return _text_response(FETCH_FAILED_MESSAGE, 502)

        except Exception as e:
            logger.error(f"[Proxy] Unexpected error for {masked}: {e}", exc_info=True)
            span.set_attribute("proxy.error", type(e).__name__)
            return _text_response(PROXY_ERROR_MESSAGE, 500)

        span.set_attribute("proxy.status_code", proxied.status_code)
        logger.debug(f"[Proxy] {masked} -> {proxied.status_code}, {len(proxied.body)} bytes")
        return build_response(proxied)
