import logging
import ssl
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx

from app.proxy.errors import FetchFailed, ResponseTooLarge
from app.vars import (
    FETCH_CONNECT_TIMEOUT,
    FETCH_TIMEOUT,
    MAX_RESPONSE_BYTES,
    PROXY_USER_AGENT,
)

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class FetchResult:
    """Final upstream response after redirects, fully buffered."""

    status_code: int
    headers: Tuple[Tuple[str, str], ...]
    body: bytes
    url: str
    content_type: Optional[str] = None


def build_client(
    timeout: float = FETCH_TIMEOUT,
    connect_timeout: float = FETCH_CONNECT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the outbound client: redirects followed, certificates verified, bounded time."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=connect_timeout),
        follow_redirects=True,
        verify=True,
        headers={"user-agent": PROXY_USER_AGENT},
        transport=transport,
    )


def _is_tls_error(exc: BaseException) -> bool:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ssl.SSLError):
            return True
        if "CERTIFICATE_VERIFY_FAILED" in str(current):
            return True
        current = current.__cause__ or current.__context__
    return False


async def fetch_target(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    max_bytes: Optional[int] = None,
) -> FetchResult:
    """
    GET the target URL and buffer the final response.

    Redirects are followed by the client, so the caller only ever sees the
    last response. Non-2xx statuses are returned like any other response.

    Args:
        url: Validated absolute http(s) URL
        client: Shared client; a short-lived one is created when omitted
        max_bytes: Body size cap, defaults to MAX_RESPONSE_BYTES

    Raises:
        FetchFailed: on timeout, TLS, connection or protocol errors
        ResponseTooLarge: when the body exceeds the cap
    """
    limit = MAX_RESPONSE_BYTES if max_bytes is None else max_bytes
    owns_client = client is None
    if owns_client:
        client = build_client()

    try:
        async with client.stream("GET", url) as response:
            declared_length = response.headers.get("content-length", "")
            if declared_length.isdigit() and int(declared_length) > limit:
                raise ResponseTooLarge(url, limit)

            chunks = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > limit:
                    raise ResponseTooLarge(url, limit)
                chunks.append(chunk)

            headers = tuple(
                (name.decode("latin-1"), value.decode("latin-1"))
                for name, value in response.headers.raw
            )
            logger.debug(
                f"Fetched {response.url} -> {response.status_code}, {received} bytes"
            )
            return FetchResult(
                status_code=response.status_code,
                headers=headers,
                body=b"".join(chunks),
                url=str(response.url),
                content_type=response.headers.get("content-type"),
            )

    except httpx.TimeoutException as e:
        raise FetchFailed(f"Timed out fetching {url}", url, reason="timeout") from e

    except httpx.ConnectError as e:
        reason = "tls" if _is_tls_error(e) else "connect"
        raise FetchFailed(f"Could not connect to {url}: {e}", url, reason=reason) from e

    except (httpx.HTTPError, httpx.InvalidURL) as e:
        reason = "tls" if _is_tls_error(e) else "transport"
        raise FetchFailed(f"Failed to fetch {url}: {e}", url, reason=reason) from e

    finally:
        if owns_client:
            await client.aclose()
