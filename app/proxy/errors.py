from typing import Optional


class ProxyError(Exception):
    """Base class for failures while proxying a single request."""


class InvalidURL(ProxyError, ValueError):
    """The caller supplied something that is not a fetchable http(s) URL."""

    def __init__(self, message: str, raw_url: Optional[str] = None):
        super().__init__(message)
        self.raw_url = raw_url


class FetchFailed(ProxyError):
    """
    The upstream could not be reached or read.

    ``reason`` is one of ``timeout``, ``tls``, ``connect``, ``too_large`` or
    ``transport``.
    """

    def __init__(self, message: str, url: str, reason: str = "transport"):
        super().__init__(message)
        self.url = url
        self.reason = reason


class ResponseTooLarge(FetchFailed):
    def __init__(self, url: str, limit: int):
        super().__init__(
            f"Upstream response exceeds {limit} bytes", url, reason="too_large"
        )
        self.limit = limit


class ClientDisconnected(ProxyError):
    """The caller went away before the upstream fetch finished."""
