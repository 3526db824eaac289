import re
from typing import Optional
from urllib.parse import urlsplit

from app.proxy.errors import InvalidURL


ALLOWED_SCHEMES = {"http", "https"}

# A '%' that does not start a two-digit hex escape
_MALFORMED_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")
_WHITESPACE_OR_CONTROL = re.compile(r"[\s\x00-\x1f\x7f]")


def validate_target_url(raw_url: Optional[str]) -> str:
    """
    Validate the caller supplied target URL.

    Only absolute http(s) URLs with a host are accepted. Anything else raises
    InvalidURL before the fetcher is ever involved, so the proxy cannot be
    pointed at local files or other schemes.

    Returns:
        The URL with surrounding whitespace removed.
    """
    if raw_url is None or not raw_url.strip():
        raise InvalidURL("URL is empty", raw_url)

    url = raw_url.strip()

    if _WHITESPACE_OR_CONTROL.search(url):
        raise InvalidURL("URL contains whitespace or control characters", raw_url)

    if _MALFORMED_PERCENT.search(url):
        raise InvalidURL("URL contains malformed percent-encoding", raw_url)

    try:
        parts = urlsplit(url)
        # Accessing the port validates it
        parts.port
    except ValueError as e:
        raise InvalidURL(f"URL could not be parsed: {e}", raw_url) from e

    if not parts.scheme:
        raise InvalidURL("URL has no scheme", raw_url)

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidURL(f"Scheme '{parts.scheme}' is not allowed", raw_url)

    if not parts.hostname:
        raise InvalidURL("URL has no host", raw_url)

    return url


def base_url(url: str) -> str:
    """Reduce a validated URL to ``scheme://host[:port]``."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    if parts.port is not None:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme.lower()}://{host}"
