import logging
from typing import Iterable, List, Tuple

logger = logging.getLogger("uvicorn.error")

# Headers browsers honour to refuse framing or embedding
BLOCKED_HEADER_MARKERS = (
    "x-frame-options",
    "content-security-policy",
)


def is_blocked_header(name: str, value: str) -> bool:
    """True if the header's name or value mentions a framing restriction."""
    line = f"{name}: {value}".lower()
    return any(marker in line for marker in BLOCKED_HEADER_MARKERS)


def filter_headers(headers: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """
    Drop framing restrictions from an upstream header list.

    Matching is a case-insensitive substring test on name and value, so
    variants like Content-Security-Policy-Report-Only go too. Every other
    header keeps its name, value and position.
    """
    kept = []
    for name, value in headers:
        if is_blocked_header(name, value):
            logger.debug(f"Dropping upstream header {name}")
            continue
        kept.append((name, value))
    return kept
