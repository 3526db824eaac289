from typing import Iterable, List, Tuple

from fastapi.responses import Response

from app.vars import PROXY_FRAME_OPTIONS
from app.proxy.pipeline import ProxiedResponse

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# The client already decoded the body and rewriting changes its length
REBUILT_HEADERS = {
    "content-encoding",
    "content-length",
}


def response_headers(
    headers: Iterable[Tuple[str, str]], frame_options: str = ""
) -> List[Tuple[str, str]]:
    """Headers to send to the caller, in upstream order, duplicates kept."""
    result = [
        (name, value)
        for name, value in headers
        if name.lower() not in HOP_BY_HOP_HEADERS
        and name.lower() not in REBUILT_HEADERS
    ]
    if frame_options:
        result.insert(0, ("X-Frame-Options", frame_options))
    return result


def build_response(
    proxied: ProxiedResponse, frame_options: str = PROXY_FRAME_OPTIONS
) -> Response:
    """Turn a finished pipeline result into one response; Content-Length is set by Starlette."""
    response = Response(content=proxied.body, status_code=proxied.status_code)
    for name, value in response_headers(proxied.headers, frame_options):
        response.headers.append(name, value)
    return response
