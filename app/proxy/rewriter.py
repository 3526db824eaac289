"""
URL rewriting for proxied payloads.

Two passes exist: an attribute pass over HTML-like text (href, src, action,
url) and a JavaScript pass for the two literal navigation assignments
``window.location.href = "..."`` and ``document.URL = "..."``. Both route their
targets through ``proxied_url`` so follow-on requests come back to the proxy.

This is pattern matching over text, not a DOM. The regex strategy also hits
attribute-like text inside comments and scripts, and leaves unquoted values,
CSS ``url()``, ``srcset`` and ``<base>`` alone.
"""

import codecs
import logging
import re
from typing import Optional
from urllib.parse import quote_plus, urlsplit

from bs4 import BeautifulSoup

logger = logging.getLogger("uvicorn.error")

REWRITABLE_ATTRIBUTES = ("href", "src", "action", "url")

_ATTRIBUTE_PATTERN = re.compile(
    r"""(href|src|action|url)=["']([^"']+)["']""", re.IGNORECASE
)
_JS_NAVIGATION_PATTERNS = (
    (
        "window.location.href",
        re.compile(r"""window\.location\.href\s*=\s*["']([^"']+)["'];?""", re.IGNORECASE),
    ),
    (
        "document.URL",
        re.compile(r"""document\.URL\s*=\s*["']([^"']+)["'];?""", re.IGNORECASE),
    ),
)
_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")
_CHARSET_PATTERN = re.compile(r"""charset\s*=\s*["']?([\w.:\-]+)""", re.IGNORECASE)


def proxied_url(url: str, proxy_endpoint: str) -> str:
    """Route an absolute URL through the proxy endpoint."""
    return f"{proxy_endpoint}?url={quote_plus(url)}"


def is_proxied(value: str, proxy_endpoint: str) -> bool:
    """True if the value already points at the proxy endpoint."""
    return value.startswith(f"{proxy_endpoint}?url=")


def has_scheme(url: str) -> bool:
    return bool(_SCHEME_PATTERN.match(url))


def resolve_reference(url: str, base_url: str) -> str:
    """
    Turn a reference found in a page into an absolute URL.

    Scheme-relative references borrow the base scheme, other references
    without a scheme are glued onto the base with exactly one slash, and
    absolute URLs (any scheme) are returned untouched.
    """
    if url.startswith("//"):
        return f"{urlsplit(base_url).scheme}:{url}"
    if not has_scheme(url):
        return base_url.rstrip("/") + "/" + url.lstrip("/")
    return url


def rewrite_html_urls(content: str, base_url: str, proxy_endpoint: str) -> str:
    """
    Rewrite quoted href/src/action/url attribute values to proxied URLs.

    Matching is case-insensitive on the attribute name and requires a
    quoted, non-empty value. The attribute name keeps its case and the new
    value is always double-quoted.
    """

    def _replace(match: re.Match) -> str:
        attr, value = match.group(1), match.group(2)
        if is_proxied(value, proxy_endpoint):
            return match.group(0)
        return f'{attr}="{proxied_url(resolve_reference(value, base_url), proxy_endpoint)}"'

    content, count = _ATTRIBUTE_PATTERN.subn(_replace, content)
    logger.debug(f"Attribute pass matched {count} URLs")
    return content


def rewrite_js_navigation(content: str, base_url: str, proxy_endpoint: str) -> str:
    """
    Rewrite ``window.location.href`` and ``document.URL`` string assignments.

    The literal is appended to the encoded base URL as is, without
    resolution, so an absolute literal ends up nested behind the base
    (``...example.com/https://other.com/x``).
    """
    encoded_base = quote_plus(base_url)

    for target, pattern in _JS_NAVIGATION_PATTERNS:

        def _replace(match: re.Match, target: str = target) -> str:
            literal = match.group(1)
            if is_proxied(literal, proxy_endpoint):
                return match.group(0)
            return f'{target}="{proxy_endpoint}?url={encoded_base}/{literal.lstrip("/")}";'

        content, count = pattern.subn(_replace, content)
        if count:
            logger.debug(f"JavaScript pass rewrote {count} {target} assignments")

    return content


class RegexRewriter:
    """Text matching over the whole body. Over-matches in comments and scripts."""

    name = "regex"

    def rewrite_attributes(
        self, content: str, base_url: str, proxy_endpoint: str, content_type: str = ""
    ) -> str:
        return rewrite_html_urls(content, base_url, proxy_endpoint)


class SoupRewriter(RegexRewriter):
    """
    Tokenizer based attribute pass.

    Only attributes of real elements are rewritten, so text in comments and
    scripts is left alone. The document is re-serialised by BeautifulSoup.
    Non-HTML bodies fall back to the text matching pass.
    """

    name = "soup"

    def rewrite_attributes(
        self, content: str, base_url: str, proxy_endpoint: str, content_type: str = ""
    ) -> str:
        if "html" not in content_type.lower():
            return super().rewrite_attributes(
                content, base_url, proxy_endpoint, content_type
            )

        soup = BeautifulSoup(content, "html.parser")
        count = 0
        for tag in soup.find_all(True):
            for attr, value in list(tag.attrs.items()):
                if attr.lower() not in REWRITABLE_ATTRIBUTES:
                    continue
                if not isinstance(value, str) or not value:
                    continue
                if is_proxied(value, proxy_endpoint):
                    continue
                tag[attr] = proxied_url(
                    resolve_reference(value, base_url), proxy_endpoint
                )
                count += 1

        logger.debug(f"Tokenizer pass rewrote {count} attributes")
        if not count:
            return content
        return str(soup)


REWRITE_STRATEGIES = {
    RegexRewriter.name: RegexRewriter,
    SoupRewriter.name: SoupRewriter,
}


def get_rewriter(name: str) -> RegexRewriter:
    try:
        return REWRITE_STRATEGIES[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown rewrite strategy '{name}', expected one of {sorted(REWRITE_STRATEGIES)}"
        ) from None


def is_javascript(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    content_type = content_type.lower()
    return "javascript" in content_type or "ecmascript" in content_type


def is_textual(content_type: Optional[str]) -> bool:
    """Bodies without a declared type are treated as text, like the rest of the web."""
    if not content_type:
        return True
    content_type = content_type.lower()
    if content_type.startswith("text/"):
        return True
    return any(
        marker in content_type for marker in ("javascript", "ecmascript", "json", "xml")
    )


def charset_of(content_type: Optional[str]) -> str:
    match = _CHARSET_PATTERN.search(content_type or "")
    return match.group(1) if match else "utf-8"


def rewrite_body(
    body: bytes,
    content_type: Optional[str],
    base_url: str,
    proxy_endpoint: str,
    rewriter: Optional[RegexRewriter] = None,
) -> bytes:
    """
    Apply the rewriting passes to a fetched body.

    Binary bodies and bodies with an unknown charset are returned as is.
    Bytes that do not decode under the charset are carried through as
    surrogates, so stray bytes never stop links from being rewritten.
    JavaScript bodies get the navigation pass before the attribute pass.
    A body without matches comes back as the same bytes.
    """
    if not body or not is_textual(content_type):
        return body

    charset = charset_of(content_type)
    try:
        codecs.lookup(charset)
    except LookupError as e:
        logger.debug(f"Unknown charset {charset}, passing body through: {e}")
        return body
    try:
        text = body.decode(charset, errors="surrogateescape")
    except UnicodeDecodeError as e:
        # Non-ASCII-compatible codecs can still reject the body
        logger.debug(f"Body not decodable as {charset}, passing through: {e}")
        return body

    rewriter = rewriter or RegexRewriter()
    rewritten = text
    if is_javascript(content_type):
        rewritten = rewrite_js_navigation(rewritten, base_url, proxy_endpoint)
    rewritten = rewriter.rewrite_attributes(
        rewritten, base_url, proxy_endpoint, content_type or ""
    )

    if rewritten == text:
        return body
    return rewritten.encode(charset, errors="surrogateescape")
