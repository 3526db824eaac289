from urllib.parse import urlsplit, urlunsplit


def mask_url(url: str) -> str:
    """Hide the password part of a URL's userinfo before it reaches logs or spans."""
    if not url:
        return url
    try:
        parts = urlsplit(url)
        password = parts.password
    except ValueError:
        return url
    if not password:
        return url
    netloc = parts.netloc.replace(f":{password}@", ":****@", 1)
    return urlunsplit(parts._replace(netloc=netloc))
