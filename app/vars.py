import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "framing-proxy")

# Path prefix the router is mounted under (e.g. when served behind /tools)
PROXY_BASE_PATH = ("/" + os.environ.get("PROXY_BASE_PATH", "").strip("/")).rstrip("/")
PROXY_ROUTE = "/" + os.environ.get("PROXY_ROUTE", "/proxy").strip("/")
# Endpoint written into rewritten links; must resolve to the route above from the browser
PROXY_ENDPOINT = os.environ.get("PROXY_ENDPOINT", PROXY_BASE_PATH + PROXY_ROUTE)

FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", "30"))
FETCH_CONNECT_TIMEOUT = float(os.getenv("FETCH_CONNECT_TIMEOUT", "10"))
MAX_RESPONSE_BYTES = int(os.getenv("MAX_RESPONSE_BYTES", str(10 * 1024 * 1024)))

REWRITE_STRATEGY = os.getenv("REWRITE_STRATEGY", "regex").lower()

PROXY_USER_AGENT = os.getenv(
    "PROXY_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)
# X-Frame-Options for the proxy's own responses, empty disables it
PROXY_FRAME_OPTIONS = os.getenv("PROXY_FRAME_OPTIONS", "")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
