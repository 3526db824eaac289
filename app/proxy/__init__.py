"""
Framing proxy: fetch a page server-side, drop the headers that block embedding,
and route every link in the payload back through the proxy endpoint.
"""
