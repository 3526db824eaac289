from app.proxy.headers import filter_headers, is_blocked_header


class TestFilterHeaders:
    """Test removal of framing restrictions from upstream headers."""

    def test_removes_x_frame_options(self):
        headers = [("Content-Type", "text/html"), ("X-Frame-Options", "DENY")]

        assert filter_headers(headers) == [("Content-Type", "text/html")]

    def test_removes_content_security_policy(self):
        headers = [
            ("Content-Security-Policy", "frame-ancestors 'none'"),
            ("Cache-Control", "no-cache"),
        ]

        assert filter_headers(headers) == [("Cache-Control", "no-cache")]

    def test_case_insensitive_names(self):
        headers = [
            ("x-frame-options", "SAMEORIGIN"),
            ("CONTENT-SECURITY-POLICY", "default-src 'self'"),
            ("X-Custom", "kept"),
        ]

        assert filter_headers(headers) == [("X-Custom", "kept")]

    def test_removes_report_only_variant(self):
        headers = [("Content-Security-Policy-Report-Only", "default-src 'self'")]

        assert filter_headers(headers) == []

    def test_removes_header_mentioning_restriction_in_value(self):
        headers = [
            ("Access-Control-Expose-Headers", "X-Frame-Options, ETag"),
            ("ETag", '"abc"'),
        ]

        assert filter_headers(headers) == [("ETag", '"abc"')]

    def test_preserves_order_and_duplicates(self):
        headers = [
            ("Set-Cookie", "a=1; Path=/"),
            ("X-Frame-Options", "DENY"),
            ("Content-Type", "text/html; charset=utf-8"),
            ("Set-Cookie", "b=2; Path=/"),
            ("Cache-Control", "max-age=60"),
        ]

        assert filter_headers(headers) == [
            ("Set-Cookie", "a=1; Path=/"),
            ("Content-Type", "text/html; charset=utf-8"),
            ("Set-Cookie", "b=2; Path=/"),
            ("Cache-Control", "max-age=60"),
        ]

    def test_empty_header_list(self):
        assert filter_headers([]) == []

    def test_returns_new_list(self):
        headers = [("Content-Type", "text/plain")]

        result = filter_headers(headers)

        assert result == headers
        assert result is not headers

    def test_accepts_tuples(self):
        headers = (("X-Frame-Options", "DENY"), ("Vary", "Accept"))

        assert filter_headers(headers) == [("Vary", "Accept")]


class TestIsBlockedHeader:
    def test_blocked(self):
        assert is_blocked_header("X-Frame-Options", "DENY")
        assert is_blocked_header("content-security-policy", "frame-ancestors 'self'")

    def test_not_blocked(self):
        assert not is_blocked_header("X-Content-Type-Options", "nosniff")
        assert not is_blocked_header("Strict-Transport-Security", "max-age=31536000")
