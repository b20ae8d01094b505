"""
Security headers middleware.

The service only speaks JSON, so the Content-Security-Policy denies
everything; the remaining headers are the usual hardening set.

Usage:
    from pmtracker.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""

API_CSP = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        response.headers.setdefault("Content-Security-Policy", API_CSP)

        # Prevent MIME-type sniffing
        response.headers.setdefault("X-Content-Type-Options", "nosniff")

        # Clickjacking protection
        response.headers.setdefault("X-Frame-Options", "DENY")

        # HTTPS enforcement (ignored over HTTP)
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
        )

        response.headers.setdefault("Referrer-Policy", "no-referrer")

        # API responses carry tracked project data
        if response.mimetype == "application/json":
            response.headers.setdefault("Cache-Control", "no-store")

        # Remove server identification
        response.headers.pop("Server", None)

        return response
