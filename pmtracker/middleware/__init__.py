"""Request middleware: logging, timing, rate limits, security headers."""
