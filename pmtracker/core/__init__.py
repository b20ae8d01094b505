"""Service-layer exception hierarchy."""
