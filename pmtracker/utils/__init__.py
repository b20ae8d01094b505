"""Shared helpers: error responses, lookups, date parsing."""
