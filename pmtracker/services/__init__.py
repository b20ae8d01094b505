"""Business logic; services flush, blueprints commit."""
