"""
PM Tracker
Authentication & Authorization Middleware.

Provides:
    - API key authentication via X-API-Key header or ?api_key= query param
    - Role-based access control (RBAC) decorator
    - Content-Type enforcement for state-changing requests (non-GET/HEAD/OPTIONS)

Security model:
    - All /api/v1/* endpoints require a valid API key (except /api/v1/health*)
    - Delete operations require at least the 'editor' role
    - The API key authenticates the caller only; workflow actors are the
      Person ids carried in each request payload

Configuration (env vars):
    API_KEYS          — comma-separated list of valid API keys
                        e.g. "key1:admin,key2:viewer,key3:editor"
                        Format: "<key>:<role>" where role is admin|editor|viewer
    API_AUTH_ENABLED  — set to "false" to disable auth (development only)
"""

import functools
import logging
import os
from typing import Optional

from flask import current_app, g, jsonify, request

logger = logging.getLogger(__name__)

# ── Roles ────────────────────────────────────────────────────────────────────

ROLES = {"admin", "editor", "viewer"}

# Role hierarchy: admin > editor > viewer
ROLE_HIERARCHY = {
    "admin": {"admin", "editor", "viewer"},
    "editor": {"editor", "viewer"},
    "viewer": {"viewer"},
}

# Mutating methods a viewer key may not call
_WRITE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def _parse_api_keys() -> dict[str, str]:
    """
    Parse API_KEYS env var into {key: role} mapping.

    Format: "key1:admin,key2:viewer,key3:editor"
    Keys without a role default to 'viewer'.
    """
    raw = os.getenv("API_KEYS", "")
    if not raw.strip():
        return {}

    keys = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if ":" in entry:
            key, role = entry.rsplit(":", 1)
            role = role.strip().lower()
            if role not in ROLES:
                logger.warning("Unknown role '%s' for API key, defaulting to 'viewer'", role)
                role = "viewer"
            keys[key.strip()] = role
        else:
            keys[entry] = "viewer"
    return keys


def _is_auth_enabled() -> bool:
    """Check whether authentication is enabled (env var or app config)."""
    env_val = os.getenv("API_AUTH_ENABLED", "")
    if env_val:
        return env_val.lower() not in ("false", "0", "no", "off")
    try:
        return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() not in ("false", "0", "no", "off")
    except RuntimeError:
        # Outside app context
        return True


def _get_api_key_from_request() -> Optional[str]:
    """Extract API key from request header or query parameter."""
    key = request.headers.get("X-API-Key", "").strip()
    if key:
        return key
    return request.args.get("api_key", "").strip() or None


def _authenticate():
    """Resolve the caller's role into ``g``; return an error response or None."""
    if not _is_auth_enabled():
        g.current_user_role = "admin"
        g.api_key = "dev-mode"
        return None

    api_key = _get_api_key_from_request()
    if not api_key:
        return jsonify({"error": "Authentication required. Provide X-API-Key header."}), 401

    api_keys = _parse_api_keys()
    if not api_keys:
        logger.error("API_KEYS env var is not configured but API_AUTH_ENABLED=true")
        return jsonify({"error": "Server authentication not configured"}), 500

    role = api_keys.get(api_key)
    if role is None:
        logger.warning("Invalid API key attempt: %s...", api_key[:8])
        return jsonify({"error": "Invalid API key"}), 401

    g.current_user_role = role
    g.api_key = api_key
    return None


# ── Role decorator ───────────────────────────────────────────────────────────

def require_role(minimum_role: str):
    """
    Decorator: require a minimum role level.

    Usage:
        @require_role("editor")
        def delete_item(kind, item_id): ...

    Role hierarchy: admin > editor > viewer
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_role = getattr(g, "current_user_role", None)
            if not user_role:
                return jsonify({"error": "Authentication required"}), 401

            allowed = ROLE_HIERARCHY.get(user_role, set())
            if minimum_role not in allowed:
                logger.warning(
                    "Access denied: role '%s' tried to access '%s'-level endpoint %s",
                    user_role, minimum_role, request.path,
                )
                return jsonify({"error": "Insufficient permissions"}), 403

            return f(*args, **kwargs)
        return decorated
    return decorator


# ── Content-Type enforcement ─────────────────────────────────────────────────

def _check_content_type():
    """
    For state-changing requests with a body, require
    Content-Type: application/json.
    """
    if request.method in _WRITE_METHODS:
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length and request.content_length > 0:
            return jsonify({
                "error": "Content-Type must be application/json for state-changing requests"
            }), 415
    return None


# ── App-level before_request hook installer ──────────────────────────────────

def init_auth(app):
    """
    Install authentication middleware on the Flask app.

    - Attaches a before_request hook for API routes
    - Skips health check routes and CORS pre-flight
    - Viewer keys are read-only
    """
    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path == "/api/v1/health" or request.path.startswith("/api/v1/health/"):
            return None
        if request.method == "OPTIONS":
            return None

        ct_error = _check_content_type()
        if ct_error:
            return ct_error

        error = _authenticate()
        if error:
            return error

        if request.method in _WRITE_METHODS and "editor" not in ROLE_HIERARCHY.get(g.current_user_role, set()):
            logger.warning("Read-only key attempted %s %s", request.method, request.path)
            return jsonify({"error": "Insufficient permissions"}), 403
        return None

    logger.info(
        "Auth middleware installed (enabled=%s)", _is_auth_enabled()
    )
