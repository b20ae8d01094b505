"""Standardised API error responses.

Usage
-----
    from pmtracker.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Change not found")
    return api_error(E.VALIDATION_REQUIRED, "title is required")
    return api_error(E.WORKFLOW_STATE, str(exc), details=exc.details)
"""

from __future__ import annotations

import logging

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • WORKFLOW_ prefix for approval-workflow errors
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"

    # Workflow – HTTP 409 (state) / 403 (bypass)
    WORKFLOW_STATE = "WORKFLOW_INVALID_STATE"
    WORKFLOW_DIRECT_MUTATION = "WORKFLOW_DIRECT_MUTATION"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.FORBIDDEN: 403,
    E.DATABASE: 500,
    E.INTERNAL: 500,
    E.WORKFLOW_STATE: 409,
    E.WORKFLOW_DIRECT_MUTATION: 403,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, current workflow state, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp):
    """Attach the service-exception → JSON handlers to a blueprint."""
    from pmtracker.core.exceptions import (
        ConflictError,
        DirectMutationNotAllowed,
        InvalidStateError,
        NotFoundError,
        ValidationError,
    )
    from pmtracker.models import db

    logger = logging.getLogger(bp.import_name)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        db.session.rollback()
        return api_error(E.VALIDATION_REQUIRED, str(error), details=error.details)

    @bp.errorhandler(InvalidStateError)
    def _handle_invalid_state(error: InvalidStateError):
        db.session.rollback()
        logger.info("Blocked transition: %s", error)
        return api_error(E.WORKFLOW_STATE, str(error), details=error.details)

    @bp.errorhandler(DirectMutationNotAllowed)
    def _handle_direct_mutation(error: DirectMutationNotAllowed):
        db.session.rollback()
        logger.warning("Workflow bypass attempt: %s", error)
        details = {"target_status": error.target_status}
        if error.use:
            details["use"] = error.use
        return api_error(E.WORKFLOW_DIRECT_MUTATION, str(error), details=details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    return bp
