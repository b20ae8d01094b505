"""Shared utility functions used across blueprints and services.

get_or_404:          tuple-return lookup for blueprints
get_or_raise:        NotFoundError-raising lookup for services
parse_date:          returns None on bad input
parse_date_input:    raises ValidationError on bad input
parse_text_input:    stripped string or ValidationError for non-strings
db_commit_or_error:  one commit path for every mutating route
"""
import logging
from datetime import date, datetime

from flask import jsonify

from pmtracker.core.exceptions import NotFoundError, ValidationError
from pmtracker.models import db

logger = logging.getLogger(__name__)


def get_or_404(model, pk, label=None):
    """Fetch a model instance by primary key or return a 404 error tuple.

    - Success: (obj, None)
    - Failure: (None, (jsonify_response, 404))

        obj, err = get_or_404(Project, pid)
        if err:
            return err
    """
    label = label or model.__name__
    obj = db.session.get(model, pk)
    if not obj:
        return None, (jsonify({"error": f"{label} not found"}), 404)
    return obj, None


def get_or_raise(model, pk, label=None, *, for_update=False):
    """Fetch a model instance by primary key or raise NotFoundError.

    ``for_update=True`` takes a row lock (SELECT ... FOR UPDATE) so a
    read-validate-write sequence cannot interleave with another writer.
    """
    label = label or model.__name__
    if for_update:
        obj = (
            db.session.query(model)
            .filter(model.id == pk)
            .with_for_update()
            .populate_existing()
            .first()
        )
    else:
        obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field="date"):
    """Parse a date string, raising ValidationError on bad input.

    Same as parse_date() but refuses garbage instead of silently storing NULL.
    """
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field: "invalid date"},
        )
    return parsed


def parse_text_input(value, field="text", *, required=False):
    """Return a stripped string, raising ValidationError for non-string JSON.

    None counts as empty. With ``required=True`` an empty result is refused.
    """
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(
            f"{field} must be a string", details={field: "must be a string"},
        )
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    return value


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure — ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    Other → 500 (unexpected)
    """
    from sqlalchemy.exc import IntegrityError, OperationalError

    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return jsonify({"error": "Duplicate or constraint violation"}), 409
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return jsonify({"error": "Database error"}), 500
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit")
        return jsonify({"error": "Database error"}), 500
