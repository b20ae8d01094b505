"""
Audit log service.

Append-only access to EntityLog.  There is no update or delete
entry point; rows disappear only when their parent is deleted
(see tracking_service.delete_item).
"""

import logging

from pmtracker.core.exceptions import ValidationError
from pmtracker.models import db
from pmtracker.models.audit import LOG_TYPES, EntityLog, write_log
from pmtracker.services.workflow import resolve_actor
from pmtracker.utils.helpers import parse_text_input

logger = logging.getLogger(__name__)


def append_log(
    entity_type: str,
    parent_id: int,
    log_type: str,
    action: str,
    previous_status: str | None = None,
    new_status: str | None = None,
    comments: str = "",
    logged_by: int | None = None,
) -> EntityLog:
    if log_type not in LOG_TYPES:
        raise ValidationError(
            f"Invalid log_type '{log_type}'",
            details={"log_type": f"must be one of: {', '.join(LOG_TYPES)}"},
        )
    return write_log(
        entity_type=entity_type,
        parent_id=parent_id,
        log_type=log_type,
        action=action,
        previous_status=previous_status,
        new_status=new_status,
        comments=comments,
        logged_by=logged_by,
    )


def list_log(entity_type: str, parent_id: int, *, newest_first: bool = True, limit: int | None = None):
    """Return the log of one entity.  Ties on log_date are broken by id."""
    q = EntityLog.query.filter_by(entity_type=entity_type, parent_id=parent_id)
    if newest_first:
        q = q.order_by(EntityLog.log_date.desc(), EntityLog.id.desc())
    else:
        q = q.order_by(EntityLog.log_date.asc(), EntityLog.id.asc())
    if limit:
        q = q.limit(limit)
    return q.all()


def add_comment(entity_type: str, parent_id: int, data: dict) -> EntityLog:
    """Append a free-text Comment row; ``logged_by`` must be an active person."""
    comments = parse_text_input(data.get("comments"), "comments", required=True)
    person = resolve_actor(data, "logged_by")
    log = append_log(
        entity_type, parent_id, "Comment", "comment",
        comments=comments, logged_by=person.id,
    )
    logger.info("Comment added to %s/%s by person %s", entity_type, parent_id, person.id)
    return log


def delete_log(entity_type: str, parent_id: int) -> int:
    """Remove the whole log of a parent being deleted.  Returns the row count."""
    return (
        db.session.query(EntityLog)
        .filter_by(entity_type=entity_type, parent_id=parent_id)
        .delete(synchronize_session=False)
    )
