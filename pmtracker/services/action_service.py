"""Action sub-entity service.

Transaction policy: flush() only; the route handler commits.

Actions are scoped to (entity_type, parent_id) and have no state machine:
they stay editable whatever the parent's status is.
"""
import logging
from datetime import date

from pmtracker.core.exceptions import NotFoundError, ValidationError
from pmtracker.models import db
from pmtracker.models.action import ACTION_PRIORITIES, ACTION_STATUSES, EntityAction
from pmtracker.models.project import Person
from pmtracker.utils.helpers import parse_date_input, parse_text_input

logger = logging.getLogger(__name__)


def _validate_choice(data, field_name, allowed):
    if field_name in data and data[field_name] not in allowed:
        raise ValidationError(
            f"Invalid {field_name} '{data[field_name]}'",
            details={field_name: f"must be one of: {', '.join(allowed)}"},
        )


def _person_or_none(data, field_name):
    raw = data.get(field_name)
    if raw in (None, ""):
        return None
    try:
        person = db.session.get(Person, int(raw))
    except (TypeError, ValueError):
        person = None
    if person is None:
        raise ValidationError(
            f"{field_name} references an unknown person", details={field_name: "unknown person"},
        )
    return person.id


def list_actions(entity_type: str, parent_id: int):
    return (
        EntityAction.query
        .filter_by(entity_type=entity_type, parent_id=parent_id)
        .order_by(EntityAction.due_date.is_(None), EntityAction.due_date, EntityAction.id)
        .all()
    )


def get_action(entity_type: str, parent_id: int, action_id: int) -> EntityAction:
    action = db.session.get(EntityAction, action_id)
    if action is None or action.entity_type != entity_type or action.parent_id != parent_id:
        raise NotFoundError(resource="Action", resource_id=action_id)
    return action


def create_action(entity_type: str, parent_id: int, data: dict) -> EntityAction:
    """Create an action, auto-setting completed_date when created as Completed.

    Returns:
        EntityAction instance (already flushed).
    """
    description = parse_text_input(
        data.get("action_description"), "action_description", required=True,
    )
    _validate_choice(data, "status", ACTION_STATUSES)
    _validate_choice(data, "priority", ACTION_PRIORITIES)

    action = EntityAction(
        entity_type=entity_type,
        parent_id=parent_id,
        action_description=description,
        action_type=parse_text_input(data.get("action_type"), "action_type"),
        status=data.get("status", "Pending"),
        priority=data.get("priority", "Medium"),
        assigned_to=_person_or_none(data, "assigned_to"),
        created_by=_person_or_none(data, "created_by"),
        due_date=parse_date_input(data.get("due_date"), "due_date"),
        completed_date=parse_date_input(data.get("completed_date"), "completed_date"),
        notes=parse_text_input(data.get("notes"), "notes"),
    )
    if action.status == "Completed" and not action.completed_date:
        action.completed_date = date.today()
    db.session.add(action)
    db.session.flush()
    logger.info("Action %s added to %s/%s", action.id, entity_type, parent_id)
    return action


def update_action(action: EntityAction, data: dict) -> EntityAction:
    """Update an action, auto-setting completed_date on completion.

    Returns the updated EntityAction.
    """
    _validate_choice(data, "status", ACTION_STATUSES)
    _validate_choice(data, "priority", ACTION_PRIORITIES)

    if "action_description" in data:
        action.action_description = parse_text_input(
            data["action_description"], "action_description", required=True,
        )

    for field in ("action_type", "notes"):
        if field in data:
            setattr(action, field, parse_text_input(data[field], field))

    for field in ("status", "priority"):
        if field in data:
            setattr(action, field, data[field])

    if "assigned_to" in data:
        action.assigned_to = _person_or_none(data, "assigned_to")
    if "due_date" in data:
        action.due_date = parse_date_input(data["due_date"], "due_date")
    if "completed_date" in data:
        action.completed_date = parse_date_input(data["completed_date"], "completed_date")

    # Auto-set completed_date on completion
    if action.status == "Completed" and not action.completed_date:
        action.completed_date = date.today()

    db.session.flush()
    return action


def delete_action(action: EntityAction) -> None:
    db.session.delete(action)
    db.session.flush()
