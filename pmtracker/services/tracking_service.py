"""Tracked-item service layer: Issue, Risk, Change, Escalation, Fault.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().

Operations:
- List with project / status / level / search filters
- Create with auto-number + "Created" log row
- Update with status guard (workflow entities), risk re-scoring,
  change-impact logging and resolution-date stamping
- Delete with cascade of actions and log rows
- Detail view embedding actions and the recent log
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from sqlalchemy import or_

from pmtracker.core.exceptions import DirectMutationNotAllowed, ValidationError
from pmtracker.models import db
from pmtracker.models.action import EntityAction
from pmtracker.models.project import Person, Project
from pmtracker.models.tracking import (
    CHANGE_TYPES,
    ESCALATION_SEVERITIES,
    FAULT_SEVERITIES,
    LIKELIHOOD_SCALE,
    PRIORITY_LEVELS,
    Change,
    Escalation,
    Fault,
    Issue,
    Risk,
    risk_level,
)
from pmtracker.services import audit_service
from pmtracker.services.workflow import (
    apply_transition,
    available_transitions,
    guard_status_update,
    get_workflow,
    resolve_actor,
)
from pmtracker.utils.helpers import get_or_raise, parse_date_input, parse_text_input

logger = logging.getLogger(__name__)

RECENT_LOG_LIMIT = 20


@dataclass(frozen=True)
class EntityKind:
    """Per-kind field registry driving the generic CRUD code."""

    key: str
    model: type
    text_fields: tuple
    choice_fields: dict = field(default_factory=dict)
    person_fields: tuple = ()
    date_fields: tuple = ()
    create_only: tuple = ()
    creator_field: str | None = None
    level_field: str | None = None
    open_statuses: tuple = ()
    resolved_statuses: tuple = ()
    resolution_date_field: str | None = None
    due_date_field: str | None = None
    assignee_field: str | None = None

    @property
    def entity_type(self) -> str:
        return self.model.ENTITY_TYPE

    @property
    def label(self) -> str:
        return self.model.__name__


ENTITY_KINDS = {
    "issues": EntityKind(
        key="issues",
        model=Issue,
        text_fields=("title", "description", "category", "impact"),
        choice_fields={"priority": PRIORITY_LEVELS},
        person_fields=("raised_by", "assigned_to"),
        date_fields=("raised_date", "target_resolution_date", "actual_resolution_date"),
        creator_field="raised_by",
        level_field="priority",
        open_statuses=("Open", "In Progress"),
        resolved_statuses=("Resolved", "Closed"),
        resolution_date_field="actual_resolution_date",
        due_date_field="target_resolution_date",
        assignee_field="assigned_to",
    ),
    "risks": EntityKind(
        key="risks",
        model=Risk,
        text_fields=("title", "description", "category", "mitigation_strategy", "contingency_plan"),
        choice_fields={"probability": tuple(LIKELIHOOD_SCALE), "impact": tuple(LIKELIHOOD_SCALE)},
        person_fields=("identified_by", "owner"),
        date_fields=("identified_date", "review_date"),
        creator_field="identified_by",
        open_statuses=("Identified", "Assessed", "Mitigated", "Occurred"),
        due_date_field="review_date",
        assignee_field="owner",
    ),
    "changes": EntityKind(
        key="changes",
        model=Change,
        text_fields=("title", "description", "justification", "impact_assessment"),
        choice_fields={"change_type": CHANGE_TYPES, "priority": PRIORITY_LEVELS},
        person_fields=("requested_by",),
        date_fields=("request_date",),
        create_only=("requested_by", "request_date"),
        creator_field="requested_by",
        level_field="priority",
        open_statuses=("Requested", "Under Review", "Approved", "Implemented"),
        assignee_field="requested_by",
    ),
    "escalations": EntityKind(
        key="escalations",
        model=Escalation,
        text_fields=("title", "description", "escalation_type", "resolution_summary"),
        choice_fields={"severity": ESCALATION_SEVERITIES},
        person_fields=("raised_by", "escalated_to"),
        date_fields=("raised_date", "target_response_date", "actual_response_date"),
        creator_field="raised_by",
        level_field="severity",
        open_statuses=("Raised", "Under Review"),
        resolved_statuses=("Resolved", "Closed"),
        resolution_date_field="actual_response_date",
        due_date_field="target_response_date",
        assignee_field="escalated_to",
    ),
    "faults": EntityKind(
        key="faults",
        model=Fault,
        text_fields=("title", "description", "fault_type", "root_cause", "resolution"),
        choice_fields={"severity": FAULT_SEVERITIES},
        person_fields=("reported_by", "assigned_to"),
        date_fields=("reported_date", "target_fix_date", "actual_fix_date"),
        creator_field="reported_by",
        level_field="severity",
        open_statuses=("Reported", "Investigating", "In Progress"),
        resolved_statuses=("Resolved", "Closed"),
        resolution_date_field="actual_fix_date",
        due_date_field="target_fix_date",
        assignee_field="assigned_to",
    ),
}

KINDS_BY_TYPE = {kind.entity_type: kind for kind in ENTITY_KINDS.values()}


def get_kind(key: str) -> EntityKind:
    kind = ENTITY_KINDS.get(key) or KINDS_BY_TYPE.get(key)
    if kind is None:
        raise ValidationError(f"Unknown entity kind '{key}'", details={"kind": "unknown"})
    return kind


def get_item(kind: EntityKind, item_id: int, *, for_update: bool = False):
    return get_or_raise(kind.model, item_id, kind.label, for_update=for_update)


# ── Field coercion ───────────────────────────────────────────────────────────


def _person_id(data, field_name):
    raw = data.get(field_name)
    if raw in (None, ""):
        return None
    try:
        person_id = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(
            f"{field_name} must be a person id", details={field_name: "invalid person id"},
        )
    if db.session.get(Person, person_id) is None:
        raise ValidationError(
            f"{field_name} references an unknown person", details={field_name: "unknown person"},
        )
    return person_id


def _choice(data, field_name, allowed):
    value = data.get(field_name)
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field_name} '{value}'",
            details={field_name: f"must be one of: {', '.join(allowed)}"},
        )
    return value


def _apply_fields(kind: EntityKind, item, data: dict, *, creating: bool):
    """Copy the editable fields present in ``data`` onto ``item``."""
    for name in kind.text_fields:
        if name in data:
            setattr(item, name, parse_text_input(data[name], name, required=name == "title"))

    for name, allowed in kind.choice_fields.items():
        if name in data:
            setattr(item, name, _choice(data, name, allowed))

    for name in kind.person_fields:
        if name in data and (creating or name not in kind.create_only):
            setattr(item, name, _person_id(data, name))

    for name in kind.date_fields:
        if name in data and (creating or name not in kind.create_only):
            value = parse_date_input(data[name], name)
            if value is None and not kind.model.__table__.c[name].nullable:
                raise ValidationError(f"{name} cannot be empty", details={name: "required"})
            setattr(item, name, value)

    if kind.model is Change:
        if "cost_impact" in data:
            item.cost_impact = _decimal(data, "cost_impact")
        if "schedule_impact_days" in data:
            item.schedule_impact_days = _int(data, "schedule_impact_days")


def _decimal(data, field_name):
    raw = data.get(field_name)
    if raw in (None, ""):
        return None
    try:
        return Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number", details={field_name: "invalid number"})


def _int(data, field_name):
    raw = data.get(field_name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer", details={field_name: "invalid integer"})


def _stamp_resolution_date(kind: EntityKind, item):
    if not kind.resolution_date_field:
        return
    if item.status in kind.resolved_statuses and getattr(item, kind.resolution_date_field) is None:
        setattr(item, kind.resolution_date_field, date.today())


# ── Query ────────────────────────────────────────────────────────────────────


def list_items(kind: EntityKind, args):
    """Build the filtered list query for one kind.  Pagination is the caller's."""
    model = kind.model
    q = model.query

    project_id = args.get("project_id", type=int)
    if project_id:
        q = q.filter(model.project_id == project_id)

    status = args.get("status")
    if status:
        q = q.filter(model.status == status)

    if kind.level_field:
        level = args.get(kind.level_field)
        if level:
            q = q.filter(getattr(model, kind.level_field) == level)

    search = (args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(
            model.title.ilike(pattern),
            model.description.ilike(pattern),
            getattr(model, model.NUMBER_FIELD).ilike(pattern),
        ))

    if model is Risk:
        score_min = args.get("risk_score_min", type=int)
        if score_min is not None:
            q = q.filter(Risk.risk_score >= score_min)
        score_max = args.get("risk_score_max", type=int)
        if score_max is not None:
            q = q.filter(Risk.risk_score <= score_max)
        return q.order_by(Risk.risk_score.desc(), Risk.id.desc())

    if model is Change:
        change_type = args.get("change_type")
        if change_type:
            q = q.filter(Change.change_type == change_type)

    return q.order_by(model.created_at.desc(), model.id.desc())


def get_detail(kind: EntityKind, item_id: int) -> dict:
    item = get_item(kind, item_id)
    d = item.to_dict()
    d["actions"] = [
        a.to_dict() for a in
        EntityAction.query.filter_by(entity_type=kind.entity_type, parent_id=item.id)
        .order_by(EntityAction.id).all()
    ]
    d["recent_log"] = [
        row.to_dict()
        for row in audit_service.list_log(kind.entity_type, item.id, limit=RECENT_LOG_LIMIT)
    ]
    if get_workflow(kind.entity_type) is not None:
        d["available_transitions"] = available_transitions(item)
    return d


# ── Create ───────────────────────────────────────────────────────────────────


def create_item(kind: EntityKind, data: dict):
    """Create a tracked item with auto-number and a "Created" log row.

    Returns:
        model instance (already flushed).
    """
    errors = {}
    title = data.get("title")
    if title is None or (isinstance(title, str) and not title.strip()):
        errors["title"] = "required"
    if data.get("project_id") in (None, ""):
        errors["project_id"] = "required"
    if errors:
        raise ValidationError("Missing required fields", details=errors)

    project_id = _int(data, "project_id")
    get_or_raise(Project, project_id, "Project")

    model = kind.model
    status = data.get("status") or model.INITIAL_STATUS
    if status not in model.STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'",
            details={"status": f"must be one of: {', '.join(model.STATUSES)}"},
        )
    workflow = get_workflow(kind.entity_type)
    if workflow is not None and status != workflow.initial:
        use = workflow.gated.get(status) or workflow.routed.get(status)
        if use:
            raise DirectMutationNotAllowed(kind.label, status, use=use)

    item = model(project_id=project_id, status=status)
    setattr(item, model.NUMBER_FIELD, model.next_number())
    _apply_fields(kind, item, data, creating=True)
    if model is Risk:
        item.recalculate_score()
    _stamp_resolution_date(kind, item)

    db.session.add(item)
    db.session.flush()

    audit_service.append_log(
        kind.entity_type, item.id, "Created", "create",
        new_status=item.status,
        comments=f"{kind.label} {item.number} created",
        logged_by=getattr(item, kind.creator_field) if kind.creator_field else None,
    )
    logger.info("%s %s created in project %s", kind.label, item.number, project_id)
    return item


# ── Update ───────────────────────────────────────────────────────────────────


def update_item(kind: EntityKind, item_id: int, data: dict) -> dict:
    """Apply a generic edit.

    A status change on a workflow entity is checked by guard_status_update();
    Change → Implemented runs the mark-implemented transition first.

    Returns:
        {"data": item_dict} or, when a transition ran, the transition result.
    """
    item = get_item(kind, item_id, for_update=True)

    actor_id = None
    if data.get("updated_by") not in (None, ""):
        actor_id = resolve_actor(data, "updated_by").id

    result = None
    new_status = data.get("status")
    if new_status is not None:
        routed = guard_status_update(item, new_status)
        if routed:
            result = apply_transition(kind.entity_type, item.id, routed, data)
        elif new_status != item.status:
            previous_status = item.status
            item.status = new_status
            _stamp_resolution_date(kind, item)
            audit_service.append_log(
                kind.entity_type, item.id, "Status Change", "update",
                previous_status=previous_status,
                new_status=new_status,
                comments=parse_text_input(data.get("status_comment"), "status_comment")
                or f"Status changed from {previous_status} to {new_status}",
                logged_by=actor_id,
            )

    old_score = item.risk_score if kind.model is Risk else None
    old_impact = (
        (item.cost_impact, item.schedule_impact_days) if kind.model is Change else None
    )

    _apply_fields(kind, item, data, creating=False)

    if kind.model is Risk:
        item.recalculate_score()
        if item.risk_score != old_score:
            audit_service.append_log(
                "risk", item.id, "Updated", "update",
                comments=(
                    f"Risk assessment updated: score {old_score} → {item.risk_score} "
                    f"({risk_level(item.risk_score)})"
                ),
                logged_by=actor_id,
            )

    if kind.model is Change and (item.cost_impact, item.schedule_impact_days) != old_impact:
        audit_service.append_log(
            "change", item.id, "Updated", "update",
            comments=(
                f"Impact updated: cost {old_impact[0]} → {item.cost_impact}, "
                f"schedule {old_impact[1]} → {item.schedule_impact_days} days"
            ),
            logged_by=actor_id,
        )

    db.session.flush()

    if result is not None:
        result["data"] = item.to_dict()
        return result
    return {"data": item.to_dict()}


# ── Delete ───────────────────────────────────────────────────────────────────


def delete_item(kind: EntityKind, item_id: int) -> dict:
    """Delete an item together with its actions and log rows."""
    item = get_item(kind, item_id, for_update=True)
    number = item.number
    actions = (
        db.session.query(EntityAction)
        .filter_by(entity_type=kind.entity_type, parent_id=item.id)
        .delete(synchronize_session=False)
    )
    logs = audit_service.delete_log(kind.entity_type, item.id)
    db.session.delete(item)
    db.session.flush()
    logger.info("%s %s deleted (%d actions, %d log rows)", kind.label, number, actions, logs)
    return {"deleted": number, "actions_deleted": actions, "log_rows_deleted": logs}
