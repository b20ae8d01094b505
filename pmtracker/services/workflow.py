"""
Approval Workflow Engine.

One table-driven state machine shared by every gated entity:

    Change        Requested → Under Review → Approved → Implemented → Closed
                  (Under Review → Rejected; Rejected → Requested on resubmit)
    Risk closure  Mitigated → [closure pending] → Closed

Each transition declares its source status, its target (None = status
unchanged), the payload field naming the actor, the payload field carrying
the justification / comment text and which entity columns get stamped.

Guard contract (apply_transition):
  1. Lock the entity row and check the source status and closure-pending flag
     → InvalidStateError
  2. Check actor + justification payload, actor must be an active Person
     → ValidationError
  3. Stamp status / dates / actor / text and append exactly one
     "Status Change" log row.  The caller commits.

Generic edits go through guard_status_update(), which refuses statuses that
only a transition may set (DirectMutationNotAllowed) and routes
Change → Implemented through the mark-implemented transition.

Usage:
    from pmtracker.services.workflow import apply_transition

    result = apply_transition(
        "change", 42, "approve",
        {"approved_by": 3, "approval_comments": "Budget confirmed"},
    )
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from pmtracker.core.exceptions import (
    DirectMutationNotAllowed,
    InvalidStateError,
    ValidationError,
)
from pmtracker.models import db
from pmtracker.models.audit import write_log
from pmtracker.models.project import Person
from pmtracker.models.tracking import ENTITY_MODELS
from pmtracker.utils.helpers import get_or_raise, parse_date_input

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    """One edge of a workflow graph."""

    name: str
    source: str
    target: str | None
    actor_field: str
    comment_field: str
    comment_required: bool = True
    default_comment: str = ""
    # None = closure-pending flag not checked / not changed
    requires_closure_pending: bool | None = None
    sets_closure_pending: bool | None = None
    # entity column ← actor id / comment text / today
    stamp_actor: str | None = None
    stamp_comment: str | None = None
    stamp_date: str | None = None
    # payload date fields that are required and copied onto the entity
    required_dates: tuple = ()
    clears: tuple = ()
    next_step: str = ""

    @property
    def required_fields(self) -> list[str]:
        fields = [self.actor_field]
        if self.comment_required:
            fields.append(self.comment_field)
        fields.extend(self.required_dates)
        return fields

    def matches(self, status: str, closure_pending: bool) -> bool:
        if status != self.source:
            return False
        if self.requires_closure_pending is None:
            return True
        return bool(closure_pending) == self.requires_closure_pending


@dataclass
class Workflow:
    """A named set of transitions for one entity type."""

    entity_type: str
    states: tuple
    initial: str
    transitions: dict = field(default_factory=dict)
    terminal: tuple = ()
    # status → transition that must be used instead of a generic edit
    gated: dict = field(default_factory=dict)
    # status → transition a generic edit is routed through
    routed: dict = field(default_factory=dict)

    def get(self, name: str) -> Transition | None:
        return self.transitions.get(name)

    def available(self, status: str, closure_pending: bool = False) -> list[Transition]:
        return [t for t in self.transitions.values() if t.matches(status, closure_pending)]


def _build(entity_type, states, initial, transitions, **kwargs) -> Workflow:
    return Workflow(
        entity_type=entity_type,
        states=states,
        initial=initial,
        transitions={t.name: t for t in transitions},
        **kwargs,
    )


# ── Change approval workflow ─────────────────────────────────────────────────

CHANGE_WORKFLOW = _build(
    "change",
    ("Requested", "Under Review", "Approved", "Rejected", "Implemented", "Closed"),
    "Requested",
    [
        Transition(
            "request-approval", "Requested", "Under Review",
            actor_field="requested_by", comment_field="approval_justification",
            stamp_actor="requested_by", stamp_comment="approval_justification",
            next_step="Awaiting approval decision (approve / reject)",
        ),
        Transition(
            "approve", "Under Review", "Approved",
            actor_field="approved_by", comment_field="approval_comments",
            stamp_actor="approved_by", stamp_comment="approval_comments",
            stamp_date="approval_date",
            next_step="Implement the change, then set status to Implemented",
        ),
        Transition(
            "reject", "Under Review", "Rejected",
            actor_field="rejected_by", comment_field="rejection_reason",
            stamp_actor="rejected_by", stamp_comment="rejection_reason",
            stamp_date="rejection_date",
            next_step="Revise the request and resubmit, or leave it rejected",
        ),
        Transition(
            "resubmit", "Rejected", "Requested",
            actor_field="requested_by", comment_field="resubmit_justification",
            stamp_actor="requested_by",
            clears=("approved_by", "approval_date", "rejected_by", "rejection_date"),
            next_step="Request approval again",
        ),
        Transition(
            "mark-implemented", "Approved", "Implemented",
            actor_field="updated_by", comment_field="implementation_summary",
            comment_required=False, default_comment="Change implemented",
            stamp_comment="implementation_summary",
            required_dates=("implementation_date",),
            next_step="Request closure approval",
        ),
        Transition(
            "request-closure", "Implemented", None,
            actor_field="requested_by", comment_field="closure_justification",
            requires_closure_pending=False, sets_closure_pending=True,
            stamp_actor="closure_requested_by", stamp_comment="closure_justification",
            stamp_date="closure_requested_date",
            next_step="Awaiting closure decision (approve-closure / reject-closure)",
        ),
        Transition(
            "approve-closure", "Implemented", "Closed",
            actor_field="approved_by", comment_field="approval_comments",
            requires_closure_pending=True, sets_closure_pending=False,
            stamp_actor="closure_approved_by", stamp_comment="closure_comments",
            stamp_date="closure_date",
            next_step="Change closed",
        ),
        Transition(
            "reject-closure", "Implemented", None,
            actor_field="rejected_by", comment_field="rejection_reason",
            requires_closure_pending=True, sets_closure_pending=False,
            stamp_comment="closure_comments",
            clears=("closure_requested_by", "closure_requested_date"),
            next_step="Address the closure feedback and request closure again",
        ),
    ],
    terminal=("Closed",),
    gated={
        "Requested": "resubmit",
        "Under Review": "request-approval",
        "Approved": "approve",
        "Rejected": "reject",
        "Closed": "approve-closure",
    },
    routed={"Implemented": "mark-implemented"},
)


# ── Risk closure sub-flow ────────────────────────────────────────────────────

RISK_CLOSURE_WORKFLOW = _build(
    "risk",
    ("Identified", "Assessed", "Mitigated", "Closed", "Occurred"),
    "Identified",
    [
        Transition(
            "request-closure", "Mitigated", None,
            actor_field="requested_by", comment_field="closure_justification",
            requires_closure_pending=False, sets_closure_pending=True,
            stamp_actor="closure_requested_by", stamp_comment="closure_justification",
            stamp_date="closure_requested_date",
            next_step="Awaiting closure decision (approve-closure / reject-closure)",
        ),
        Transition(
            "approve-closure", "Mitigated", "Closed",
            actor_field="approved_by", comment_field="approval_comments",
            requires_closure_pending=True, sets_closure_pending=False,
            stamp_actor="closure_approved_by", stamp_comment="closure_comments",
            stamp_date="closure_date",
            next_step="Risk closed",
        ),
        Transition(
            "reject-closure", "Mitigated", None,
            actor_field="rejected_by", comment_field="rejection_reason",
            requires_closure_pending=True, sets_closure_pending=False,
            stamp_comment="closure_comments",
            clears=("closure_requested_by", "closure_requested_date"),
            next_step="Continue mitigation and request closure again",
        ),
    ],
    terminal=("Closed",),
    gated={"Closed": "approve-closure"},
)


WORKFLOWS = {
    "change": CHANGE_WORKFLOW,
    "risk": RISK_CLOSURE_WORKFLOW,
}


# ── Helpers ──────────────────────────────────────────────────────────────────

def _label(entity_type: str) -> str:
    return entity_type.capitalize()


def _text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def resolve_actor(data: dict, field_name: str) -> Person:
    """Return the active Person referenced by ``data[field_name]``.

    Raises ValidationError with field-level details when the id is missing,
    malformed, unknown or inactive.
    """
    raw = data.get(field_name)
    if raw in (None, ""):
        raise ValidationError(f"{field_name} is required", details={field_name: "required"})
    try:
        person_id = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(
            f"{field_name} must be a person id", details={field_name: "invalid person id"},
        )
    person = db.session.get(Person, person_id)
    if person is None or not person.is_active:
        raise ValidationError(
            f"{field_name} does not reference an active person",
            details={field_name: "unknown person"},
        )
    return person


def _validate_payload(transition: Transition, data: dict) -> dict:
    """Collect every missing field before raising, so the caller sees them all."""
    errors = {}
    if data.get(transition.actor_field) in (None, ""):
        errors[transition.actor_field] = "required"
    if transition.comment_required and not _text(data.get(transition.comment_field)):
        errors[transition.comment_field] = "required"
    for date_field in transition.required_dates:
        if data.get(date_field) in (None, ""):
            errors[date_field] = "required"
    if errors:
        raise ValidationError(
            f"Missing required fields for '{transition.name}': {', '.join(sorted(errors))}",
            details=errors,
        )

    dates = {
        date_field: parse_date_input(data.get(date_field), date_field)
        for date_field in transition.required_dates
    }
    return dates


def _check_state(entity, workflow: Workflow, transition: Transition):
    closure_pending = bool(getattr(entity, "closure_pending", False))
    if entity.status != transition.source:
        raise InvalidStateError(
            _label(workflow.entity_type), entity.id,
            current_status=entity.status,
            transition=transition.name,
            required_status=transition.source,
        )
    if transition.requires_closure_pending is True and not closure_pending:
        raise InvalidStateError(
            _label(workflow.entity_type), entity.id,
            current_status=entity.status,
            transition=transition.name,
            reason="no closure request is pending",
        )
    if transition.requires_closure_pending is False and closure_pending:
        raise InvalidStateError(
            _label(workflow.entity_type), entity.id,
            current_status=entity.status,
            transition=transition.name,
            reason="a closure request is already pending",
        )


# ── Public API ───────────────────────────────────────────────────────────────

def get_workflow(entity_type: str) -> Workflow | None:
    return WORKFLOWS.get(entity_type)


def apply_transition(entity_type: str, entity_id: int, name: str, data: dict | None = None) -> dict:
    """
    Execute a workflow transition.

    Args:
        entity_type: "change" or "risk"
        entity_id: PK of the entity
        name: transition name, e.g. "request-approval"
        data: request payload (actor id, justification text, dates)

    Returns:
        {"data", "previous_status", "new_status", "transition", "next_step",
         "log_entry"}

    Raises:
        NotFoundError, InvalidStateError, ValidationError
    """
    data = data or {}
    workflow = WORKFLOWS.get(entity_type)
    if workflow is None:
        raise ValidationError(
            f"{_label(entity_type)} has no approval workflow",
            details={"entity_type": "not workflow-enabled"},
        )
    transition = workflow.get(name)
    if transition is None:
        raise ValidationError(
            f"Unknown transition '{name}' for {entity_type}",
            details={"transition": "unknown"},
        )

    model = ENTITY_MODELS[entity_type]

    # 1. Lock + state
    entity = get_or_raise(model, entity_id, _label(entity_type), for_update=True)
    _check_state(entity, workflow, transition)

    # 2. Payload
    dates = _validate_payload(transition, data)
    actor = resolve_actor(data, transition.actor_field)
    comment = _text(data.get(transition.comment_field)) or transition.default_comment

    # 3. Stamp
    previous_status = entity.status
    if transition.target is not None:
        entity.status = transition.target
    for column in transition.clears:
        setattr(entity, column, None)
    if transition.stamp_actor:
        setattr(entity, transition.stamp_actor, actor.id)
    if transition.stamp_comment:
        setattr(entity, transition.stamp_comment, comment)
    if transition.stamp_date:
        setattr(entity, transition.stamp_date, date.today())
    for column, value in dates.items():
        setattr(entity, column, value)
    if transition.sets_closure_pending is not None:
        entity.closure_pending = transition.sets_closure_pending

    log = write_log(
        entity_type=entity_type,
        parent_id=entity.id,
        log_type="Status Change",
        action=transition.name,
        previous_status=previous_status,
        new_status=entity.status,
        comments=comment,
        logged_by=actor.id,
    )

    logger.info(
        "Workflow transition applied",
        extra={
            "entity_type": entity_type,
            "entity_id": entity.id,
            "transition": transition.name,
            "previous_status": previous_status,
            "new_status": entity.status,
            "actor_id": actor.id,
        },
    )

    return {
        "data": entity.to_dict(),
        "previous_status": previous_status,
        "new_status": entity.status,
        "transition": transition.name,
        "next_step": transition.next_step,
        "log_entry": log.to_dict(),
    }


def guard_status_update(entity, new_status: str) -> str | None:
    """
    Decide what a generic edit may do with ``status``.

    Returns:
        None when the status may be written as a plain edit (or is unchanged),
        or the name of the transition the edit must be routed through.

    Raises:
        ValidationError: unknown status value
        DirectMutationNotAllowed: status reachable only through a transition
        InvalidStateError: entity is closed or has a closure request pending
    """
    if new_status not in entity.STATUSES:
        raise ValidationError(
            f"Invalid status '{new_status}'",
            details={"status": f"must be one of: {', '.join(entity.STATUSES)}"},
        )
    if new_status == entity.status:
        return None

    workflow = WORKFLOWS.get(entity.ENTITY_TYPE)
    if workflow is None:
        return None

    label = _label(workflow.entity_type)
    if new_status in workflow.gated:
        raise DirectMutationNotAllowed(label, new_status, use=workflow.gated[new_status])
    if entity.status in workflow.terminal:
        raise InvalidStateError(
            label, entity.id,
            current_status=entity.status,
            transition="update",
            reason=f"{label.lower()} is closed",
        )
    if new_status in workflow.routed:
        return workflow.routed[new_status]
    if getattr(entity, "closure_pending", False):
        raise InvalidStateError(
            label, entity.id,
            current_status=entity.status,
            transition="update",
            reason="a closure request is pending",
        )
    return None


def available_transitions(entity) -> list[dict]:
    """List the transitions legal from the entity's current state."""
    workflow = WORKFLOWS.get(entity.ENTITY_TYPE)
    if workflow is None:
        return []
    closure_pending = bool(getattr(entity, "closure_pending", False))
    return [
        {
            "transition": t.name,
            "from": t.source,
            "to": t.target or t.source,
            "required_fields": t.required_fields,
        }
        for t in workflow.available(entity.status, closure_pending)
    ]


def replay_status(entries, initial: str) -> str:
    """Fold an oldest-first log and return the status it reconstructs.

    Accepts EntityLog rows or their ``to_dict()`` form. The Created row's
    status, when present, overrides ``initial``.
    """
    status = initial
    for entry in entries:
        if isinstance(entry, dict):
            log_type, new_status = entry.get("log_type"), entry.get("new_status")
        else:
            log_type, new_status = entry.log_type, entry.new_status
        if log_type in ("Created", "Status Change") and new_status:
            status = new_status
    return status
