"""Project and Person service.

Transaction policy: flush() only; the route handler commits.
"""

from __future__ import annotations

import logging
from datetime import date

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, select

from pmtracker.core.exceptions import ConflictError, ValidationError
from pmtracker.models import db
from pmtracker.models.action import OPEN_ACTION_STATUSES, EntityAction
from pmtracker.models.audit import EntityLog
from pmtracker.models.project import PROJECT_STATUSES, Person, Project
from pmtracker.services.tracking_service import ENTITY_KINDS
from pmtracker.utils.helpers import get_or_raise, parse_date_input

logger = logging.getLogger(__name__)


# ── Project ──────────────────────────────────────────────────────────────────


def list_projects(*, status: str | None = None) -> list[Project]:
    query = Project.query
    if status:
        query = query.filter(Project.status == status)
    return query.order_by(Project.created_at.desc(), Project.id.desc()).all()


def _apply_project_fields(project: Project, data: dict) -> None:
    for field in ("description", "project_manager", "client_name"):
        if field in data:
            setattr(project, field, data[field] or "")
    if "project_name" in data:
        name = str(data["project_name"] or "").strip()
        if not name:
            raise ValidationError("project_name cannot be empty", details={"project_name": "required"})
        project.project_name = name
    if "status" in data:
        if data["status"] not in PROJECT_STATUSES:
            raise ValidationError(
                f"Invalid status '{data['status']}'",
                details={"status": f"must be one of: {', '.join(PROJECT_STATUSES)}"},
            )
        project.status = data["status"]
    if "start_date" in data:
        project.start_date = parse_date_input(data["start_date"], "start_date")
    if "end_date" in data:
        project.end_date = parse_date_input(data["end_date"], "end_date")
    if project.start_date and project.end_date and project.end_date < project.start_date:
        raise ValidationError(
            "end_date must not be before start_date", details={"end_date": "before start_date"},
        )


def create_project(data: dict) -> Project:
    code = str(data.get("project_code", "") or "").strip().upper()
    name = str(data.get("project_name", "") or "").strip()

    errors = {}
    if not code:
        errors["project_code"] = "required"
    if not name:
        errors["project_name"] = "required"
    if errors:
        raise ValidationError("Missing required fields", details=errors)

    if Project.query.filter(Project.project_code == code).first():
        raise ConflictError("Project", "project_code", code)

    project = Project(project_code=code, project_name=name)
    _apply_project_fields(project, data)
    db.session.add(project)
    db.session.flush()
    logger.info("Project %s created", code)
    return project


def update_project(project_id: int, data: dict) -> Project:
    project = get_or_raise(Project, project_id, "Project")
    if "project_code" in data:
        code = str(data["project_code"] or "").strip().upper()
        if not code:
            raise ValidationError("project_code cannot be empty", details={"project_code": "required"})
        clash = Project.query.filter(Project.project_code == code, Project.id != project.id).first()
        if clash:
            raise ConflictError("Project", "project_code", code)
        project.project_code = code
    _apply_project_fields(project, data)
    db.session.flush()
    return project


def delete_project(project_id: int) -> dict:
    """Delete a project with every tracked item, action and log row under it."""
    project = get_or_raise(Project, project_id, "Project")
    counts = {}
    for key, kind in ENTITY_KINDS.items():
        ids = [row.id for row in db.session.query(kind.model.id).filter_by(project_id=project.id)]
        if ids:
            db.session.query(EntityAction).filter(
                EntityAction.entity_type == kind.entity_type, EntityAction.parent_id.in_(ids),
            ).delete(synchronize_session=False)
            db.session.query(EntityLog).filter(
                EntityLog.entity_type == kind.entity_type, EntityLog.parent_id.in_(ids),
            ).delete(synchronize_session=False)
            db.session.query(kind.model).filter(kind.model.id.in_(ids)).delete(synchronize_session=False)
        counts[key] = len(ids)
    code = project.project_code
    db.session.delete(project)
    db.session.flush()
    logger.info("Project %s deleted with %s", code, counts)
    return {"deleted": code, "items_deleted": counts}


def project_summary(project_id: int) -> dict:
    """Counts per entity kind (total / open / by status) plus action totals."""
    project = get_or_raise(Project, project_id, "Project")
    today = date.today()
    summary = {"project": project.to_dict(), "open_actions": 0, "overdue_actions": 0}

    for key, kind in ENTITY_KINDS.items():
        model = kind.model
        rows = (
            db.session.query(model.status, func.count(model.id))
            .filter(model.project_id == project.id)
            .group_by(model.status)
            .all()
        )
        by_status = {status: count for status, count in rows}
        summary[key] = {
            "total": sum(by_status.values()),
            "open": sum(c for s, c in by_status.items() if s in kind.open_statuses),
            "by_status": by_status,
        }

        parent_ids = select(model.id).where(model.project_id == project.id)
        open_actions = EntityAction.query.filter(
            EntityAction.entity_type == kind.entity_type,
            EntityAction.parent_id.in_(parent_ids),
            EntityAction.status.in_(OPEN_ACTION_STATUSES),
        )
        summary["open_actions"] += open_actions.count()
        summary["overdue_actions"] += open_actions.filter(EntityAction.due_date < today).count()

    return summary


# ── Person ───────────────────────────────────────────────────────────────────


def _normalize_email(raw) -> str:
    email = str(raw or "").strip()
    if not email:
        return ""
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}", details={"email": "invalid email"})


def list_people(*, active_only: bool = False) -> list[Person]:
    query = Person.query
    if active_only:
        query = query.filter(Person.is_active.is_(True))
    return query.order_by(Person.full_name.asc()).all()


def create_person(data: dict) -> Person:
    username = str(data.get("username", "") or "").strip()
    full_name = str(data.get("full_name", "") or "").strip()

    errors = {}
    if not username:
        errors["username"] = "required"
    if not full_name:
        errors["full_name"] = "required"
    if errors:
        raise ValidationError("Missing required fields", details=errors)

    if Person.query.filter(Person.username == username).first():
        raise ConflictError("Person", "username", username)

    person = Person(
        username=username,
        full_name=full_name,
        email=_normalize_email(data.get("email")),
        role=data.get("role", ""),
        department=data.get("department", ""),
        is_active=bool(data.get("is_active", True)),
    )
    db.session.add(person)
    db.session.flush()
    return person


def update_person(person_id: int, data: dict) -> Person:
    person = get_or_raise(Person, person_id, "Person")
    if "username" in data:
        username = str(data["username"] or "").strip()
        if not username:
            raise ValidationError("username cannot be empty", details={"username": "required"})
        clash = Person.query.filter(Person.username == username, Person.id != person.id).first()
        if clash:
            raise ConflictError("Person", "username", username)
        person.username = username
    if "full_name" in data:
        full_name = str(data["full_name"] or "").strip()
        if not full_name:
            raise ValidationError("full_name cannot be empty", details={"full_name": "required"})
        person.full_name = full_name
    if "email" in data:
        person.email = _normalize_email(data["email"])
    for field in ("role", "department"):
        if field in data:
            setattr(person, field, data[field] or "")
    if "is_active" in data:
        person.is_active = bool(data["is_active"])
    db.session.flush()
    return person


def delete_person(person_id: int) -> None:
    person = get_or_raise(Person, person_id, "Person")
    db.session.delete(person)
    db.session.flush()


def people_workload() -> list[dict]:
    """Open / overdue actions and open assigned items for every active person."""
    today = date.today()
    result = []
    for person in list_people(active_only=True):
        actions = EntityAction.query.filter(
            EntityAction.assigned_to == person.id,
            EntityAction.status.in_(OPEN_ACTION_STATUSES),
        )
        items = {}
        for key, kind in ENTITY_KINDS.items():
            column = getattr(kind.model, kind.assignee_field)
            items[key] = kind.model.query.filter(
                column == person.id,
                kind.model.status.in_(kind.open_statuses),
            ).count()
        open_actions = actions.count()
        result.append({
            "person": person.to_brief(),
            "open_actions": open_actions,
            "overdue_actions": actions.filter(EntityAction.due_date < today).count(),
            "open_items": items,
            "total_open": open_actions + sum(items.values()),
        })
    result.sort(key=lambda r: r["total_open"], reverse=True)
    return result
