"""
Dashboard & Reporting Service

Aggregates project tracking metrics:
  - Per-kind totals, open / critical / overdue counts
  - Pending approvals (change approvals, change closures, risk closures)
  - Risk heat map (5×5 probability × impact)
  - Issue aging buckets
  - Action items overdue / due soon
  - Change impact (cost / schedule) by status and type

Every function accepts an optional ``project_id`` scope.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta

from sqlalchemy import func, or_, select

from pmtracker.models import db
from pmtracker.models.action import OPEN_ACTION_STATUSES, EntityAction
from pmtracker.models.audit import EntityLog
from pmtracker.models.tracking import LIKELIHOOD_SCALE, Change, Issue, Risk, risk_level
from pmtracker.services.tracking_service import ENTITY_KINDS, KINDS_BY_TYPE

logger = logging.getLogger(__name__)

DUE_SOON_DAYS = 7

AGING_BUCKETS = (
    ("0-7 days", 0, 7),
    ("8-30 days", 8, 30),
    ("31-90 days", 31, 90),
    ("90+ days", 91, None),
)


def _scoped(query, model, project_id):
    if project_id is not None:
        query = query.filter(model.project_id == project_id)
    return query


def _critical_filter(kind):
    model = kind.model
    if model is Risk:
        return Risk.risk_score >= 16
    if kind.level_field == "priority":
        return model.priority == "Critical"
    return model.severity.in_(("Critical", "Blocking"))


def _action_query(project_id=None):
    """Actions, optionally limited to parents inside one project."""
    q = EntityAction.query
    if project_id is None:
        return q
    clauses = []
    for kind in ENTITY_KINDS.values():
        parent_ids = select(kind.model.id).where(kind.model.project_id == project_id)
        clauses.append(
            (EntityAction.entity_type == kind.entity_type) & EntityAction.parent_id.in_(parent_ids)
        )
    return q.filter(or_(*clauses))


def _parent_ref(entity_type, parent_id):
    kind = KINDS_BY_TYPE.get(entity_type)
    parent = db.session.get(kind.model, parent_id) if kind else None
    if parent is None:
        return {"entity_type": entity_type, "id": parent_id}
    return {
        "entity_type": entity_type,
        "kind": kind.key,
        "id": parent.id,
        "number": parent.number,
        "title": parent.title,
        "project_id": parent.project_id,
    }


# ── Dashboard ───────────────────────────────────────────────────────────────


def get_dashboard(project_id=None):
    """High-level KPIs across every tracked kind."""
    today = date.today()
    totals = {}
    for key, kind in ENTITY_KINDS.items():
        model = kind.model
        q = _scoped(model.query, model, project_id)
        open_q = q.filter(model.status.in_(kind.open_statuses))
        overdue = 0
        if kind.due_date_field:
            due_col = getattr(model, kind.due_date_field)
            overdue = open_q.filter(due_col.isnot(None), due_col < today).count()
        totals[key] = {
            "total": q.count(),
            "open": open_q.count(),
            "critical": open_q.filter(_critical_filter(kind)).count(),
            "overdue": overdue,
        }

    pending = pending_approvals(project_id)
    actions_q = _action_query(project_id)
    open_actions = actions_q.filter(EntityAction.status.in_(OPEN_ACTION_STATUSES))

    return {
        "project_id": project_id,
        "totals": totals,
        "pending_approvals": pending["counts"],
        "actions": {
            "total": actions_q.count(),
            "open": open_actions.count(),
            "overdue": open_actions.filter(EntityAction.due_date < today).count(),
        },
        "recent_activity": recent_activity(project_id),
    }


def recent_activity(project_id=None, limit=10):
    q = EntityLog.query
    if project_id is not None:
        clauses = []
        for kind in ENTITY_KINDS.values():
            parent_ids = select(kind.model.id).where(kind.model.project_id == project_id)
            clauses.append((EntityLog.entity_type == kind.entity_type) & EntityLog.parent_id.in_(parent_ids))
        q = q.filter(or_(*clauses))
    rows = q.order_by(EntityLog.log_date.desc(), EntityLog.id.desc()).limit(limit).all()
    return [row.to_dict() for row in rows]


# ── Risk heat map ───────────────────────────────────────────────────────────


def risk_heat_map(project_id=None):
    """5×5 matrix (probability rows × impact columns) of non-closed risks."""
    risks = _scoped(Risk.query, Risk, project_id).filter(Risk.status != "Closed").all()

    labels = list(LIKELIHOOD_SCALE)
    matrix = [[[] for _ in range(5)] for _ in range(5)]
    levels = {"critical": 0, "high": 0, "medium": 0, "low": 0}
    for r in risks:
        p = LIKELIHOOD_SCALE.get(r.probability, 3) - 1
        i = LIKELIHOOD_SCALE.get(r.impact, 3) - 1
        matrix[p][i].append({
            "id": r.id, "risk_number": r.risk_number,
            "title": r.title, "risk_score": r.risk_score,
        })
        levels[risk_level(r.risk_score or 0)] += 1

    return {
        "project_id": project_id,
        "matrix": matrix,
        "labels": {"probability": labels, "impact": labels},
        "levels": levels,
        "total": len(risks),
    }


# ── Issue aging ─────────────────────────────────────────────────────────────


def issue_aging(project_id=None):
    """Bucket open issues by days since raised."""
    today = date.today()
    kind = ENTITY_KINDS["issues"]
    issues = _scoped(Issue.query, Issue, project_id).filter(Issue.status.in_(kind.open_statuses)).all()

    buckets = {label: [] for label, _, _ in AGING_BUCKETS}
    ages = []
    overdue = 0
    for issue in issues:
        age = (today - issue.raised_date).days if issue.raised_date else 0
        ages.append(age)
        if issue.target_resolution_date and issue.target_resolution_date < today:
            overdue += 1
        for label, low, high in AGING_BUCKETS:
            if age >= low and (high is None or age <= high):
                buckets[label].append({
                    "id": issue.id, "issue_number": issue.issue_number,
                    "title": issue.title, "priority": issue.priority,
                    "status": issue.status, "days_open": age,
                })
                break

    return {
        "project_id": project_id,
        "buckets": [
            {"bucket": label, "count": len(items), "issues": items}
            for label, items in buckets.items()
        ],
        "total_open": len(issues),
        "average_days_open": round(sum(ages) / len(ages), 1) if ages else 0,
        "overdue": overdue,
    }


# ── Pending approvals ───────────────────────────────────────────────────────


def _pending_since(entity_type, parent_id, action, fallback):
    row = (
        db.session.query(func.max(EntityLog.log_date))
        .filter(
            EntityLog.entity_type == entity_type,
            EntityLog.parent_id == parent_id,
            EntityLog.action == action,
        )
        .scalar()
    )
    if row is not None:
        return row.date() if hasattr(row, "date") else row
    return fallback


def _pending_row(item, approval_type, since, today):
    return {
        "entity_type": item.ENTITY_TYPE,
        "id": item.id,
        "number": item.number,
        "title": item.title,
        "project_id": item.project_id,
        "approval_type": approval_type,
        "pending_since": since.isoformat() if since else None,
        "days_pending": (today - since).days if since else None,
    }


def pending_approvals(project_id=None):
    """Every item waiting on an approval decision, oldest first."""
    today = date.today()
    items = []

    under_review = _scoped(Change.query, Change, project_id).filter(Change.status == "Under Review")
    for change in under_review.all():
        since = _pending_since("change", change.id, "request-approval", change.request_date)
        items.append(_pending_row(change, "change_approval", since, today))

    change_closures = _scoped(Change.query, Change, project_id).filter(Change.closure_pending.is_(True))
    for change in change_closures.all():
        items.append(_pending_row(change, "change_closure", change.closure_requested_date, today))

    risk_closures = _scoped(Risk.query, Risk, project_id).filter(Risk.closure_pending.is_(True))
    for risk in risk_closures.all():
        items.append(_pending_row(risk, "risk_closure", risk.closure_requested_date, today))

    items.sort(key=lambda r: r["days_pending"] or 0, reverse=True)
    counts = defaultdict(int)
    for row in items:
        counts[row["approval_type"]] += 1

    return {
        "project_id": project_id,
        "items": items,
        "counts": {
            "change_approval": counts["change_approval"],
            "change_closure": counts["change_closure"],
            "risk_closure": counts["risk_closure"],
            "total": len(items),
        },
    }


# ── Action items ────────────────────────────────────────────────────────────


def action_items(project_id=None, days=DUE_SOON_DAYS):
    """Open actions that are overdue or due within ``days``."""
    today = date.today()
    horizon = today + timedelta(days=days)
    open_q = _action_query(project_id).filter(
        EntityAction.status.in_(OPEN_ACTION_STATUSES),
        EntityAction.due_date.isnot(None),
    )

    def _row(action):
        d = action.to_dict()
        d["parent"] = _parent_ref(action.entity_type, action.parent_id)
        d["days_until_due"] = (action.due_date - today).days
        return d

    overdue = open_q.filter(EntityAction.due_date < today).order_by(EntityAction.due_date).all()
    due_soon = (
        open_q.filter(EntityAction.due_date >= today, EntityAction.due_date <= horizon)
        .order_by(EntityAction.due_date)
        .all()
    )
    return {
        "project_id": project_id,
        "due_soon_days": days,
        "overdue": [_row(a) for a in overdue],
        "due_soon": [_row(a) for a in due_soon],
        "counts": {"overdue": len(overdue), "due_soon": len(due_soon)},
    }


# ── Change impact ───────────────────────────────────────────────────────────


def change_impact(project_id=None):
    """Cost and schedule impact of changes grouped by status and by type."""

    def _group(column):
        rows = (
            _scoped(
                db.session.query(
                    column,
                    func.count(Change.id),
                    func.coalesce(func.sum(Change.cost_impact), 0),
                    func.coalesce(func.sum(Change.schedule_impact_days), 0),
                ),
                Change, project_id,
            )
            .group_by(column)
            .all()
        )
        return {
            key: {
                "count": count, "cost_impact": float(cost), "schedule_impact_days": int(days),
            }
            for key, count, cost, days in rows
        }

    by_status = _group(Change.status)
    committed = [s for s in ("Approved", "Implemented", "Closed") if s in by_status]
    return {
        "project_id": project_id,
        "by_status": by_status,
        "by_type": _group(Change.change_type),
        "approved_totals": {
            "count": sum(by_status[s]["count"] for s in committed),
            "cost_impact": sum(by_status[s]["cost_impact"] for s in committed),
            "schedule_impact_days": sum(by_status[s]["schedule_impact_days"] for s in committed),
        },
    }
