"""
PM Tracker
Action sub-entity model.

Every tracked entity (issue, risk, change, escalation, fault) owns a list of
actions.  Actions have no state machine of their own and stay editable
whatever the parent's status is.
"""

from datetime import date, datetime, timezone

from pmtracker.models import db


ACTION_STATUSES = ("Pending", "In Progress", "Completed", "Cancelled")
ACTION_PRIORITIES = ("Low", "Medium", "High", "Critical")
OPEN_ACTION_STATUSES = ("Pending", "In Progress")


class EntityAction(db.Model):
    """An action item attached to a tracked entity via (entity_type, parent_id)."""

    __tablename__ = "entity_actions"
    __table_args__ = (
        db.Index("idx_entity_action_parent", "entity_type", "parent_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(30), nullable=False, comment="issue | risk | change | escalation | fault")
    parent_id = db.Column(db.Integer, nullable=False)

    action_description = db.Column(db.Text, nullable=False)
    action_type = db.Column(db.String(50), default="")
    status = db.Column(db.String(30), nullable=False, default="Pending", index=True)
    priority = db.Column(db.String(20), default="Medium")
    assigned_to = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)

    # Dates
    created_date = db.Column(db.Date, nullable=False, default=date.today)
    due_date = db.Column(db.Date, nullable=True)
    completed_date = db.Column(db.Date, nullable=True)

    notes = db.Column(db.Text, default="")

    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    assignee = db.relationship("Person", foreign_keys=[assigned_to])

    @property
    def is_overdue(self) -> bool:
        return (
            self.due_date is not None
            and self.due_date < date.today()
            and self.status in OPEN_ACTION_STATUSES
        )

    def to_dict(self):
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "parent_id": self.parent_id,
            "action_description": self.action_description,
            "action_type": self.action_type,
            "status": self.status,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
            "assignee": self.assignee.to_brief() if self.assignee is not None else None,
            "created_by": self.created_by,
            "created_date": self.created_date.isoformat() if self.created_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_date": self.completed_date.isoformat() if self.completed_date else None,
            "notes": self.notes,
            "is_overdue": self.is_overdue,
        }

    def __repr__(self):
        return f"<EntityAction {self.id}: {self.entity_type}/{self.parent_id}>"
