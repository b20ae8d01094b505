"""
PM Tracker
Audit domain model.

Models:
    - EntityLog: immutable, append-only log for every tracked entity.
"""

from datetime import datetime, timezone

from pmtracker.models import db


# ── Constants ────────────────────────────────────────────────────────────────

LOG_TYPES = ("Created", "Status Change", "Updated", "Comment")

ENTITY_TYPES = ("issue", "risk", "change", "escalation", "fault")


class EntityLog(db.Model):
    """
    Immutable log row keyed by (entity_type, parent_id).

    One row per creation, transition, tracked update or comment.  Rows are
    never updated; they are removed only together with their parent.
    """

    __tablename__ = "entity_logs"
    __table_args__ = (
        db.Index("idx_entity_log_parent", "entity_type", "parent_id"),
        db.Index("idx_entity_log_date", "log_date"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic parent reference
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="issue | risk | change | escalation | fault",
    )
    parent_id = db.Column(db.Integer, nullable=False)

    # What happened
    log_type = db.Column(
        db.String(30), nullable=False, default="Comment",
        comment="Created | Status Change | Updated | Comment",
    )
    action = db.Column(
        db.String(60), nullable=False, default="comment",
        comment="request-approval | approve | create | update | comment | …",
    )
    previous_status = db.Column(db.String(30), nullable=True)
    new_status = db.Column(db.String(30), nullable=True)
    comments = db.Column(db.Text, default="")
    logged_by = db.Column(
        db.Integer,
        db.ForeignKey("people.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Timestamp (immutable)
    log_date = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    author = db.relationship("Person", foreign_keys=[logged_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "parent_id": self.parent_id,
            "log_type": self.log_type,
            "action": self.action,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "comments": self.comments,
            "logged_by": self.logged_by,
            "author": self.author.to_brief() if self.author is not None else None,
            "log_date": self.log_date.isoformat() if self.log_date else None,
        }

    def __repr__(self):
        return f"<EntityLog {self.id}: {self.log_type} on {self.entity_type}/{self.parent_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_log(
    *,
    entity_type: str,
    parent_id: int,
    log_type: str,
    action: str,
    previous_status: str | None = None,
    new_status: str | None = None,
    comments: str = "",
    logged_by: int | None = None,
) -> EntityLog:
    """
    Append a single log row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) EntityLog instance.
    """
    log = EntityLog(
        entity_type=entity_type,
        parent_id=parent_id,
        log_type=log_type,
        action=action,
        previous_status=previous_status,
        new_status=new_status,
        comments=comments or "",
        logged_by=logged_by,
    )
    db.session.add(log)
    db.session.flush()
    return log
