"""
TrackedItem — abstract base class for project-scoped tracked entities.

Issue, Risk, Change, Escalation and Fault all inherit from TrackedItem
instead of db.Model directly.  This adds:
  - project_id FK column with index (CASCADE on project delete)
  - title / description / status columns
  - created_at / updated_at timestamps
  - next_number() sequential code generator (ISS-001, RSK-001, ...)
"""

from datetime import datetime, timezone

from pmtracker.models import db


class TrackedItem(db.Model):
    """Abstract base for project-scoped tracked tables."""
    __abstract__ = True

    # Subclasses set these
    ENTITY_TYPE = ""
    NUMBER_PREFIX = ""
    NUMBER_FIELD = ""
    STATUSES: tuple = ()
    INITIAL_STATUS = ""

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @classmethod
    def next_number(cls) -> str:
        """
        Generate the next sequential number for this entity, e.g. RSK-001.

        Uses MAX(id) ordering; callers rely on the unique constraint on the
        number column to surface a race as IntegrityError (409).
        """
        column = getattr(cls, cls.NUMBER_FIELD)
        full_prefix = cls.NUMBER_PREFIX + "-"
        last = (
            cls.query
            .filter(column.like(f"{full_prefix}%"))
            .order_by(cls.id.desc())
            .first()
        )
        num = 1
        if last is not None:
            try:
                num = int(getattr(last, cls.NUMBER_FIELD).split("-")[1]) + 1
            except (IndexError, ValueError):
                num = 1
        return f"{cls.NUMBER_PREFIX}-{num:03d}"

    @property
    def number(self) -> str:
        return getattr(self, self.NUMBER_FIELD)

    def base_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.ENTITY_TYPE,
            "project_id": self.project_id,
            self.NUMBER_FIELD: self.number,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
