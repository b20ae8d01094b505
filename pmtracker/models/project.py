"""
PM Tracker
Project and Person models.

Models:
    - Project: the container every tracked item belongs to
    - Person: team member referenced as requester / approver / owner / assignee
"""

from datetime import datetime, timezone

from pmtracker.models import db


PROJECT_STATUSES = ("Planning", "Active", "On Hold", "Completed", "Cancelled")


class Project(db.Model):
    """A project whose issues, risks, changes, escalations and faults are tracked."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    project_code = db.Column(db.String(50), unique=True, nullable=False)
    project_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="Planning", index=True)
    project_manager = db.Column(db.String(100), default="")
    client_name = db.Column(db.String(255), default="")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "project_code": self.project_code,
            "project_name": self.project_name,
            "description": self.description,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "status": self.status,
            "project_manager": self.project_manager,
            "client_name": self.client_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.project_code}: {self.project_name[:40]}>"


class Person(db.Model):
    """A team member.  Workflow actors are identified by Person id."""

    __tablename__ = "people"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    full_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), default="")
    role = db.Column(db.String(100), default="")
    department = db.Column(db.String(100), default="")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role,
            "department": self.department,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def to_brief(self):
        return {"id": self.id, "full_name": self.full_name, "email": self.email}

    def __repr__(self):
        return f"<Person {self.username}>"
