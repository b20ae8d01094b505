"""
PM Tracker
Tracked-item domain models.

Models:
    - Issue: current problems requiring resolution
    - Risk: probability × impact scoring, mitigation, closure approval
    - Change: change requests with the two-gate approval workflow
    - Escalation: items raised to a higher authority
    - Fault: defects / incidents with severity

Architecture chain: Project → Issue / Risk / Change / Escalation / Fault
"""

from datetime import date

from pmtracker.models import db
from pmtracker.models.base import TrackedItem


# ── Constants ────────────────────────────────────────────────────────────────

PRIORITY_LEVELS = ("Low", "Medium", "High", "Critical")

ISSUE_STATUSES = ("Open", "In Progress", "Resolved", "Closed", "Cancelled")
RISK_STATUSES = ("Identified", "Assessed", "Mitigated", "Closed", "Occurred")
CHANGE_STATUSES = ("Requested", "Under Review", "Approved", "Rejected", "Implemented", "Closed")
ESCALATION_STATUSES = ("Raised", "Under Review", "Resolved", "Closed")
FAULT_STATUSES = ("Reported", "Investigating", "In Progress", "Resolved", "Closed", "Deferred")

CHANGE_TYPES = ("Scope", "Schedule", "Cost", "Quality", "Resource", "Other")
ESCALATION_SEVERITIES = ("Low", "Medium", "High", "Critical")
FAULT_SEVERITIES = ("Minor", "Major", "Critical", "Blocking")

LIKELIHOOD_SCALE = {
    "Very Low": 1,
    "Low": 2,
    "Medium": 3,
    "High": 4,
    "Very High": 5,
}


# ── Risk Scoring Matrix ─────────────────────────────────────────────────────

def calculate_risk_score(probability: str, impact: str) -> int:
    """
    Calculate risk score: probability (1-5) × impact (1-5).
    Range: 1–25.  Unknown labels count as "Medium".
    """
    p = LIKELIHOOD_SCALE.get(probability, 3)
    i = LIKELIHOOD_SCALE.get(impact, 3)
    return p * i


def risk_level(score: int) -> str:
    """
    Risk level based on risk score.
      16-25 → critical
      9-15  → high
      4-8   → medium
      1-3   → low
    """
    if score >= 16:
        return "critical"
    elif score >= 9:
        return "high"
    elif score >= 4:
        return "medium"
    return "low"


def _person_ref(person):
    return person.to_brief() if person is not None else None


def _iso(value):
    return value.isoformat() if value else None


# ═══════════════════════════════════════════════════════════════════════════
#  ISSUE
# ═══════════════════════════════════════════════════════════════════════════

class Issue(TrackedItem):
    """A current problem / impediment affecting the project."""

    __tablename__ = "issues"

    ENTITY_TYPE = "issue"
    NUMBER_PREFIX = "ISS"
    NUMBER_FIELD = "issue_number"
    STATUSES = ISSUE_STATUSES
    INITIAL_STATUS = "Open"

    issue_number = db.Column(db.String(50), unique=True, nullable=False)
    priority = db.Column(db.String(20), default="Medium")
    status = db.Column(db.String(30), nullable=False, default="Open", index=True)
    category = db.Column(db.String(100), default="")
    raised_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    assigned_to = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    raised_date = db.Column(db.Date, nullable=False, default=date.today)
    target_resolution_date = db.Column(db.Date, nullable=True)
    actual_resolution_date = db.Column(db.Date, nullable=True)
    impact = db.Column(db.Text, default="")

    assignee = db.relationship("Person", foreign_keys=[assigned_to])

    def to_dict(self):
        d = self.base_dict()
        d.update({
            "priority": self.priority,
            "category": self.category,
            "raised_by": self.raised_by,
            "assigned_to": self.assigned_to,
            "assignee": _person_ref(self.assignee),
            "raised_date": _iso(self.raised_date),
            "target_resolution_date": _iso(self.target_resolution_date),
            "actual_resolution_date": _iso(self.actual_resolution_date),
            "impact": self.impact,
        })
        return d

    def __repr__(self):
        return f"<Issue {self.issue_number}: {self.title[:40]}>"


# ═══════════════════════════════════════════════════════════════════════════
#  RISK
# ═══════════════════════════════════════════════════════════════════════════

class Risk(TrackedItem):
    """
    A risk identified and tracked for a project.

    Risk score = probability × impact (1-25).  Closing a risk requires the
    closure approval sub-flow; ``closure_pending`` is the explicit marker
    for an open closure request.
    """

    __tablename__ = "risks"

    ENTITY_TYPE = "risk"
    NUMBER_PREFIX = "RSK"
    NUMBER_FIELD = "risk_number"
    STATUSES = RISK_STATUSES
    INITIAL_STATUS = "Identified"

    risk_number = db.Column(db.String(50), unique=True, nullable=False)
    probability = db.Column(db.String(20), default="Medium")
    impact = db.Column(db.String(20), default="Medium")
    risk_score = db.Column(db.Integer, default=9, comment="probability × impact")
    status = db.Column(db.String(30), nullable=False, default="Identified", index=True)
    category = db.Column(db.String(100), default="")
    identified_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    owner = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    identified_date = db.Column(db.Date, nullable=False, default=date.today)
    review_date = db.Column(db.Date, nullable=True)
    mitigation_strategy = db.Column(db.Text, default="")
    contingency_plan = db.Column(db.Text, default="")

    # Closure approval sub-flow
    closure_pending = db.Column(db.Boolean, nullable=False, default=False, index=True)
    closure_requested_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    closure_requested_date = db.Column(db.Date, nullable=True)
    closure_justification = db.Column(db.Text, default="")
    closure_approved_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    closure_comments = db.Column(db.Text, default="")
    closure_date = db.Column(db.Date, nullable=True)

    owner_person = db.relationship("Person", foreign_keys=[owner])

    def recalculate_score(self):
        """Recalculate risk_score from probability & impact."""
        self.risk_score = calculate_risk_score(self.probability, self.impact)

    @property
    def risk_level(self):
        return risk_level(self.risk_score or 0)

    def to_dict(self):
        d = self.base_dict()
        d.update({
            "probability": self.probability,
            "impact": self.impact,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level,
            "category": self.category,
            "identified_by": self.identified_by,
            "owner": self.owner,
            "owner_person": _person_ref(self.owner_person),
            "identified_date": _iso(self.identified_date),
            "review_date": _iso(self.review_date),
            "mitigation_strategy": self.mitigation_strategy,
            "contingency_plan": self.contingency_plan,
            "closure_pending": self.closure_pending,
            "closure_requested_by": self.closure_requested_by,
            "closure_requested_date": _iso(self.closure_requested_date),
            "closure_justification": self.closure_justification,
            "closure_approved_by": self.closure_approved_by,
            "closure_comments": self.closure_comments,
            "closure_date": _iso(self.closure_date),
        })
        return d

    def __repr__(self):
        return f"<Risk {self.risk_number}: {self.title[:40]}>"


# ═══════════════════════════════════════════════════════════════════════════
#  CHANGE
# ═══════════════════════════════════════════════════════════════════════════

class Change(TrackedItem):
    """
    A change request.

    Status is owned by the approval workflow:
        Requested → Under Review → Approved → Implemented → Closed
    with Rejected as the end of a cycle (resubmit restarts it) and a
    closure-approval gate in front of Closed.
    """

    __tablename__ = "changes"

    ENTITY_TYPE = "change"
    NUMBER_PREFIX = "CHG"
    NUMBER_FIELD = "change_number"
    STATUSES = CHANGE_STATUSES
    INITIAL_STATUS = "Requested"

    change_number = db.Column(db.String(50), unique=True, nullable=False)
    change_type = db.Column(db.String(30), default="Other")
    priority = db.Column(db.String(20), default="Medium")
    status = db.Column(db.String(30), nullable=False, default="Requested", index=True)
    requested_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    rejected_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    request_date = db.Column(db.Date, nullable=False, default=date.today)
    approval_date = db.Column(db.Date, nullable=True)
    rejection_date = db.Column(db.Date, nullable=True)
    implementation_date = db.Column(db.Date, nullable=True)
    closure_date = db.Column(db.Date, nullable=True)
    cost_impact = db.Column(db.Numeric(15, 2), nullable=True)
    schedule_impact_days = db.Column(db.Integer, nullable=True)
    justification = db.Column(db.Text, default="")
    impact_assessment = db.Column(db.Text, default="")

    # Text captured at each gate
    approval_justification = db.Column(db.Text, default="")
    approval_comments = db.Column(db.Text, default="")
    rejection_reason = db.Column(db.Text, default="")
    implementation_summary = db.Column(db.Text, default="")

    # Closure approval sub-flow
    closure_pending = db.Column(db.Boolean, nullable=False, default=False, index=True)
    closure_requested_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    closure_requested_date = db.Column(db.Date, nullable=True)
    closure_justification = db.Column(db.Text, default="")
    closure_approved_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    closure_comments = db.Column(db.Text, default="")

    requester = db.relationship("Person", foreign_keys=[requested_by])
    approver = db.relationship("Person", foreign_keys=[approved_by])

    def to_dict(self):
        d = self.base_dict()
        d.update({
            "change_type": self.change_type,
            "priority": self.priority,
            "requested_by": self.requested_by,
            "requester": _person_ref(self.requester),
            "approved_by": self.approved_by,
            "approver": _person_ref(self.approver),
            "rejected_by": self.rejected_by,
            "request_date": _iso(self.request_date),
            "approval_date": _iso(self.approval_date),
            "rejection_date": _iso(self.rejection_date),
            "implementation_date": _iso(self.implementation_date),
            "closure_date": _iso(self.closure_date),
            "cost_impact": float(self.cost_impact) if self.cost_impact is not None else None,
            "schedule_impact_days": self.schedule_impact_days,
            "justification": self.justification,
            "impact_assessment": self.impact_assessment,
            "approval_justification": self.approval_justification,
            "approval_comments": self.approval_comments,
            "rejection_reason": self.rejection_reason,
            "implementation_summary": self.implementation_summary,
            "closure_pending": self.closure_pending,
            "closure_requested_by": self.closure_requested_by,
            "closure_requested_date": _iso(self.closure_requested_date),
            "closure_justification": self.closure_justification,
            "closure_approved_by": self.closure_approved_by,
            "closure_comments": self.closure_comments,
        })
        return d

    def __repr__(self):
        return f"<Change {self.change_number}: {self.title[:40]}>"


# ═══════════════════════════════════════════════════════════════════════════
#  ESCALATION
# ═══════════════════════════════════════════════════════════════════════════

class Escalation(TrackedItem):
    """An item escalated to a higher authority for a decision or response."""

    __tablename__ = "escalations"

    ENTITY_TYPE = "escalation"
    NUMBER_PREFIX = "ESC"
    NUMBER_FIELD = "escalation_number"
    STATUSES = ESCALATION_STATUSES
    INITIAL_STATUS = "Raised"

    escalation_number = db.Column(db.String(50), unique=True, nullable=False)
    severity = db.Column(db.String(20), default="Medium")
    status = db.Column(db.String(30), nullable=False, default="Raised", index=True)
    escalation_type = db.Column(db.String(100), default="")
    raised_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    escalated_to = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    raised_date = db.Column(db.Date, nullable=False, default=date.today)
    target_response_date = db.Column(db.Date, nullable=True)
    actual_response_date = db.Column(db.Date, nullable=True)
    resolution_summary = db.Column(db.Text, default="")

    escalated_to_person = db.relationship("Person", foreign_keys=[escalated_to])

    def to_dict(self):
        d = self.base_dict()
        d.update({
            "severity": self.severity,
            "escalation_type": self.escalation_type,
            "raised_by": self.raised_by,
            "escalated_to": self.escalated_to,
            "escalated_to_person": _person_ref(self.escalated_to_person),
            "raised_date": _iso(self.raised_date),
            "target_response_date": _iso(self.target_response_date),
            "actual_response_date": _iso(self.actual_response_date),
            "resolution_summary": self.resolution_summary,
        })
        return d

    def __repr__(self):
        return f"<Escalation {self.escalation_number}: {self.title[:40]}>"


# ═══════════════════════════════════════════════════════════════════════════
#  FAULT
# ═══════════════════════════════════════════════════════════════════════════

class Fault(TrackedItem):
    """A defect or incident reported against the project deliverables."""

    __tablename__ = "faults"

    ENTITY_TYPE = "fault"
    NUMBER_PREFIX = "FLT"
    NUMBER_FIELD = "fault_number"
    STATUSES = FAULT_STATUSES
    INITIAL_STATUS = "Reported"

    fault_number = db.Column(db.String(50), unique=True, nullable=False)
    severity = db.Column(db.String(20), default="Major")
    status = db.Column(db.String(30), nullable=False, default="Reported", index=True)
    fault_type = db.Column(db.String(100), default="")
    reported_by = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    assigned_to = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    reported_date = db.Column(db.Date, nullable=False, default=date.today)
    target_fix_date = db.Column(db.Date, nullable=True)
    actual_fix_date = db.Column(db.Date, nullable=True)
    root_cause = db.Column(db.Text, default="")
    resolution = db.Column(db.Text, default="")

    assignee = db.relationship("Person", foreign_keys=[assigned_to])

    def to_dict(self):
        d = self.base_dict()
        d.update({
            "severity": self.severity,
            "fault_type": self.fault_type,
            "reported_by": self.reported_by,
            "assigned_to": self.assigned_to,
            "assignee": _person_ref(self.assignee),
            "reported_date": _iso(self.reported_date),
            "target_fix_date": _iso(self.target_fix_date),
            "actual_fix_date": _iso(self.actual_fix_date),
            "root_cause": self.root_cause,
            "resolution": self.resolution,
        })
        return d

    def __repr__(self):
        return f"<Fault {self.fault_number}: {self.title[:40]}>"


# Registry used by services/blueprints: URL segment → model
TRACKED_MODELS = {
    "issues": Issue,
    "risks": Risk,
    "changes": Change,
    "escalations": Escalation,
    "faults": Fault,
}

ENTITY_MODELS = {model.ENTITY_TYPE: model for model in TRACKED_MODELS.values()}
