"""
PM Tracker
Tests — workflow engine internals (table integrity, guard, replay).

Runs against the service layer directly inside the app context.
"""

import pytest

from pmtracker.core.exceptions import (
    DirectMutationNotAllowed,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from pmtracker.models import db
from pmtracker.models.project import Person, Project
from pmtracker.models.tracking import Change, Risk
from pmtracker.services.audit_service import list_log
from pmtracker.services.workflow import (
    CHANGE_WORKFLOW,
    RISK_CLOSURE_WORKFLOW,
    WORKFLOWS,
    apply_transition,
    guard_status_update,
    replay_status,
)


@pytest.fixture()
def seeded():
    project = Project(project_code="WF-1", project_name="Workflow")
    alice = Person(username="alice", full_name="Alice")
    bob = Person(username="bob", full_name="Bob")
    gone = Person(username="gone", full_name="Gone", is_active=False)
    db.session.add_all([project, alice, bob, gone])
    db.session.flush()
    change = Change(project_id=project.id, change_number="CHG-001", title="C", status="Requested")
    risk = Risk(project_id=project.id, risk_number="RSK-001", title="R", status="Mitigated")
    db.session.add_all([change, risk])
    db.session.commit()
    return {"project": project, "alice": alice, "bob": bob, "gone": gone,
            "change": change, "risk": risk}


class TestTransitionTables:
    @pytest.mark.parametrize("workflow", list(WORKFLOWS.values()))
    def test_sources_and_targets_are_known_states(self, workflow):
        for t in workflow.transitions.values():
            assert t.source in workflow.states
            assert t.target is None or t.target in workflow.states

    @pytest.mark.parametrize("workflow", list(WORKFLOWS.values()))
    def test_gated_and_routed_name_real_transitions(self, workflow):
        for status, name in {**workflow.gated, **workflow.routed}.items():
            assert status in workflow.states
            assert name in workflow.transitions

    def test_no_transition_leaves_a_terminal_state(self):
        for workflow in WORKFLOWS.values():
            for t in workflow.transitions.values():
                assert t.source not in workflow.terminal

    def test_change_closure_pair_is_mutually_exclusive(self):
        pending = [t.name for t in CHANGE_WORKFLOW.available("Implemented", True)]
        idle = [t.name for t in CHANGE_WORKFLOW.available("Implemented", False)]
        assert set(pending).isdisjoint(idle)

    def test_risk_flow_only_touches_mitigated(self):
        assert {t.source for t in RISK_CLOSURE_WORKFLOW.transitions.values()} == {"Mitigated"}


class TestApplyTransition:
    def test_happy_path_writes_one_log_row(self, seeded):
        result = apply_transition("change", seeded["change"].id, "request-approval", {
            "requested_by": seeded["alice"].id,
            "approval_justification": "Needed",
        })
        db.session.commit()
        assert result["new_status"] == "Under Review"
        assert result["log_entry"]["logged_by"] == seeded["alice"].id
        assert db.session.get(Change, seeded["change"].id).status == "Under Review"

    def test_missing_entity(self, seeded):
        with pytest.raises(NotFoundError):
            apply_transition("change", 999, "approve", {})

    def test_unknown_transition_name(self, seeded):
        with pytest.raises(ValidationError) as exc:
            apply_transition("change", seeded["change"].id, "teleport", {})
        assert exc.value.details == {"transition": "unknown"}

    def test_entity_without_workflow(self, seeded):
        with pytest.raises(ValidationError):
            apply_transition("issue", 1, "approve", {})

    def test_wrong_state(self, seeded):
        with pytest.raises(InvalidStateError) as exc:
            apply_transition("change", seeded["change"].id, "approve", {
                "approved_by": seeded["bob"].id, "approval_comments": "ok",
            })
        assert exc.value.details["current_status"] == "Requested"
        assert exc.value.details["required_status"] == "Under Review"

    def test_inactive_actor(self, seeded):
        with pytest.raises(ValidationError) as exc:
            apply_transition("change", seeded["change"].id, "request-approval", {
                "requested_by": seeded["gone"].id, "approval_justification": "x",
            })
        assert exc.value.details == {"requested_by": "unknown person"}

    def test_malformed_actor(self, seeded):
        with pytest.raises(ValidationError) as exc:
            apply_transition("change", seeded["change"].id, "request-approval", {
                "requested_by": "alice", "approval_justification": "x",
            })
        assert exc.value.details == {"requested_by": "invalid person id"}

    def test_risk_closure_round_trip(self, seeded):
        risk_id = seeded["risk"].id
        apply_transition("risk", risk_id, "request-closure", {
            "requested_by": seeded["alice"].id, "closure_justification": "Done",
        })
        result = apply_transition("risk", risk_id, "approve-closure", {
            "approved_by": seeded["bob"].id, "approval_comments": "Agreed",
        })
        db.session.commit()
        assert result["previous_status"] == "Mitigated"
        assert result["new_status"] == "Closed"
        assert db.session.get(Risk, risk_id).closure_pending is False


class TestGuardStatusUpdate:
    def test_unknown_status(self, seeded):
        with pytest.raises(ValidationError):
            guard_status_update(seeded["change"], "Shipped")

    def test_unchanged_status_is_allowed(self, seeded):
        assert guard_status_update(seeded["change"], "Requested") is None

    def test_gated_status(self, seeded):
        with pytest.raises(DirectMutationNotAllowed) as exc:
            guard_status_update(seeded["change"], "Approved")
        assert exc.value.use == "approve"

    def test_implemented_is_routed(self, seeded):
        seeded["change"].status = "Approved"
        assert guard_status_update(seeded["change"], "Implemented") == "mark-implemented"

    def test_closed_entity_is_frozen(self, seeded):
        seeded["risk"].status = "Closed"
        with pytest.raises(InvalidStateError):
            guard_status_update(seeded["risk"], "Identified")

    def test_pending_closure_blocks_status_change(self, seeded):
        seeded["risk"].closure_pending = True
        with pytest.raises(InvalidStateError):
            guard_status_update(seeded["risk"], "Occurred")

    def test_free_risk_status(self, seeded):
        assert guard_status_update(seeded["risk"], "Assessed") is None


class TestReplayStatus:
    def test_empty_log_is_initial(self):
        assert replay_status([], "Requested") == "Requested"

    def test_ignores_non_status_rows(self):
        entries = [
            {"log_type": "Created", "new_status": "Requested"},
            {"log_type": "Status Change", "new_status": "Under Review"},
            {"log_type": "Comment", "new_status": None},
            {"log_type": "Updated", "new_status": None},
            {"log_type": "Status Change", "new_status": "Approved"},
        ]
        assert replay_status(entries, "Requested") == "Approved"

    def test_replay_matches_stored_status(self, seeded):
        change_id = seeded["change"].id
        alice, bob = seeded["alice"].id, seeded["bob"].id
        apply_transition("change", change_id, "request-approval",
                         {"requested_by": alice, "approval_justification": "Needed"})
        apply_transition("change", change_id, "reject",
                         {"rejected_by": bob, "rejection_reason": "Too big"})
        apply_transition("change", change_id, "resubmit",
                         {"requested_by": alice, "resubmit_justification": "Smaller"})
        apply_transition("change", change_id, "request-approval",
                         {"requested_by": alice, "approval_justification": "Needed"})
        db.session.commit()

        rows = list_log("change", change_id, newest_first=False)
        assert replay_status(rows, "Requested") == db.session.get(Change, change_id).status

    def test_created_status_is_starting_point(self):
        entries = [
            {"log_type": "Created", "new_status": "Mitigated"},
            {"log_type": "Updated", "new_status": None},
        ]
        assert replay_status(entries, "Identified") == "Mitigated"

    def test_risk_created_mitigated_replays(self, client, make_risk, people):
        risk = make_risk(status="Mitigated")
        rows = list_log("risk", risk["id"], newest_first=False)
        assert replay_status(rows, "Identified") == "Mitigated"

        client.post(f"/api/v1/risks/{risk['id']}/request-closure", json={
            "requested_by": people["reviewer"]["id"], "closure_justification": "done",
        })
        client.post(f"/api/v1/risks/{risk['id']}/approve-closure", json={
            "approved_by": people["approver"]["id"], "approval_comments": "ok",
        })
        rows = list_log("risk", risk["id"], newest_first=False)
        assert replay_status(rows, "Identified") == db.session.get(Risk, risk["id"]).status == "Closed"
