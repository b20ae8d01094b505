"""
PM Tracker
Tests — Tracked item API (issues, risks, changes, escalations, faults),
actions and the per-entity log.
"""

from datetime import date, timedelta

import pytest

from pmtracker.models.action import EntityAction
from pmtracker.models.audit import EntityLog


TODAY = date.today().isoformat()


def _create(client, kind, project, **kw):
    payload = {"project_id": project["id"], "title": f"Test {kind}"}
    payload.update(kw)
    res = client.post(f"/api/v1/{kind}", json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _log(client, kind, item_id, order="desc"):
    res = client.get(f"/api/v1/{kind}/{item_id}/log?order={order}")
    assert res.status_code == 200
    return res.get_json()["items"]


# ═════════════════════════════════════════════════════════════════════════════
# CREATE / READ
# ═════════════════════════════════════════════════════════════════════════════

class TestCreate:
    @pytest.mark.parametrize("kind,field,first,status", [
        ("issues", "issue_number", "ISS-001", "Open"),
        ("risks", "risk_number", "RSK-001", "Identified"),
        ("changes", "change_number", "CHG-001", "Requested"),
        ("escalations", "escalation_number", "ESC-001", "Raised"),
        ("faults", "fault_number", "FLT-001", "Reported"),
    ])
    def test_auto_number_and_initial_status(self, client, project, kind, field, first, status):
        item = _create(client, kind, project)
        assert item[field] == first
        assert item["status"] == status
        assert item["project_id"] == project["id"]

        second = _create(client, kind, project)
        assert second[field] == first[:-1] + "2"

    def test_created_log_row(self, client, project, people):
        issue = _create(client, "issues", project, raised_by=people["reviewer"]["id"])
        log = _log(client, "issues", issue["id"])
        assert len(log) == 1
        assert log[0]["log_type"] == "Created"
        assert log[0]["action"] == "create"
        assert log[0]["new_status"] == "Open"
        assert log[0]["logged_by"] == people["reviewer"]["id"]
        assert "ISS-001" in log[0]["comments"]

    def test_missing_title_and_project(self, client):
        res = client.post("/api/v1/issues", json={})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"title": "required", "project_id": "required"}

    def test_unknown_project(self, client):
        res = client.post("/api/v1/issues", json={"project_id": 999, "title": "x"})
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_invalid_choice(self, client, project):
        res = client.post("/api/v1/faults", json={
            "project_id": project["id"], "title": "Crash", "severity": "Low",
        })
        assert res.status_code == 400
        assert "severity" in res.get_json()["details"]

    def test_unknown_person_reference(self, client, project):
        res = client.post("/api/v1/issues", json={
            "project_id": project["id"], "title": "x", "assigned_to": 555,
        })
        assert res.status_code == 400
        assert res.get_json()["details"] == {"assigned_to": "unknown person"}

    def test_invalid_date(self, client, project):
        res = client.post("/api/v1/issues", json={
            "project_id": project["id"], "title": "x", "target_resolution_date": "soon",
        })
        assert res.status_code == 400
        assert res.get_json()["details"] == {"target_resolution_date": "invalid date"}

    def test_european_date_accepted(self, client, project):
        issue = _create(client, "issues", project, target_resolution_date="31.12.2026")
        assert issue["target_resolution_date"] == "2026-12-31"

    def test_unknown_kind_is_404(self, client):
        assert client.get("/api/v1/widgets").status_code == 404

    def test_get_missing_item(self, client):
        res = client.get("/api/v1/risks/12345")
        assert res.status_code == 404

    def test_non_json_body_rejected(self, client, project):
        res = client.post("/api/v1/issues", data="title=x", content_type="text/plain")
        assert res.status_code == 415


# ═════════════════════════════════════════════════════════════════════════════
# LIST / FILTER
# ═════════════════════════════════════════════════════════════════════════════

class TestList:
    def test_filters(self, client, project):
        _create(client, "issues", project, title="Login fails", priority="High")
        _create(client, "issues", project, title="Slow report", priority="Low")
        closed = _create(client, "issues", project, title="Typo on login page", priority="Low")
        client.put(f"/api/v1/issues/{closed['id']}", json={"status": "Closed"})

        res = client.get("/api/v1/issues?priority=Low")
        assert res.get_json()["total"] == 2

        res = client.get("/api/v1/issues?search=login")
        assert {i["title"] for i in res.get_json()["items"]} == {"Login fails", "Typo on login page"}

        res = client.get("/api/v1/issues?status=Closed")
        assert [i["id"] for i in res.get_json()["items"]] == [closed["id"]]

        res = client.get(f"/api/v1/issues?project_id={project['id']}")
        assert res.get_json()["total"] == 3

    def test_search_matches_number(self, client, project):
        _create(client, "faults", project)
        _create(client, "faults", project)
        res = client.get("/api/v1/faults?search=FLT-002")
        assert [f["fault_number"] for f in res.get_json()["items"]] == ["FLT-002"]

    def test_pagination(self, client, project):
        for i in range(5):
            _create(client, "escalations", project, title=f"E{i}")
        res = client.get("/api/v1/escalations?limit=2&offset=1")
        body = res.get_json()
        assert body["total"] == 5
        assert len(body["items"]) == 2

    def test_risks_sorted_by_score(self, client, project):
        _create(client, "risks", project, title="low", probability="Low", impact="Low")
        _create(client, "risks", project, title="top", probability="Very High", impact="Very High")
        _create(client, "risks", project, title="mid", probability="Medium", impact="High")
        res = client.get("/api/v1/risks")
        assert [r["title"] for r in res.get_json()["items"]] == ["top", "mid", "low"]

        res = client.get("/api/v1/risks?risk_score_min=10")
        assert [r["title"] for r in res.get_json()["items"]] == ["top", "mid"]

    def test_change_type_filter(self, client, project):
        _create(client, "changes", project, change_type="Cost")
        _create(client, "changes", project, change_type="Scope")
        res = client.get("/api/v1/changes?change_type=Cost")
        assert [c["change_type"] for c in res.get_json()["items"]] == ["Cost"]


# ═════════════════════════════════════════════════════════════════════════════
# UPDATE
# ═════════════════════════════════════════════════════════════════════════════

class TestUpdate:
    def test_plain_status_change_is_logged(self, client, project, people):
        issue = _create(client, "issues", project)
        res = client.put(f"/api/v1/issues/{issue['id']}", json={
            "status": "In Progress",
            "status_comment": "Picked up by the basis team",
            "updated_by": people["approver"]["id"],
        })
        assert res.status_code == 200
        assert res.get_json()["data"]["status"] == "In Progress"

        row = _log(client, "issues", issue["id"])[0]
        assert row["log_type"] == "Status Change"
        assert row["previous_status"] == "Open"
        assert row["new_status"] == "In Progress"
        assert row["comments"] == "Picked up by the basis team"
        assert row["logged_by"] == people["approver"]["id"]

    def test_invalid_status(self, client, project):
        issue = _create(client, "issues", project)
        res = client.put(f"/api/v1/issues/{issue['id']}", json={"status": "Done"})
        assert res.status_code == 400

    def test_inactive_editor_rejected(self, client, project, people):
        issue = _create(client, "issues", project)
        client.put(f"/api/v1/people/{people['reviewer']['id']}", json={"is_active": False})
        res = client.put(f"/api/v1/issues/{issue['id']}", json={
            "title": "x", "updated_by": people["reviewer"]["id"],
        })
        assert res.status_code == 400

    @pytest.mark.parametrize("kind,status,field", [
        ("issues", "Resolved", "actual_resolution_date"),
        ("escalations", "Resolved", "actual_response_date"),
        ("faults", "Closed", "actual_fix_date"),
    ])
    def test_resolution_date_stamped(self, client, project, kind, status, field):
        item = _create(client, kind, project)
        res = client.put(f"/api/v1/{kind}/{item['id']}", json={"status": status})
        assert res.status_code == 200
        assert res.get_json()["data"][field] == TODAY

    def test_explicit_resolution_date_kept(self, client, project):
        issue = _create(client, "issues", project)
        res = client.put(f"/api/v1/issues/{issue['id']}", json={
            "status": "Resolved", "actual_resolution_date": "2026-01-15",
        })
        assert res.get_json()["data"]["actual_resolution_date"] == "2026-01-15"

    def test_title_cannot_be_blanked(self, client, project):
        issue = _create(client, "issues", project)
        res = client.put(f"/api/v1/issues/{issue['id']}", json={"title": "  "})
        assert res.status_code == 400

    def test_change_requester_is_create_only(self, client, make_change, people):
        change = make_change()
        res = client.put(f"/api/v1/changes/{change['id']}", json={
            "requested_by": people["approver"]["id"],
        })
        assert res.status_code == 200
        assert res.get_json()["data"]["requested_by"] == people["requester"]["id"]

    def test_change_impact_update_logged(self, client, make_change):
        change = make_change()
        res = client.put(f"/api/v1/changes/{change['id']}", json={"cost_impact": "15000.50"})
        assert res.status_code == 200
        assert res.get_json()["data"]["cost_impact"] == 15000.5

        row = _log(client, "changes", change["id"])[0]
        assert row["log_type"] == "Updated"
        assert "15000.50" in row["comments"]

    def test_change_impact_rejects_garbage(self, client, make_change):
        change = make_change()
        res = client.put(f"/api/v1/changes/{change['id']}", json={"schedule_impact_days": "two"})
        assert res.status_code == 400


class TestRiskScoring:
    def test_score_computed_on_create(self, make_risk):
        risk = make_risk()
        assert risk["risk_score"] == 20
        assert risk["risk_level"] == "critical"

    def test_unknown_label_defaults_to_medium(self, client, project):
        risk = _create(client, "risks", project)
        assert risk["risk_score"] == 9
        assert risk["risk_level"] == "high"

    def test_rescore_logs_update(self, client, make_risk):
        risk = make_risk()
        res = client.put(f"/api/v1/risks/{risk['id']}", json={"probability": "Low"})
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["risk_score"] == 10
        assert data["risk_level"] == "high"

        row = _log(client, "risks", risk["id"])[0]
        assert row["log_type"] == "Updated"
        assert "20 → 10" in row["comments"]

    def test_unchanged_score_not_logged(self, client, make_risk):
        risk = make_risk()
        client.put(f"/api/v1/risks/{risk['id']}", json={"category": "Resource"})
        assert len(_log(client, "risks", risk["id"])) == 1

    def test_invalid_probability(self, client, make_risk):
        risk = make_risk()
        res = client.put(f"/api/v1/risks/{risk['id']}", json={"probability": "Certain"})
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# DELETE
# ═════════════════════════════════════════════════════════════════════════════

class TestDelete:
    def test_delete_cascades_actions_and_log(self, client, project, people):
        issue = _create(client, "issues", project)
        other = _create(client, "issues", project)
        client.post(f"/api/v1/issues/{issue['id']}/actions", json={"action_description": "a"})
        client.post(f"/api/v1/issues/{issue['id']}/actions", json={"action_description": "b"})
        client.post(f"/api/v1/issues/{other['id']}/actions", json={"action_description": "c"})
        client.post(f"/api/v1/issues/{issue['id']}/log", json={
            "comments": "note", "logged_by": people["requester"]["id"],
        })

        res = client.delete(f"/api/v1/issues/{issue['id']}")
        assert res.status_code == 200
        body = res.get_json()
        assert body == {"deleted": "ISS-001", "actions_deleted": 2, "log_rows_deleted": 2}

        assert client.get(f"/api/v1/issues/{issue['id']}").status_code == 404
        assert EntityAction.query.filter_by(entity_type="issue", parent_id=issue["id"]).count() == 0
        assert EntityLog.query.filter_by(entity_type="issue", parent_id=issue["id"]).count() == 0
        assert EntityAction.query.filter_by(entity_type="issue", parent_id=other["id"]).count() == 1

    def test_same_parent_id_other_kind_untouched(self, client, project):
        issue = _create(client, "issues", project)
        fault = _create(client, "faults", project)
        assert issue["id"] == fault["id"]
        client.post(f"/api/v1/faults/{fault['id']}/actions", json={"action_description": "keep"})
        client.delete(f"/api/v1/issues/{issue['id']}")
        res = client.get(f"/api/v1/faults/{fault['id']}/actions")
        assert res.get_json()["total"] == 1

    def test_delete_missing(self, client):
        assert client.delete("/api/v1/faults/77").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# ACTIONS
# ═════════════════════════════════════════════════════════════════════════════

class TestActions:
    def test_create_and_list(self, client, project, people):
        issue = _create(client, "issues", project)
        later = (date.today() + timedelta(days=10)).isoformat()
        sooner = (date.today() + timedelta(days=2)).isoformat()
        client.post(f"/api/v1/issues/{issue['id']}/actions", json={
            "action_description": "Later", "due_date": later,
        })
        res = client.post(f"/api/v1/issues/{issue['id']}/actions", json={
            "action_description": "Sooner", "due_date": sooner,
            "assigned_to": people["reviewer"]["id"], "priority": "High",
        })
        assert res.status_code == 201
        action = res.get_json()
        assert action["status"] == "Pending"
        assert action["entity_type"] == "issue"
        assert action["assignee"]["full_name"] == "Kim Reviewer"
        assert action["is_overdue"] is False

        res = client.get(f"/api/v1/issues/{issue['id']}/actions")
        assert [a["action_description"] for a in res.get_json()["items"]] == ["Sooner", "Later"]

    def test_description_required(self, client, project):
        issue = _create(client, "issues", project)
        res = client.post(f"/api/v1/issues/{issue['id']}/actions", json={"action_description": ""})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"action_description": "required"}

    def test_non_string_description_rejected(self, client, make_change):
        change = make_change()
        url = f"/api/v1/changes/{change['id']}/actions"
        res = client.post(url, json={"action_description": 5})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"action_description": "must be a string"}

        action = client.post(url, json={"action_description": "Draft plan"}).get_json()
        res = client.put(f"{url}/{action['id']}", json={"notes": ["a", "b"]})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"notes": "must be a string"}

    def test_non_string_title_rejected(self, client, project):
        res = client.post("/api/v1/issues", json={"project_id": project["id"], "title": 42})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"title": "must be a string"}

        issue = _create(client, "issues", project)
        res = client.put(f"/api/v1/issues/{issue['id']}", json={"description": {"x": 1}})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"description": "must be a string"}

    def test_created_completed_gets_date(self, client, project):
        fault = _create(client, "faults", project)
        res = client.post(f"/api/v1/faults/{fault['id']}/actions", json={
            "action_description": "Patched", "status": "Completed",
        })
        assert res.get_json()["completed_date"] == TODAY

    def test_completion_stamps_date(self, client, project):
        issue = _create(client, "issues", project)
        action = client.post(f"/api/v1/issues/{issue['id']}/actions",
                             json={"action_description": "Fix"}).get_json()
        res = client.put(f"/api/v1/issues/{issue['id']}/actions/{action['id']}",
                         json={"status": "Completed"})
        assert res.status_code == 200
        assert res.get_json()["completed_date"] == TODAY

    def test_overdue_flag(self, client, project):
        issue = _create(client, "issues", project)
        past = (date.today() - timedelta(days=3)).isoformat()
        action = client.post(f"/api/v1/issues/{issue['id']}/actions", json={
            "action_description": "Late", "due_date": past,
        }).get_json()
        assert action["is_overdue"] is True

    def test_invalid_status(self, client, project):
        issue = _create(client, "issues", project)
        res = client.post(f"/api/v1/issues/{issue['id']}/actions", json={
            "action_description": "x", "status": "Blocked",
        })
        assert res.status_code == 400

    def test_action_scoped_to_parent(self, client, project):
        issue = _create(client, "issues", project)
        other = _create(client, "issues", project)
        action = client.post(f"/api/v1/issues/{issue['id']}/actions",
                             json={"action_description": "x"}).get_json()
        res = client.put(f"/api/v1/issues/{other['id']}/actions/{action['id']}",
                         json={"status": "Completed"})
        assert res.status_code == 404
        res = client.delete(f"/api/v1/risks/{issue['id']}/actions/{action['id']}")
        assert res.status_code == 404

    def test_delete_action(self, client, project):
        issue = _create(client, "issues", project)
        action = client.post(f"/api/v1/issues/{issue['id']}/actions",
                             json={"action_description": "x"}).get_json()
        res = client.delete(f"/api/v1/issues/{issue['id']}/actions/{action['id']}")
        assert res.status_code == 200
        assert client.get(f"/api/v1/issues/{issue['id']}/actions").get_json()["total"] == 0

    def test_actions_editable_on_rejected_change(self, client, make_change, people):
        change = make_change()
        action = client.post(f"/api/v1/changes/{change['id']}/actions",
                             json={"action_description": "Update docs"}).get_json()
        cid = change["id"]
        client.post(f"/api/v1/changes/{cid}/request-approval", json={
            "requested_by": people["requester"]["id"], "approval_justification": "x"})
        client.post(f"/api/v1/changes/{cid}/reject", json={
            "rejected_by": people["approver"]["id"], "rejection_reason": "no"})
        res = client.put(f"/api/v1/changes/{cid}/actions/{action['id']}",
                         json={"status": "Cancelled"})
        assert res.status_code == 200

    def test_parent_missing(self, client):
        res = client.post("/api/v1/issues/404/actions", json={"action_description": "x"})
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# LOG / COMMENTS / DETAIL
# ═════════════════════════════════════════════════════════════════════════════

class TestLogAndDetail:
    def test_add_comment(self, client, project, people):
        issue = _create(client, "issues", project)
        res = client.post(f"/api/v1/issues/{issue['id']}/log", json={
            "comments": "Vendor contacted", "logged_by": people["approver"]["id"],
        })
        assert res.status_code == 201
        row = res.get_json()
        assert row["log_type"] == "Comment"
        assert row["author"]["full_name"] == "Omar Approver"

    def test_comment_requires_text_and_author(self, client, project, people):
        issue = _create(client, "issues", project)
        res = client.post(f"/api/v1/issues/{issue['id']}/log", json={"logged_by": people["approver"]["id"]})
        assert res.status_code == 400
        res = client.post(f"/api/v1/issues/{issue['id']}/log", json={"comments": "x"})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"logged_by": "required"}

    def test_comment_does_not_change_status(self, client, make_change, people):
        change = make_change()
        client.post(f"/api/v1/changes/{change['id']}/log", json={
            "comments": "FYI", "logged_by": people["reviewer"]["id"],
        })
        assert client.get(f"/api/v1/changes/{change['id']}").get_json()["status"] == "Requested"

    def test_log_order(self, client, project, people):
        issue = _create(client, "issues", project)
        for text in ("first", "second"):
            client.post(f"/api/v1/issues/{issue['id']}/log", json={
                "comments": text, "logged_by": people["requester"]["id"],
            })
        newest = _log(client, "issues", issue["id"])
        oldest = _log(client, "issues", issue["id"], order="asc")
        assert newest[0]["comments"] == "second"
        assert oldest[0]["log_type"] == "Created"
        assert [r["id"] for r in newest] == [r["id"] for r in reversed(oldest)]

    def test_detail_embeds_actions_and_recent_log(self, client, project, people):
        issue = _create(client, "issues", project)
        client.post(f"/api/v1/issues/{issue['id']}/actions", json={"action_description": "x"})
        for i in range(25):
            client.post(f"/api/v1/issues/{issue['id']}/log", json={
                "comments": f"note {i}", "logged_by": people["requester"]["id"],
            })
        detail = client.get(f"/api/v1/issues/{issue['id']}").get_json()
        assert len(detail["actions"]) == 1
        assert len(detail["recent_log"]) == 20
        assert detail["recent_log"][0]["comments"] == "note 24"
        assert "available_transitions" not in detail
