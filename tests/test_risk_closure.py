"""
PM Tracker
Tests — Risk closure approval sub-flow.
"""

from datetime import date


TODAY = date.today().isoformat()


def _transition(client, risk_id, name, **payload):
    return client.post(f"/api/v1/risks/{risk_id}/{name}", json=payload)


def _mitigated(client, make_risk):
    risk = make_risk()
    res = client.put(f"/api/v1/risks/{risk['id']}", json={
        "status": "Mitigated",
        "mitigation_strategy": "Second consultant shadows the first",
    })
    assert res.status_code == 200, res.get_json()
    return res.get_json()["data"]


def _request(client, risk, people):
    return _transition(client, risk["id"], "request-closure",
                       requested_by=people["reviewer"]["id"],
                       closure_justification="Knowledge transfer completed")


class TestRiskClosureRequest:
    def test_request_from_identified_is_refused(self, client, make_risk, people):
        risk = make_risk()
        res = _request(client, risk, people)
        assert res.status_code == 409
        body = res.get_json()
        assert body["details"]["current_status"] == "Identified"
        assert body["details"]["required_status"] == "Mitigated"

    def test_request_from_mitigated(self, client, make_risk, people):
        risk = _mitigated(client, make_risk)
        res = _request(client, risk, people)
        assert res.status_code == 200
        body = res.get_json()
        assert body["previous_status"] == "Mitigated"
        assert body["new_status"] == "Mitigated"
        assert body["data"]["closure_pending"] is True
        assert body["data"]["closure_requested_by"] == people["reviewer"]["id"]
        assert body["data"]["closure_requested_date"] == TODAY
        assert body["log_entry"]["action"] == "request-closure"

    def test_request_requires_justification(self, client, make_risk, people):
        risk = _mitigated(client, make_risk)
        res = _transition(client, risk["id"], "request-closure",
                          requested_by=people["reviewer"]["id"])
        assert res.status_code == 400
        assert res.get_json()["details"] == {"closure_justification": "required"}

    def test_duplicate_request_is_refused(self, client, make_risk, people):
        risk = _mitigated(client, make_risk)
        _request(client, risk, people)
        res = _request(client, risk, people)
        assert res.status_code == 409


class TestRiskClosureDecision:
    def test_approve_closes_the_risk(self, client, make_risk, people):
        risk = _mitigated(client, make_risk)
        _request(client, risk, people)
        res = _transition(client, risk["id"], "approve-closure",
                          approved_by=people["approver"]["id"],
                          approval_comments="Residual exposure acceptable")
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["status"] == "Closed"
        assert data["closure_pending"] is False
        assert data["closure_approved_by"] == people["approver"]["id"]
        assert data["closure_comments"] == "Residual exposure acceptable"
        assert data["closure_date"] == TODAY

    def test_approve_without_request_is_refused(self, client, make_risk, people):
        risk = _mitigated(client, make_risk)
        res = _transition(client, risk["id"], "approve-closure",
                          approved_by=people["approver"]["id"],
                          approval_comments="ok")
        assert res.status_code == 409

    def test_reject_returns_to_mitigated(self, client, make_risk, people):
        risk = _mitigated(client, make_risk)
        _request(client, risk, people)
        res = _transition(client, risk["id"], "reject-closure",
                          rejected_by=people["approver"]["id"],
                          rejection_reason="Backup not yet trained")
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["status"] == "Mitigated"
        assert data["closure_pending"] is False
        assert data["closure_requested_by"] is None
        assert data["closure_comments"] == "Backup not yet trained"

    def test_log_records_each_step(self, client, make_risk, people):
        risk = _mitigated(client, make_risk)
        _request(client, risk, people)
        _transition(client, risk["id"], "approve-closure",
                    approved_by=people["approver"]["id"], approval_comments="Done")
        res = client.get(f"/api/v1/risks/{risk['id']}/log?order=asc")
        actions = [row["action"] for row in res.get_json()["items"]]
        assert actions == ["create", "update", "request-closure", "approve-closure"]


class TestRiskGenericEdits:
    def test_closed_cannot_be_set_directly(self, client, make_risk):
        risk = make_risk()
        res = client.put(f"/api/v1/risks/{risk['id']}", json={"status": "Closed"})
        assert res.status_code == 403
        assert res.get_json()["details"] == {"target_status": "Closed", "use": "approve-closure"}

    def test_pending_closure_blocks_status_edit(self, client, make_risk, people):
        risk = _mitigated(client, make_risk)
        _request(client, risk, people)
        res = client.put(f"/api/v1/risks/{risk['id']}", json={"status": "Occurred"})
        assert res.status_code == 409
        assert client.get(f"/api/v1/risks/{risk['id']}").get_json()["status"] == "Mitigated"

    def test_pending_closure_allows_field_edits(self, client, make_risk, people):
        risk = _mitigated(client, make_risk)
        _request(client, risk, people)
        res = client.put(f"/api/v1/risks/{risk['id']}", json={"contingency_plan": "Hire contractor"})
        assert res.status_code == 200
        assert res.get_json()["data"]["closure_pending"] is True

    def test_closed_risk_refuses_reopen(self, client, make_risk, people):
        risk = _mitigated(client, make_risk)
        _request(client, risk, people)
        _transition(client, risk["id"], "approve-closure",
                    approved_by=people["approver"]["id"], approval_comments="Done")
        res = client.put(f"/api/v1/risks/{risk['id']}", json={"status": "Identified"})
        assert res.status_code == 409

    def test_free_statuses_move_without_workflow(self, client, make_risk):
        risk = make_risk()
        for status in ("Assessed", "Occurred", "Identified"):
            res = client.put(f"/api/v1/risks/{risk['id']}", json={"status": status})
            assert res.status_code == 200, status
            assert res.get_json()["data"]["status"] == status

    def test_transitions_endpoint(self, client, make_risk, people):
        risk = _mitigated(client, make_risk)
        res = client.get(f"/api/v1/risks/{risk['id']}/transitions")
        assert [t["transition"] for t in res.get_json()["transitions"]] == ["request-closure"]
        _request(client, risk, people)
        res = client.get(f"/api/v1/risks/{risk['id']}/transitions")
        assert [t["transition"] for t in res.get_json()["transitions"]] == [
            "approve-closure", "reject-closure",
        ]

    def test_no_transitions_outside_mitigated(self, client, make_risk):
        risk = make_risk()
        res = client.get(f"/api/v1/risks/{risk['id']}/transitions")
        assert res.get_json()["transitions"] == []
