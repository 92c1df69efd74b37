"""HTTP-level tests for the review API."""

import uuid

import pytest
from fastapi.testclient import TestClient

from reviewflow.core.identity import CLIENT_CONTACT


pytestmark = [pytest.mark.db, pytest.mark.integration]


STEPS = [
    {"name": "Design Lead"},
    {"name": "Client Sign-off", "requires_signature": True, "approver_type": "client_contact"},
    {"name": "Final QA"},
]


@pytest.fixture()
def team(auth_headers):
    return auth_headers("alice")


@pytest.fixture()
def client_contact(auth_headers):
    return auth_headers("bob", actor_type=CLIENT_CONTACT, name="Bob Client")


@pytest.fixture()
def deliverable(client: TestClient, team):
    response = client.post(
        "/api/deliverables",
        json={
            "project_id": str(uuid.uuid4()),
            "title": "Homepage mockup",
            "artifact_ref": "s3://bucket/home-v1.pdf",
        },
        headers=team,
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture()
def workflow(client: TestClient, team, deliverable):
    response = client.post(f"/api/deliverables/{deliverable['id']}/submit", json={"steps": STEPS}, headers=team)
    assert response.status_code == 201
    return response.json()


def act(client, workflow, index, action, headers, **extra):
    body = {"action": action, "step_id": workflow["steps"][index]["id"], **extra}
    return client.post(f"/api/workflows/{workflow['workflow_id']}/actions", json=body, headers=headers)


class TestDeliverables:

    def test_create_starts_as_draft(self, deliverable):
        assert deliverable["status"] == "draft"
        assert deliverable["current_version"] == 1
        assert deliverable["active_workflow_id"] is None
        assert deliverable["created_by"] == "alice"

    def test_get(self, client, team, deliverable):
        response = client.get(f"/api/deliverables/{deliverable['id']}", headers=team)
        assert response.status_code == 200
        assert response.json()["title"] == "Homepage mockup"

    def test_blank_artifact_rejected(self, client, team):
        response = client.post(
            "/api/deliverables",
            json={"project_id": str(uuid.uuid4()), "title": "x", "artifact_ref": "   "},
            headers=team,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "MissingArtifact"

    def test_unknown_deliverable(self, client, team):
        response = client.get(f"/api/deliverables/{uuid.uuid4()}", headers=team)
        assert response.status_code == 404
        assert response.json()["error"] == "DeliverableNotFound"


class TestAuthentication:

    def test_missing_token(self, client, deliverable):
        response = client.get(f"/api/deliverables/{deliverable['id']}")
        assert response.status_code == 401

    def test_invalid_token(self, client, deliverable):
        response = client.get(
            f"/api/deliverables/{deliverable['id']}",
            headers={"Authorization": "Bearer nonsense"},
        )
        assert response.status_code == 401


class TestSubmit:

    def test_submit(self, workflow, deliverable):
        assert workflow["deliverable_id"] == deliverable["id"]
        assert workflow["status"] == "pending"
        assert workflow["deliverable_status"] == "in_review"
        assert workflow["current_step_index"] == 0
        assert [s["name"] for s in workflow["steps"]] == ["Design Lead", "Client Sign-off", "Final QA"]
        assert workflow["steps"][0]["is_current"] is True
        assert [h["action"] for h in workflow["history"]] == ["workflow_created"]

    def test_empty_steps(self, client, team, deliverable):
        response = client.post(f"/api/deliverables/{deliverable['id']}/submit", json={"steps": []}, headers=team)
        assert response.status_code == 422
        assert response.json()["error"] == "EmptyWorkflow"

    def test_duplicate_sequence(self, client, team, deliverable):
        response = client.post(
            f"/api/deliverables/{deliverable['id']}/submit",
            json={"steps": [{"name": "A", "sequence": 1}, {"name": "B", "sequence": 1}]},
            headers=team,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidStepTemplate"

    def test_second_submit_conflicts(self, client, team, deliverable, workflow):
        response = client.post(f"/api/deliverables/{deliverable['id']}/submit", json={"steps": STEPS}, headers=team)
        assert response.status_code == 409
        assert response.json()["error"] == "WorkflowAlreadyActive"


class TestActions:

    def test_full_approval(self, client, team, client_contact, deliverable, workflow):
        assert act(client, workflow, 0, "approve_step", team).status_code == 200

        blocked = act(client, workflow, 1, "approve_step", client_contact)
        assert blocked.status_code == 409
        assert blocked.json() == {
            "error": "SignatureRequired",
            "detail": blocked.json()["detail"],
            "workflow_id": workflow["workflow_id"],
            "step_id": workflow["steps"][1]["id"],
        }

        signed = act(
            client, workflow, 1, "add_signature", client_contact,
            signature_data="data:image/png;base64,AAAA", signature_method="draw",
        )
        assert signed.status_code == 200
        signature = signed.json()["signatures"][0]
        assert signature["signer_id"] == "bob"
        assert signature["signer_name"] == "Bob Client"

        assert act(client, workflow, 1, "approve_step", client_contact).status_code == 200
        final = act(client, workflow, 2, "approve_step", team, comments="ship it")
        assert final.status_code == 200
        body = final.json()
        assert body["status"] == "approved"
        assert body["deliverable_status"] == "approved"
        assert body["current_step_id"] is None
        assert body["completed_at"] is not None

        detail = client.get(f"/api/deliverables/{deliverable['id']}", headers=team).json()
        assert detail["status"] == "approved"

    def test_wrong_actor_type(self, client, team, workflow):
        act(client, workflow, 0, "approve_step", team)
        response = act(client, workflow, 1, "approve_step", team)
        assert response.status_code == 403
        assert response.json()["error"] == "ActorNotAllowed"

    def test_step_out_of_order(self, client, team, workflow):
        response = act(client, workflow, 2, "approve_step", team)
        assert response.status_code == 409
        assert response.json()["error"] == "StepNotActive"

    def test_terminal_workflow(self, client, team, workflow):
        assert act(client, workflow, 0, "reject_step", team, comments="off brief").json()["status"] == "rejected"
        response = act(client, workflow, 0, "approve_step", team)
        assert response.status_code == 409
        assert response.json()["error"] == "WorkflowAlreadyTerminal"

    def test_unknown_step(self, client, team, workflow):
        response = client.post(
            f"/api/workflows/{workflow['workflow_id']}/actions",
            json={"action": "approve_step", "step_id": str(uuid.uuid4())},
            headers=team,
        )
        assert response.status_code == 404
        assert response.json()["error"] == "StepNotFound"

    def test_unknown_workflow(self, client, team):
        response = client.get(f"/api/workflows/{uuid.uuid4()}", headers=team)
        assert response.status_code == 404
        assert response.json()["error"] == "WorkflowNotFound"

    def test_signature_fields_required(self, client, client_contact, team, workflow):
        act(client, workflow, 0, "approve_step", team)
        response = act(client, workflow, 1, "add_signature", client_contact)
        assert response.status_code == 422

    def test_failed_action_leaves_no_trace(self, client, team, client_contact, workflow):
        act(client, workflow, 0, "approve_step", team)
        act(client, workflow, 1, "approve_step", client_contact)

        snapshot = client.get(f"/api/workflows/{workflow['workflow_id']}", headers=team).json()
        assert snapshot["steps"][1]["status"] == "pending"
        assert [h["action"] for h in snapshot["history"]] == ["workflow_created", "step_approved"]


class TestRevisionCycle:

    def test_resubmit_after_revision(self, client, team, deliverable, workflow):
        act(client, workflow, 0, "request_revision", team, comments="use brand blue")

        detail = client.get(f"/api/deliverables/{deliverable['id']}", headers=team).json()
        assert detail["status"] == "revision_requested"
        assert detail["can_resubmit"] is True

        response = client.post(
            f"/api/deliverables/{deliverable['id']}/resubmit",
            json={"new_artifact_ref": "s3://bucket/home-v2.pdf", "change_log": "brand blue"},
            headers=team,
        )
        assert response.status_code == 201
        v2 = response.json()
        assert v2["version_number"] == 2
        assert v2["previous_workflow_id"] == workflow["workflow_id"]
        assert all(s["status"] == "pending" for s in v2["steps"])

        versions = client.get(f"/api/deliverables/{deliverable['id']}/versions", headers=team).json()
        assert [(v["version_number"], v["artifact_ref"]) for v in versions] == [
            (1, "s3://bucket/home-v1.pdf"),
            (2, "s3://bucket/home-v2.pdf"),
        ]

        lineage = client.get(f"/api/deliverables/{deliverable['id']}/workflows", headers=team).json()
        assert [(w["version_number"], w["status"], w["is_active"]) for w in lineage] == [
            (1, "revision_requested", False),
            (2, "pending", True),
        ]

        history = client.get(f"/api/deliverables/{deliverable['id']}/history", headers=team).json()
        assert [h["action"] for h in history] == [
            "workflow_created",
            "revision_requested",
            "workflow_created",
            "version_resubmitted",
        ]

    def test_resubmit_without_revision(self, client, team, deliverable, workflow):
        response = client.post(
            f"/api/deliverables/{deliverable['id']}/resubmit",
            json={"new_artifact_ref": "s3://bucket/home-v2.pdf"},
            headers=team,
        )
        assert response.status_code == 409
        assert response.json()["error"] == "NoRevisionPending"

    def test_resubmit_without_artifact(self, client, team, deliverable, workflow):
        act(client, workflow, 0, "request_revision", team)
        response = client.post(
            f"/api/deliverables/{deliverable['id']}/resubmit",
            json={"new_artifact_ref": ""},
            headers=team,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "MissingArtifact"


class TestNamedApprover:

    def test_only_named_actor_may_act(self, client, team, auth_headers, deliverable):
        steps = [{"name": "Art Director", "approver_type": "specific_user", "approver_id": "dana", "approver_name": "Dana"}]
        workflow = client.post(f"/api/deliverables/{deliverable['id']}/submit", json={"steps": steps}, headers=team).json()
        assert workflow["steps"][0]["approver_id"] == "dana"

        refused = act(client, workflow, 0, "approve_step", team)
        assert refused.status_code == 403
        assert refused.json()["error"] == "ActorNotAllowed"

        allowed = act(client, workflow, 0, "approve_step", auth_headers("dana", actor_type=CLIENT_CONTACT))
        assert allowed.status_code == 200
        assert allowed.json()["status"] == "approved"

    def test_missing_approver_id(self, client, team, deliverable):
        response = client.post(
            f"/api/deliverables/{deliverable['id']}/submit",
            json={"steps": [{"name": "Art Director", "approver_type": "specific_user"}]},
            headers=team,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidStepTemplate"
