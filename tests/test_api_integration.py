"""
Integration tests for the Governance Workflow Engine API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from governance_engine.api import create_app
from governance_engine.api.dependencies import set_service
from governance_engine.collaborators import (
    InMemoryDocumentStateCollaborator, InMemoryMembershipDirectory,
    InMemoryNotificationDispatcher,
)
from governance_engine.service import GovernanceService
from governance_engine.storage import InMemoryStorage

from conftest import board_vote_data, doc_approval_data


CLERK = {"X-Actor-Id": "clerk-1", "X-Actor-Roles": "Clerk"}
BOARD = {"X-Actor-Id": "board-1", "X-Actor-Roles": "Board", "X-Actor-Committees": "Board"}


@pytest.fixture
def service():
    """Create a governance service backed by in-memory storage"""
    return GovernanceService(
        storage=InMemoryStorage(),
        notifier=InMemoryNotificationDispatcher(),
        documents=InMemoryDocumentStateCollaborator(),
        membership=InMemoryMembershipDirectory({"Board": ["board-1", "board-2", "board-3"]}),
    )


@pytest.fixture
def client(service):
    """Create a test client for the API with the test service installed"""
    set_service(service)
    yield TestClient(create_app())
    set_service(None)


@pytest.fixture
def doc_instance(client):
    r = client.post("/definitions", json=doc_approval_data(), headers=CLERK)
    assert r.status_code == 201
    r = client.post("/instances", json={"definition_id": "doc-approval",
                                        "document_ref": "doc-1"}, headers=CLERK)
    assert r.status_code == 201
    return r.json()


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        """Test health endpoint"""
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        """Test root endpoint"""
        r = client.get("/")
        assert r.status_code == 200
        assert "instances" in r.json()["endpoints"]


class TestDefinitionEndpoints:
    """Definition publishing tests"""

    def test_create_and_get(self, client):
        """Test publishing a definition"""
        r = client.post("/definitions", json=doc_approval_data(), headers=CLERK)
        assert r.status_code == 201
        assert r.json()["definition_id"] == "doc-approval"

        r = client.get("/definitions/doc-approval")
        assert r.status_code == 200
        assert r.json()["created_by"] == "clerk-1"
        assert [d["id"] for d in client.get("/definitions").json()["definitions"]] == ["doc-approval"]

    def test_invalid_definition(self, client):
        """Test that every structural problem is reported"""
        data = doc_approval_data()
        data["states"].append({"id": "orphan"})

        r = client.post("/definitions", json=data, headers=CLERK)
        assert r.status_code == 422
        detail = r.json()["detail"]
        assert detail["code"] == "VALIDATION_ERROR"
        assert "State orphan is unreachable from the initial state" in detail["details"]["errors"]

    def test_unknown_vocabulary_returns_422(self, client):
        """Test unknown field and vote types are validation errors"""
        data = board_vote_data("plurality")
        data["fields"][0]["type"] = "bogus"

        r = client.post("/definitions", json=data, headers=CLERK)
        assert r.status_code == 422
        detail = r.json()["detail"]
        assert detail["code"] == "VALIDATION_ERROR"
        assert detail["details"]["errors"] == [
            "Transition adopt: unknown vote type 'plurality'",
            "Field resolution_number: unknown field type 'bogus'",
        ]
        assert client.get("/definitions/board-vote").status_code == 404

    def test_deactivate(self, client):
        """Test deactivating a definition blocks new instances"""
        client.post("/definitions", json=doc_approval_data(), headers=CLERK)

        r = client.post("/definitions/doc-approval/deactivate", headers=CLERK)
        assert r.json()["is_active"] is False

        r = client.post("/instances", json={"definition_id": "doc-approval"}, headers=CLERK)
        assert r.status_code == 422

    def test_unknown_definition(self, client):
        r = client.get("/definitions/missing")
        assert r.status_code == 404
        assert r.json()["detail"]["code"] == "NOT_FOUND"


class TestInstanceFlow:
    """End-to-end document approval tests"""

    def test_start(self, doc_instance):
        assert doc_instance["current_state"] == "draft"
        assert doc_instance["started_by"] == "clerk-1"

    def test_available_transitions(self, client, doc_instance):
        r = client.get(f"/instances/{doc_instance['id']}/transitions")
        assert [t["id"] for t in r.json()["transitions"]] == ["submit"]

    def test_role_guard_returns_403(self, client, doc_instance):
        """Test a clerk cannot approve"""
        client.post(f"/instances/{doc_instance['id']}/transitions/submit", json={}, headers=CLERK)

        r = client.post(f"/instances/{doc_instance['id']}/transitions/approve", json={},
                        headers=CLERK)
        assert r.status_code == 403
        assert r.json()["detail"]["details"]["guard"] == "role"

    def test_comment_guard_returns_422(self, client, doc_instance):
        client.post(f"/instances/{doc_instance['id']}/transitions/submit", json={}, headers=CLERK)

        r = client.post(f"/instances/{doc_instance['id']}/transitions/reject", json={},
                        headers=BOARD)
        assert r.status_code == 422
        assert r.json()["detail"]["code"] == "GUARD_FAILED"
        assert r.json()["detail"]["details"]["guard"] == "comment"

    def test_approve_and_history(self, client, doc_instance):
        """Test the full approval path and its audit trail"""
        instance_id = doc_instance["id"]
        client.post(f"/instances/{instance_id}/transitions/submit", json={}, headers=CLERK)

        r = client.post(f"/instances/{instance_id}/transitions/approve", json={}, headers=BOARD)
        assert r.status_code == 200
        assert r.json()["current_state"] == "approved"
        assert r.json()["status"] == "completed"

        events = client.get(f"/instances/{instance_id}/history").json()["events"]
        assert [e["action"] for e in events] == [
            "workflow.started", "workflow.transitioned", "workflow.transitioned"
        ]
        assert events[2]["previous_hash"] == events[1]["current_hash"]

        r = client.get("/audit/verify")
        assert r.status_code == 200
        assert r.json()["valid"] is True

    def test_transition_replay(self, client, doc_instance):
        """Test retrying with the same idempotency token"""
        url = f"/instances/{doc_instance['id']}/transitions/submit"
        first = client.post(url, json={"correlation_id": "req-1"}, headers=CLERK).json()
        again = client.post(url, json={"correlation_id": "req-1"}, headers=CLERK)

        assert again.status_code == 200
        assert again.json()["revision"] == first["revision"]

    def test_list_instances(self, client, doc_instance):
        r = client.get("/instances", params={"status": "active"})
        assert [i["id"] for i in r.json()["instances"]] == [doc_instance["id"]]

        r = client.get("/instances", params={"status": "sleeping"})
        assert r.status_code == 422

    def test_field_update(self, client):
        data = doc_approval_data()
        data["fields"] = [{"name": "title", "label": "Title", "editable_in_states": ["draft"]}]
        client.post("/definitions", json=data, headers=CLERK)
        instance = client.post("/instances", json={"definition_id": "doc-approval"},
                               headers=CLERK).json()

        r = client.patch(f"/instances/{instance['id']}/fields",
                         json={"updates": {"title": "Budget 2027"}}, headers=CLERK)
        assert r.status_code == 200
        assert r.json()["field_values"] == {"title": "Budget 2027"}

        client.post(f"/instances/{instance['id']}/transitions/submit", json={}, headers=CLERK)
        r = client.patch(f"/instances/{instance['id']}/fields",
                         json={"updates": {"title": "Too late"}}, headers=CLERK)
        assert r.status_code == 422
        assert r.json()["detail"]["code"] == "FIELD_NOT_EDITABLE_IN_STATE"

    def test_missing_actor(self, client, doc_instance):
        r = client.post(f"/instances/{doc_instance['id']}/transitions/submit", json={})
        assert r.status_code == 401

    def test_unknown_instance(self, client):
        assert client.get("/instances/nope").status_code == 404


class TestVotingFlow:
    """Vote-gated transition over HTTP"""

    def test_vote_to_completion(self, client):
        client.post("/definitions", json=board_vote_data(), headers=CLERK)
        instance = client.post("/instances", json={"definition_id": "board-vote",
                                                   "assigned_committee": "Board"},
                               headers=CLERK).json()
        base = f"/instances/{instance['id']}/transitions/adopt"

        r = client.post(base, json={}, headers=CLERK)
        assert r.json()["awaiting_vote"] == "adopt"

        r = client.post(f"{base}/votes", json={"vote": "for"}, headers=BOARD)
        assert r.json()["current_state"] == "proposed"

        r = client.post(f"{base}/votes", json={"vote": "for"},
                        headers={"X-Actor-Id": "board-2"})
        assert r.json()["current_state"] == "adopted"

        r = client.post(f"{base}/votes", json={"vote": "for"},
                        headers={"X-Actor-Id": "outsider"})
        assert r.status_code == 422


class TestTemplatesAndRouting:
    """Template and routing endpoint tests"""

    def test_templates(self, client):
        r = client.get("/templates")
        assert len(r.json()["templates"]) == 3

        assert client.get("/templates/template-policy-approval").status_code == 200
        assert client.get("/templates/missing").status_code == 404

        r = client.post("/templates/instantiate",
                        json={"template_id": "template-policy-approval",
                              "definition_id": "policies"},
                        headers=CLERK)
        assert r.status_code == 201
        assert r.json()["definition_id"] == "policies"

    def test_suggest_and_route(self, client):
        client.post("/templates/instantiate",
                    json={"template_id": "template-document-approval", "definition_id": "docs"},
                    headers=CLERK)
        client.post("/templates/instantiate",
                    json={"template_id": "template-policy-approval", "definition_id": "policies"},
                    headers=CLERK)

        r = client.post("/routing/suggest", json={"document_type": "report"})
        assert [s["definition_id"] for s in r.json()["suggestions"]] == ["docs"]

        r = client.post("/routing/route",
                        json={"document_type": "report", "document_ref": "doc-5",
                              "field_values": {"title": "Q3 report"}},
                        headers=CLERK)
        assert r.json()["matched"] is True
        assert r.json()["rule_id"] == "rule-general-approval"
        assert r.json()["instance"]["document_ref"] == "doc-5"

        r = client.post("/routing/route", json={"document_type": "invoice"}, headers=CLERK)
        assert r.json() == {"matched": False, "instance": None, "definition_id": None,
                            "rule_id": None, "reasons": []}

    def test_audit_partitions(self, client):
        client.post("/templates/instantiate",
                    json={"template_id": "template-document-approval", "definition_id": "docs"},
                    headers=CLERK)
        client.post("/instances", json={"definition_id": "docs",
                                        "field_values": {"title": "Minutes"}}, headers=CLERK)

        assert client.get("/audit/partitions").json()["partitions"] == ["unite-docs"]
        r = client.get("/audit/verify", params={"partition": "unite-docs"})
        assert r.json()["total_events"] == 1
