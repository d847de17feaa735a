"""
HTTP surface tests: /route-plan, /execution and /healthz against an app
wired to a scripted adapter.
"""

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.providers.base import ProviderError, ProviderUnavailableError
from app.providers.registry import AdapterRegistry

from conftest import EVM_WALLET, FakeAdapter

TX_HASH = "0x" + "c" * 64


@pytest.fixture
def relay() -> FakeAdapter:
    return FakeAdapter(name="relay", rate=0.995)


@pytest.fixture
def client(relay: FakeAdapter):
    app = create_app(
        config=Settings(enable_execution_sweeper=False),
        adapters=AdapterRegistry([relay]),
    )
    with TestClient(app) as test_client:
        yield test_client


def _plan(client: TestClient, **overrides) -> dict:
    payload = {
        "amount": "25",
        "fromTokenId": "usdc",
        "toTokenId": "usdc",
        "fromNetworkId": "ethereum",
        "toNetworkId": "arbitrum",
        "user": {"evmAddress": EVM_WALLET},
        **overrides,
    }
    return client.post("/route-plan", json=payload).json()


def _execution(client: TestClient) -> dict:
    plan = _plan(client)["routePlan"]
    response = client.post("/execution", json={"planId": plan["requestId"]})
    assert response.status_code == 201
    return response.json()["execution"]


# =============================================================================
# /route-plan
# =============================================================================

class TestRoutePlanEndpoint:
    def test_returns_plan(self, client):
        data = _plan(client)

        assert data["ok"] is True
        plan = data["routePlan"]
        assert plan["requestId"].startswith("plan-")
        assert len(plan["steps"]) == 1
        assert plan["steps"][0]["provider"] == "relay"
        assert plan["steps"][0]["stepId"] == "step-1"

    def test_missing_field_is_validation(self, client):
        response = client.post("/route-plan", json={"fromTokenId": "usdc"})
        assert response.status_code == 400
        assert response.json()["errorCode"] == "VALIDATION"

    def test_unknown_network_is_validation(self, client):
        response = client.post(
            "/route-plan",
            json={
                "amount": "1",
                "fromTokenId": "usdc",
                "toTokenId": "usdc",
                "fromNetworkId": "atlantis",
                "toNetworkId": "base",
            },
        )
        assert response.status_code == 400
        assert response.json()["ok"] is False

    def test_no_route(self, client, relay):
        relay.quote_error = ProviderError("pair not listed", provider="relay")
        response = client.post(
            "/route-plan",
            json={
                "amount": "1",
                "fromTokenId": "usdc",
                "toTokenId": "usdc",
                "fromNetworkId": "ethereum",
                "toNetworkId": "base",
            },
        )
        assert response.status_code == 422
        assert response.json()["errorCode"] == "NO_ROUTE"


# =============================================================================
# /execution
# =============================================================================

class TestExecutionEndpoints:
    def test_create_execution(self, client):
        execution = _execution(client)

        assert execution["id"].startswith("exec-")
        assert execution["state"] == "RUNNING"
        assert execution["currentStepIndex"] == 0
        assert execution["currentStep"]["state"] == "AWAITING_SIGNATURE"
        assert execution["currentStep"]["unsignedTx"]["to"] == "0xrouter"

    def test_plan_can_only_be_used_once(self, client):
        plan_id = _plan(client)["routePlan"]["requestId"]
        assert client.post("/execution", json={"planId": plan_id}).status_code == 201

        response = client.post("/execution", json={"planId": plan_id})

        assert response.status_code == 404
        assert response.json()["errorCode"] == "PLAN_NOT_FOUND"

    def test_failed_create_keeps_plan(self, client, relay):
        plan_id = _plan(client)["routePlan"]["requestId"]
        relay.build_errors.append(ProviderUnavailableError("down", provider="relay"))

        failed = client.post("/execution", json={"planId": plan_id})
        retried = client.post("/execution", json={"planId": plan_id})

        assert failed.status_code == 503
        assert failed.json()["transient"] is True
        assert retried.status_code == 201

    def test_status_requires_execution_id(self, client):
        response = client.get("/execution/status")
        assert response.status_code == 400
        assert response.json()["errorCode"] == "MISSING_EXECUTION_ID"

    def test_unknown_execution(self, client):
        response = client.get("/execution/status", params={"executionId": "exec-missing"})
        assert response.status_code == 404
        assert response.json()["errorCode"] == "EXECUTION_NOT_FOUND"

        response = client.get("/execution/exec-missing")
        assert response.status_code == 404

    def test_step_and_hash_go_together(self, client):
        execution = _execution(client)
        response = client.get("/execution/status", params={"executionId": execution["id"], "stepId": "step-1"})
        assert response.status_code == 400

    def test_report_then_poll_to_completion(self, client, relay):
        execution = _execution(client)
        relay.statuses.extend(["pending", "success"])

        submitted = client.get(
            "/execution/status",
            params={"executionId": execution["id"], "stepId": "step-1", "txHash": TX_HASH},
        )
        assert submitted.status_code == 200
        step = submitted.json()["execution"]["steps"][0]
        assert step["state"] == "CONFIRMING"
        assert step["txHash"] == TX_HASH
        assert relay.submitted == [TX_HASH]

        done = client.get("/execution/status", params={"executionId": execution["id"]})
        assert done.json()["execution"]["state"] == "COMPLETED"

    def test_conflicting_hash_is_409(self, client):
        execution = _execution(client)
        params = {"executionId": execution["id"], "stepId": "step-1"}
        client.get("/execution/status", params={**params, "txHash": TX_HASH})

        response = client.get("/execution/status", params={**params, "txHash": "0x" + "d" * 64})

        assert response.status_code == 409
        body = response.json()
        assert body["errorCode"] == "STATE_CONFLICT"
        assert body["execution"]["steps"][0]["txHash"] == TX_HASH

    def test_provider_outage_is_transient_503(self, client, relay):
        execution = _execution(client)
        relay.statuses.append(ProviderUnavailableError("relay 502", provider="relay"))

        response = client.get(
            "/execution/status",
            params={"executionId": execution["id"], "stepId": "step-1", "txHash": TX_HASH},
        )

        assert response.status_code == 503
        body = response.json()
        assert body["transient"] is True
        assert body["execution"]["steps"][0]["state"] == "SUBMITTED"

    def test_report_endpoint(self, client):
        execution = _execution(client)

        rejected = client.post(
            "/execution/report",
            json={"executionId": execution["id"], "stepId": "step-1", "state": "AWAITING_SIGNATURE"},
        )
        accepted = client.post(
            "/execution/report",
            json={"executionId": execution["id"], "stepId": "step-1", "state": "SUBMITTED", "txHash": TX_HASH},
        )

        assert rejected.status_code == 409
        assert accepted.status_code == 200
        assert accepted.json()["execution"]["steps"][0]["state"] == "SUBMITTED"

    def test_get_execution_is_a_pure_read(self, client, relay):
        execution = _execution(client)

        response = client.get(f"/execution/{execution['id']}")

        assert response.status_code == 200
        assert response.json()["execution"]["id"] == execution["id"]
        assert relay.statuses == []


# =============================================================================
# /healthz
# =============================================================================

class TestHealth:
    def test_reports_providers_and_store(self, client):
        _execution(client)
        data = client.get("/healthz").json()

        assert data["status"] == "healthy"
        assert data["providers"]["relay"]["status"] == "ready"
        assert data["executions"] == 1
        assert data["sweeper_running"] is False
