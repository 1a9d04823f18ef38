"""
Unit tests for the Decisions service.
"""

import json

import pytest
from fastapi.testclient import TestClient

from service_decisions.app.main import DecisionsService, create_app


class TestDecisionsService:
    """Test cases for DecisionsService."""

    @pytest.fixture
    def app(self, bundle):
        """Create FastAPI app instance."""
        return create_app(bundle)

    @pytest.fixture
    def client(self, app):
        """Create test client."""
        return TestClient(app)

    @pytest.fixture
    def empty_client(self):
        """Test client for a service without a bundle."""
        return TestClient(create_app())

    @pytest.fixture
    def decide_body(self):
        return {
            "entityId": "p1",
            "unitKeyValue": "user-abc",
            "context": {"productId": "p1"}
        }

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "decisions"
        assert data["bundle_version"] == "v42"

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"]["bundle"]["version"] == "v42"

    def test_health_check_without_bundle(self, empty_client):
        response = empty_client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "error"

    def test_resolve(self, client):
        """Test server-side resolution."""
        response = client.post("/v1/resolve", json={"context": {"userId": "user-abc", "country": "US"}})

        assert response.status_code == 200
        data = response.json()
        assert data["decisionId"].startswith("dec_")
        assert data["assignments"] == {
            "ui.color": "#F00",
            "ui.size": "md",
            "pricing.discount": 20,
            "rec.strategy": "popular",
        }
        assert data["stateVersion"] == "v42"
        assert data["suggestedRefreshMs"] == 60000
        assert data["metadata"]["unitKeyValue"] == "user-abc"
        assert data["metadata"]["filteredContext"] == {"country": "US"}
        assert [layer["layerId"] for layer in data["metadata"]["layers"]] == ["layer_ui", "layer_pricing", "layer_rec"]

    def test_resolve_requested_parameters(self, client):
        response = client.post("/v1/resolve", json={
            "context": {"userId": "user-xyz"},
            "parameters": ["ui.color", "checkout.flow"]
        })

        assert response.status_code == 200
        assert response.json()["assignments"] == {"ui.color": "#000"}

    def test_resolve_without_bundle(self, empty_client):
        response = empty_client.post("/v1/resolve", json={"context": {"userId": "user-abc"}})

        assert response.status_code == 503
        assert response.json()["code"] == "BUNDLE_UNAVAILABLE"

    def test_resolve_invalid_body(self, client):
        response = client.post("/v1/resolve", json={"env": "production"})
        assert response.status_code == 422

    def test_decide_entity_weights(self, client, decide_body):
        """Test an entity with learned weights."""
        response = client.post("/v1/decide/policy_rec", json=decide_body)

        assert response.status_code == 200
        data = response.json()
        assert data["allocationIndex"] == 0
        assert data["allocationName"] == "similar"
        assert data["weights"] == [1.0, 0.0]
        assert data["coldStart"] is False
        assert data["stateVersion"] == "v42"

    def test_decide_cold_start(self, client, decide_body):
        """Test an unseen entity falls back to the global prior."""
        decide_body["entityId"] = "p9"
        response = client.post("/v1/decide/policy_rec", json=decide_body)

        assert response.status_code == 200
        data = response.json()
        assert data["allocationIndex"] == 1
        assert data["allocationName"] == "trending"
        assert data["coldStart"] is True

    def test_decide_dynamic_count(self, client, decide_body):
        decide_body["allocationCount"] = 4
        response = client.post("/v1/decide/policy_rec", json=decide_body)

        assert response.status_code == 200
        data = response.json()
        assert data["weights"] == [0.25, 0.25, 0.25, 0.25]
        assert data["coldStart"] is True
        assert 0 <= data["allocationIndex"] < 4

    def test_decide_allocation_count_too_large(self, client, decide_body):
        decide_body["allocationCount"] = 10 ** 9
        response = client.post("/v1/decide/policy_rec", json=decide_body)

        assert response.status_code == 422
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert data["details"]["max_allocation_count"] == 1000

    def test_decide_allocation_count_configurable(self, bundle, decide_body):
        client = TestClient(create_app(bundle, max_allocation_count=3))
        decide_body["allocationCount"] = 4

        response = client.post("/v1/decide/policy_rec", json=decide_body)

        assert response.status_code == 422

    def test_decide_unknown_policy(self, client, decide_body):
        response = client.post("/v1/decide/policy_missing", json=decide_body)

        assert response.status_code == 404
        assert response.json()["code"] == "POLICY_NOT_FOUND"

    def test_decide_batch(self, client, decide_body):
        """Test batch responses stay index-aligned."""
        response = client.post("/v1/decide/batch", json={"requests": [
            dict(decide_body, policyId="policy_rec"),
            dict(decide_body, policyId="policy_missing"),
            dict(decide_body, policyId="policy_rec", entityId="p9"),
        ]})

        assert response.status_code == 200
        responses = response.json()["responses"]
        assert len(responses) == 3
        assert responses[0]["allocationName"] == "similar"
        assert responses[1] is None
        assert responses[2]["allocationName"] == "trending"

    def test_metrics_endpoint(self, client, decide_body):
        client.post("/v1/resolve", json={"context": {"userId": "user-abc"}})
        client.post("/v1/decide/policy_rec", json=decide_body)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'decisions_total{source="bundle"} 1.0' in response.text
        assert 'edge_decisions_total{cold_start="false"} 1.0' in response.text


class TestDecisionsAuth:
    """Test cases for API key checks."""

    @pytest.fixture
    def client(self, bundle):
        return TestClient(create_app(bundle, api_key="sk_secret"))

    def test_missing_key(self, client):
        response = client.post("/v1/resolve", json={"context": {"userId": "user-abc"}})

        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    def test_wrong_key(self, client):
        response = client.post(
            "/v1/resolve",
            json={"context": {"userId": "user-abc"}},
            headers={"Authorization": "Bearer sk_wrong"}
        )
        assert response.status_code == 401

    def test_valid_key(self, client):
        response = client.post(
            "/v1/resolve",
            json={"context": {"userId": "user-abc"}},
            headers={"Authorization": "Bearer sk_secret"}
        )
        assert response.status_code == 200

    def test_health_is_open(self, client):
        assert client.get("/health").status_code == 200


class TestBundleLoading:
    """Test cases for loading the bundle from a file."""

    def test_load_from_file(self, tmp_path, bundle_payload):
        path = tmp_path / "bundle.json"
        path.write_text(json.dumps(bundle_payload))

        service = DecisionsService(bundle_path=str(path))

        assert service.bundle_store.get().version == "v42"
        assert service.evaluator.bundle.version == "v42"

    def test_invalid_file_leaves_service_unavailable(self, tmp_path, bundle_payload):
        bundle_payload["hashing"]["bucketCount"] = 0
        path = tmp_path / "bundle.json"
        path.write_text(json.dumps(bundle_payload))

        client = TestClient(create_app(bundle_path=str(path)))
        response = client.post("/v1/resolve", json={"context": {"userId": "user-abc"}})

        assert response.status_code == 503

    def test_missing_file(self, tmp_path):
        service = DecisionsService(bundle_path=str(tmp_path / "missing.json"))
        assert service.bundle_store.get() is None
