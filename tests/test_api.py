"""
Tests for the FastAPI application.
"""

import pytest
from fastapi.testclient import TestClient

from schemabridge.api.main import create_app
from schemabridge.config import EngineConfig
from schemabridge.orchestrator import MigrationOrchestrator
from schemabridge.store.memory import InMemoryDocumentStore


@pytest.fixture
def client(orchestrator):
    return TestClient(create_app(orchestrator))


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_unconfigured_engine(self, monkeypatch):
        for key in ("SCHEMABRIDGE_STORE_URL", "SCHEMABRIDGE_APP_ID"):
            monkeypatch.delenv(key, raising=False)
        client = TestClient(create_app())

        response = client.get("/api/migrations")

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "ConfigurationError"


class TestMigrationRoutes:
    def test_list_statuses(self, client):
        data = client.get("/api/migrations").json()
        assert data["statistics"]["notStartedMigrations"] == len(data["statuses"])

    def test_status_not_found(self, client):
        assert client.get("/api/migrations/widgets").status_code == 404

    def test_run_and_status(self, client, store):
        response = client.post("/api/migrations/products/run", json={})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert client.get("/api/migrations/products").json()["status"] == "completed"
        assert store.get("products", "p1")["title"] == "Ring"

    def test_run_unknown_entity(self, client):
        assert client.post("/api/migrations/widgets/run", json={}).status_code == 404

    def test_dry_run(self, client, store):
        data = client.get("/api/migrations/products/dry-run", params={"limit": 2}).json()
        assert len(data["samples"]) == 2
        assert data["summary"]["total"] == 3
        assert store.transactions == []

    def test_operator_transitions(self, client):
        client.post("/api/migrations/customers/start", json={"total": 10})
        client.post("/api/migrations/customers/progress", json={"migrated": 7, "failed": 3})
        data = client.post("/api/migrations/customers/fail", json={"error": "bad rows"}).json()

        assert data["status"] == "failed"
        assert data["recordsMigrated"] == 7
        assert data["lastError"] == "bad rows"

    def test_progress_rejects_negative(self, client):
        response = client.post("/api/migrations/customers/progress", json={"migrated": -1})
        assert response.status_code == 422

    def test_can_disable(self, client):
        data = client.get("/api/migrations/products/can-disable").json()
        assert data["canDisable"] is False

        client.post("/api/migrations/products/run", json={})
        assert client.get("/api/migrations/products/can-disable").json()["canDisable"] is True

    def test_disable_compatibility_conflict(self, client):
        response = client.post("/api/migrations/products/disable-compatibility")
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "InsufficientData"

    def test_auto_fix(self, client):
        data = client.post("/api/migrations/products/auto-fix", json={"dry_run": False}).json()
        assert data["fixed"] == 2

    def test_emergency_rollback(self, client, store):
        client.post("/api/migrations/products/run", json={})

        data = client.post(
            "/api/migrations/emergency-rollback",
            json={"reason": "bad deploy", "entities": ["products"]},
        ).json()

        assert data["success"] is True
        assert data["rolledBackEntities"] == ["products"]
        assert store.get("products", "p1")["name"] == "Ring"

    def test_compatibility_statistics(self, client):
        data = client.get("/api/migrations/compatibility/statistics").json()
        assert data["totalOperations"] == 0


class TestBackupRoutes:
    def test_create_and_list(self, client):
        response = client.post("/api/backups/orders", json={"version": "1.1.0"})
        assert response.status_code == 200
        assert response.json()["metadata"]["recordCount"] == 3

        data = client.get("/api/backups").json()
        assert data["total"] == 1

    def test_create_invalid(self, client):
        response = client.post("/api/backups/products", json={})
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "ValidationFailed"

    def test_restore_without_backup(self, client):
        response = client.post("/api/backups/orders/restore", json={})
        assert response.status_code == 404

    def test_verify_restore_history(self, client):
        client.post("/api/backups/orders", json={})

        assert client.get("/api/backups/orders/verify").json()["valid"] is True

        data = client.post("/api/backups/orders/restore", json={}).json()
        assert data["recordsRestored"] == 3

        history = client.get("/api/backups/orders/history").json()["history"]
        assert len(history) == 1

    def test_clear(self, client):
        client.post("/api/backups/orders", json={})
        assert client.delete("/api/backups/orders").json()["cleared"] is True


class TestIntegrityRoutes:
    def test_audit_entity(self, client):
        data = client.get("/api/integrity/orders").json()
        assert data["summary"]["healthScore"] == 100

    def test_audit_selected(self, client):
        data = client.get("/api/integrity", params=[("entity", "orders"), ("entity", "customers")]).json()
        assert [r["entity"] for r in data["results"]] == ["orders", "customers"]

    def test_audit_selected_uses_configured_scope(self, registry, orders):
        other = {"id": "o9", "storeId": "s2", "orderNumber": "9", "referenceId": "r9", "subtotal": 1, "total": -1}
        store = InMemoryDocumentStore({"orders": orders + [other]})
        orchestrator = MigrationOrchestrator(EngineConfig(scope="s1"), store=store, registry=registry)
        client = TestClient(create_app(orchestrator))

        data = client.get("/api/integrity", params={"entity": "orders"}).json()

        assert data["overall"]["totalRecords"] == 3
        assert data["overall"]["totalErrors"] == 0

    def test_report(self, client):
        response = client.get("/api/integrity/report")
        assert response.status_code == 200
        assert response.text.startswith("Migration Status")
