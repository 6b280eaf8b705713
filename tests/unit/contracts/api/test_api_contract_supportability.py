import json
import logging
import re

import pytest
from fastapi.testclient import TestClient

from src.api.main import app
from src.api.observability import JsonFormatter, correlation_id_var
from src.api.routers.contracts import reset_contract_workflow_service_for_tests


def setup_function() -> None:
    reset_contract_workflow_service_for_tests()


def test_health_endpoints_return_expected_status_payloads():
    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/health/live").json() == {"status": "live"}
        assert client.get("/health/ready").json() == {"status": "ready"}


def test_metrics_endpoint_is_exposed():
    with TestClient(app) as client:
        client.get("/health")
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_request" in response.text


def test_observability_headers_preserve_inbound_correlation_and_trace_id():
    with TestClient(app) as client:
        response = client.get(
            "/contracts",
            headers={
                "X-Correlation-Id": "corr-inbound-123",
                "X-Request-Id": "req-inbound-123",
                "traceparent": "00-1234567890abcdef1234567890abcdef-0000000000000001-01",
            },
        )

    assert response.status_code == 200
    assert response.headers["X-Correlation-Id"] == "corr-inbound-123"
    assert response.headers["X-Request-Id"] == "req-inbound-123"
    assert response.headers["X-Trace-Id"] == "1234567890abcdef1234567890abcdef"


def test_observability_headers_generate_ids_when_missing():
    with TestClient(app) as client:
        response = client.get("/health")

    assert re.fullmatch(r"corr_[0-9a-f]{12}", response.headers["X-Correlation-Id"])
    assert re.fullmatch(r"req_[0-9a-f]{12}", response.headers["X-Request-Id"])
    assert re.fullmatch(r"[0-9a-f]{32}", response.headers["X-Trace-Id"])


def test_json_formatter_merges_extra_fields_and_context():
    token = correlation_id_var.set("corr-log-1")
    try:
        record = logging.LogRecord(
            name="src.core.contracts.service",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="contract.created",
            args=(),
            exc_info=None,
        )
        record.extra_fields = {"contract_id": "ctr_001", "stage": "APPROVAL"}
        payload = json.loads(JsonFormatter().format(record))
    finally:
        correlation_id_var.reset(token)

    assert payload["message"] == "contract.created"
    assert payload["service"] == "contract-escrow"
    assert payload["correlation_id"] == "corr-log-1"
    assert payload["contract_id"] == "ctr_001"
    assert "request_id" not in payload


def test_supportability_config_reports_in_memory_backends():
    with TestClient(app) as client:
        response = client.get("/contracts/supportability/config")

    assert response.status_code == 200
    assert response.json() == {
        "store_backend": "IN_MEMORY",
        "backend_ready": True,
        "backend_init_error": None,
        "settlement_backend": "IN_MEMORY",
        "lifecycle_enabled": True,
        "support_apis_enabled": True,
    }


def test_supportability_config_reports_missing_postgres_dsn(monkeypatch):
    monkeypatch.setenv("CONTRACT_STORE_BACKEND", "POSTGRES")
    with TestClient(app) as client:
        body = client.get("/contracts/supportability/config").json()

    assert body["store_backend"] == "POSTGRES"
    assert body["backend_ready"] is False
    assert body["backend_init_error"] == "CONTRACT_POSTGRES_DSN_REQUIRED"


def test_lifecycle_routes_return_503_when_store_cannot_initialize(monkeypatch):
    monkeypatch.setenv("CONTRACT_STORE_BACKEND", "POSTGRES")
    with TestClient(app) as client:
        response = client.get("/contracts")

    assert response.status_code == 503
    assert response.json()["detail"] == "CONTRACT_POSTGRES_DSN_REQUIRED"


def test_sqlite_backend_serves_lifecycle(monkeypatch, tmp_path):
    monkeypatch.setenv("CONTRACT_STORE_BACKEND", "SQLITE")
    monkeypatch.setenv("CONTRACT_SQLITE_PATH", str(tmp_path / "contracts.db"))
    with TestClient(app) as client:
        listed = client.get("/contracts")
        config = client.get("/contracts/supportability/config").json()

    assert listed.status_code == 200
    assert listed.json() == {"items": [], "next_cursor": None}
    assert config["store_backend"] == "SQLITE"
    assert config["backend_ready"] is True


def test_production_profile_requires_postgres_at_startup(monkeypatch):
    monkeypatch.setenv("APP_PERSISTENCE_PROFILE", "PRODUCTION")
    with pytest.raises(RuntimeError, match="PERSISTENCE_PROFILE_REQUIRES_CONTRACT_POSTGRES"):
        with TestClient(app):
            pass


def test_production_profile_requires_postgres_dsn_at_startup(monkeypatch):
    monkeypatch.setenv("APP_PERSISTENCE_PROFILE", "PRODUCTION")
    monkeypatch.setenv("CONTRACT_STORE_BACKEND", "POSTGRES")
    with pytest.raises(RuntimeError, match="PERSISTENCE_PROFILE_REQUIRES_CONTRACT_POSTGRES_DSN"):
        with TestClient(app):
            pass


def test_unhandled_errors_are_rendered_as_problem_details(monkeypatch):
    from src.api.routers import contracts as contracts_router

    class _BrokenService:
        def list_contracts(self, **_kwargs):
            raise ZeroDivisionError("boom")

    app.dependency_overrides[contracts_router.get_contract_workflow_service] = _BrokenService
    try:
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/contracts")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.json()["detail"] == "An unexpected error occurred."
