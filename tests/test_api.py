import io
import sys
from pathlib import Path

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from openpyxl import Workbook

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.app import create_app
from backend.application import (
    configure_initialization_service,
    get_initialization_service,
    reset_initialization_state,
)
from backend.infrastructure import DuckDBLogLedger, InMemoryLogLedger


@pytest.fixture(autouse=True)
def reset_state():
    reset_initialization_state()
    yield
    reset_initialization_state()


@pytest.fixture()
def client(monkeypatch):
    monkeypatch.delenv("LEDGER_DATABASE_PATH", raising=False)
    monkeypatch.delenv("STORAGE_API_BASE", raising=False)
    monkeypatch.delenv("CONNECTIONS_FILE", raising=False)
    monkeypatch.setenv("CREDENTIAL_ENCRYPTION_KEY", Fernet.generate_key().decode("ascii"))
    monkeypatch.setenv("LOG_FORMAT", "plain")
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


def _register(client, tenant_id="T1"):
    for kind, host, port in (("relational", "pg.internal", 5432), ("document", "mongo.internal", 27017)):
        response = client.post(
            "/api/data-init/connections",
            json={
                "tenant_id": tenant_id,
                "kind": kind,
                "host": host,
                "port": port,
                "database_name": f"{tenant_id.lower()}_{kind}",
                "username": "admin",
                "password": "s3cret",
            },
        )
        assert response.status_code == 200


def _faq_csv(good=10, missing_answer=2) -> bytes:
    lines = ["question,answer,category"]
    lines += [f"Question {i}?,Answer {i}.,account" for i in range(1, good + 1)]
    lines += [f"Open question {i}?,,account" for i in range(1, missing_answer + 1)]
    return ("\n".join(lines) + "\n").encode("utf-8")


def test_root_landing_page(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["docs"] == "/docs"


def test_connections_are_listed_without_credentials(client):
    _register(client)
    client.post(
        "/api/data-init/connections",
        json={
            "tenant_id": "T1",
            "kind": "document",
            "host": "mongo-2.internal",
            "port": 27017,
            "database_name": "t1_docs",
            "username": "admin",
        },
    )

    response = client.get("/api/data-init/connections", params={"tenant_id": "T1"})

    assert response.status_code == 200
    items = response.json()["data"]
    assert len(items) == 3
    assert all("encrypted_credential" not in item and "password" not in item for item in items)
    assert [item["active"] for item in items] == [True, False, True]


def test_invalid_connection_is_rejected(client):
    response = client.post(
        "/api/data-init/connections",
        json={"tenant_id": "T1", "kind": "graph", "host": "h", "port": 99999, "database_name": "d", "username": "u"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_type"] == "validation_error"


def test_full_initialization_flow(client):
    _register(client)

    response = client.post("/api/data-init/initialize-database", json={"tenant_id": "T1"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["initialized_kinds"] == ["relational", "document"]
    assert len(body["logs"]) == 3

    response = client.post(
        "/api/data-init/seed-workspace",
        data={"workspace_id": "W1", "data_type": "faq", "tenant_id": "T1", "batch_size": "5", "auto_categorize": "true"},
        files=[("files", ("faq.csv", _faq_csv(), "text/csv"))],
    )
    assert response.status_code == 200
    body = response.json()
    assert body["data"]["total_records"] == 12
    assert body["data"]["failed_records"] == 2
    assert body["logs"][0]["operation_type"] == "data_seed"
    assert body["logs"][0]["details"]["parse_results"][0]["failed_records"] == 2

    response = client.post(
        "/api/data-init/apply-config",
        json={"workspace_id": "W1", "tenant_id": "T1", "operations": {"create_vector_index": True, "sync_categories": True}},
    )
    assert response.status_code == 200
    assert response.json()["data"]["applied_operations"] == ["create_vector_index", "sync_categories"]

    response = client.get("/api/data-init/status", params={"tenant_id": "T1"})
    assert response.status_code == 200
    status = response.json()["data"]
    assert status["overall_status"] == "completed"
    assert status["database_status"] == {"relational": "completed", "document": "completed"}
    assert status["workspace_status"]["W1"] == {"data_seeding": "completed", "config_applied": "completed"}

    response = client.get("/api/data-init/logs", params={"tenant_id": "T1"})
    entries = response.json()["data"]
    assert len(entries) == 5
    started = [entry["started_at"] for entry in entries]
    assert started == sorted(started, reverse=True)


def test_initialize_database_without_connections_is_404(client):
    response = client.post("/api/data-init/initialize-database", json={"tenant_id": "ghost"})

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error_type"] == "not_found"
    assert body["logs"][0]["status"] == "failed"


def test_initialize_database_requires_tenant(client):
    response = client.post("/api/data-init/initialize-database", json={})

    assert response.status_code == 400
    assert response.json()["error_type"] == "validation_error"


def test_seed_workspace_rejects_unknown_data_type(client):
    response = client.post(
        "/api/data-init/seed-workspace",
        data={"workspace_id": "W1", "data_type": "videos"},
        files=[("files", ("faq.csv", _faq_csv(), "text/csv"))],
    )

    assert response.status_code == 400
    assert response.json()["error_type"] == "validation_error"
    assert get_initialization_service().get_all_logs() == []


def test_seed_workspace_with_unreadable_file_is_422(client):
    workbook = Workbook()
    workbook.active.append(["question", "answer"])
    workbook.active.append(["Q1", "A1"])
    buffer = io.BytesIO()
    workbook.save(buffer)

    response = client.post(
        "/api/data-init/seed-workspace",
        data={"workspace_id": "W1", "data_type": "faq"},
        files=[
            ("files", ("good.xlsx", buffer.getvalue(), "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")),
            ("files", ("broken.pdf", b"not a pdf", "application/pdf")),
        ],
    )

    assert response.status_code == 422
    body = response.json()
    assert body["error_type"] == "file_read_error"
    assert body["logs"][0]["status"] == "failed"


def test_apply_config_rejects_unknown_operations(client):
    response = client.post(
        "/api/data-init/apply-config",
        json={"workspace_id": "W1", "operations": {"rebuild_everything": True}},
    )

    assert response.status_code == 400


def test_apply_config_without_operations(client):
    response = client.post("/api/data-init/apply-config", json={"workspace_id": "W2"})

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["applied_operations"] == []
    assert body["logs"][0]["status"] == "completed"


def test_status_for_unknown_tenant_is_404(client):
    response = client.get("/api/data-init/status", params={"tenant_id": "nobody"})

    assert response.status_code == 404
    assert response.json()["error_type"] == "not_found"


def test_logs_without_filter_cover_every_tenant(client):
    client.post("/api/data-init/apply-config", json={"workspace_id": "W1"})
    client.post("/api/data-init/apply-config", json={"workspace_id": "W2"})

    response = client.get("/api/data-init/logs")

    assert response.status_code == 200
    assert {entry["tenant_id"] for entry in response.json()["data"]} == {"W1", "W2"}


def test_duckdb_ledger_is_used_when_configured(tmp_path, monkeypatch):
    path = tmp_path / "ledger.duckdb"
    monkeypatch.setenv("LEDGER_DATABASE_PATH", str(path))
    monkeypatch.delenv("STORAGE_API_BASE", raising=False)
    monkeypatch.delenv("CONNECTIONS_FILE", raising=False)
    app = create_app()
    service = get_initialization_service()
    try:
        with TestClient(app) as test_client:
            response = test_client.post("/api/data-init/apply-config", json={"workspace_id": "W1"})
            assert response.status_code == 200

        assert isinstance(service.ledger, DuckDBLogLedger)
        assert path.exists()
        assert service.get_tenant_logs("W1")[0].status == "completed"
    finally:
        service.ledger.close()
        configure_initialization_service(ledger=InMemoryLogLedger())


def test_connections_file_is_loaded_at_start(tmp_path, monkeypatch):
    path = tmp_path / "connections.json"
    path.write_text(
        '[{"tenant_id": "T7", "kind": "relational", "host": "pg", "port": 5432, '
        '"database_name": "t7", "username": "admin", "password": "pw"}]',
        encoding="utf-8",
    )
    monkeypatch.setenv("CONNECTIONS_FILE", str(path))
    monkeypatch.delenv("LEDGER_DATABASE_PATH", raising=False)
    monkeypatch.delenv("STORAGE_API_BASE", raising=False)
    with TestClient(create_app()) as test_client:
        response = test_client.post("/api/data-init/initialize-database", json={"tenant_id": "T7"})

    assert response.status_code == 200
    assert response.json()["initialized_kinds"] == ["relational"]
