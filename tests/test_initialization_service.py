import itertools
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography.fernet import Fernet

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.application import InitializationService
from backend.core.catalog import RELATIONAL_SCHEMAS
from backend.core.credentials import CredentialCipher
from backend.domain import ConfigApplyDetails, DatabaseInitDetails, UploadedFile
from backend.infrastructure import InMemoryConnectionRegistry, InMemoryLogLedger, InMemoryStorageBackend


class RecordingStorage(InMemoryStorageBackend):
    """In-memory storage that records calls and fails the ones listed in ``fail_on``."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_on: set[str] = set()
        self.calls: list[str] = []

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise RuntimeError(f"{name} unavailable")

    def create_schema(self, connection, schema_defs):
        self._record("create_schema")
        super().create_schema(connection, schema_defs)

    def create_collections(self, connection, names, index_defs):
        self._record("create_collections")
        super().create_collections(connection, names, index_defs)

    def persist_records(self, workspace_id, data_type, records, *, overwrite, auto_categorize, batch_size=None):
        self._record("persist_records")
        super().persist_records(
            workspace_id,
            data_type,
            records,
            overwrite=overwrite,
            auto_categorize=auto_categorize,
            batch_size=batch_size,
        )

    def build_vector_index(self, workspace_id):
        self._record("build_vector_index")
        super().build_vector_index(workspace_id)

    def register_trigger_rules(self, workspace_id):
        self._record("register_trigger_rules")
        return super().register_trigger_rules(workspace_id)

    def sync_categories(self, workspace_id):
        self._record("sync_categories")
        return super().sync_categories(workspace_id)


def ticking_clock():
    base = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)
    counter = itertools.count()
    return lambda: base + timedelta(seconds=next(counter))


@pytest.fixture()
def storage():
    return RecordingStorage()


@pytest.fixture()
def service(storage):
    registry = InMemoryConnectionRegistry(CredentialCipher(Fernet.generate_key()))
    return InitializationService(InMemoryLogLedger(clock=ticking_clock()), registry, storage)


def register_both(service, tenant_id="T1"):
    relational = service.register_connection(
        tenant_id, "relational", "pg.internal", 5432, f"{tenant_id.lower()}_db", "admin", "s3cret"
    )
    document = service.register_connection(
        tenant_id, "document", "mongo.internal", 27017, f"{tenant_id.lower()}_docs", "admin", "s3cret"
    )
    return relational, document


def faq_file(name="faq.csv", good=10, missing_answer=2) -> UploadedFile:
    lines = ["question,answer,category"]
    lines += [f"Question {i}?,Answer {i}.,account" for i in range(1, good + 1)]
    lines += [f"Open question {i}?,,account" for i in range(1, missing_answer + 1)]
    return UploadedFile(name, content=("\n".join(lines) + "\n").encode("utf-8"))


def json_file(name, items) -> UploadedFile:
    return UploadedFile(name, content=json.dumps(items).encode("utf-8"))


# ----------------------------------------------------------------------
# database initialization
# ----------------------------------------------------------------------
def test_initialize_database_creates_both_kinds(service, storage):
    relational, document = register_both(service)

    result = service.initialize_database("T1")

    assert result["success"] is True
    assert result["initialized_kinds"] == ["relational", "document"]
    assert "error" not in result

    entries = service.get_tenant_logs("T1")
    steps = [entry for entry in entries if entry.details.kind is not None]
    assert len(steps) == 2
    assert {entry.details.kind for entry in steps} == {"relational", "document"}
    assert all(entry.operation_type == "database_init" for entry in entries)
    assert all(entry.status == "completed" for entry in entries)
    assert all(entry.completed_at >= entry.started_at for entry in entries)

    by_kind = {entry.details.kind: entry for entry in steps}
    assert by_kind["relational"].details.schemas == ["call_history", "call_scripts", "knowledge_base"]
    assert by_kind["relational"].details.connection == "pg.internal:5432/t1_db"
    assert "kms_documents.fulltext" in by_kind["document"].details.indexes
    assert by_kind["document"].details.collections == ["kms_documents", "kms_categories", "advisor_templates"]

    assert storage.schemas[relational.id] == list(RELATIONAL_SCHEMAS)
    assert storage.collections[document.id] == ["kms_documents", "kms_categories", "advisor_templates"]
    assert [log["details"]["kind"] for log in result["logs"]] == ["document", "relational", None]


def test_initialize_database_without_connections_is_not_found(service):
    result = service.initialize_database("ghost")

    assert result["success"] is False
    assert result["error_type"] == "not_found"
    assert result["initialized_kinds"] == []

    entries = service.get_tenant_logs("ghost")
    assert len(entries) == 1
    assert entries[0].status == "failed"
    assert entries[0].completed_at is not None
    assert not [entry for entry in service.get_all_logs() if entry.status == "in_progress"]


def test_initialize_database_fails_fast(service, storage):
    register_both(service)
    storage.fail_on = {"create_schema"}

    result = service.initialize_database("T1")

    assert result["success"] is False
    assert result["error_type"] == "external_call_failure"
    assert "create_schema failed: create_schema unavailable" in result["error"]
    assert "create_collections" not in storage.calls

    entries = service.get_tenant_logs("T1")
    assert len(entries) == 2
    assert all(entry.status == "failed" for entry in entries)
    assert {entry.details.kind for entry in entries} == {None, "relational"}
    outer = next(entry for entry in entries if entry.details.kind is None)
    step = next(entry for entry in entries if entry.details.kind == "relational")
    assert outer.error_message == step.error_message
    assert outer.details.initialized_kinds == []


def test_document_failure_keeps_relational_step(service, storage):
    register_both(service)
    storage.fail_on = {"create_collections"}

    result = service.initialize_database("T1")

    assert result["success"] is False
    entries = {entry.details.kind: entry for entry in service.get_tenant_logs("T1")}
    assert entries["relational"].status == "completed"
    assert entries["document"].status == "failed"
    assert entries[None].status == "failed"
    assert entries[None].details.initialized_kinds == ["relational"]


def test_initialize_database_uses_latest_connection(service, storage):
    service.register_connection("T1", "document", "old.internal", 27017, "old", "admin", "x")
    newer = service.register_connection("T1", "document", "new.internal", 27017, "new", "admin", "y")

    result = service.initialize_database("T1")

    assert result["initialized_kinds"] == ["document"]
    assert list(storage.collections) == [newer.id]
    assert len(service.list_connections("T1")) == 2


def test_initialize_database_rejects_blank_tenant(service):
    result = service.initialize_database("  ")

    assert result["success"] is False
    assert result["error_type"] == "validation_error"
    assert service.get_all_logs() == []


# ----------------------------------------------------------------------
# workspace seeding
# ----------------------------------------------------------------------
def test_seed_workspace_counts_partial_failures(service, storage):
    result = service.seed_workspace("W1", "faq", [faq_file()])

    assert result["success"] is True
    data = result["data"]
    assert data["total_records"] == 12
    assert data["parsed_records"] == 10
    assert data["failed_records"] == 2
    assert data["processed_files"] == 1
    assert data["processing_time_ms"] >= 0

    entries = service.get_tenant_logs("W1")
    assert len(entries) == 1
    entry = entries[0]
    assert entry.operation_type == "data_seed"
    assert entry.status == "completed"
    assert entry.details.workspace_id == "W1"
    assert entry.details.parse_results[0].failed_records == 2
    assert entry.details.parse_results[0].detected_type == "csv"
    assert storage.calls.count("persist_records") == 1
    assert len(storage.list_records("W1", "faq")) == 10


def test_seed_persists_once_after_all_files(service, storage):
    files = [
        faq_file("first.csv", good=3, missing_answer=0),
        json_file("second.json", [{"question": "Q?", "answer": "A."}, {"question": "no answer"}]),
    ]

    result = service.seed_workspace("W1", "faq", files)

    assert result["data"]["processed_files"] == 2
    assert result["data"]["total_records"] == 5
    assert result["data"]["failed_records"] == 1
    assert storage.calls == ["persist_records"]
    assert [r["source_file"] for r in storage.list_records("W1", "faq")] == ["first.csv"] * 3 + ["second.json"]


def test_unreadable_file_aborts_seed_without_persisting(service, storage):
    files = [faq_file(), UploadedFile("broken.xlsx", content=b"not a workbook")]

    result = service.seed_workspace("W1", "faq", files)

    assert result["success"] is False
    assert result["error_type"] == "file_read_error"
    assert "broken.xlsx" in result["error"]
    assert result["data"]["processed_files"] == 1
    assert "persist_records" not in storage.calls

    entry = service.get_tenant_logs("W1")[0]
    assert entry.status == "failed"
    assert "broken.xlsx" in entry.error_message


def test_parser_crash_fails_the_seed_entry(storage):
    def crashing_parser(file, data_type):
        raise RuntimeError("parser exploded")

    registry = InMemoryConnectionRegistry(CredentialCipher(Fernet.generate_key()))
    service = InitializationService(InMemoryLogLedger(clock=ticking_clock()), registry, storage, parser=crashing_parser)

    result = service.seed_workspace("W1", "faq", [faq_file()])

    assert result["success"] is False
    assert result["error_type"] == "file_read_error"
    assert "parser exploded" in result["error"]
    assert "persist_records" not in storage.calls
    assert [entry.status for entry in service.get_tenant_logs("W1")] == ["failed"]


def test_oversized_priority_is_a_failed_record_not_a_crash(service):
    file = UploadedFile("faq.csv", content=b"question,answer,priority\nq1,a1,1\nq2,a2,1e999\n")

    result = service.seed_workspace("W1", "faq", [file])

    assert result["success"] is True
    assert result["data"]["parsed_records"] == 1
    assert result["data"]["failed_records"] == 1
    assert [entry.status for entry in service.get_tenant_logs("W1")] == ["completed"]


def test_persist_failure_marks_seed_failed(service, storage):
    storage.fail_on = {"persist_records"}

    result = service.seed_workspace("W1", "faq", [faq_file()])

    assert result["success"] is False
    assert result["error_type"] == "external_call_failure"
    entry = service.get_tenant_logs("W1")[0]
    assert entry.status == "failed"
    assert entry.details.parse_results[0].parsed_records == 10


def test_seed_append_and_overwrite(service, storage):
    service.seed_workspace("W1", "faq", [faq_file(good=4, missing_answer=0)])
    service.seed_workspace("W1", "faq", [faq_file(good=4, missing_answer=0)])
    assert len(storage.list_records("W1", "faq")) == 8

    service.seed_workspace("W1", "faq", [faq_file(good=3, missing_answer=0)], {"overwrite_existing": True})
    assert len(storage.list_records("W1", "faq")) == 3


def test_seed_auto_categorize_and_batches(service, storage):
    items = [{"question": f"Refund payment {i}?", "answer": "See billing."} for i in range(9)]
    items.append({"question": "Login help?", "answer": "Reset it.", "category": "custom"})

    result = service.seed_workspace(
        "W1",
        "faq",
        [json_file("faq.json", items)],
        {"auto_categorize": True, "batch_size": 4},
    )

    assert result["success"] is True
    records = storage.list_records("W1", "faq")
    assert [r["category"] for r in records] == ["billing"] * 9 + ["custom"]
    assert storage.batch_sizes("W1") == [4, 4, 2]
    assert service.get_tenant_logs("W1")[0].details.options.batch_size == 4


@pytest.mark.parametrize(
    ("data_type", "options", "files"),
    [
        ("videos", None, [UploadedFile("a.csv", content=b"q,a\n")]),
        ("faq", {"batch_size": 0}, [UploadedFile("a.csv", content=b"q,a\n")]),
        ("faq", {"unknown_option": True}, [UploadedFile("a.csv", content=b"q,a\n")]),
        ("faq", None, []),
    ],
)
def test_seed_validation_errors_create_no_entries(service, storage, data_type, options, files):
    result = service.seed_workspace("W1", data_type, files, options)

    assert result["success"] is False
    assert result["error_type"] == "validation_error"
    assert service.get_all_logs() == []
    assert storage.calls == []


def test_seed_under_owning_tenant(service):
    service.seed_workspace("W1", "faq", [faq_file()], tenant_id="T9")

    assert service.get_tenant_logs("W1") == []
    entry = service.get_tenant_logs("T9")[0]
    assert entry.details.workspace_id == "W1"


# ----------------------------------------------------------------------
# configuration
# ----------------------------------------------------------------------
def test_apply_config_without_flags_is_a_completed_no_op(service, storage):
    result = service.apply_config("W2", {})

    assert result["success"] is True
    assert result["data"]["applied_operations"] == []
    entry = service.get_tenant_logs("W2")[0]
    assert entry.operation_type == "config_apply"
    assert entry.status == "completed"
    assert entry.details.applied_operations == []
    assert storage.calls == []


def test_apply_config_runs_operations_in_order(service, storage):
    scenarios = [
        {"name": "Cancel", "description": "Customer wants to cancel", "category": "retention", "triggers": ["cancel", "refund"]},
        {"name": "Upgrade", "description": "Customer asks for a bigger plan", "category": "sales", "triggers": "upgrade"},
    ]
    templates = [{"title": "Greeting", "content": "Hello {{customer_name}}", "category": "greeting"}]
    service.seed_workspace("W1", "scenarios", [json_file("scenarios.json", scenarios)])
    service.seed_workspace("W1", "templates", [json_file("templates.json", templates)])
    storage.calls.clear()

    result = service.apply_config(
        "W1",
        {"sync_categories": True, "register_trigger_rules": True, "create_vector_index": True},
    )

    assert result["success"] is True
    data = result["data"]
    assert data["applied_operations"] == ["create_vector_index", "register_trigger_rules", "sync_categories"]
    assert data["vector_index_status"] == "created"
    assert data["trigger_rules_count"] == 4
    assert data["synced_categories_count"] == 3
    assert storage.calls == ["build_vector_index", "register_trigger_rules", "sync_categories"]
    assert storage.vector_index_builds("W1") == 1


def test_apply_config_partial_failure_keeps_applied_operations(service, storage):
    storage.fail_on = {"register_trigger_rules"}

    result = service.apply_config(
        "W1",
        {"create_vector_index": True, "register_trigger_rules": True, "sync_categories": True},
    )

    assert result["success"] is False
    assert result["error_type"] == "external_call_failure"
    assert result["data"]["applied_operations"] == ["create_vector_index"]
    assert "sync_categories" not in storage.calls

    entry = service.get_tenant_logs("W1")[0]
    assert entry.status == "failed"
    assert entry.details.applied_operations == ["create_vector_index"]
    assert entry.details.requested_operations == ["create_vector_index", "register_trigger_rules", "sync_categories"]


def test_vector_index_failure_is_reported(service, storage):
    storage.fail_on = {"build_vector_index"}

    result = service.apply_config("W1", {"create_vector_index": True})

    assert result["data"]["applied_operations"] == []
    assert result["data"]["vector_index_status"] == "failed"


def test_apply_config_rejects_unknown_operation(service):
    result = service.apply_config("W1", {"rebuild_everything": True})

    assert result["error_type"] == "validation_error"
    assert service.get_all_logs() == []


# ----------------------------------------------------------------------
# status
# ----------------------------------------------------------------------
def test_status_failed_when_any_entry_failed(service):
    ledger = service.ledger
    db = ledger.start("T2", "database_init", "db", DatabaseInitDetails())
    ledger.complete(db.id, "db done")
    config = ledger.start("T2", "config_apply", "config", ConfigApplyDetails(workspace_id="W5"))
    ledger.fail(config.id, "config failed", "sync_categories failed: boom")

    result = service.get_status("T2")

    assert result["success"] is True
    data = result["data"]
    assert data["overall_status"] == "failed"
    assert data["workspace_status"] == {"W5": {"data_seeding": "pending", "config_applied": "failed"}}


def test_status_in_progress_and_unknown_bucket(service):
    ledger = service.ledger
    seed = ledger.start("T3", "data_seed", "seed without details")
    ledger.complete(seed.id, "done")
    ledger.start("T3", "database_init", "db", DatabaseInitDetails())

    data = service.get_status("T3")["data"]

    assert data["overall_status"] == "in_progress"
    assert data["workspace_status"]["unknown"]["data_seeding"] == "completed"


def test_status_of_full_initialization(service):
    register_both(service)
    service.initialize_database("T1")
    service.seed_workspace("W1", "faq", [faq_file()], tenant_id="T1")
    service.apply_config("W1", {"sync_categories": True}, tenant_id="T1")

    data = service.get_status("T1")["data"]

    assert data["overall_status"] == "completed"
    assert data["database_status"] == {"relational": "completed", "document": "completed"}
    assert data["workspace_status"] == {"W1": {"data_seeding": "completed", "config_applied": "completed"}}
    started = [log["started_at"] for log in data["logs"]]
    assert started == sorted(started, reverse=True)
    assert data["last_updated"] == max(log["completed_at"] for log in data["logs"])


def test_status_is_idempotent_and_read_only(service):
    register_both(service)
    service.initialize_database("T1")
    before = len(service.get_all_logs())

    first = service.get_status("T1")
    second = service.get_status("T1")

    assert first == second
    assert len(service.get_all_logs()) == before


def test_status_of_unknown_tenant_is_not_found(service):
    result = service.get_status("nobody")

    assert result["success"] is False
    assert result["error_type"] == "not_found"


def test_reset_clears_everything(service, storage):
    register_both(service)
    service.initialize_database("T1")
    service.reset()

    assert service.get_all_logs() == []
    assert service.list_connections("T1") == []
    assert storage.schemas == {}
