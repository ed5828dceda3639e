import sqlite3
import threading
from pathlib import Path

import pytest

from sovereign.storage import SQLiteStorage, create_storage, StorageBackend
from sovereign.core.errors import StorageError
from sovereign.core.types import AnchorReceipt
from sovereign.memory.log import MemoryLog
from sovereign.memory.digest import StateDigester

ALICE = "alice-identity"
BOB = "bob-identity"


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def storage(temp_db_path: Path) -> SQLiteStorage:
    s = SQLiteStorage(db_path=temp_db_path)
    yield s
    s.close()


def test_create_storage_dynamic_routing(temp_db_path: Path):
    storage = create_storage(f"sqlite://{temp_db_path}")
    assert isinstance(storage, SQLiteStorage)
    assert str(storage.db_path) == str(temp_db_path.resolve())
    storage.close()


def test_create_storage_plain_path_and_memory(temp_db_path: Path):
    plain = create_storage(str(temp_db_path))
    assert isinstance(plain, StorageBackend)
    plain.close()

    mem = create_storage("sqlite://:memory:")
    mem.append_entry(ALICE, "in memory", [])
    assert mem.get_entry_count(ALICE) == 1
    mem.close()


def test_create_storage_rejects_unknown_scheme():
    with pytest.raises(ValueError, match="Unsupported"):
        create_storage("postgres://localhost/db")


def test_schema_creation(storage: SQLiteStorage):
    columns = {row[1] for row in storage.conn.execute("PRAGMA table_info(memories)")}
    assert columns == {"sequence", "id", "identity", "content", "embedding_json", "created_at"}
    users = {row[1] for row in storage.conn.execute("PRAGMA table_info(users)")}
    assert users == {"identity", "created_at"}


def test_ensure_user_idempotent(storage: SQLiteStorage):
    first = storage.ensure_user(ALICE)
    second = storage.ensure_user(ALICE)
    assert first == second
    assert storage.list_users() == [ALICE]


def test_append_and_load_in_order(storage: SQLiteStorage):
    for text in ["one", "two", "three"]:
        storage.append_entry(ALICE, text, [0.5, 0.5])
    storage.append_entry(BOB, "other", [])

    loaded = storage.load_entries(ALICE)
    assert [e.content for e in loaded] == ["one", "two", "three"]
    assert [e.sequence for e in loaded] == sorted(e.sequence for e in loaded)
    assert loaded[0].embedding == [0.5, 0.5]
    assert all(e.identity == ALICE for e in loaded)


def test_timestamp_ties_broken_by_sequence(storage: SQLiteStorage):
    for text in ["b", "a", "c"]:
        storage.append_entry(ALICE, text, [])
    storage.conn.execute("UPDATE memories SET created_at = '2026-01-01T00:00:00.000000+00:00'")

    assert [e.content for e in storage.load_entries(ALICE)] == ["b", "a", "c"]


def test_query_entries_returns_latest_oldest_first(storage: SQLiteStorage):
    for i in range(5):
        storage.append_entry(ALICE, f"m{i}", [])
    assert [e.content for e in storage.query_entries(ALICE, limit=2)] == ["m3", "m4"]


def test_load_empty_log(storage: SQLiteStorage):
    assert storage.load_entries("nobody") == []
    assert storage.get_entry_count("nobody") == 0
    assert storage.get_latest_timestamp("nobody") is None


def test_list_users_by_activity(storage: SQLiteStorage):
    storage.ensure_user(ALICE)
    storage.ensure_user(BOB)
    storage.append_entry(ALICE, "hi", [])
    assert storage.list_users()[0] == ALICE


def test_anchor_receipts(storage: SQLiteStorage):
    receipt = AnchorReceipt(ALICE, "ab" * 32, "r1", "2026-10-19T00:00:00+00:00")
    storage.record_anchor(receipt)
    storage.record_anchor(receipt)  # duplicate receipt ignored
    assert storage.latest_anchor(ALICE) == receipt
    assert storage.latest_anchor(BOB) is None


def test_close_releases_resources(temp_db_path: Path):
    storage = SQLiteStorage(temp_db_path)
    storage.append_entry(ALICE, "before close", [])
    storage.close()

    with pytest.raises(StorageError, match="closed"):
        storage.append_entry(ALICE, "after close", [])


def test_context_manager(temp_db_path: Path):
    with SQLiteStorage(temp_db_path) as storage:
        assert storage._conn is not None
    with pytest.raises(StorageError, match="closed"):
        storage.load_entries(ALICE)


def test_sqlite_failure_surfaces_as_storage_error(storage: SQLiteStorage):
    storage.conn.execute("DROP TABLE memories")
    with pytest.raises(StorageError):
        storage.append_entry(ALICE, "lost", [])


def test_persistence_across_reopen(temp_db_path: Path):
    with SQLiteStorage(temp_db_path) as s:
        s.append_entry(ALICE, "durable", [1.0])
    with SQLiteStorage(temp_db_path) as s:
        assert [e.content for e in s.load_entries(ALICE)] == ["durable"]


def test_external_tamper_changes_root(temp_db_path: Path):
    with SQLiteStorage(temp_db_path) as s:
        digester = StateDigester(MemoryLog(s))
        s.append_entry(ALICE, "Original content", [])
        before = digester.compute_root(ALICE)

    conn = sqlite3.connect(temp_db_path)
    conn.execute("UPDATE memories SET content = 'Tampered content'")
    conn.commit()
    conn.close()

    with SQLiteStorage(temp_db_path) as s:
        assert StateDigester(MemoryLog(s)).compute_root(ALICE) != before


def test_parallel_appends_across_identities(storage: SQLiteStorage):
    def writer(identity):
        for i in range(20):
            storage.append_entry(identity, f"{identity}-{i}", [])

    threads = [threading.Thread(target=writer, args=(who,)) for who in (ALICE, BOB)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for who in (ALICE, BOB):
        assert [e.content for e in storage.load_entries(who)] == [f"{who}-{i}" for i in range(20)]


def test_append_entries_is_all_or_nothing(storage: SQLiteStorage):
    storage.conn.execute("""
        CREATE TRIGGER reject_reply BEFORE INSERT ON memories
        WHEN NEW.content = 'reply'
        BEGIN SELECT RAISE(ABORT, 'reply rejected'); END
    """)
    with pytest.raises(StorageError, match="reply rejected"):
        storage.append_entries(ALICE, [("prompt", [0.1]), ("reply", [0.2])])

    assert storage.get_entry_count(ALICE) == 0
    assert not storage.conn.in_transaction

    storage.conn.execute("DROP TRIGGER reject_reply")
    written = storage.append_entries(ALICE, [("prompt", [0.1]), ("reply", [0.2])])
    assert [e.content for e in storage.load_entries(ALICE)] == ["prompt", "reply"]
    assert written[0].sequence < written[1].sequence


def test_append_entries_empty_batch(storage: SQLiteStorage):
    assert storage.append_entries(ALICE, []) == []
    assert storage.get_entry_count(ALICE) == 0


def test_timestamps_follow_sequence_under_contention(storage: SQLiteStorage):
    def writer(n):
        for i in range(25):
            storage.append_entry(ALICE, f"w{n}-{i}", [])

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    entries = storage.load_entries(ALICE)
    assert len(entries) == 100
    assert [e.sequence for e in entries] == sorted(e.sequence for e in entries)
