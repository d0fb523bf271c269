"""
Upgrading an older sqlite database in place.
"""
import sqlite3

from migrate_db import migrate_database, resolve_db_path


def legacy_database(path):
    conn = sqlite3.connect(path)
    conn.executescript("""
        CREATE TABLE depos (id INTEGER PRIMARY KEY, name VARCHAR(255), balance NUMERIC(15, 2));
        CREATE TABLE pool (
            id INTEGER PRIMARY KEY,
            depo_id INTEGER,
            trip_id INTEGER,
            debit NUMERIC(15, 2),
            credit NUMERIC(15, 2),
            depo_limit NUMERIC(15, 2),
            created_at DATETIME
        );
        INSERT INTO depos (id, name, balance) VALUES (1, 'City Depo', 300);
        INSERT INTO pool (depo_id, debit, credit, depo_limit, created_at)
            VALUES (1, 300, 0, 300, '2023-05-01 10:00:00');
    """)
    conn.commit()
    conn.close()


def columns(path, table):
    conn = sqlite3.connect(path)
    try:
        return [row[1] for row in conn.execute(f"PRAGMA table_info({table})")]
    finally:
        conn.close()


def test_adds_missing_ledger_columns(tmp_path):
    path = str(tmp_path / "legacy.db")
    legacy_database(path)

    added = migrate_database(path)

    assert ("pool", "occurred_at") in added
    assert ("pool", "payment_id") in added
    assert all(table == "pool" for table, _ in added)
    pool_columns = columns(path, "pool")
    for column in ("payment_id", "recovery_id", "transaction_id", "reason", "occurred_at", "active"):
        assert column in pool_columns


def test_backfills_occurred_at_and_is_idempotent(tmp_path):
    path = str(tmp_path / "legacy.db")
    legacy_database(path)
    migrate_database(path)

    conn = sqlite3.connect(path)
    try:
        occurred_at, active = conn.execute("SELECT occurred_at, active FROM pool").fetchone()
    finally:
        conn.close()
    assert occurred_at == "2023-05-01 10:00:00"
    assert active == 1

    assert migrate_database(path) == []


def test_missing_database_is_left_for_the_app(tmp_path):
    assert migrate_database(str(tmp_path / "absent.db")) == []


def test_resolve_db_path(tmp_path):
    absolute = str(tmp_path / "ledger.db")
    assert resolve_db_path(f"sqlite:///{absolute}") == absolute
    assert resolve_db_path(f"file:{absolute}") == absolute
    assert resolve_db_path("sqlite:///./ledger.db").endswith("ledger.db")
