"""
Database Migration Script
Adds ledger columns missing from older databases without deleting data,
then rebuilds every running balance from history.
"""
import sqlite3
import os
import sys


def resolve_db_path(db_url):
    """Turn a DATABASE_URL into a sqlite file path"""
    if db_url.startswith("file:"):
        db_path = db_url[5:]
    elif db_url.startswith("sqlite:///"):
        db_path = db_url[10:]
    elif db_url.startswith("sqlite://"):
        db_path = db_url[9:]
    else:
        db_path = db_url

    if not os.path.isabs(db_path):
        db_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), db_path)
    return db_path


# table -> [(column, definition)]
LEDGER_COLUMNS = {
    'transactions': [
        ('trip_id', 'INTEGER REFERENCES trips(id) ON DELETE SET NULL'),
        ('balance', 'NUMERIC(15, 2)'),
        ('reference_no', 'VARCHAR(100)'),
        ('active', 'BOOLEAN DEFAULT 1'),
    ],
    'cash_in_hand': [
        ('occurred_at', 'DATETIME'),
        ('active', 'BOOLEAN DEFAULT 1'),
    ],
    'pool': [
        ('payment_id', 'INTEGER REFERENCES payments(id) ON DELETE SET NULL'),
        ('recovery_id', 'INTEGER REFERENCES recoveries(id) ON DELETE SET NULL'),
        ('transaction_id', 'INTEGER REFERENCES transactions(id) ON DELETE SET NULL'),
        ('reason', 'VARCHAR(255)'),
        ('occurred_at', 'DATETIME'),
        ('active', 'BOOLEAN DEFAULT 1'),
    ],
    'trip_depos': [
        ('paid_amount', 'NUMERIC(15, 2) DEFAULT 0.00'),
        ('active', 'BOOLEAN DEFAULT 1'),
    ],
    'trips': [
        ('paid', 'NUMERIC(15, 2) DEFAULT 0.00'),
        ('amount_collected', 'NUMERIC(15, 2) DEFAULT 0.00'),
        ('completed_at', 'DATETIME'),
    ],
    'recoveries': [
        ('dues_applied', 'NUMERIC(15, 2) DEFAULT 0.00'),
        ('transaction_id', 'INTEGER REFERENCES transactions(id) ON DELETE SET NULL'),
    ],
    'expenses': [
        ('transaction_id', 'INTEGER REFERENCES transactions(id) ON DELETE SET NULL'),
        ('active', 'BOOLEAN DEFAULT 1'),
    ],
}

# Rows written before occurred_at existed are ordered by their creation time
BACKFILL_OCCURRED_AT = ('cash_in_hand', 'pool')


def migrate_database(db_path):
    """Run database migrations. Returns the list of (table, column) added."""
    if not os.path.exists(db_path):
        print("Database file not found. It will be created when the app starts.")
        return []

    conn = sqlite3.connect(db_path)
    cursor = conn.cursor()
    added = []

    def table_exists(table_name):
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table_name,))
        return cursor.fetchone() is not None

    def get_table_columns(table_name):
        cursor.execute(f"PRAGMA table_info({table_name})")
        return [row[1] for row in cursor.fetchall()]

    def add_column_if_not_exists(table, column, column_type):
        if column in get_table_columns(table):
            print(f"  Column {column} already exists in {table}")
            return False
        cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
        print(f"✓ Added column {column} to {table}")
        added.append((table, column))
        return True

    print("=" * 60)
    print("Starting Database Migration")
    print("=" * 60)

    try:
        for index, (table, columns) in enumerate(LEDGER_COLUMNS.items(), start=1):
            print(f"\n[{index}] Checking {table} table...")
            if not table_exists(table):
                print(f"  {table} table doesn't exist yet")
                continue
            for column, definition in columns:
                add_column_if_not_exists(table, column, definition)

        print("\n[backfill] Dating legacy ledger rows...")
        for table in BACKFILL_OCCURRED_AT:
            if table_exists(table) and 'created_at' in get_table_columns(table):
                cursor.execute(f"UPDATE {table} SET occurred_at = created_at WHERE occurred_at IS NULL")
                if cursor.rowcount > 0:
                    print(f"  Backfilled occurred_at on {cursor.rowcount} {table} rows")

        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    finally:
        conn.close()

    print("\n" + "=" * 60)
    print("Migration complete!")
    print("=" * 60)
    return added


def rebuild_balances():
    """Replay every bank, cash and pool ledger through the ledger service"""
    from fuel_ledger.core.database import SessionLocal, unit_of_work
    from fuel_ledger.models import Account, Depo, LedgerKind
    from fuel_ledger.services.ledger_service import LedgerService

    db = SessionLocal()
    try:
        with unit_of_work(db):
            ledger = LedgerService(db)
            for account in db.query(Account).filter(Account.active == True).all():
                ledger.recalculate(LedgerKind.BANK, account.id)
            ledger.recalculate(LedgerKind.CASH)
            for depo in db.query(Depo).filter(Depo.active == True).all():
                ledger.recalculate(LedgerKind.POOL, depo.id)
    finally:
        db.close()
    print("✓ Rebuilt running balances")


if __name__ == "__main__":
    migrate_database(resolve_db_path(os.environ.get("DATABASE_URL", "sqlite:///./fuel_ledger.db")))
    if "--rebuild" in sys.argv:
        rebuild_balances()
