"""Database management module for the Fund Circle engine."""
import logging
import sqlite3
from collections import defaultdict
from contextlib import contextmanager

from fundcircle.config import DEFAULT_DB_NAME
from fundcircle.exceptions import (
    PersistenceError,
    TransactionError,
    TransientPersistenceError,
)

logger = logging.getLogger(__name__)

ENTITY_TABLES = ("users", "deposits", "loan_requests", "loans", "installments")


def translate_sqlite_error(error: sqlite3.Error, query: str = None) -> PersistenceError:
    """Map a sqlite error onto the persistence error hierarchy."""
    details = {'query': query} if query else {}
    message = str(error)
    if isinstance(error, sqlite3.OperationalError) and ("locked" in message or "busy" in message):
        return TransientPersistenceError(f"Database busy: {message}", details)
    return PersistenceError(f"Database error: {message}", details)


class DatabaseManager:
    """Handles all SQLite database operations.

    Writes made inside `transaction()` are committed together when the
    outermost block exits; writes outside one commit immediately. Listeners
    registered with `subscribe()` are called after the commit that changed
    their table.
    """

    def __init__(self, db_name=DEFAULT_DB_NAME):
        self.db_name = db_name
        try:
            self.conn = sqlite3.connect(db_name)
        except sqlite3.Error as e:
            raise translate_sqlite_error(e)
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._closed = False
        self._tx_depth = 0
        self._pending_changes = set()
        self._listeners = defaultdict(list)
        self.create_tables()

    def close(self):
        """Close the database connection."""
        if getattr(self, 'conn', None) is not None and not self._closed:
            self.conn.close()
            self._closed = True

    def __del__(self):
        self.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    @contextmanager
    def transaction(self):
        """Context manager for database transactions with automatic rollback on failure.

        Usage:
            with db.transaction():
                loans.insert(loan)
                requests.compare_and_set_status(...)

        Blocks may nest; only the outermost one commits. If any exception
        occurs everything since the outermost block began is rolled back
        and the exception propagates.
        """
        self._tx_depth += 1
        try:
            yield self
        except BaseException:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self.conn.rollback()
                self._pending_changes.clear()
            raise
        self._tx_depth -= 1
        if self._tx_depth == 0:
            try:
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                self._pending_changes.clear()
                raise TransactionError(f"Transaction failed: {str(e)}")
            self._flush_changes()

    def create_tables(self):
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                role TEXT NOT NULL,
                status TEXT NOT NULL,
                balance REAL DEFAULT 0,
                avatar TEXT,
                designation TEXT
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS deposits (
                id TEXT PRIMARY KEY,
                member_id TEXT NOT NULL,
                member_name TEXT,
                amount REAL NOT NULL,
                payment_date TEXT,
                entry_date TEXT NOT NULL,
                receipt_image TEXT,
                notes TEXT,
                description TEXT
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS loan_requests (
                id TEXT PRIMARY KEY,
                member_id TEXT NOT NULL,
                member_name TEXT,
                amount REAL NOT NULL,
                term INTEGER NOT NULL,
                request_date TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'PENDING'
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS loans (
                id TEXT PRIMARY KEY,
                member_id TEXT NOT NULL,
                member_name TEXT,
                total_amount REAL NOT NULL,
                recoverable_amount REAL NOT NULL,
                waiver_amount REAL NOT NULL,
                term INTEGER NOT NULL,
                issued_date TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'ACTIVE'
            )
        """)
        # Optimistic locking migration
        try:
            cursor.execute("ALTER TABLE loans ADD COLUMN version INTEGER DEFAULT 0")
        except sqlite3.OperationalError:
            pass

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS installments (
                id TEXT NOT NULL,
                loan_id TEXT NOT NULL,
                seq INTEGER NOT NULL,
                amount REAL NOT NULL,
                due_date TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'PENDING',
                paid_date TEXT,
                PRIMARY KEY (loan_id, id),
                FOREIGN KEY(loan_id) REFERENCES loans(id) ON DELETE CASCADE
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)
        self.conn.commit()

    # Low-level access
    def execute(self, query, params=(), table=None):
        """Run a statement, translating sqlite errors.

        Args:
            query: SQL statement.
            params: Bound parameters.
            table: Table changed by the statement; listeners are notified
                after the change is committed.

        Returns:
            The sqlite cursor.
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute(query, tuple(params))
        except sqlite3.Error as e:
            raise translate_sqlite_error(e, query)
        if table is not None:
            self._pending_changes.add(table)
            if not self.in_transaction:
                self._commit()
        return cursor

    def fetch_all(self, query, params=()):
        cursor = self.execute(query, params)
        cols = [description[0] for description in cursor.description]
        return [dict(zip(cols, row)) for row in cursor.fetchall()]

    def fetch_one(self, query, params=()):
        cursor = self.execute(query, params)
        row = cursor.fetchone()
        if row:
            cols = [description[0] for description in cursor.description]
            return dict(zip(cols, row))
        return None

    def _commit(self):
        try:
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            self._pending_changes.clear()
            raise translate_sqlite_error(e)
        self._flush_changes()

    def clear_entities(self):
        """Delete every user, deposit, loan and request (settings are kept)."""
        with self.transaction():
            for table in reversed(ENTITY_TABLES):
                self.execute(f"DELETE FROM {table}", table=table)

    # Change feed
    def subscribe(self, table, callback):
        """Call `callback(table)` after each committed change to `table`."""
        self._listeners[table].append(callback)

    def unsubscribe(self, table, callback):
        if callback in self._listeners[table]:
            self._listeners[table].remove(callback)

    def _flush_changes(self):
        changed, self._pending_changes = self._pending_changes, set()
        for table in sorted(changed):
            for callback in list(self._listeners.get(table, ())):
                try:
                    callback(table)
                except Exception:
                    logger.exception(f"Change listener for '{table}' failed")

    # Settings
    def get_setting(self, key, default=None):
        """Get a setting value."""
        row = self.fetch_one("SELECT value FROM settings WHERE key=?", (key,))
        return row['value'] if row else default

    def set_setting(self, key, value):
        """Set a setting value."""
        self.execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                     (key, str(value)), table="settings")

    def delete_setting(self, key):
        self.execute("DELETE FROM settings WHERE key=?", (key,), table="settings")
