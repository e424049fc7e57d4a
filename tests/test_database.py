"""Tests for transactions, the change feed and connection handling."""
import os
import sqlite3
import sys
import unittest
from unittest.mock import MagicMock

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fundcircle.database import DatabaseManager, translate_sqlite_error
from fundcircle.exceptions import PersistenceError, TransactionError, TransientPersistenceError


def user_count(db):
    return db.fetch_one("SELECT COUNT(*) AS n FROM users")['n']


def insert_user(db, user_id, email):
    db.execute("INSERT INTO users (id, name, email, role, status) VALUES (?, ?, ?, 'MEMBER', 'PENDING')",
               (user_id, user_id, email), table="users")


class TestTransactions(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")

    def tearDown(self):
        self.db.close()

    def test_commit(self):
        with self.db.transaction():
            insert_user(self.db, "u1", "u1@example.com")
            self.assertTrue(self.db.in_transaction)
        self.assertFalse(self.db.in_transaction)
        self.assertEqual(user_count(self.db), 1)

    def test_rollback_on_error(self):
        with self.assertRaises(RuntimeError):
            with self.db.transaction():
                insert_user(self.db, "u1", "u1@example.com")
                raise RuntimeError("boom")
        self.assertEqual(user_count(self.db), 0)

    def test_inner_failure_rolls_back_outer(self):
        with self.assertRaises(PersistenceError) as context:
            with self.db.transaction():
                insert_user(self.db, "u1", "u1@example.com")
                with self.db.transaction():
                    insert_user(self.db, "u2", "u1@example.com")  # duplicate email
        self.assertNotIsInstance(context.exception, TransactionError)
        self.assertEqual(user_count(self.db), 0)

    def test_clear_entities_keeps_settings(self):
        insert_user(self.db, "u1", "u1@example.com")
        self.db.set_setting("theme", "dark")
        self.db.clear_entities()
        self.assertEqual(user_count(self.db), 0)
        self.assertEqual(self.db.get_setting("theme"), "dark")


class TestChangeFeed(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.listener = MagicMock()
        self.db.subscribe("users", self.listener)

    def tearDown(self):
        self.db.close()

    def test_notified_after_commit(self):
        with self.db.transaction():
            insert_user(self.db, "u1", "u1@example.com")
            insert_user(self.db, "u2", "u2@example.com")
            self.listener.assert_not_called()
        self.listener.assert_called_once_with("users")

    def test_not_notified_on_rollback(self):
        with self.assertRaises(RuntimeError):
            with self.db.transaction():
                insert_user(self.db, "u1", "u1@example.com")
                raise RuntimeError("boom")
        self.listener.assert_not_called()

    def test_autocommit_write_notifies(self):
        insert_user(self.db, "u1", "u1@example.com")
        self.listener.assert_called_once_with("users")

    def test_failing_listener_is_logged(self):
        self.listener.side_effect = ValueError("listener broke")
        with self.assertLogs('fundcircle.database', level='ERROR'):
            insert_user(self.db, "u1", "u1@example.com")
        self.assertEqual(user_count(self.db), 1)

    def test_unsubscribe(self):
        self.db.unsubscribe("users", self.listener)
        insert_user(self.db, "u1", "u1@example.com")
        self.listener.assert_not_called()


class TestConnectionManagement(unittest.TestCase):

    def test_context_manager(self):
        with DatabaseManager(":memory:") as db:
            insert_user(db, "u1", "u1@example.com")
            self.assertEqual(user_count(db), 1)
        self.assertTrue(db._closed)

    def test_close_twice(self):
        db = DatabaseManager(":memory:")
        db.close()
        db.close()
        self.assertTrue(db._closed)

    def test_settings(self):
        with DatabaseManager(":memory:") as db:
            self.assertEqual(db.get_setting("missing", "fallback"), "fallback")
            db.set_setting("k", 5)
            self.assertEqual(db.get_setting("k"), "5")
            db.delete_setting("k")
            self.assertIsNone(db.get_setting("k"))


class TestErrorTranslation(unittest.TestCase):

    def test_locked_is_transient(self):
        error = translate_sqlite_error(sqlite3.OperationalError("database is locked"))
        self.assertIsInstance(error, TransientPersistenceError)

    def test_other_errors(self):
        error = translate_sqlite_error(sqlite3.IntegrityError("UNIQUE constraint failed"), "INSERT ...")
        self.assertNotIsInstance(error, TransientPersistenceError)
        self.assertEqual(error.details['query'], "INSERT ...")


if __name__ == '__main__':
    unittest.main()
