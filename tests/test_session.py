"""Tests for the login gate, sessions and permission checks."""
import os
import sys
import unittest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fundcircle.config import SESSION_SETTING_KEY
from fundcircle.data_structures import Role
from fundcircle.database import DatabaseManager
from fundcircle.exceptions import AuthError, PermissionDeniedError
from fundcircle.repositories import UserRepository
from fundcircle.result import ErrorType
from fundcircle.services import MemberService, RequestLifecycleManager
from fundcircle.session import AuthGate, require_admin, require_member, require_session


class TestLogin(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.members = MemberService(self.db)
        self.manager = RequestLifecycleManager(self.db)
        self.gate = AuthGate(self.db)
        self.admin = self.members.signup("Ada", "ada@example.com", Role.ADMIN)
        self.member = self.members.signup("Alice", "alice@example.com")

    def tearDown(self):
        self.db.close()

    def test_admin_login(self):
        result = self.gate.login("  ADA@Example.com", Role.ADMIN)
        self.assertTrue(result.success)
        self.assertTrue(result.value.is_admin)
        self.assertEqual(result.value.user_id, self.admin.id)

    def test_pending_member_told_to_wait(self):
        result = self.gate.login("alice@example.com", Role.MEMBER)
        self.assertFalse(result)
        self.assertEqual(result.error_type, ErrorType.PENDING_APPROVAL)
        self.assertEqual(result.error, "Your account is pending approval.")

    def test_rejected_member_denied(self):
        self.manager.reject_member(self.member.id)
        result = self.gate.login("alice@example.com", Role.MEMBER)
        self.assertEqual(result.error_type, ErrorType.ACCESS_DENIED)

    def test_unknown_account(self):
        result = self.gate.login("nobody@example.com", Role.MEMBER)
        self.assertEqual(result.error_type, ErrorType.NOT_FOUND)
        self.assertEqual(result.error, "Invalid credentials.")

    def test_wrong_role_is_not_found(self):
        self.manager.approve_member(self.member.id)
        result = self.gate.login("alice@example.com", Role.ADMIN)
        self.assertEqual(result.error_type, ErrorType.NOT_FOUND)

    def test_approved_member_login(self):
        self.manager.approve_member(self.member.id)
        session = self.gate.login("alice@example.com", Role.MEMBER).unwrap()
        self.assertFalse(session.is_admin)
        self.assertEqual(session.role, Role.MEMBER)


class TestSessions(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.members = MemberService(self.db)
        self.gate = AuthGate(self.db)
        self.admin = self.members.signup("Ada", "ada@example.com", Role.ADMIN)
        self.session = self.gate.login("ada@example.com", Role.ADMIN).unwrap()

    def tearDown(self):
        self.db.close()

    def test_snapshot_until_refresh(self):
        self.members.update_profile(self.admin.id, name="Ada L.")
        self.assertEqual(self.session.user.name, "Ada")

        self.session.refresh()
        self.assertEqual(self.session.user.name, "Ada L.")

    def test_restore(self):
        restored = AuthGate(self.db).restore()
        self.assertIsNotNone(restored)
        self.assertEqual(restored.user_id, self.admin.id)

    def test_login_without_remember(self):
        self.session.logout()
        self.gate.login("ada@example.com", Role.ADMIN, remember=False)
        self.assertIsNone(self.gate.restore())

    def test_unremembered_logout_keeps_saved_session(self):
        other = self.gate.login("ada@example.com", Role.ADMIN, remember=False).unwrap()
        other.logout()
        self.assertEqual(self.db.get_setting(SESSION_SETTING_KEY), self.admin.id)
        self.assertEqual(self.gate.restore().user_id, self.admin.id)

    def test_logout_leaves_other_users_session(self):
        bob = self.members.signup("Bob", "bob@example.com", Role.ADMIN)
        bob_session = self.gate.login("bob@example.com", Role.ADMIN).unwrap()
        self.session.logout()
        self.assertEqual(self.db.get_setting(SESSION_SETTING_KEY), bob.id)
        bob_session.logout()
        self.assertIsNone(self.db.get_setting(SESSION_SETTING_KEY))

    def test_logout(self):
        self.session.logout()
        self.assertFalse(self.session.active)
        self.assertIsNone(self.session.user)
        self.assertIsNone(self.db.get_setting(SESSION_SETTING_KEY))
        self.assertIsNone(self.gate.restore())

    def test_restore_of_removed_account(self):
        UserRepository(self.db).delete_by_id(self.admin.id)
        self.assertIsNone(self.gate.restore())
        self.assertIsNone(self.db.get_setting(SESSION_SETTING_KEY))

    def test_refresh_of_removed_account_ends_session(self):
        UserRepository(self.db).delete_by_id(self.admin.id)
        with self.assertRaises(AuthError):
            self.session.refresh()
        self.assertFalse(self.session.active)


class TestPermissions(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        members = MemberService(self.db)
        gate = AuthGate(self.db)
        members.signup("Ada", "ada@example.com", Role.ADMIN)
        alice = members.signup("Alice", "alice@example.com")
        RequestLifecycleManager(self.db).approve_member(alice.id)
        self.admin_session = gate.login("ada@example.com", Role.ADMIN).unwrap()
        self.member_session = gate.login("alice@example.com", Role.MEMBER).unwrap()

    def tearDown(self):
        self.db.close()

    def test_admin_gate(self):
        require_admin(self.admin_session)
        with self.assertRaises(PermissionDeniedError) as context:
            require_admin(self.member_session, "add deposit")
        self.assertEqual(context.exception.details['operation'], "add deposit")

    def test_member_gate(self):
        require_member(self.member_session)
        with self.assertRaises(PermissionDeniedError):
            require_member(self.admin_session)

    def test_ended_session(self):
        self.member_session.logout()
        with self.assertRaises(PermissionDeniedError):
            require_member(self.member_session)
        with self.assertRaises(PermissionDeniedError):
            require_session(None)


if __name__ == '__main__':
    unittest.main()
