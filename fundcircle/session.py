"""Login gate and sessions.

Logging in is by email and role only. The gate tells apart three failures
(no such account, account awaiting approval, account rejected) and reports
them through a Result so the caller can show the right message.
"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from fundcircle.config import SESSION_SETTING_KEY
from fundcircle.data_structures import Role, User, UserStatus
from fundcircle.exceptions import (
    AccessDeniedError,
    AccountNotFoundError,
    AuthError,
    PendingApprovalError,
    PermissionDeniedError,
)
from fundcircle.repositories import UserRepository
from fundcircle.result import ErrorType, Result
from fundcircle.services.member_service import normalize_email

logger = logging.getLogger(__name__)

_ERROR_TYPES = {
    AccountNotFoundError: ErrorType.NOT_FOUND,
    PendingApprovalError: ErrorType.PENDING_APPROVAL,
    AccessDeniedError: ErrorType.ACCESS_DENIED,
}


class Session:
    """The logged-in user.

    Holds a copy of the user taken at login; later changes to the stored
    account show up only after refresh().
    """

    def __init__(self, gate, user: User):
        self._gate = gate
        self._user = replace(user)
        self.started_at = datetime.now()
        self.active = True

    @property
    def user(self) -> Optional[User]:
        return self._user if self.active else None

    @property
    def user_id(self):
        return self._user.id if self.active else None

    @property
    def role(self):
        return self._user.role if self.active else None

    @property
    def is_admin(self) -> bool:
        return self.active and self._user.is_admin

    def rebind(self, user: User):
        """Replace the snapshot with a fresh copy of `user`."""
        if user.id != self._user.id:
            raise ValueError("A session cannot be rebound to a different user")
        self._user = replace(user)

    def refresh(self) -> 'Session':
        """Reload the user from storage.

        Raises:
            AuthError: The account is gone, or no longer approved; the
                session is ended.
        """
        if not self.active:
            raise AuthError("Session has ended")
        try:
            user = self._gate.check_account(self._user.id)
        except AuthError:
            self.logout()
            raise
        self.rebind(user)
        return self

    def logout(self):
        if not self.active:
            return
        self.active = False
        self._gate.forget(self._user.id)
        logger.info(f"User {self._user.id} logged out")

    def __repr__(self):
        state = "active" if self.active else "ended"
        return f"<Session {self._user.id} {self._user.role} {state}>"


class AuthGate:
    """Authenticates users and persists the current session id."""

    def __init__(self, db_manager):
        self.db = db_manager
        self.users = UserRepository(db_manager)

    def _authenticate(self, email, role) -> User:
        user = self.users.find_by_credentials(normalize_email(email), role)
        if user is None:
            raise AccountNotFoundError("Invalid credentials.", {'role': role})
        self._check_status(user)
        return user

    def _check_status(self, user: User):
        if user.status == UserStatus.PENDING:
            raise PendingApprovalError("Your account is pending approval.", {'user_id': user.id})
        if user.status == UserStatus.REJECTED:
            raise AccessDeniedError("Your access request was declined.", {'user_id': user.id})

    def check_account(self, user_id) -> User:
        """Return the stored user if it may still hold a session.

        Raises:
            AccountNotFoundError, PendingApprovalError, AccessDeniedError
        """
        user = self.users.get(user_id)
        if user is None:
            raise AccountNotFoundError("Invalid credentials.", {'user_id': user_id})
        self._check_status(user)
        return user

    def login(self, email, role, remember=True) -> Result:
        """Log in by email and role.

        Returns:
            Result with a Session on success. On failure error_type is
            NOT_FOUND, PENDING_APPROVAL or ACCESS_DENIED.
        """
        if role not in Role.ALL:
            return Result.fail(f"Unknown role '{role}'", ErrorType.VALIDATION)
        try:
            user = self._authenticate(email, role)
        except AuthError as e:
            logger.info(f"Login refused for {normalize_email(email)} as {role}: {e.message}")
            return Result.fail(e.message, _ERROR_TYPES.get(type(e), ErrorType.ACCESS_DENIED))

        if remember:
            self.db.set_setting(SESSION_SETTING_KEY, user.id)
        logger.info(f"User {user.id} logged in as {role}")
        return Result.ok(Session(self, user))

    def restore(self) -> Optional[Session]:
        """Re-open the session persisted by the last login, if still valid.

        A stored id whose account was removed or is no longer approved is
        cleared and None is returned.
        """
        user_id = self.db.get_setting(SESSION_SETTING_KEY)
        if not user_id:
            return None
        try:
            user = self.check_account(user_id)
        except AuthError as e:
            logger.warning(f"Stored session for {user_id} discarded: {e.message}")
            self.forget()
            return None
        return Session(self, user)

    def forget(self, user_id=None):
        """Clear the persisted session; with `user_id`, only if it belongs to that user."""
        if user_id is not None and self.db.get_setting(SESSION_SETTING_KEY) != str(user_id):
            return
        self.db.delete_setting(SESSION_SETTING_KEY)


def require_session(session, operation="this operation"):
    """Raises PermissionDeniedError unless `session` is an active session of any role."""
    if session is None or not session.active:
        raise PermissionDeniedError(operation)


def require_admin(session, operation="admin operation"):
    """Raises PermissionDeniedError unless `session` is an active admin session."""
    require_session(session, operation)
    if not session.is_admin:
        raise PermissionDeniedError(operation, session.role)


def require_member(session, operation="member operation"):
    require_session(session, operation)
    if session.role != Role.MEMBER:
        raise PermissionDeniedError(operation, session.role)
