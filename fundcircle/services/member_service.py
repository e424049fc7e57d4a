"""Member accounts service.

Handles signups and profile edits. Status changes after signup belong to
the RequestLifecycleManager.
"""
import logging
import re
import uuid

from fundcircle.config import AUTO_APPROVE_ADMIN_SIGNUPS
from fundcircle.data_structures import Role, User, UserStatus
from fundcircle.exceptions import PersistenceError, StateConflictError, ValidationError
from fundcircle.receipts import normalize_avatar
from fundcircle.repositories import UserRepository
from fundcircle.retry import with_retries

logger = logging.getLogger(__name__)

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_PROFILE_FIELDS = ('name', 'designation', 'avatar')


def normalize_email(email) -> str:
    """Emails are matched case-insensitively and without surrounding spaces."""
    return (email or "").strip().lower()


class MemberService:
    """Handles member signup and self-service profile updates."""

    def __init__(self, db_manager):
        """Initialize MemberService.

        Args:
            db_manager: DatabaseManager instance for data persistence.
        """
        self.db = db_manager
        self.users = UserRepository(db_manager)

    @with_retries()
    def signup(self, name, email, role=Role.MEMBER) -> User:
        """Register a new account.

        Admin accounts are approved immediately when
        AUTO_APPROVE_ADMIN_SIGNUPS is set; members wait for an admin.

        Raises:
            ValidationError: Missing name, malformed email or unknown role.
            StateConflictError: An account already uses this email.
        """
        name = (name or "").strip()
        email = normalize_email(email)
        if not name:
            raise ValidationError("Name is required")
        if not _EMAIL.match(email):
            raise ValidationError("A valid email address is required", {'email': email})
        if role not in Role.ALL:
            raise ValidationError(f"Unknown role '{role}'", {'role': role})
        if self.users.find_by_email(email) is not None:
            raise StateConflictError("An account with this email already exists", details={'email': email})

        status = UserStatus.PENDING
        if role == Role.ADMIN and AUTO_APPROVE_ADMIN_SIGNUPS:
            status = UserStatus.APPROVED

        user = User(id=uuid.uuid4().hex, name=name, email=email, role=role, status=status, balance=0.0)
        try:
            self.users.insert(user)
        except PersistenceError as e:
            # lost a race with a concurrent signup for the same email
            if self.users.find_by_email(email) is None:
                raise
            raise StateConflictError("An account with this email already exists",
                                     details={'email': email}) from e
        logger.info(f"New {role.lower()} signup {user.id} ({status})")
        return user

    def get_user(self, user_id) -> User:
        """Raises MemberNotFoundError for unknown ids."""
        return self.users.require(user_id)

    def list_members(self, status=None, role=None):
        users = self.users.list_by_status(status) if status else self.users.list_all()
        if role:
            users = [u for u in users if u.role == role]
        return users

    def circle(self):
        """Approved accounts, as shown to members browsing the circle."""
        return self.users.list_by_status(UserStatus.APPROVED)

    @with_retries()
    def update_profile(self, user_id, **changes) -> User:
        """Update a user's own profile fields (name, designation, avatar).

        Existing deposits, loans and requests keep the name they were
        created with.

        Raises:
            ValidationError: Unknown field or empty name.
            MemberNotFoundError: Unknown user.
        """
        unknown = set(changes) - set(_PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Profile fields cannot be changed: {sorted(unknown)}")

        fields = {}
        if 'name' in changes:
            name = (changes['name'] or "").strip()
            if not name:
                raise ValidationError("Name is required")
            fields['name'] = name
        if 'designation' in changes:
            fields['designation'] = (changes['designation'] or "").strip() or None
        if 'avatar' in changes:
            fields['avatar'] = normalize_avatar(changes['avatar']) if changes['avatar'] else None

        self.users.update_by_id(user_id, fields)
        return self.users.require(user_id)
