"""Result pattern for operations whose failure is an expected outcome.

The login gate reports its three failure modes through a Result instead of
raising, so callers can show the message in place and keep the user's input.
"""
from dataclasses import dataclass
from typing import Optional, TypeVar, Generic

T = TypeVar('T')


@dataclass
class Result(Generic[T]):
    """Represents the outcome of an operation.

    Attributes:
        success: Whether the operation succeeded.
        value: The return value on success, None on failure.
        error: Error message on failure, None on success.
        error_type: Category of error (see ErrorType).

    Usage:
        result = gate.login("a@x.com", Role.MEMBER)
        if result.success:
            session = result.value
        elif result.error_type == ErrorType.PENDING_APPROVAL:
            ...
    """
    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def ok(cls, value: T = None) -> 'Result[T]':
        """Create a successful result."""
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, error_type: str = None) -> 'Result[T]':
        """Create a failure result.

        Args:
            error: Error message describing what went wrong.
            error_type: Optional error category for programmatic handling.
        """
        return cls(success=False, error=error, error_type=error_type)

    def __bool__(self) -> bool:
        return self.success

    def unwrap(self) -> T:
        """Get the value, raising an exception if the operation failed.

        Raises:
            ValueError: If the operation failed.
        """
        if not self.success:
            raise ValueError(f"Result unwrap failed: {self.error}")
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Get the value or a default if the operation failed."""
        return self.value if self.success else default


class ErrorType:
    """Standard error type constants."""
    NOT_FOUND = "NOT_FOUND"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    ACCESS_DENIED = "ACCESS_DENIED"
    VALIDATION = "VALIDATION"
    STATE_CONFLICT = "STATE_CONFLICT"
    PERSISTENCE = "PERSISTENCE"
    PERMISSION = "PERMISSION"
