"""
Engine Errors

Typed error taxonomy shared by the invitation, submission and role
transition services. Every error carries a machine-readable `kind` that
callers switch on, a human readable `message`, and the HTTP status code the
API layer should answer with.
"""

from enum import Enum
from uuid import UUID

from fastapi import HTTPException
from pydantic import ValidationError as PydanticValidationError


class ErrorKind(str, Enum):
    """Machine-readable error categories."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_ALREADY_USED = "TOKEN_ALREADY_USED"
    ALREADY_USED = "ALREADY_USED"
    SELF_MODIFICATION_FORBIDDEN = "SELF_MODIFICATION_FORBIDDEN"
    SELF_DELETION_FORBIDDEN = "SELF_DELETION_FORBIDDEN"
    LAST_ADMIN_PROTECTED = "LAST_ADMIN_PROTECTED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class EngineError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, kind: ErrorKind, status_code: int = 400):
        self.message = message
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)

    @property
    def error_code(self) -> str:
        return self.kind.value


class InvalidInputError(EngineError):
    """Raised when caller input fails domain validation."""

    def __init__(self, message: str, field_errors: dict[str, str] | None = None):
        self.field_errors = field_errors or {}
        super().__init__(
            message=message,
            kind=ErrorKind.VALIDATION_ERROR,
            status_code=422,
        )

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError) -> "InvalidInputError":
        """Build from a pydantic ValidationError, keeping per-field messages."""
        field_errors: dict[str, str] = {}
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
            field_errors.setdefault(location, error.get("msg", "Invalid value"))
        first = next(iter(field_errors.items()), ("__root__", "Invalid input"))
        return cls(f"Invalid {first[0]}: {first[1]}", field_errors)


class NotFoundError(EngineError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: UUID | str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message=f"{entity} {entity_id} not found",
            kind=ErrorKind.NOT_FOUND,
            status_code=404,
        )


class InvalidStateTransitionError(EngineError):
    """Raised when an operation is not allowed from the entity's current state."""

    def __init__(self, current_status: str, action: str):
        self.current_status = current_status
        self.action = action
        super().__init__(
            message=f"Cannot {action} from status '{current_status}'",
            kind=ErrorKind.INVALID_STATE_TRANSITION,
            status_code=409,
        )


class TokenInvalidError(EngineError):
    """Raised when an invitation token is unknown or expired."""

    def __init__(self, reason: str = "not_found"):
        self.reason = reason
        message = (
            "This invitation has expired."
            if reason == "expired"
            else "This invitation link is invalid."
        )
        super().__init__(
            message=message,
            kind=ErrorKind.TOKEN_INVALID,
            status_code=400,
        )


class TokenAlreadyUsedError(EngineError):
    """Raised when an invitation token has already been accepted."""

    def __init__(self):
        super().__init__(
            message="This invitation has already been used.",
            kind=ErrorKind.TOKEN_ALREADY_USED,
            status_code=409,
        )


class AlreadyUsedError(EngineError):
    """Raised when an administrative action targets an accepted invitation."""

    def __init__(self, invitation_id: UUID | str):
        self.invitation_id = invitation_id
        super().__init__(
            message=f"Invitation {invitation_id} has already been accepted",
            kind=ErrorKind.ALREADY_USED,
            status_code=409,
        )


class SelfModificationForbiddenError(EngineError):
    """Raised when an actor tries to change their own role or credentials."""

    def __init__(self, message: str = "You cannot change your own role."):
        super().__init__(
            message=message,
            kind=ErrorKind.SELF_MODIFICATION_FORBIDDEN,
            status_code=403,
        )


class SelfDeletionForbiddenError(EngineError):
    """Raised when an actor tries to delete their own account."""

    def __init__(self):
        super().__init__(
            message="You cannot delete your own account.",
            kind=ErrorKind.SELF_DELETION_FORBIDDEN,
            status_code=403,
        )


class LastAdminProtectedError(EngineError):
    """Raised when a change would leave the system without an ADMIN."""

    def __init__(self, action: str = "demote"):
        self.action = action
        super().__init__(
            message=f"Cannot {action} the last administrator.",
            kind=ErrorKind.LAST_ADMIN_PROTECTED,
            status_code=409,
        )


class InvalidCredentialsError(EngineError):
    """Raised when an email and password do not match an account."""

    def __init__(self, message: str = "Invalid email or password."):
        super().__init__(
            message=message,
            kind=ErrorKind.INVALID_CREDENTIALS,
            status_code=401,
        )


class InternalEngineError(EngineError):
    """Opaque infrastructure failure inside a transaction. Details are only logged."""

    def __init__(self, message: str = "An unexpected error occurred."):
        super().__init__(
            message=message,
            kind=ErrorKind.INTERNAL_ERROR,
            status_code=500,
        )


def http_error(e: EngineError) -> HTTPException:
    """Convert an engine error into the API's structured HTTPException."""
    detail: dict = {"error": e.error_code, "message": e.message}
    if isinstance(e, InvalidInputError) and e.field_errors:
        detail["fields"] = e.field_errors
    return HTTPException(status_code=e.status_code, detail=detail)


__all__ = [
    "AlreadyUsedError",
    "EngineError",
    "ErrorKind",
    "InternalEngineError",
    "InvalidCredentialsError",
    "InvalidInputError",
    "InvalidStateTransitionError",
    "LastAdminProtectedError",
    "NotFoundError",
    "SelfDeletionForbiddenError",
    "SelfModificationForbiddenError",
    "TokenAlreadyUsedError",
    "TokenInvalidError",
    "http_error",
]
