"""
Typed errors raised by the entity contracts and the storage layer.

The HTTP layer turns each of these into a fixed response shape
(see main.py); nothing downstream inspects error messages to decide
what kind of failure happened.
"""
from typing import Any, Iterable, Optional

from fastapi import status


class EntityError(Exception):
    """Base class for every error the API reports to a caller."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message or self.error)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"success": False, "error": self.error}
        if self.message:
            body["message"] = self.message
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(EntityError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Validation failed"

    def __init__(self, field: str, reason: str):
        super().__init__(message=reason, field=field)
        self.reason = reason


class NotFoundError(EntityError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not Found"

    def __init__(self, resource: str, id: Any):
        super().__init__(message=f"{resource} with ID {id} not found.")
        self.resource = resource
        self.id = id


class ConflictError(EntityError):
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"

    def __init__(self, field: str):
        super().__init__(message=f"A record with this {field} already exists.", field=field)


class AuthenticationError(EntityError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"


class ForbiddenError(EntityError):
    """Credentials are valid but the account may not be used."""
    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"


class InternalError(EntityError):
    """Storage or hashing failure. The message never carries driver details."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal Server Error"

    def __init__(self, message: str = "An internal error occurred."):
        super().__init__(message=message)


# Request sections FastAPI prefixes onto error locations
_REQUEST_SECTIONS = {"body", "query", "path", "header", "cookie"}


def _field_from_loc(loc: Iterable[Any]) -> str:
    parts = list(loc)
    if len(parts) > 1 and parts[0] in _REQUEST_SECTIONS:
        parts = parts[1:]
    names = [str(part) for part in parts if isinstance(part, str)]
    return ".".join(names) or "body"


def _reason(error: dict) -> str:
    if error.get("type") == "value_error":
        original = (error.get("ctx") or {}).get("error")
        if original is not None:
            return str(original)
    return error.get("msg", "Invalid value")


def validation_error_from_pydantic(errors: list[dict]) -> ValidationError:
    """
    Converts a pydantic error list into our ValidationError.

    Only the first error is reported; its location (camelCase, dotted for
    nested fields) becomes the field name.
    """
    if not errors:
        return ValidationError(field="body", reason="Invalid request body")
    first = errors[0]
    return ValidationError(field=_field_from_loc(first.get("loc", ())), reason=_reason(first))
