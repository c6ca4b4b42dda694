"""Domain errors surfaced as structured responses at the request boundary."""

from typing import Any


class MetadataError(Exception):
    """Base class for recoverable metadata errors."""

    status_code = 400
    code = "metadata_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Render the error as a response body."""
        return {"error": self.code, "detail": self.message, **self.details}


class NotFound(MetadataError):
    status_code = 404
    code = "not_found"


class PermissionDenied(MetadataError):
    status_code = 403
    code = "permission_denied"


class InvalidValue(MetadataError):
    status_code = 422
    code = "invalid_value"


class AlreadyResolved(MetadataError):
    status_code = 409
    code = "already_resolved"


class RequiresOverrideIntent(MetadataError):
    status_code = 422
    code = "requires_override_intent"

    def __init__(self, message: str, **details: Any):
        details.setdefault("requires_override", True)
        super().__init__(message, **details)


class ReadOnlyField(MetadataError):
    status_code = 422
    code = "read_only_field"


class InvalidFieldOperation(MetadataError):
    """Override or revert requested on a field that is not hybrid."""

    status_code = 422
    code = "invalid_field_operation"


class TokenNotFound(MetadataError):
    status_code = 404
    code = "token_not_found"


class TokenExpired(MetadataError):
    status_code = 410
    code = "token_expired"


class LedgerIntegrityError(RuntimeError):
    """Raised when code attempts to rewrite ledger or history rows."""
