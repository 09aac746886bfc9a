# QMR Guard - Error taxonomy
import re

ACCESS_DENIED = "Access denied"

_DECIMAL_ID = re.compile(r"0|[1-9][0-9]*")


class GuardError(Exception):
    """Base for every error raised by the authorization core."""


class AuthenticationError(GuardError):
    """Missing, malformed, expired or otherwise unverifiable token."""


class PermissionDenied(GuardError):
    """Expected denial. str() is always the uniform public message; the
    internal reason stays on the instance for logs."""

    def __init__(self, reason: str = "", operation: str | None = None):
        super().__init__(ACCESS_DENIED)
        self.reason = reason
        self.operation = operation

    def __str__(self) -> str:
        return ACCESS_DENIED


class ValidationError(GuardError):
    """Malformed resource identifier or owner role."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Validation failed for {field}: {reason}")
        self.field = field
        self.reason = reason


class InternalError(GuardError):
    """Unexpected failure inside rule evaluation."""


def parse_resource_id(value, field: str = "id") -> int:
    """Accept an int or a canonical decimal string; reject everything else."""
    if isinstance(value, bool):
        raise ValidationError(field, "expected an integer identifier")
    if isinstance(value, int):
        if value < 0:
            raise ValidationError(field, "identifier must not be negative")
        return value
    if isinstance(value, str) and _DECIMAL_ID.fullmatch(value):
        return int(value)
    raise ValidationError(field, "expected an integer identifier")
