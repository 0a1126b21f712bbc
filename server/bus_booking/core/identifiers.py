"""Parsing of client-supplied identifiers."""

from uuid import UUID

from .exceptions import ValidationError


def parse_uuid(value: str, field: str) -> UUID:
    """Parse a UUID string, raising a 400 Problem Details error on malformed input."""
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(
            detail=f"{field} is not a valid identifier",
            errors={field: value}
        ) from None
