from typing import Any, Optional
from uuid import UUID

from core.exceptions import ValidationException


def to_uuid(value: Any, field: str = "id") -> Optional[UUID]:
    """Parse an identifier coming from a caller, rejecting malformed values."""
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        raise ValidationException(f"Invalid {field}", errors={field: "must be a UUID"})
