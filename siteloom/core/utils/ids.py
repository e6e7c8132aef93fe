"""Identifier helpers shared by the managers."""

from typing import Union
from uuid import UUID

from ..errors import ValidationError


def parse_uuid(value: Union[str, UUID], label: str = "id") -> UUID:
    """Coerce a path/body identifier to UUID, rejecting malformed input."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}: {value!r}")
