"""
Repository-level input validation.

These checks run before any query is built, so a malformed id or an empty
payload never reaches the store and is never retried.
"""

import re
from typing import Any, Mapping

from ..exceptions.base import ValidationError

# canonical UUID v1-v5: version nibble 1-5, variant nibble 8/9/a/b
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and UUID_PATTERN.match(value) is not None


def validate_id(value: Any, *, uuid_ids: bool = True, id_column: str = "id") -> None:
    """
    Raise ValidationError unless `value` is a usable identifier.

    - empty values (None, "", whitespace) are always rejected
    - when `uuid_ids` is set, the value must be a canonical UUID string
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{id_column} is required", fields=[id_column])

    if uuid_ids and not is_valid_uuid(value):
        raise ValidationError(f"Invalid {id_column} format: expected a UUID", fields=[id_column])


def validate_payload(data: Mapping[str, Any] | None, *, operation: str) -> None:
    """Raise ValidationError when a write payload is missing or empty."""
    if not data:
        raise ValidationError(f"Data is required for {operation}")
