import uuid
from typing import Any, Tuple
from app.core.exceptions import ValidationError


def parse_id(value: Any, field: str = "id") -> uuid.UUID:
    """Coerce a path/body identifier to UUID or raise ValidationError."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (ValueError, AttributeError, TypeError):
        raise ValidationError(f"Invalid {field}: {value!r}")


def canonical_pair(a: uuid.UUID, b: uuid.UUID) -> Tuple[uuid.UUID, uuid.UUID]:
    """Order an unordered pair so both participants address the same row."""
    return (a, b) if str(a) < str(b) else (b, a)


def id_in(user_id: uuid.UUID, ids) -> bool:
    """Membership test for id lists stored as JSON strings."""
    target = str(user_id)
    return any(str(item) == target for item in (ids or []))
