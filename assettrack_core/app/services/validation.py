"""Input helpers shared by the registries."""

from typing import Optional, Tuple

from .exceptions import ValidationError

MAX_PAGE_SIZE = 50


def coerce_enum(enum_cls, value, field: str):
    """Convert `value` to `enum_cls`, reporting bad input as a ValidationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError.single(field, f"{field} must be one of: {allowed}") from e


def clamp_page(page: Optional[int], limit: Optional[int], default_limit: int = 10) -> Tuple[int, int]:
    """Page is at least 1, limit is kept within 1..MAX_PAGE_SIZE."""
    page = max(1, page if page is not None else 1)
    limit = min(MAX_PAGE_SIZE, max(1, limit if limit is not None else default_limit))
    return page, limit


def like_pattern(term: str) -> str:
    """Case-insensitive substring pattern with LIKE wildcards escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def missing_fields(data: dict, fields, creating: bool):
    """(field, message) pairs for required fields that are absent or blank."""
    errors = []
    for field in fields:
        if field not in data:
            if creating:
                errors.append((field, f"{field} is required"))
            continue
        value = data[field]
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append((field, f"{field} is required"))
    return errors
