from __future__ import annotations

import re
from typing import Any, Iterable

from .db.models import FILTER_OPERATORS, Filter
from .errors import ValidationError

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def sanitize_identifier(identifier: str, field_name: str) -> str:
    if not _IDENTIFIER_RE.match(identifier):
        raise ValidationError(f"Invalid identifier for {field_name}")
    return identifier


def detect_statement_type(sql: str) -> str:
    stripped = sql.strip().split()
    if not stripped:
        raise ValidationError("SQL statement is empty")
    return stripped[0].upper()


def validate_page(page: int | None) -> int:
    if page is None:
        return 1
    if page < 1:
        raise ValidationError("page must be greater than or equal to 1")
    return page


def clamp_page_size(requested: int | None, default: int, cap: int) -> int:
    if requested is None:
        return min(default, cap)
    if requested < 1:
        raise ValidationError("pageSize must be greater than or equal to 1")
    return min(requested, cap)


def normalize_operator(operator: str) -> str:
    normalized = operator.strip().lower()
    if normalized not in FILTER_OPERATORS:
        raise ValidationError(
            f"Unsupported filter operator '{operator}'. "
            f"Must be one of: {', '.join(sorted(FILTER_OPERATORS))}"
        )
    return normalized


def parse_filter(expression: str) -> Filter:
    """Parse ``field:operator:value``; the value may itself contain colons.

    The bare value ``null`` stands for SQL NULL, so ``deleted_at:eq:null``
    becomes an ``IS NULL`` test.
    """
    parts = expression.split(":", 2)
    if len(parts) != 3 or not parts[0].strip():
        raise ValidationError(
            f"Invalid filter '{expression}'. Expected the form field:operator:value"
        )
    field, operator, value = parts
    return Filter(
        field=field.strip(),
        operator=normalize_operator(operator),
        value=None if value == "null" else value,
    )


def parse_filters(expressions: Iterable[str]) -> tuple[Filter, ...]:
    return tuple(parse_filter(expression) for expression in expressions)


def split_in_values(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        values = list(value)
    elif isinstance(value, str):
        values = [item.strip() for item in value.split(",") if item.strip()]
    else:
        values = [value]
    if not values:
        raise ValidationError("The 'in' operator needs at least one value")
    return values


def ensure_scalar(column: str, value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    raise ValidationError(f"Unsupported value for column '{column}'")
