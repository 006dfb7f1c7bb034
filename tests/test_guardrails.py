import pytest

from sqlrest.db.models import Filter
from sqlrest.errors import ValidationError
from sqlrest.guardrails import (
    clamp_page_size,
    detect_statement_type,
    ensure_scalar,
    normalize_operator,
    parse_filter,
    parse_filters,
    sanitize_identifier,
    split_in_values,
    validate_page,
)


def test_detect_statement_type() -> None:
    assert detect_statement_type("  select * from table") == "SELECT"
    with pytest.raises(ValidationError):
        detect_statement_type("   ")


def test_sanitize_identifier() -> None:
    assert sanitize_identifier("valid_name", "schema alias") == "valid_name"
    with pytest.raises(ValidationError):
        sanitize_identifier("not-valid*", "schema alias")


def test_validate_page() -> None:
    assert validate_page(None) == 1
    assert validate_page(3) == 3
    with pytest.raises(ValidationError):
        validate_page(0)
    with pytest.raises(ValidationError):
        validate_page(-2)


def test_clamp_page_size() -> None:
    assert clamp_page_size(None, 100, 1000) == 100
    assert clamp_page_size(5, 100, 1000) == 5
    assert clamp_page_size(5000, 100, 1000) == 1000
    with pytest.raises(ValidationError):
        clamp_page_size(0, 100, 1000)


def test_normalize_operator() -> None:
    assert normalize_operator(" GTE ") == "gte"
    with pytest.raises(ValidationError, match="Unsupported filter operator"):
        normalize_operator("between")


def test_parse_filter() -> None:
    assert parse_filter("created_at:gt:2024-01-01T10:00") == Filter(
        "created_at", "gt", "2024-01-01T10:00"
    )
    assert parse_filter("deleted_at:EQ:null") == Filter("deleted_at", "eq", None)
    assert parse_filters(["a:eq:1", "b:like:x"]) == (
        Filter("a", "eq", "1"),
        Filter("b", "like", "x"),
    )
    for expression in ("no_operator", ":eq:1", "a:eq"):
        with pytest.raises(ValidationError):
            parse_filter(expression)


def test_split_in_values() -> None:
    assert split_in_values("1, 2,,3") == ["1", "2", "3"]
    assert split_in_values([1, 2]) == [1, 2]
    assert split_in_values(5) == [5]
    with pytest.raises(ValidationError):
        split_in_values(" , ")


def test_ensure_scalar() -> None:
    assert ensure_scalar("c", None) is None
    assert ensure_scalar("c", 1.5) == 1.5
    with pytest.raises(ValidationError):
        ensure_scalar("c", {"a": 1})
