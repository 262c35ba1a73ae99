"""Unit tests for core/filters.py and core/validator.py."""

import pytest

from core.errors import ValidationFailure
from core.filters import MAX_PAGE, Filters, Metadata, calculate_metadata, validate_filters, with_descending
from core.validator import Validator, unique

ALLOW = with_descending("id", "title")


def _errors(f: Filters) -> dict[str, str]:
    v = Validator()
    validate_filters(v, f)
    return v.errors


def test_with_descending() -> None:
    assert ALLOW == ("id", "title", "-id", "-title")


def test_sort_column_and_direction() -> None:
    f = Filters(sort="-title", sort_allow_list=ALLOW)
    assert f.sort_column() == "title"
    assert f.sort_direction() == "DESC"
    f = Filters(sort="id", sort_allow_list=ALLOW)
    assert (f.sort_column(), f.sort_direction()) == ("id", "ASC")


def test_sort_not_allowed_raises() -> None:
    with pytest.raises(ValidationFailure):
        Filters(sort="year", sort_allow_list=ALLOW).sort_column()


def test_limit_offset() -> None:
    f = Filters(page=3, page_size=25, sort_allow_list=ALLOW)
    assert (f.limit(), f.offset()) == (25, 50)


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"page": 0}, "page"),
        ({"page": MAX_PAGE + 1}, "page"),
        ({"page_size": 0}, "page_size"),
        ({"page_size": 101}, "page_size"),
        ({"sort": "-year"}, "sort"),
    ],
)
def test_validate_filters_rejects(kwargs, field) -> None:
    assert field in _errors(Filters(sort_allow_list=ALLOW, **kwargs))


def test_validate_filters_bounds_accepted() -> None:
    assert _errors(Filters(page=MAX_PAGE, page_size=100, sort="-id", sort_allow_list=ALLOW)) == {}


def test_max_page_size_is_configurable() -> None:
    assert "page_size" in _errors(Filters(page_size=50, max_page_size=40, sort_allow_list=ALLOW))


def test_metadata_last_page_rounds_up() -> None:
    assert calculate_metadata(12, 1, 5) == Metadata(
        current_page=1, page_size=5, first_page=1, last_page=3, total_records=12
    )


def test_metadata_zero_records_is_zero_value() -> None:
    assert calculate_metadata(0, 4, 20) == Metadata()
    assert Metadata().to_dict() == {
        "current_page": 0,
        "page_size": 0,
        "first_page": 0,
        "last_page": 0,
        "total_records": 0,
    }


def test_validator_keeps_first_message() -> None:
    v = Validator()
    v.check(False, "title", "must be provided")
    v.check(False, "title", "must not be more than 500 bytes long")
    assert v.errors == {"title": "must be provided"}
    with pytest.raises(ValidationFailure) as info:
        v.raise_if_invalid()
    assert info.value.errors == {"title": "must be provided"}


def test_unique() -> None:
    assert unique(["a", "b"])
    assert not unique(["a", "a"])
