"""
core/filters.py -- Sorting, pagination, and result metadata for list queries.

Sort safety: the sort column is interpolated into ORDER BY, which cannot be
a bound parameter. Filters.sort_column() therefore only ever returns a value
that appears verbatim in the resource's allow-list; anything else raises
ValidationFailure tagged "sort". A leading "-" selects descending order on
the same column name with the marker stripped.

Usage:
    SORT_ALLOW_LIST = with_descending("id", "title", "year")
    f = Filters(page=2, page_size=20, sort="-year", sort_allow_list=SORT_ALLOW_LIST)
    v = Validator(); validate_filters(v, f); v.raise_if_invalid()
    f.sort_column(), f.sort_direction()   # ("year", "DESC")
    f.limit(), f.offset()                 # (20, 20)
    calculate_metadata(total, f.page, f.page_size)

Layer rule: no imports from api/, auth/, or movies/.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field

from core.errors import ValidationFailure
from core.validator import Validator

MAX_PAGE = 10_000_000
DEFAULT_MAX_PAGE_SIZE = 100

_DESCENDING_MARKER = "-"


def with_descending(*columns: str) -> tuple[str, ...]:
    """Return an allow-list holding each column and its descending variant."""
    return tuple(columns) + tuple(f"{_DESCENDING_MARKER}{c}" for c in columns)


@dataclass
class Filters:
    page: int = 1
    page_size: int = 20
    sort: str = "id"
    sort_allow_list: tuple[str, ...] = field(default_factory=tuple)
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE

    def sort_column(self) -> str:
        """Return the column name for ORDER BY, without the descending marker."""
        if self.sort not in self.sort_allow_list:
            raise ValidationFailure({"sort": "invalid sort value"})
        return self.sort.removeprefix(_DESCENDING_MARKER)

    def sort_direction(self) -> str:
        self.sort_column()
        return "DESC" if self.sort.startswith(_DESCENDING_MARKER) else "ASC"

    def limit(self) -> int:
        return self.page_size

    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def validate_filters(v: Validator, f: Filters) -> None:
    v.check(f.page > 0, "page", "must be greater than zero")
    v.check(f.page <= MAX_PAGE, "page", f"must be a maximum of {MAX_PAGE}")
    v.check(f.page_size > 0, "page_size", "must be greater than zero")
    v.check(f.page_size <= f.max_page_size, "page_size", f"must be a maximum of {f.max_page_size}")
    v.check(f.sort in f.sort_allow_list, "sort", "invalid sort value")


@dataclass(frozen=True)
class Metadata:
    """Pagination metadata derived from a query result. Never stored."""

    current_page: int = 0
    page_size: int = 0
    first_page: int = 0
    last_page: int = 0
    total_records: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def calculate_metadata(total_records: int, page: int, page_size: int) -> Metadata:
    """Build Metadata for a result set. Zero records yields the zero value."""
    if total_records == 0:
        return Metadata()
    return Metadata(
        current_page=page,
        page_size=page_size,
        first_page=1,
        last_page=math.ceil(total_records / page_size),
        total_records=total_records,
    )
