"""
core/validator.py -- Field-level validation accumulator.

Usage:
    v = Validator()
    v.check(title != "", "title", "must be provided")
    v.check(year >= 1888, "year", "must be greater than 1888")
    v.raise_if_invalid()   # ValidationFailure with every failing field

Only the first message per field is kept, so a field that fails several
rules reports the most basic one ("must be provided" before "too long").
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from core.errors import ValidationFailure

EMAIL_RX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)


class Validator:
    def __init__(self) -> None:
        self.errors: dict[str, str] = {}

    def valid(self) -> bool:
        return not self.errors

    def add_error(self, key: str, message: str) -> None:
        self.errors.setdefault(key, message)

    def check(self, ok: bool, key: str, message: str) -> None:
        if not ok:
            self.add_error(key, message)

    def raise_if_invalid(self) -> None:
        if self.errors:
            raise ValidationFailure(self.errors)


def matches(value: str, rx: re.Pattern) -> bool:
    return rx.match(value) is not None


def unique(values: Iterable[str]) -> bool:
    values = list(values)
    return len(values) == len(set(values))
