"""
movies/models.py -- The Movie record and its domain rules.

Movie is a pure data container; validate_movie() holds the rules. version is
the optimistic-concurrency counter compared by MovieStore.update().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from core.filters import with_descending
from core.validator import Validator, unique

MAX_TITLE_BYTES = 500
FIRST_FILM_YEAR = 1888
MAX_GENRES = 5
# Stored as a 32-bit INTEGER on every backend.
MAX_RUNTIME = 2**31 - 1

# Columns a client may sort movie listings by, ascending or with a "-" prefix.
SORT_ALLOW_LIST: tuple[str, ...] = with_descending("id", "title", "year", "runtime")


@dataclass
class Movie:
    title: str
    year: int
    runtime: int  # minutes
    genres: list[str] = field(default_factory=list)
    id: int | None = None
    created_at: str | None = None
    version: int | None = None


def validate_movie(v: Validator, movie: Movie) -> None:
    current_year = datetime.now(timezone.utc).year

    v.check(movie.title != "", "title", "must be provided")
    v.check(len(movie.title.encode("utf-8")) <= MAX_TITLE_BYTES, "title", f"must not be more than {MAX_TITLE_BYTES} bytes long")

    v.check(movie.year != 0, "year", "must be provided")
    v.check(movie.year >= FIRST_FILM_YEAR, "year", f"must be greater than {FIRST_FILM_YEAR}")
    v.check(movie.year <= current_year, "year", "must not be in the future")

    v.check(movie.runtime != 0, "runtime", "must be provided")
    v.check(movie.runtime > 0, "runtime", "must be a positive integer")
    v.check(movie.runtime <= MAX_RUNTIME, "runtime", f"must not be more than {MAX_RUNTIME}")

    v.check(len(movie.genres) >= 1, "genres", "must contain at least 1 genre")
    v.check(len(movie.genres) <= MAX_GENRES, "genres", f"must not contain more than {MAX_GENRES} genres")
    v.check(unique(movie.genres), "genres", "must not contain duplicate values")
    v.check(all(g.strip() for g in movie.genres), "genres", "must not contain empty values")
