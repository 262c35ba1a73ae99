"""movies/ports.py -- Capability interface for movie persistence."""

from __future__ import annotations

from typing import Protocol

from core.filters import Filters, Metadata
from movies.models import Movie


class MovieRepository(Protocol):
    def insert(self, movie: Movie) -> None: ...
    def get(self, movie_id: int) -> Movie: ...
    def update(self, movie: Movie) -> None: ...
    def delete(self, movie_id: int) -> None: ...
    def get_all(self, title: str, genres: list[str], filters: Filters) -> tuple[list[Movie], Metadata]: ...
