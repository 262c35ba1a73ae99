"""Unit tests for movies/store.py -- versioned records and list queries.

Covers:
- insert/get round trip with genre order preserved
- Two writers from the same version: exactly one wins, the other gets EditConflictError
- A conflicting update changes neither the row nor its genres
- delete() and get() of missing ids raise NotFoundError
- get_all(): title words, all-genres match, sort direction with id tie-break,
  pagination, metadata, and sort values outside the allow-list
"""

import pytest

from core.errors import EditConflictError, NotFoundError, ValidationFailure
from core.filters import Filters, Metadata
from movies.models import SORT_ALLOW_LIST, Movie
from movies.store import MovieStore


@pytest.fixture
def movies(engine) -> MovieStore:
    return MovieStore(engine)


@pytest.fixture
def catalogue(movies: MovieStore) -> MovieStore:
    for title, year, runtime, genres in [
        ("Casablanca", 1942, 102, ["drama", "romance"]),
        ("The Breakfast Club", 1985, 96, ["comedy", "drama"]),
        ("Moana", 2016, 107, ["animation", "adventure"]),
        ("Black Panther", 2018, 134, ["action", "adventure"]),
        ("Deadpool", 2016, 108, ["action", "comedy"]),
    ]:
        movies.insert(Movie(title=title, year=year, runtime=runtime, genres=genres))
    return movies


def _filters(**kwargs) -> Filters:
    return Filters(sort_allow_list=SORT_ALLOW_LIST, **kwargs)


class TestRecord:
    def test_insert_and_get(self, movies: MovieStore) -> None:
        movie = Movie(title="Alien", year=1979, runtime=117, genres=["sci-fi", "horror"])
        movies.insert(movie)
        assert movie.id >= 1
        assert movie.version == 1

        loaded = movies.get(movie.id)
        assert loaded == movie
        assert loaded.genres == ["sci-fi", "horror"]

    def test_get_missing(self, movies: MovieStore) -> None:
        with pytest.raises(NotFoundError):
            movies.get(42)
        with pytest.raises(NotFoundError):
            movies.get(0)

    def test_ids_beyond_integer_range_are_missing(self, movies: MovieStore) -> None:
        for movie_id in (2**63, 10**20, -(2**63) - 1):
            with pytest.raises(NotFoundError):
                movies.get(movie_id)
            with pytest.raises(NotFoundError):
                movies.delete(movie_id)

    def test_update_advances_version(self, movies: MovieStore) -> None:
        movie = Movie(title="Alien", year=1979, runtime=117, genres=["sci-fi"])
        movies.insert(movie)
        movie.genres = ["horror", "sci-fi"]
        movies.update(movie)
        assert movie.version == 2
        assert movies.get(movie.id).genres == ["horror", "sci-fi"]

    def test_concurrent_writers_one_wins(self, movies: MovieStore) -> None:
        movie = Movie(title="Alien", year=1979, runtime=117, genres=["sci-fi"])
        movies.insert(movie)
        first = movies.get(movie.id)
        second = movies.get(movie.id)

        first.runtime = 116
        movies.update(first)

        second.title = "Aliens"
        second.genres = ["action"]
        with pytest.raises(EditConflictError):
            movies.update(second)

        stored = movies.get(movie.id)
        assert stored.title == "Alien"
        assert stored.runtime == 116
        assert stored.genres == ["sci-fi"]
        assert stored.version == 2

    def test_update_deleted_record_conflicts(self, movies: MovieStore) -> None:
        movie = Movie(title="Alien", year=1979, runtime=117, genres=["sci-fi"])
        movies.insert(movie)
        movies.delete(movie.id)
        with pytest.raises(EditConflictError):
            movies.update(movie)

    def test_delete(self, movies: MovieStore) -> None:
        movie = Movie(title="Alien", year=1979, runtime=117, genres=["sci-fi"])
        movies.insert(movie)
        movies.delete(movie.id)
        with pytest.raises(NotFoundError):
            movies.get(movie.id)
        with pytest.raises(NotFoundError):
            movies.delete(movie.id)


class TestGetAll:
    def test_everything_by_id(self, catalogue: MovieStore) -> None:
        found, meta = catalogue.get_all("", [], _filters())
        assert [m.title for m in found][0] == "Casablanca"
        assert meta == Metadata(current_page=1, page_size=20, first_page=1, last_page=1, total_records=5)

    def test_title_words_case_insensitive(self, catalogue: MovieStore) -> None:
        found, _ = catalogue.get_all("breakfast CLUB", [], _filters())
        assert [m.title for m in found] == ["The Breakfast Club"]

    def test_title_wildcards_are_literal(self, catalogue: MovieStore) -> None:
        found, meta = catalogue.get_all("%", [], _filters())
        assert found == []
        assert meta == Metadata()

    def test_all_genres_required(self, catalogue: MovieStore) -> None:
        found, _ = catalogue.get_all("", ["action", "comedy"], _filters())
        assert [m.title for m in found] == ["Deadpool"]

    def test_descending_with_id_tiebreak(self, catalogue: MovieStore) -> None:
        found, _ = catalogue.get_all("", [], _filters(sort="-year"))
        assert [m.title for m in found] == [
            "Black Panther",
            "Moana",  # 2016, lower id first
            "Deadpool",  # 2016
            "The Breakfast Club",
            "Casablanca",
        ]

    def test_pagination(self, catalogue: MovieStore) -> None:
        found, meta = catalogue.get_all("", [], _filters(page=2, page_size=2, sort="title"))
        assert [m.title for m in found] == ["Deadpool", "Moana"]
        assert meta.last_page == 3
        assert meta.total_records == 5

    def test_page_past_the_end(self, catalogue: MovieStore) -> None:
        found, meta = catalogue.get_all("", [], _filters(page=9, page_size=2))
        assert found == []
        assert meta.total_records == 5

    def test_sort_outside_allow_list(self, catalogue: MovieStore) -> None:
        with pytest.raises(ValidationFailure) as info:
            catalogue.get_all("", [], _filters(sort="title; DROP TABLE movies"))
        assert info.value.errors == {"sort": "invalid sort value"}
