"""
movies/store.py -- SQLAlchemy-backed persistence for the movie catalogue.

Uses SQLAlchemy Core (not ORM) so the Movie dataclass in movies/models.py
remains the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change.

Pattern: Repository + Data Mapper. MovieStore is the repository;
_row_to_movie is the mapper.

Genres live in a child table (movie_genres) rather than a serialized column
so "has all of these genres" is a portable GROUP BY ... HAVING query.
position preserves the order the client supplied them in.

Optimistic concurrency:
  update() goes through core.db.compare_and_swap, so it only lands if the
  row is still at the version the caller read. The genre rewrite happens in
  the same transaction *after* the swap succeeds; a conflicting update
  touches nothing. delete() is unconditional.

Usage:
    store = MovieStore(engine)
    store.insert(movie)                         # id, created_at, version=1
    movie = store.get(movie.id)
    movie.title = "Casablanca"
    store.update(movie)                         # EditConflictError on a stale version
    movies, meta = store.get_all("", ["drama"], filters)
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    and_,
    distinct,
    func,
    select,
    true,
)
from sqlalchemy.engine import Connection, Engine

from core.db import compare_and_swap, iso, storage, utcnow, valid_row_id
from core.errors import NotFoundError
from core.filters import Filters, Metadata, calculate_metadata
from movies.models import Movie

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_movies = Table(
    "movies",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("created_at", String(32), nullable=False),
    Column("title", Text, nullable=False),
    Column("year", Integer, nullable=False),
    Column("runtime", Integer, nullable=False),
    Column("version", Integer, nullable=False, server_default="1"),
)

_movie_genres = Table(
    "movie_genres",
    metadata,
    Column("movie_id", Integer, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False),
    Column("position", Integer, nullable=False),
    Column("genre", String(100), nullable=False, index=True),
    PrimaryKeyConstraint("movie_id", "genre"),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class MovieStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(engine)

    def insert(self, movie: Movie) -> None:
        """Insert a movie; sets id, created_at and version=1 on the passed object."""
        created_at = iso(utcnow())
        with storage(self.engine) as conn:
            result = conn.execute(
                _movies.insert().values(
                    created_at=created_at,
                    title=movie.title,
                    year=movie.year,
                    runtime=movie.runtime,
                    version=1,
                )
            )
            movie_id = result.inserted_primary_key[0]
            _write_genres(conn, movie_id, movie.genres)
        movie.id = movie_id
        movie.created_at = created_at
        movie.version = 1

    def get(self, movie_id: int) -> Movie:
        if not valid_row_id(movie_id):
            raise NotFoundError()
        with storage(self.engine) as conn:
            row = conn.execute(_movies.select().where(_movies.c.id == movie_id)).fetchone()
            if row is None:
                raise NotFoundError()
            genres = _read_genres(conn, [movie_id])
        return _row_to_movie(row, genres.get(movie_id, []))

    def update(self, movie: Movie) -> None:
        """Write movie back if still at movie.version; advances movie.version in place."""
        with storage(self.engine) as conn:
            new_version = compare_and_swap(
                conn,
                _movies,
                movie.id,
                movie.version,
                {"title": movie.title, "year": movie.year, "runtime": movie.runtime},
            )
            conn.execute(_movie_genres.delete().where(_movie_genres.c.movie_id == movie.id))
            _write_genres(conn, movie.id, movie.genres)
        movie.version = new_version

    def delete(self, movie_id: int) -> None:
        if not valid_row_id(movie_id):
            raise NotFoundError()
        with storage(self.engine) as conn:
            result = conn.execute(_movies.delete().where(_movies.c.id == movie_id))
            if result.rowcount == 0:
                raise NotFoundError()
            conn.execute(_movie_genres.delete().where(_movie_genres.c.movie_id == movie_id))

    def get_all(self, title: str, genres: list[str], filters: Filters) -> tuple[list[Movie], Metadata]:
        """Return one page of movies matching title words and all genres, plus metadata.

        title: every whitespace-separated word must appear in the title
               (case-insensitive). Empty matches everything.
        genres: the movie must carry every listed genre. Empty matches everything.
        """
        # Resolve the sort before touching the DB -- raises ValidationFailure
        # for anything outside the allow-list.
        column = _movies.c[filters.sort_column()]
        ordering = column.desc() if filters.sort_direction() == "DESC" else column.asc()
        condition = _matching(title, genres)

        with storage(self.engine) as conn:
            total = conn.execute(select(func.count()).select_from(_movies).where(condition)).scalar() or 0
            rows = conn.execute(
                _movies.select()
                .where(condition)
                .order_by(ordering, _movies.c.id.asc())
                .limit(filters.limit())
                .offset(filters.offset())
            ).fetchall()
            genre_map = _read_genres(conn, [r.id for r in rows])

        movies = [_row_to_movie(r, genre_map.get(r.id, [])) for r in rows]
        return movies, calculate_metadata(total, filters.page, filters.page_size)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _matching(title: str, genres: list[str]):
    clauses = [func.lower(_movies.c.title).contains(word.lower(), autoescape=True) for word in title.split()]
    wanted = set(genres)
    if wanted:
        having_all = (
            select(_movie_genres.c.movie_id)
            .where(_movie_genres.c.genre.in_(wanted))
            .group_by(_movie_genres.c.movie_id)
            .having(func.count(distinct(_movie_genres.c.genre)) == len(wanted))
        )
        clauses.append(_movies.c.id.in_(having_all))
    return and_(true(), *clauses)


def _write_genres(conn: Connection, movie_id: int, genres: list[str]) -> None:
    if genres:
        conn.execute(
            _movie_genres.insert(),
            [{"movie_id": movie_id, "position": i, "genre": g} for i, g in enumerate(genres)],
        )


def _read_genres(conn: Connection, movie_ids: list[int]) -> dict[int, list[str]]:
    if not movie_ids:
        return {}
    rows = conn.execute(
        select(_movie_genres.c.movie_id, _movie_genres.c.genre)
        .where(_movie_genres.c.movie_id.in_(movie_ids))
        .order_by(_movie_genres.c.movie_id, _movie_genres.c.position)
    ).fetchall()
    result: dict[int, list[str]] = {}
    for row in rows:
        result.setdefault(row.movie_id, []).append(row.genre)
    return result


def _row_to_movie(row, genres: list[str]) -> Movie:
    return Movie(
        id=row.id,
        created_at=row.created_at,
        title=row.title,
        year=row.year,
        runtime=row.runtime,
        genres=genres,
        version=row.version,
    )
