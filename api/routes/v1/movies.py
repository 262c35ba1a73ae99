"""
api/routes/v1/movies.py -- Movie catalogue endpoints.

Routes:
  GET    /api/v1/movies        -- list with title/genre filters, sort, pagination  (movies:read)
  POST   /api/v1/movies        -- create                                            (movies:write)
  GET    /api/v1/movies/{id}   -- show                                              (movies:read)
  PATCH  /api/v1/movies/{id}   -- partial update with optimistic concurrency        (movies:write)
  DELETE /api/v1/movies/{id}   -- delete                                            (movies:write)

PATCH reads the current record, applies the supplied fields, and writes it
back through MovieStore.update(), which only lands if nobody else updated the
row in between (409 edit_conflict otherwise). A client that wants to be sure
it is patching the version it last saw sends X-Expected-Version; a mismatch
is rejected with the same 409 before anything is written.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response

from api.models import MessageResponse, MetadataResponse, MovieCreate, MovieEnvelope, MovieListResponse, MoviePatch, MovieResponse
from auth.dependencies import require_permission
from auth.permissions import MOVIES_READ, MOVIES_WRITE
from core.config import Settings
from core.errors import EditConflictError
from core.filters import Filters, validate_filters
from core.validator import Validator
from movies.models import SORT_ALLOW_LIST, Movie, validate_movie
from movies.ports import MovieRepository

router = APIRouter()


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


@router.get(
    "/movies",
    response_model=MovieListResponse,
    dependencies=[Depends(require_permission(MOVIES_READ))],
)
def list_movies(
    request: Request,
    title: str = "",
    genres: str = Query(default="", description="Comma-separated; a movie must carry all of them."),
    page: int = 1,
    page_size: int = 20,
    sort: str = "id",
) -> MovieListResponse:
    settings: Settings = request.app.state.settings
    movies: MovieRepository = request.app.state.movies

    filters = Filters(
        page=page,
        page_size=page_size,
        sort=sort,
        sort_allow_list=SORT_ALLOW_LIST,
        max_page_size=settings.max_page_size,
    )
    v = Validator()
    validate_filters(v, filters)
    v.raise_if_invalid()

    found, metadata = movies.get_all(title, _split_csv(genres), filters)
    return MovieListResponse(
        movies=[MovieResponse.from_movie(m) for m in found],
        metadata=MetadataResponse.from_metadata(metadata),
    )


@router.post(
    "/movies",
    response_model=MovieEnvelope,
    status_code=201,
    dependencies=[Depends(require_permission(MOVIES_WRITE))],
)
def create_movie(request: Request, response: Response, body: MovieCreate) -> MovieEnvelope:
    movies: MovieRepository = request.app.state.movies

    movie = Movie(title=body.title, year=body.year, runtime=body.runtime, genres=body.genres)
    v = Validator()
    validate_movie(v, movie)
    v.raise_if_invalid()

    movies.insert(movie)
    response.headers["Location"] = f"/api/v1/movies/{movie.id}"
    return MovieEnvelope(movie=MovieResponse.from_movie(movie))


@router.get(
    "/movies/{movie_id}",
    response_model=MovieEnvelope,
    dependencies=[Depends(require_permission(MOVIES_READ))],
)
def show_movie(request: Request, movie_id: int) -> MovieEnvelope:
    movies: MovieRepository = request.app.state.movies
    return MovieEnvelope(movie=MovieResponse.from_movie(movies.get(movie_id)))


@router.patch(
    "/movies/{movie_id}",
    response_model=MovieEnvelope,
    dependencies=[Depends(require_permission(MOVIES_WRITE))],
)
def update_movie(
    request: Request,
    movie_id: int,
    body: MoviePatch,
    expected_version: Optional[int] = Header(default=None, alias="X-Expected-Version"),
) -> MovieEnvelope:
    movies: MovieRepository = request.app.state.movies

    movie = movies.get(movie_id)
    if expected_version is not None and expected_version != movie.version:
        raise EditConflictError()

    if body.title is not None:
        movie.title = body.title
    if body.year is not None:
        movie.year = body.year
    if body.runtime is not None:
        movie.runtime = body.runtime
    if body.genres is not None:
        movie.genres = body.genres

    v = Validator()
    validate_movie(v, movie)
    v.raise_if_invalid()

    movies.update(movie)
    return MovieEnvelope(movie=MovieResponse.from_movie(movie))


@router.delete(
    "/movies/{movie_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_permission(MOVIES_WRITE))],
)
def delete_movie(request: Request, movie_id: int) -> MessageResponse:
    movies: MovieRepository = request.app.state.movies
    movies.delete(movie_id)
    return MessageResponse(message="movie successfully deleted")
