# src/stream_stash_bff/tmdb.py

from typing import List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from .errors import InternalFault


TMDB_API_URL = "https://api.themoviedb.org/3"
POSTER_BASE_URL = "https://image.tmdb.org/t/p/w600_and_h900_bestv2"
BACKDROP_BASE_URL = "https://image.tmdb.org/t/p/w1920_and_h1080_bestv2"


class Media(BaseModel):
    backdrop_url: Optional[str] = None
    id: int
    media_type: str
    key: str
    original_title: str
    overview: str
    poster_url: Optional[str] = None
    title: str
    date: str


class SearchResult(BaseModel):
    page: int
    results: List[Media]
    total_pages: int
    total_results: int


# --- TMDB wire shapes ---

class _Movie(BaseModel):
    backdrop_path: Optional[str] = None
    id: int
    original_title: str = ""
    overview: str = ""
    poster_path: Optional[str] = None
    title: str = ""
    release_date: str = ""


class _Tv(BaseModel):
    backdrop_path: Optional[str] = None
    id: int
    original_name: str = ""
    overview: str = ""
    poster_path: Optional[str] = None
    name: str = ""
    first_air_date: str = ""


class _MovieResponse(BaseModel):
    page: int
    results: List[_Movie]
    total_pages: int
    total_results: int


class _TvResponse(BaseModel):
    page: int
    results: List[_Tv]
    total_pages: int
    total_results: int


def map_path(path: Optional[str], base_url: str) -> Optional[str]:
    return f"{base_url}{path}" if path else None


class TmdbClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        read_access_token: str,
        api_url: str = TMDB_API_URL,
    ) -> None:
        self.http_client = http_client
        self.read_access_token = read_access_token
        self.api_url = api_url

    async def _search(self, kind: str, query: str, page: int) -> dict:
        operation = f"tmdb.{kind}_search"
        try:
            response = await self.http_client.get(
                f"{self.api_url}/search/{kind}",
                params={
                    "include_adult": "false",
                    "language": "en-US",
                    "query": query,
                    "page": str(page),
                },
                headers={"Authorization": f"Bearer {self.read_access_token}"},
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise InternalFault(
                f"Could not {kind} search TMDB: {e.response.status_code} - {e.response.text}", operation
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise InternalFault(f"Could not {kind} search TMDB: {e!r}", operation) from e

    async def movie_search(self, query: str, page: int) -> SearchResult:
        body = await self._search("movie", query, page)
        try:
            parsed = _MovieResponse.model_validate(body)
        except ValidationError as e:
            raise InternalFault(f"Could not movie search TMDB: {e}", "tmdb.movie_search") from e

        return SearchResult(
            page=parsed.page,
            results=[
                Media(
                    backdrop_url=map_path(movie.backdrop_path, BACKDROP_BASE_URL),
                    id=movie.id,
                    media_type="movie",
                    key=f"movie:{movie.id}",
                    original_title=movie.original_title,
                    overview=movie.overview,
                    poster_url=map_path(movie.poster_path, POSTER_BASE_URL),
                    title=movie.title,
                    date=movie.release_date,
                )
                for movie in parsed.results
            ],
            total_pages=parsed.total_pages,
            total_results=parsed.total_results,
        )

    async def tv_search(self, query: str, page: int) -> SearchResult:
        body = await self._search("tv", query, page)
        try:
            parsed = _TvResponse.model_validate(body)
        except ValidationError as e:
            raise InternalFault(f"Could not tv search TMDB: {e}", "tmdb.tv_search") from e

        return SearchResult(
            page=parsed.page,
            results=[
                Media(
                    backdrop_url=map_path(tv.backdrop_path, BACKDROP_BASE_URL),
                    id=tv.id,
                    media_type="tv",
                    key=f"tv:{tv.id}",
                    original_title=tv.original_name,
                    overview=tv.overview,
                    poster_url=map_path(tv.poster_path, POSTER_BASE_URL),
                    title=tv.name,
                    date=tv.first_air_date,
                )
                for tv in parsed.results
            ],
            total_pages=parsed.total_pages,
            total_results=parsed.total_results,
        )
