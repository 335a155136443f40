"""Abstract interface for the external movie catalog.

The round engine only talks to the catalog through this contract. TMDB is the
production implementation; tests plug in an in-memory catalog.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


# ── Data Transfer Objects ────────────────────────────────────────

@dataclass(frozen=True)
class DiscoverQuery:
    """Filters for one catalog discovery page."""
    with_genres: tuple[str, ...] = ()       # Genre names, any-of
    without_genres: tuple[str, ...] = ()    # Genre names, none-of
    certification_lte: Optional[str] = None
    vote_count_gte: int = 50
    release_date_gte: str = "1980-01-01"
    page: int = 1

    def cache_params(self) -> dict:
        """Stable parameter dict used to derive the cache key."""
        return {
            "with_genres": sorted(self.with_genres),
            "without_genres": sorted(self.without_genres),
            "certification_lte": self.certification_lte,
            "vote_count_gte": self.vote_count_gte,
            "release_date_gte": self.release_date_gte,
            "page": self.page,
        }


@dataclass
class CatalogMovie:
    """A movie as returned by catalog discovery."""
    tmdb_id: int
    title: str
    year: Optional[int] = None
    poster_path: Optional[str] = None
    overview: str = ""
    genres: list[str] = field(default_factory=list)
    content_rating: Optional[str] = None
    popularity: float = 0.0
    vote_average: float = 0.0


@dataclass
class StreamingProvider:
    """A flat-rate streaming service carrying a movie."""
    provider_name: str
    logo_path: Optional[str] = None


# ── Abstract Interfaces ──────────────────────────────────────────

class ICatalogProvider(ABC):
    """Interface for movie catalog backends."""

    @abstractmethod
    async def discover_movies(self, query: DiscoverQuery) -> list[CatalogMovie]:
        """One page of discovery results matching the query."""
        ...

    @abstractmethod
    async def get_watch_providers(self, tmdb_id: int) -> list[StreamingProvider]:
        """Flat-rate streaming providers for a movie. Empty when unknown."""
        ...

    @abstractmethod
    async def get_content_rating(self, tmdb_id: int) -> Optional[str]:
        """Certification (e.g. "PG-13") for a movie, or None when unknown."""
        ...
