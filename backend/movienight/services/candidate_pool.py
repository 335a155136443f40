"""Candidate pool — catalog discovery plus the group's saved watchlist.

Everything the group has already watched, and anything the caller asked to
exclude, is dropped. A movie never appears twice: catalog results win over
watchlist entries for the same movie.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from movienight.clients.base import CatalogMovie, DiscoverQuery, ICatalogProvider
from movienight.models.tables import WatchlistItem
from movienight.services.watch_history import WatchHistory

logger = logging.getLogger(__name__)


class Provenance(str, Enum):
    ALGORITHM = "algorithm"
    WATCHLIST = "watchlist"


@dataclass
class Candidate:
    """A movie eligible for the slate, tagged with where it came from."""
    movie: CatalogMovie
    source: Provenance

    @property
    def tmdb_id(self) -> int:
        return self.movie.tmdb_id


def _watchlist_movie(item: WatchlistItem) -> CatalogMovie:
    return CatalogMovie(
        tmdb_id=item.tmdb_movie_id,
        title=item.title or "",
        year=item.year,
        poster_path=item.poster_path,
        genres=list(item.genres or []),
        content_rating=item.content_rating,
    )


class CandidatePool:
    """Builds deduplicated candidate lists for one round's slate generation.

    Watch history and the watchlist are read once; every `gather()` call then
    issues one catalog discovery query with the given filters.
    """

    def __init__(
        self,
        catalog: ICatalogProvider,
        history: WatchHistory,
        group_id: str,
        exclude_movie_ids: Iterable[int] = (),
        include_watchlist: bool = False,
    ):
        self.catalog = catalog
        self.history = history
        self.group_id = group_id
        self.exclude_movie_ids = set(exclude_movie_ids)
        self.include_watchlist = include_watchlist
        self._excluded: Optional[set[int]] = None
        self._watchlist: list[WatchlistItem] = []

    async def _load(self) -> set[int]:
        if self._excluded is None:
            watched = await self.history.watched_movie_ids(self.group_id)
            self._excluded = watched | self.exclude_movie_ids
            if self.include_watchlist:
                self._watchlist = await self.history.watchlist(self.group_id)
        return self._excluded

    async def gather(self, query: DiscoverQuery) -> list[Candidate]:
        """Catalog page for `query`, then unwatched watchlist entries."""
        excluded = await self._load()
        movies = await self.catalog.discover_movies(query)

        seen: set[int] = set()
        candidates: list[Candidate] = []
        for movie in movies:
            if movie.tmdb_id in excluded or movie.tmdb_id in seen:
                continue
            seen.add(movie.tmdb_id)
            candidates.append(Candidate(movie=movie, source=Provenance.ALGORITHM))

        for item in self._watchlist:
            if item.tmdb_movie_id in excluded or item.tmdb_movie_id in seen:
                continue
            seen.add(item.tmdb_movie_id)
            candidates.append(Candidate(movie=_watchlist_movie(item), source=Provenance.WATCHLIST))

        logger.debug(
            f"Group {self.group_id}: {len(movies)} catalog results, "
            f"{len(candidates)} candidates after dedupe"
        )
        return candidates
