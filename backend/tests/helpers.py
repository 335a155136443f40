"""Shared fixtures: in-memory database, seeded groups and an in-memory catalog."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import movienight.models  # noqa: F401  (registers tables)
from movienight.clients.base import CatalogMovie, DiscoverQuery, ICatalogProvider, StreamingProvider
from movienight.database import init_db
from movienight.errors import CatalogUnavailableError
from movienight.models.tables import Group, GroupMember, Preference, WatchlistItem
from movienight.services.preferences import rating_rank


async def make_engine(create_tables: bool = True) -> AsyncEngine:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    if create_tables:
        await init_db(engine)
    return engine


async def make_file_engine(path: str) -> AsyncEngine:
    """File-backed database where each session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", connect_args={"timeout": 30})
    await init_db(engine)
    return engine


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def seed_group(
    db: AsyncSession,
    group_id: str = "g1",
    members: tuple = (("alice", "Alice"), ("bob", "Bob"), ("carol", "Carol")),
    streaming_services: tuple = ("Netflix",),
) -> Group:
    group = Group(
        group_id=group_id,
        name="The Family",
        created_by=members[0][0],
        streaming_services=list(streaming_services),
    )
    db.add(group)
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for i, (user_id, name) in enumerate(members):
        db.add(GroupMember(
            group_id=group_id,
            user_id=user_id,
            display_name=name,
            role="creator" if i == 0 else "member",
            joined_at=start + timedelta(minutes=i),
        ))
    await db.commit()
    return group


async def seed_preference(
    db: AsyncSession,
    user_id: str,
    likes=(),
    dislikes=(),
    max_rating: Optional[str] = None,
    group_id: str = "g1",
) -> None:
    db.add(Preference(
        group_id=group_id,
        user_id=user_id,
        genre_likes=list(likes),
        genre_dislikes=list(dislikes),
        max_content_rating=max_rating,
    ))
    await db.commit()


async def seed_watchlist(db: AsyncSession, movie: CatalogMovie, group_id: str = "g1") -> None:
    db.add(WatchlistItem(
        group_id=group_id,
        tmdb_movie_id=movie.tmdb_id,
        title=movie.title,
        year=movie.year,
        genres=list(movie.genres),
        content_rating=movie.content_rating,
        added_by="alice",
    ))
    await db.commit()


def movie(tmdb_id: int, title: str, genres=("Drama",), popularity: float = 10.0, year: int = 2010) -> CatalogMovie:
    return CatalogMovie(
        tmdb_id=tmdb_id,
        title=title,
        year=year,
        poster_path=f"/{tmdb_id}.jpg",
        genres=list(genres),
        popularity=popularity,
        vote_average=7.0,
    )


class FakeCatalog(ICatalogProvider):
    """In-memory catalog that honours the discovery filters the way TMDB does.

    Discovery results carry no certification; ratings come from
    `get_content_rating`, and a certification ceiling drops uncertified movies.
    """

    def __init__(
        self,
        movies: list[CatalogMovie],
        certifications: Optional[dict[int, str]] = None,
        providers: Optional[dict[int, list[str]]] = None,
        vote_counts: Optional[dict[int, int]] = None,
    ):
        self.movies = movies
        self.certifications = certifications or {}
        self.providers = providers or {}
        self.vote_counts = vote_counts or {}
        self.queries: list[DiscoverQuery] = []
        self.fail = False

    async def discover_movies(self, query: DiscoverQuery) -> list[CatalogMovie]:
        self.queries.append(query)
        if self.fail:
            raise CatalogUnavailableError()

        liked = {g.lower() for g in query.with_genres}
        disliked = {g.lower() for g in query.without_genres}
        min_year = int(query.release_date_gte[:4])
        results = []
        for m in self.movies:
            genres = {g.lower() for g in m.genres}
            if liked and not genres & liked:
                continue
            if genres & disliked:
                continue
            if self.vote_counts.get(m.tmdb_id, 1000) < query.vote_count_gte:
                continue
            if m.year is not None and m.year < min_year:
                continue
            if query.certification_lte:
                rank = rating_rank(self.certifications.get(m.tmdb_id))
                if rank is None or rank > rating_rank(query.certification_lte):
                    continue
            results.append(replace(m, genres=list(m.genres), content_rating=None))
        return sorted(results, key=lambda m: -m.popularity)

    async def get_watch_providers(self, tmdb_id: int) -> list[StreamingProvider]:
        return [StreamingProvider(provider_name=name) for name in self.providers.get(tmdb_id, [])]

    async def get_content_rating(self, tmdb_id: int) -> Optional[str]:
        return self.certifications.get(tmdb_id)
