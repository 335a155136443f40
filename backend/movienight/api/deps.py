"""Shared FastAPI dependencies: actor identity, catalog client, round service."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.clients.base import ICatalogProvider
from movienight.clients.tmdb import TmdbClient
from movienight.config import settings
from movienight.database import async_session, get_db
from movienight.services.catalog_cache import CatalogCacheStore
from movienight.services.rounds import RoundService


@dataclass(frozen=True)
class ActorContext:
    """Who is acting. `acting_as` is set when a parent acts for a managed member."""
    user_id: str
    acting_as: Optional[str] = None

    @property
    def member_id(self) -> str:
        """The effective actor every engine check applies to."""
        return self.acting_as or self.user_id


async def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_acting_as_member: Optional[str] = Header(None),
) -> ActorContext:
    """Identity resolved by the upstream gateway; the engine trusts it."""
    if not x_user_id:
        raise HTTPException(401, "Missing X-User-Id header")
    return ActorContext(user_id=x_user_id, acting_as=x_acting_as_member or None)


def get_catalog() -> ICatalogProvider:
    """Per-request TMDB client with the shared database cache."""
    return TmdbClient(
        api_key=settings.tmdb_api_key or "",
        cache=CatalogCacheStore(async_session),
        language=settings.tmdb_language,
        region=settings.tmdb_region,
        discover_ttl_hours=settings.catalog_cache_ttl_hours,
        provider_ttl_hours=settings.provider_cache_ttl_hours,
    )


def get_round_service(
    db: AsyncSession = Depends(get_db),
    catalog: ICatalogProvider = Depends(get_catalog),
) -> RoundService:
    return RoundService(
        db=db,
        catalog=catalog,
        slate_size=settings.slate_size,
        max_watchlist_in_round=settings.max_watchlist_in_round,
        ignored_lookback_days=settings.ignored_lookback_days,
    )
