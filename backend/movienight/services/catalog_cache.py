"""TTL cache for catalog responses, stored in the shared database.

Keys are derived from request content so identical queries from different
rounds share an entry. The cache runs in its own short sessions: a cache that
cannot be read or written never blocks a live catalog call and never poisons
the caller's transaction.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone, timedelta
from typing import Any

from sqlalchemy import select, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from movienight.database import dialect_insert
from movienight.models.tables import CatalogCache

logger = logging.getLogger(__name__)


def content_key(prefix: str, params: dict) -> str:
    """`prefix:<first 16 hex chars of sha256(params as canonical JSON)>`."""
    digest = hashlib.sha256(json.dumps(params, sort_keys=True).encode()).hexdigest()
    return f"{prefix}:{digest[:16]}"


class CatalogCacheStore:
    """Read-through cache for catalog pages and per-movie lookups."""

    MISS = object()

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, key: str) -> Any:
        """Cached value, or `CatalogCacheStore.MISS` when absent or expired."""
        now = datetime.now(timezone.utc)
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(CatalogCache.data).where(
                        and_(CatalogCache.cache_key == key, CatalogCache.expires_at > now)
                    )
                )
                row = result.first()
        except SQLAlchemyError as e:
            logger.warning(f"Catalog cache read failed for {key}, fetching live: {e}")
            return self.MISS

        if row is None:
            return self.MISS
        return row[0]

    async def set(self, key: str, data: Any, ttl_hours: int) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(hours=ttl_hours)
        try:
            async with self.session_factory() as db:
                stmt = dialect_insert(db, CatalogCache).values(
                    cache_key=key, data=data, expires_at=expires_at,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["cache_key"],
                    set_={"data": data, "expires_at": expires_at},
                )
                await db.execute(stmt)
                await db.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Catalog cache write failed for {key}: {e}")
