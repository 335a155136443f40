"""Probe the database and the movie catalog on startup and report status."""

from typing import Optional

import httpx
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from movienight.clients.tmdb import TmdbClient
from movienight.config import Settings


async def probe_all(
    settings: Settings,
    engine: AsyncEngine,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """Check reachability of the store and the catalog. Returns status dict."""
    results = {"database": await _probe_database(engine)}

    if settings.has_tmdb:
        results["tmdb"] = await _probe_tmdb(
            TmdbClient(api_key=settings.tmdb_api_key, transport=transport)
        )
    else:
        results["tmdb"] = {"status": "not_configured"}

    return results


async def _probe_database(engine: AsyncEngine) -> dict:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except (SQLAlchemyError, OSError) as e:
        return {"status": "error", "detail": str(e)[:200]}


async def _probe_tmdb(client: TmdbClient) -> dict:
    """Probe the catalog with the configured credentials."""
    ok = await client.test_connection()
    return {"status": "ok" if ok else "error"}
