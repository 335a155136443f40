"""TMDB client — discovery, streaming providers and certifications.

Responses are cached through a `CatalogCacheStore` handed in by the caller,
keyed by the request content. A cache miss always falls through to a live
fetch. Discovery failures surface as `CatalogUnavailableError` so callers can
retry; provider and certification lookups degrade to "unknown".
"""

import logging
from dataclasses import asdict
from typing import Optional

import httpx

from movienight.clients.base import CatalogMovie, DiscoverQuery, ICatalogProvider, StreamingProvider
from movienight.errors import CatalogUnavailableError
from movienight.services.catalog_cache import CatalogCacheStore, content_key

logger = logging.getLogger(__name__)


# ── TMDB genre id ↔ name ─────────────────────────────────────────

TMDB_GENRES: dict[int, str] = {
    28: "Action",
    12: "Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    14: "Fantasy",
    36: "History",
    27: "Horror",
    10402: "Music",
    9648: "Mystery",
    10749: "Romance",
    878: "Science Fiction",
    53: "Thriller",
    10752: "War",
    37: "Western",
}

GENRE_IDS: dict[str, int] = {name.lower(): gid for gid, name in TMDB_GENRES.items()}


def genre_ids(names) -> list[int]:
    """Map genre names (case-insensitive) or numeric strings to TMDB ids. Unknown names are dropped."""
    ids = []
    for name in names:
        key = str(name).strip()
        if key.isdigit():
            ids.append(int(key))
        elif key.lower() in GENRE_IDS:
            ids.append(GENRE_IDS[key.lower()])
    return sorted(set(ids))


class TmdbClient(ICatalogProvider):
    """The Movie Database API v3 client."""

    BASE_URL = "https://api.themoviedb.org/3"
    IMAGE_BASE = "https://image.tmdb.org/t/p"

    def __init__(
        self,
        api_key: str,
        cache: Optional[CatalogCacheStore] = None,
        language: str = "en-US",
        region: str = "US",
        discover_ttl_hours: int = 24,
        provider_ttl_hours: int = 12,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.cache = cache
        self.language = language
        self.region = region
        self.discover_ttl_hours = discover_ttl_hours
        self.provider_ttl_hours = provider_ttl_hours
        self.transport = transport
        # Detect auth mode: JWT (v4 bearer) vs plain key (v3 query param)
        self._is_bearer = api_key.startswith("eyJ")

    async def _get(self, path: str, params: dict | None = None) -> dict:
        """Make authenticated GET request to TMDB.

        Supports both v3 (api_key query param) and v4 (Bearer token header).
        """
        all_params = {"language": self.language, **(params or {})}
        headers = {}

        if self._is_bearer:
            headers["Authorization"] = f"Bearer {self.api_key}"
        else:
            all_params["api_key"] = self.api_key

        async with httpx.AsyncClient(timeout=15.0, transport=self.transport) as client:
            resp = await client.get(f"{self.BASE_URL}{path}", params=all_params, headers=headers)
            resp.raise_for_status()
            return resp.json()

    # ── Cache helpers ────────────────────────────────────────────

    async def _cached(self, key: str):
        if self.cache is None:
            return CatalogCacheStore.MISS
        return await self.cache.get(key)

    async def _store(self, key: str, data, ttl_hours: int) -> None:
        if self.cache is not None:
            await self.cache.set(key, data, ttl_hours)

    # ── Discovery ────────────────────────────────────────────────

    async def discover_movies(self, query: DiscoverQuery) -> list[CatalogMovie]:
        """One discovery page, most popular first."""
        key = content_key("discover", query.cache_params())
        cached = await self._cached(key)
        if cached is not CatalogCacheStore.MISS:
            return [CatalogMovie(**m) for m in cached]

        params = {
            "sort_by": "popularity.desc",
            "include_adult": "false",
            "vote_count.gte": query.vote_count_gte,
            "primary_release_date.gte": query.release_date_gte,
            "page": query.page,
        }
        liked = genre_ids(query.with_genres)
        if liked:
            params["with_genres"] = "|".join(str(g) for g in liked)
        disliked = genre_ids(query.without_genres)
        if disliked:
            params["without_genres"] = ",".join(str(g) for g in disliked)
        if query.certification_lte:
            params["certification_country"] = self.region
            params["certification.lte"] = query.certification_lte

        try:
            data = await self._get("/discover/movie", params)
        except httpx.HTTPError as e:
            logger.warning(f"TMDB discover failed: {e}")
            raise CatalogUnavailableError() from e

        movies = [self._normalize_movie(m) for m in data.get("results", [])]
        await self._store(key, [asdict(m) for m in movies], self.discover_ttl_hours)
        return movies

    # ── Per-movie lookups ────────────────────────────────────────

    async def get_watch_providers(self, tmdb_id: int) -> list[StreamingProvider]:
        """Flat-rate providers in the configured region."""
        key = f"providers:{tmdb_id}"
        cached = await self._cached(key)
        if cached is not CatalogCacheStore.MISS:
            return [StreamingProvider(**p) for p in cached]

        try:
            data = await self._get(f"/movie/{tmdb_id}/watch/providers")
        except httpx.HTTPError as e:
            logger.warning(f"TMDB providers lookup failed for tmdb_id={tmdb_id}: {e}")
            return []

        flatrate = data.get("results", {}).get(self.region, {}).get("flatrate", [])
        providers = [
            StreamingProvider(provider_name=p["provider_name"], logo_path=p.get("logo_path"))
            for p in flatrate
        ]
        await self._store(key, [asdict(p) for p in providers], self.provider_ttl_hours)
        return providers

    async def get_content_rating(self, tmdb_id: int) -> Optional[str]:
        """First non-empty certification among the region's release dates."""
        key = f"rating:{tmdb_id}"
        cached = await self._cached(key)
        if cached is not CatalogCacheStore.MISS:
            return cached

        try:
            data = await self._get(f"/movie/{tmdb_id}/release_dates")
        except httpx.HTTPError as e:
            logger.warning(f"TMDB certification lookup failed for tmdb_id={tmdb_id}: {e}")
            return None

        cert = None
        for country in data.get("results", []):
            if country.get("iso_3166_1") != self.region:
                continue
            for release in country.get("release_dates", []):
                if release.get("certification"):
                    cert = release["certification"]
                    break

        await self._store(key, cert, self.discover_ttl_hours)
        return cert

    # ── Test connection ──────────────────────────────────────────

    async def test_connection(self) -> bool:
        """Test TMDB API key validity."""
        try:
            await self._get("/configuration")
            return True
        except httpx.HTTPError:
            return False

    # ── Normalization helpers ────────────────────────────────────

    @staticmethod
    def _normalize_movie(data: dict) -> CatalogMovie:
        """Normalize a TMDB discover result into a CatalogMovie."""
        release = data.get("release_date") or ""
        return CatalogMovie(
            tmdb_id=data["id"],
            title=data.get("title", ""),
            year=int(release[:4]) if release[:4].isdigit() else None,
            poster_path=data.get("poster_path"),
            overview=data.get("overview", ""),
            genres=[TMDB_GENRES[g] for g in data.get("genre_ids", []) if g in TMDB_GENRES],
            popularity=float(data.get("popularity") or 0.0),
            vote_average=float(data.get("vote_average") or 0.0),
        )

    @classmethod
    def poster_url(cls, path: Optional[str], size: str = "w500") -> Optional[str]:
        """Build full poster URL from TMDB path."""
        if not path:
            return None
        return f"{cls.IMAGE_BASE}/{size}{path}"
