"""TMDB client: request shaping, response caching and failure handling."""

import unittest

import httpx

from movienight.clients.base import DiscoverQuery
from movienight.clients.tmdb import TmdbClient, genre_ids
from movienight.errors import CatalogUnavailableError
from movienight.services.catalog_cache import CatalogCacheStore, content_key
from helpers import make_engine, make_sessionmaker

DISCOVER_PAGE = {
    "page": 1,
    "results": [
        {
            "id": 862,
            "title": "Toy Story",
            "release_date": "1995-10-30",
            "poster_path": "/toy.jpg",
            "overview": "Toys come alive.",
            "genre_ids": [16, 35, 10751],
            "popularity": 88.5,
            "vote_average": 8.0,
        },
        {"id": 1, "title": "Undated", "release_date": "", "genre_ids": [99999]},
    ],
}

RELEASE_DATES = {
    "results": [
        {"iso_3166_1": "GB", "release_dates": [{"certification": "U"}]},
        {"iso_3166_1": "US", "release_dates": [{"certification": ""}, {"certification": "G"}]},
    ]
}

PROVIDERS = {
    "results": {
        "US": {"flatrate": [{"provider_name": "Disney Plus", "logo_path": "/d.png"}]},
        "DE": {"flatrate": [{"provider_name": "Netflix"}]},
    }
}


class Recorder:
    """httpx MockTransport handler that records requests and serves canned JSON."""

    def __init__(self, routes: dict, status_code: int = 200):
        self.routes = routes
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/3")
        return httpx.Response(self.status_code, json=self.routes.get(path, {}))


class GenreIdsTest(unittest.TestCase):

    def test_names_and_numeric_strings(self):
        self.assertEqual(genre_ids(["comedy", "Family", "16", "Nonsense"]), [16, 35, 10751])


class TmdbClientTest(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.engine = await make_engine()
        self.cache = CatalogCacheStore(make_sessionmaker(self.engine))

    async def asyncTearDown(self):
        await self.engine.dispose()

    def client(self, recorder: Recorder, api_key: str = "plainkey", cache=True) -> TmdbClient:
        return TmdbClient(
            api_key=api_key,
            cache=self.cache if cache else None,
            transport=httpx.MockTransport(recorder),
        )

    async def test_discover_params_and_normalization(self):
        recorder = Recorder({"/discover/movie": DISCOVER_PAGE})
        query = DiscoverQuery(
            with_genres=("Comedy", "Family"), without_genres=("Horror",), certification_lte="PG",
        )
        movies = await self.client(recorder, cache=False).discover_movies(query)

        params = recorder.requests[0].url.params
        self.assertEqual(params["with_genres"], "35|10751")
        self.assertEqual(params["without_genres"], "27")
        self.assertEqual(params["certification.lte"], "PG")
        self.assertEqual(params["certification_country"], "US")
        self.assertEqual(params["vote_count.gte"], "50")
        self.assertEqual(params["api_key"], "plainkey")

        self.assertEqual(movies[0].tmdb_id, 862)
        self.assertEqual(movies[0].year, 1995)
        self.assertEqual(movies[0].genres, ["Animation", "Comedy", "Family"])
        self.assertIsNone(movies[1].year)
        self.assertEqual(movies[1].genres, [])

    async def test_no_certification_params_without_ceiling(self):
        recorder = Recorder({"/discover/movie": DISCOVER_PAGE})
        await self.client(recorder, cache=False).discover_movies(DiscoverQuery())
        params = recorder.requests[0].url.params
        self.assertNotIn("certification.lte", params)
        self.assertNotIn("with_genres", params)

    async def test_bearer_token_goes_in_header(self):
        recorder = Recorder({"/discover/movie": DISCOVER_PAGE})
        await self.client(recorder, api_key="eyJtoken", cache=False).discover_movies(DiscoverQuery())
        request = recorder.requests[0]
        self.assertEqual(request.headers["Authorization"], "Bearer eyJtoken")
        self.assertNotIn("api_key", request.url.params)

    async def test_discover_is_cached_by_query_content(self):
        recorder = Recorder({"/discover/movie": DISCOVER_PAGE})
        client = self.client(recorder)
        query = DiscoverQuery(with_genres=("Comedy",))

        first = await client.discover_movies(query)
        second = await client.discover_movies(DiscoverQuery(with_genres=("Comedy",)))
        self.assertEqual(len(recorder.requests), 1)
        self.assertEqual(first, second)

        await client.discover_movies(DiscoverQuery(with_genres=("Drama",)))
        self.assertEqual(len(recorder.requests), 2)

    async def test_discover_failure_is_retryable(self):
        recorder = Recorder({}, status_code=503)
        with self.assertRaises(CatalogUnavailableError) as ctx:
            await self.client(recorder).discover_movies(DiscoverQuery())
        self.assertTrue(ctx.exception.to_dict()["retryable"])
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_failed_discover_is_not_cached(self):
        failing = Recorder({}, status_code=500)
        with self.assertRaises(CatalogUnavailableError):
            await self.client(failing).discover_movies(DiscoverQuery())

        ok = Recorder({"/discover/movie": DISCOVER_PAGE})
        movies = await self.client(ok).discover_movies(DiscoverQuery())
        self.assertEqual(len(movies), 2)
        self.assertEqual(len(ok.requests), 1)

    async def test_content_rating_from_region(self):
        recorder = Recorder({"/movie/862/release_dates": RELEASE_DATES})
        client = self.client(recorder)
        self.assertEqual(await client.get_content_rating(862), "G")
        self.assertEqual(await client.get_content_rating(862), "G")
        self.assertEqual(len(recorder.requests), 1)

    async def test_missing_certification_is_cached(self):
        recorder = Recorder({"/movie/901/release_dates": {"results": [
            {"iso_3166_1": "GB", "release_dates": [{"certification": "18"}]},
        ]}})
        client = self.client(recorder)
        self.assertIsNone(await client.get_content_rating(901))
        self.assertIsNone(await client.get_content_rating(901))
        self.assertEqual(len(recorder.requests), 1)

    async def test_watch_providers_for_region(self):
        recorder = Recorder({"/movie/862/watch/providers": PROVIDERS})
        providers = await self.client(recorder).get_watch_providers(862)
        self.assertEqual([p.provider_name for p in providers], ["Disney Plus"])

    async def test_lookup_failures_degrade_to_unknown(self):
        recorder = Recorder({}, status_code=500)
        client = self.client(recorder)
        self.assertEqual(await client.get_watch_providers(862), [])
        self.assertIsNone(await client.get_content_rating(862))

    async def test_broken_cache_falls_through_to_live_fetch(self):
        bare = await make_engine(create_tables=False)
        try:
            recorder = Recorder({"/discover/movie": DISCOVER_PAGE})
            client = TmdbClient(
                api_key="plainkey",
                cache=CatalogCacheStore(make_sessionmaker(bare)),
                transport=httpx.MockTransport(recorder),
            )
            with self.assertLogs("movienight.services.catalog_cache", level="WARNING"):
                movies = await client.discover_movies(DiscoverQuery())
            self.assertEqual(len(movies), 2)
        finally:
            await bare.dispose()

    async def test_test_connection(self):
        self.assertTrue(await self.client(Recorder({"/configuration": {}})).test_connection())
        self.assertFalse(await self.client(Recorder({}, status_code=401)).test_connection())


class CatalogCacheStoreTest(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.engine = await make_engine()
        self.cache = CatalogCacheStore(make_sessionmaker(self.engine))

    async def asyncTearDown(self):
        await self.engine.dispose()

    async def test_miss_then_hit_then_overwrite(self):
        self.assertIs(await self.cache.get("k"), CatalogCacheStore.MISS)
        await self.cache.set("k", {"a": 1}, ttl_hours=1)
        self.assertEqual(await self.cache.get("k"), {"a": 1})
        await self.cache.set("k", {"a": 2}, ttl_hours=1)
        self.assertEqual(await self.cache.get("k"), {"a": 2})

    async def test_expired_entries_miss(self):
        await self.cache.set("k", [1, 2], ttl_hours=-1)
        self.assertIs(await self.cache.get("k"), CatalogCacheStore.MISS)

    def test_content_key_ignores_param_order(self):
        self.assertEqual(content_key("discover", {"a": 1, "b": 2}), content_key("discover", {"b": 2, "a": 1}))
        self.assertTrue(content_key("discover", {}).startswith("discover:"))


if __name__ == "__main__":
    unittest.main()
