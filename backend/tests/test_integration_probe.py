"""Startup probes for the store and the catalog."""

import unittest

import httpx

from movienight.config import Settings
from movienight.services.integration_probe import probe_all
from helpers import make_engine


class ProbeAllTest(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.engine = await make_engine(create_tables=False)

    async def asyncTearDown(self):
        await self.engine.dispose()

    async def test_catalog_not_configured(self):
        results = await probe_all(Settings(tmdb_api_key=None), self.engine)
        self.assertEqual(results["database"], {"status": "ok"})
        self.assertEqual(results["tmdb"], {"status": "not_configured"})

    async def test_catalog_reachable(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        results = await probe_all(Settings(tmdb_api_key="key"), self.engine, transport=transport)
        self.assertEqual(results["tmdb"], {"status": "ok"})

    async def test_catalog_rejects_key(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={}))
        results = await probe_all(Settings(tmdb_api_key="bad"), self.engine, transport=transport)
        self.assertEqual(results["tmdb"], {"status": "error"})


if __name__ == "__main__":
    unittest.main()
