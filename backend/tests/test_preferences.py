"""Preference aggregation across round attendees."""

import unittest

from movienight.services.preferences import PreferenceAggregator, PreferenceProfile, aggregate, rating_rank
from helpers import make_engine, make_sessionmaker, seed_group, seed_preference


class AggregateTest(unittest.TestCase):

    def test_lowest_ceiling_wins(self):
        constraints = aggregate([
            PreferenceProfile("alice", max_content_rating="PG-13"),
            PreferenceProfile("bob", max_content_rating="R"),
            PreferenceProfile("kid", max_content_rating="PG"),
        ])
        self.assertEqual(constraints.max_content_rating, "PG")
        self.assertEqual(constraints.member_count, 3)

    def test_genres_are_unioned(self):
        constraints = aggregate([
            PreferenceProfile("alice", liked_genres={"Comedy"}, disliked_genres={"Horror"}),
            PreferenceProfile("bob", liked_genres={"Animation", "Comedy"}, disliked_genres={"War"}),
        ])
        self.assertEqual(constraints.liked_genres, {"Comedy", "Animation"})
        self.assertEqual(constraints.disliked_genres, {"Horror", "War"})

    def test_genre_liked_and_disliked_by_different_members_stays_in_both(self):
        constraints = aggregate([
            PreferenceProfile("alice", liked_genres={"Horror"}),
            PreferenceProfile("bob", disliked_genres={"Horror"}),
        ])
        self.assertIn("Horror", constraints.liked_genres)
        self.assertIn("Horror", constraints.disliked_genres)

    def test_no_profiles_is_unconstrained(self):
        constraints = aggregate([])
        self.assertIsNone(constraints.max_content_rating)
        self.assertEqual(constraints.liked_genres, set())
        self.assertEqual(constraints.member_count, 0)

    def test_unknown_ceiling_is_ignored(self):
        constraints = aggregate([
            PreferenceProfile("alice", max_content_rating="NR"),
            PreferenceProfile("bob", max_content_rating="pg-13"),
        ])
        self.assertEqual(constraints.max_content_rating, "PG-13")

    def test_rating_rank(self):
        self.assertEqual(rating_rank("G"), 0)
        self.assertEqual(rating_rank(" pg-13 "), 2)
        self.assertIsNone(rating_rank("NR"))
        self.assertIsNone(rating_rank(None))


class PreferenceAggregatorTest(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.engine = await make_engine()
        self.db = make_sessionmaker(self.engine)()
        await seed_group(self.db)
        await seed_preference(self.db, "alice", likes=["Comedy"], max_rating="PG-13")
        await seed_preference(self.db, "carol", dislikes=["Horror"], max_rating="PG")

    async def asyncTearDown(self):
        await self.db.close()
        await self.engine.dispose()

    async def test_only_attendees_count(self):
        constraints = await PreferenceAggregator(self.db).for_attendees("g1", ["alice", "bob"])
        self.assertEqual(constraints.max_content_rating, "PG-13")
        self.assertEqual(constraints.disliked_genres, set())
        self.assertEqual(constraints.member_count, 1)

    async def test_all_attendees(self):
        constraints = await PreferenceAggregator(self.db).for_attendees("g1", ["alice", "bob", "carol"])
        self.assertEqual(constraints.max_content_rating, "PG")
        self.assertEqual(constraints.liked_genres, {"Comedy"})
        self.assertEqual(constraints.disliked_genres, {"Horror"})

    async def test_empty_attendee_list(self):
        profiles = await PreferenceAggregator(self.db).load_profiles("g1", [])
        self.assertEqual(profiles, [])


if __name__ == "__main__":
    unittest.main()
