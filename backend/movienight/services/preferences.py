"""Preference aggregation — one constraint set for everyone in the room.

A family round is exactly as permissive as its most restrictive member: the
content-rating ceiling is the lowest among attendees, likes and dislikes are
unions. Attendees without a stored profile add no constraint.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.models.tables import Preference

logger = logging.getLogger(__name__)


# MPAA scale, least to most permissive
RATING_ORDER = ["G", "PG", "PG-13", "R", "NC-17"]


def rating_rank(rating: Optional[str]) -> Optional[int]:
    """Position on the rating scale, or None for unknown/unrated certifications."""
    if rating is None:
        return None
    try:
        return RATING_ORDER.index(rating.strip().upper())
    except ValueError:
        return None


@dataclass
class PreferenceProfile:
    """One member's taste in one group."""
    user_id: str
    liked_genres: set[str] = field(default_factory=set)
    disliked_genres: set[str] = field(default_factory=set)
    max_content_rating: Optional[str] = None


@dataclass
class GroupConstraints:
    """Aggregated taste constraints for a round's attendees."""
    liked_genres: set[str] = field(default_factory=set)
    disliked_genres: set[str] = field(default_factory=set)
    max_content_rating: Optional[str] = None
    member_count: int = 0          # Attendees that have a profile


def aggregate(profiles: Iterable[PreferenceProfile]) -> GroupConstraints:
    """Merge member profiles into one group constraint set."""
    constraints = GroupConstraints()
    ceiling_rank = None

    for profile in profiles:
        constraints.member_count += 1
        constraints.liked_genres |= profile.liked_genres
        constraints.disliked_genres |= profile.disliked_genres

        rank = rating_rank(profile.max_content_rating)
        if rank is not None and (ceiling_rank is None or rank < ceiling_rank):
            ceiling_rank = rank

    if ceiling_rank is not None:
        constraints.max_content_rating = RATING_ORDER[ceiling_rank]
    return constraints


class PreferenceAggregator:
    """Loads attendee profiles from the preference store and aggregates them."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_profiles(self, group_id: str, member_ids: list[str]) -> list[PreferenceProfile]:
        if not member_ids:
            return []
        result = await self.db.execute(
            select(Preference).where(
                and_(Preference.group_id == group_id, Preference.user_id.in_(member_ids))
            )
        )
        return [
            PreferenceProfile(
                user_id=p.user_id,
                liked_genres=set(p.genre_likes or []),
                disliked_genres=set(p.genre_dislikes or []),
                max_content_rating=p.max_content_rating,
            )
            for p in result.scalars()
        ]

    async def for_attendees(self, group_id: str, member_ids: list[str]) -> GroupConstraints:
        profiles = await self.load_profiles(group_id, member_ids)
        constraints = aggregate(profiles)
        logger.info(
            f"Group {group_id}: {constraints.member_count}/{len(member_ids)} attendees have preferences, "
            f"ceiling={constraints.max_content_rating}"
        )
        return constraints
