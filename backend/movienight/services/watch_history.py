"""Group watch history and watchlist reads used for candidate dedupe."""

from datetime import datetime, timezone, timedelta

from sqlalchemy import select, and_, delete
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.models.tables import Pick, Round, RoundSuggestion, WatchedMovie, WatchlistItem
from movienight.services.round_state import RoundStatus


class WatchHistory:
    """What a group has already seen, saved, or passed over."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def watched_movie_ids(self, group_id: str) -> set[int]:
        """Directly marked movies plus picks flagged as watched."""
        direct = await self.db.execute(
            select(WatchedMovie.tmdb_movie_id).where(WatchedMovie.group_id == group_id)
        )
        picked = await self.db.execute(
            select(Pick.tmdb_movie_id).where(
                and_(Pick.group_id == group_id, Pick.watched.is_(True))
            )
        )
        return {row[0] for row in direct.all()} | {row[0] for row in picked.all()}

    async def watchlist(self, group_id: str) -> list[WatchlistItem]:
        """Saved watchlist, oldest first."""
        result = await self.db.execute(
            select(WatchlistItem)
            .where(WatchlistItem.group_id == group_id)
            .order_by(WatchlistItem.added_at, WatchlistItem.tmdb_movie_id)
        )
        return list(result.scalars())

    async def remove_from_watchlist(self, group_id: str, tmdb_movie_id: int) -> None:
        await self.db.execute(
            delete(WatchlistItem).where(
                and_(WatchlistItem.group_id == group_id, WatchlistItem.tmdb_movie_id == tmdb_movie_id)
            )
        )

    async def ignored_counts(self, group_id: str, lookback_days: int) -> dict[int, int]:
        """How often each movie sat on a recent finished slate without being picked.

        Only rounds that are no longer voting count; the currently open round
        has not had its chance yet.
        """
        since = datetime.now(timezone.utc) - timedelta(days=lookback_days)
        result = await self.db.execute(
            select(RoundSuggestion.tmdb_movie_id, Pick.tmdb_movie_id)
            .join(Round, Round.round_id == RoundSuggestion.round_id)
            .outerjoin(Pick, Pick.round_id == Round.round_id)
            .where(
                and_(
                    Round.group_id == group_id,
                    Round.status != RoundStatus.VOTING.value,
                    Round.created_at >= since,
                )
            )
        )
        counts: dict[int, int] = {}
        for movie_id, picked_id in result.all():
            if movie_id == picked_id:
                continue
            counts[movie_id] = counts.get(movie_id, 0) + 1
        return counts
