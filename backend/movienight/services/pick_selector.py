"""Pick commitment — the single point where a round's result becomes history.

First committer wins. The round row is claimed with a conditional update that
only matches while no pick exists and the round is still open; whoever loses
that race gets a conflict carrying the winning pick id.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.errors import ConflictError, NotFoundError
from movienight.models.tables import Pick, Round
from movienight.services.round_state import RoundStatus, RoundView, require_transition

logger = logging.getLogger(__name__)


PICKABLE = [RoundStatus.VOTING.value, RoundStatus.CLOSED.value]


class PickSelector:
    """Commits a round's winning movie exactly once."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _conflict_or_invalid(self, round_id: str, target_status: str) -> None:
        current = await self.db.get(Round, round_id, populate_existing=True)
        if current is None:
            raise NotFoundError("Round not found")
        if current.pick_id is not None:
            logger.info(f"Pick conflict on round {round_id}: already picked ({current.pick_id})")
            raise ConflictError("A pick already exists for this round", pick_id=current.pick_id)
        require_transition(current.status, RoundStatus(target_status))
        raise ConflictError("Round changed while picking, try again")

    async def commit(
        self,
        round_: RoundView,
        tmdb_movie_id: int,
        picked_by: str,
        title: str = "",
        poster_path: Optional[str] = None,
    ) -> Pick:
        """Claim the round for `tmdb_movie_id` and record the pick.

        `round_` may be stale; the conditional update decides, not the snapshot.
        """
        if round_.pick_id is not None:
            raise ConflictError("A pick already exists for this round", pick_id=round_.pick_id)
        require_transition(round_.status, RoundStatus.SELECTED)

        pick_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)

        result = await self.db.execute(
            update(Round)
            .where(
                and_(
                    Round.round_id == round_.round_id,
                    Round.pick_id.is_(None),
                    Round.status.in_(PICKABLE),
                )
            )
            .values(status=RoundStatus.SELECTED.value, pick_id=pick_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self._conflict_or_invalid(round_.round_id, RoundStatus.SELECTED.value)

        pick = Pick(
            pick_id=pick_id,
            round_id=round_.round_id,
            group_id=round_.group_id,
            tmdb_movie_id=tmdb_movie_id,
            title=title,
            poster_path=poster_path,
            picked_by=picked_by,
            picked_at=now,
            watched=False,
        )
        self.db.add(pick)
        await self.db.flush()

        logger.info(f"Round {round_.round_id}: picked tmdb_id={tmdb_movie_id} by {picked_by}")
        return pick
