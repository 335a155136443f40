"""Round service — every operation the round engine exposes.

Each call receives the effective actor id explicitly (the member acting, or
the managed member being acted for) and checks group membership before it
reads or writes anything. Round rows leave this module as `RoundView`s with
normalized status.

Slate generation:
1. Aggregate attendee preferences into one constraint set
2. Gather candidates (catalog + optional watchlist), relaxing when too few remain
3. Score everything once; take the top algorithm and watchlist entries
4. Enrich the slate with certifications and drop anything over the ceiling
5. Freeze the slate into round_suggestions
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.clients.base import ICatalogProvider, StreamingProvider
from movienight.database import dialect_insert
from movienight.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from movienight.models.tables import Pick, Rating, Round, RoundSuggestion, Vote
from movienight.services.candidate_pool import CandidatePool, Provenance
from movienight.services.groups import GroupDirectory
from movienight.services.pick_selector import PickSelector
from movienight.services.preferences import PreferenceAggregator
from movienight.services.relaxation import ConstraintRelaxationEngine, ConstraintSet
from movienight.services.round_state import RoundStatus, RoundView, require_transition
from movienight.services.scoring import ScoredCandidate, SuggestionScorer
from movienight.services.tally import (
    MovieTally, RankedResult, VoteProgress, rank_results, tally, vote_progress,
)
from movienight.services.watch_history import WatchHistory

logger = logging.getLogger(__name__)


VOTE_DIRECTIONS = ("up", "down")
RATING_VALUES = ("loved", "liked", "did_not_like")


@dataclass
class RoundDetail:
    """A round with its frozen slate and live tallies."""
    round: RoundView
    suggestions: list[RoundSuggestion]
    tallies: list[MovieTally]
    progress: VoteProgress
    pick: Optional[Pick] = None
    relaxed_constraints: list[str] = field(default_factory=list)
    watchlist_eligible_count: Optional[int] = None


@dataclass
class RoundResults:
    round: RoundView
    ranking: list[RankedResult]
    progress: VoteProgress
    pick: Optional[Pick] = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RoundService:
    """Orchestrates slate generation, voting, picks and post-viewing ratings."""

    def __init__(
        self,
        db: AsyncSession,
        catalog: ICatalogProvider,
        slate_size: int = 5,
        max_watchlist_in_round: int = 4,
        ignored_lookback_days: int = 30,
    ):
        self.db = db
        self.catalog = catalog
        self.slate_size = slate_size
        self.max_watchlist_in_round = max_watchlist_in_round
        self.ignored_lookback_days = ignored_lookback_days
        self.groups = GroupDirectory(db)
        self.history = WatchHistory(db)
        self.preferences = PreferenceAggregator(db)
        self.picks = PickSelector(db)

    # ── Loading helpers ──────────────────────────────────────────

    async def _load_round(self, round_id: str, actor_id: str) -> Round:
        row = await self.db.get(Round, round_id)
        if row is None:
            raise NotFoundError("Round not found")
        await self.groups.require_member(row.group_id, actor_id)
        return row

    async def _attendees(self, row: Round) -> list[str]:
        if row.attendees is not None:
            return list(row.attendees)
        return [m.user_id for m in await self.groups.get_members(row.group_id)]

    async def _require_attendee(self, row: Round, actor_id: str) -> None:
        if actor_id not in await self._attendees(row):
            raise ForbiddenError("Not an attendee of this round")

    async def _suggestions(self, round_id: str) -> list[RoundSuggestion]:
        result = await self.db.execute(
            select(RoundSuggestion)
            .where(RoundSuggestion.round_id == round_id)
            .order_by(RoundSuggestion.position)
        )
        return list(result.scalars())

    async def _votes(self, round_id: str) -> list[Vote]:
        result = await self.db.execute(select(Vote).where(Vote.round_id == round_id))
        return list(result.scalars())

    async def _pick(self, row: Round) -> Optional[Pick]:
        if row.pick_id is None:
            return None
        return await self.db.get(Pick, row.pick_id)

    async def _active_row(self, group_id: str) -> Optional[Round]:
        result = await self.db.execute(
            select(Round).where(
                and_(Round.group_id == group_id, Round.status == RoundStatus.VOTING.value)
            )
        )
        return result.scalars().first()

    async def _detail(self, row: Round, **extra) -> RoundDetail:
        suggestions = await self._suggestions(row.round_id)
        votes = await self._votes(row.round_id)
        names = await self.groups.display_names(row.group_id)
        return RoundDetail(
            round=RoundView.from_row(row),
            suggestions=suggestions,
            tallies=tally(suggestions, votes, names),
            progress=vote_progress(votes, await self._attendees(row)),
            pick=await self._pick(row),
            **extra,
        )

    async def _refresh(self, round_id: str) -> Round:
        return await self.db.get(Round, round_id, populate_existing=True)

    # ── Create ───────────────────────────────────────────────────

    def _resolve_attendees(self, member_ids: list[str], attendees: Optional[Iterable[str]]) -> Optional[list[str]]:
        if attendees is None:
            return None
        chosen = list(dict.fromkeys(attendees))
        if not chosen:
            raise ValidationError("A round needs at least one attendee")
        unknown = [a for a in chosen if a not in member_ids]
        if unknown:
            raise ValidationError("Attendees must be members of the group", unknown_attendees=unknown)
        return chosen

    async def _build_slate(
        self,
        group_id: str,
        attendee_ids: list[str],
        streaming_services: list[str],
        exclude_movie_ids: Iterable[int],
        include_watchlist: bool,
    ) -> tuple[list[ScoredCandidate], list[str], int]:
        constraints = await self.preferences.for_attendees(group_id, attendee_ids)

        pool = CandidatePool(
            self.catalog, self.history, group_id,
            exclude_movie_ids=exclude_movie_ids,
            include_watchlist=include_watchlist,
        )
        relaxation = await ConstraintRelaxationEngine(pool, self.slate_size).run(
            ConstraintSet.from_group(constraints)
        )
        candidates = relaxation.candidates
        watchlist_eligible = sum(1 for c in candidates if c.source == Provenance.WATCHLIST)

        provider_lists = await asyncio.gather(
            *(self.catalog.get_watch_providers(c.tmdb_id) for c in candidates)
        )
        providers: dict[int, list[StreamingProvider]] = {
            c.tmdb_id: p for c, p in zip(candidates, provider_lists)
        }
        ignored = await self.history.ignored_counts(group_id, self.ignored_lookback_days)

        scorer = SuggestionScorer(
            liked_genres=constraints.liked_genres,
            disliked_genres=constraints.disliked_genres,
            streaming_services=streaming_services,
            ignored_counts=ignored,
        )
        ranked = scorer.rank(candidates, providers)
        slate = (
            [s for s in ranked if s.candidate.source == Provenance.ALGORITHM][:self.slate_size]
            + [s for s in ranked if s.candidate.source == Provenance.WATCHLIST][:self.max_watchlist_in_round]
        )

        # Discovery results carry no certification; look them up for the slate only
        unrated = [s for s in slate if s.candidate.movie.content_rating is None]
        ratings = await asyncio.gather(
            *(self.catalog.get_content_rating(s.tmdb_id) for s in unrated)
        )
        for s, rating in zip(unrated, ratings):
            s.candidate.movie.content_rating = rating

        ceiling = relaxation.constraints or ConstraintSet()
        kept = [s for s in slate if ceiling.passes_rating(s.candidate, strict=True)]
        if len(kept) < len(slate):
            logger.info(f"Group {group_id}: dropped {len(slate) - len(kept)} slate entries over the rating ceiling")

        kept.sort(key=lambda s: (-s.score, s.tmdb_id))
        return kept, relaxation.relaxed_constraints, watchlist_eligible

    async def create_round(
        self,
        group_id: str,
        actor_id: str,
        attendees: Optional[Iterable[str]] = None,
        exclude_movie_ids: Iterable[int] = (),
        include_watchlist: bool = False,
    ) -> RoundDetail:
        """Open a voting round and freeze its slate."""
        group = await self.groups.get_group(group_id)
        await self.groups.require_member(group_id, actor_id)
        member_ids = [m.user_id for m in await self.groups.get_members(group_id)]
        explicit = self._resolve_attendees(member_ids, attendees)

        active = await self._active_row(group_id)
        if active is not None:
            logger.info(f"Group {group_id} already has open round {active.round_id}")
            raise ConflictError("An active round already exists for this group", active_round_id=active.round_id)

        slate, relaxed, watchlist_eligible = await self._build_slate(
            group_id,
            explicit if explicit is not None else member_ids,
            list(group.streaming_services or []),
            exclude_movie_ids,
            include_watchlist,
        )

        row = Round(
            round_id=str(uuid.uuid4()),
            group_id=group_id,
            status=RoundStatus.VOTING.value,
            started_by=actor_id,
            attendees=explicit,
            created_at=_now(),
        )
        self.db.add(row)
        try:
            await self.db.flush()
        except IntegrityError:
            # Another round opened between the check and the insert
            await self.db.rollback()
            active = await self._active_row(group_id)
            raise ConflictError(
                "An active round already exists for this group",
                active_round_id=active.round_id if active else None,
            )

        for position, s in enumerate(slate):
            movie = s.candidate.movie
            self.db.add(RoundSuggestion(
                round_id=row.round_id,
                tmdb_movie_id=movie.tmdb_id,
                title=movie.title,
                year=movie.year,
                poster_path=movie.poster_path,
                overview=movie.overview,
                genres=list(movie.genres),
                content_rating=movie.content_rating,
                popularity=movie.popularity,
                vote_average=movie.vote_average,
                streaming=[p.provider_name for p in s.streaming],
                score=s.score,
                reason=s.reason,
                source=s.candidate.source.value,
                position=position,
            ))
        await self.db.flush()

        logger.info(
            f"Round {row.round_id} opened for group {group_id} by {actor_id}: "
            f"{len(slate)} suggestions, relaxed={relaxed}"
        )
        return await self._detail(row, relaxed_constraints=relaxed, watchlist_eligible_count=watchlist_eligible)

    # ── Read ─────────────────────────────────────────────────────

    async def get_round(self, round_id: str, actor_id: str) -> RoundDetail:
        row = await self._load_round(round_id, actor_id)
        return await self._detail(row)

    async def get_active_round(self, group_id: str, actor_id: str) -> Optional[RoundDetail]:
        await self.groups.get_group(group_id)
        await self.groups.require_member(group_id, actor_id)
        row = await self._active_row(group_id)
        return await self._detail(row) if row else None

    async def list_rounds(self, group_id: str, actor_id: str, limit: int = 20) -> list[tuple[RoundView, Optional[Pick]]]:
        """Session history, newest first."""
        await self.groups.get_group(group_id)
        await self.groups.require_member(group_id, actor_id)
        result = await self.db.execute(
            select(Round, Pick)
            .outerjoin(Pick, Pick.round_id == Round.round_id)
            .where(Round.group_id == group_id)
            .order_by(Round.created_at.desc())
            .limit(limit)
        )
        return [(RoundView.from_row(r), p) for r, p in result.all()]

    async def get_results(self, round_id: str, actor_id: str) -> RoundResults:
        row = await self._load_round(round_id, actor_id)
        detail = await self._detail(row)
        return RoundResults(
            round=detail.round,
            ranking=rank_results(detail.tallies),
            progress=detail.progress,
            pick=detail.pick,
        )

    # ── Voting ───────────────────────────────────────────────────

    async def submit_vote(self, round_id: str, actor_id: str, tmdb_movie_id: int, vote: str) -> Vote:
        """Record or overwrite the actor's vote on one slate movie."""
        if vote not in VOTE_DIRECTIONS:
            raise ValidationError("Vote must be 'up' or 'down'")
        row = await self._load_round(round_id, actor_id)
        await self._require_attendee(row, actor_id)

        view = RoundView.from_row(row)
        if view.status != RoundStatus.VOTING.value:
            raise ValidationError(
                f"Round is in '{view.status}' status; votes require 'voting'",
                status=view.status,
                required_status=[RoundStatus.VOTING.value],
            )

        on_slate = await self.db.execute(
            select(RoundSuggestion.id).where(
                and_(RoundSuggestion.round_id == round_id, RoundSuggestion.tmdb_movie_id == tmdb_movie_id)
            )
        )
        if on_slate.first() is None:
            raise NotFoundError("Movie is not on this round's slate")

        voted_at = _now()
        stmt = dialect_insert(self.db, Vote).values(
            round_id=round_id, tmdb_movie_id=tmdb_movie_id, user_id=actor_id,
            vote=vote, voted_at=voted_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["round_id", "tmdb_movie_id", "user_id"],
            set_={"vote": vote, "voted_at": voted_at},
        )
        await self.db.execute(stmt)

        result = await self.db.execute(
            select(Vote)
            .where(and_(Vote.round_id == round_id, Vote.tmdb_movie_id == tmdb_movie_id, Vote.user_id == actor_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    # ── Lifecycle ────────────────────────────────────────────────

    async def close_round(self, round_id: str, actor_id: str) -> RoundView:
        """Stop voting. Closing a closed round returns it unchanged."""
        row = await self._load_round(round_id, actor_id)
        view = RoundView.from_row(row)
        if view.status == RoundStatus.CLOSED.value:
            return view
        require_transition(row.status, RoundStatus.CLOSED)
        row.status = RoundStatus.CLOSED.value
        row.closed_at = _now()
        await self.db.flush()
        logger.info(f"Round {round_id} closed by {actor_id}")
        return RoundView.from_row(row)

    async def discard_round(self, round_id: str, actor_id: str) -> RoundView:
        row = await self._load_round(round_id, actor_id)
        require_transition(row.status, RoundStatus.DISCARDED)
        row.status = RoundStatus.DISCARDED.value
        row.closed_at = row.closed_at or _now()
        await self.db.flush()
        logger.info(f"Round {round_id} discarded by {actor_id}")
        return RoundView.from_row(row)

    async def pick_movie(
        self,
        round_id: str,
        actor_id: str,
        tmdb_movie_id: int,
        allow_off_slate: bool = False,
        title: str = "",
        poster_path: Optional[str] = None,
    ) -> tuple[RoundView, Pick]:
        """Commit the round's winner. Off-slate movies need `allow_off_slate`."""
        row = await self._load_round(round_id, actor_id)
        if row.pick_id is not None:
            raise ConflictError("A pick already exists for this round", pick_id=row.pick_id)

        result = await self.db.execute(
            select(RoundSuggestion).where(
                and_(RoundSuggestion.round_id == round_id, RoundSuggestion.tmdb_movie_id == tmdb_movie_id)
            )
        )
        suggestion = result.scalar_one_or_none()
        if suggestion is not None:
            title, poster_path = suggestion.title, suggestion.poster_path
        elif not allow_off_slate:
            raise NotFoundError("Movie is not on this round's slate")

        pick = await self.picks.commit(
            RoundView.from_row(row), tmdb_movie_id, actor_id, title=title, poster_path=poster_path,
        )
        row = await self._refresh(round_id)
        return RoundView.from_row(row), pick

    async def mark_watched(self, round_id: str, actor_id: str) -> tuple[RoundView, Optional[Pick]]:
        row = await self._load_round(round_id, actor_id)
        require_transition(row.status, RoundStatus.WATCHED)

        now = _now()
        row.status = RoundStatus.WATCHED.value
        row.watched_at = now
        pick = await self._pick(row)
        if pick is not None:
            pick.watched = True
            pick.watched_at = now
            await self.history.remove_from_watchlist(row.group_id, pick.tmdb_movie_id)
        await self.db.flush()
        logger.info(f"Round {round_id} marked watched by {actor_id}")
        return RoundView.from_row(row), pick

    async def undo_watched(self, round_id: str, actor_id: str) -> tuple[RoundView, Optional[Pick]]:
        """Revert a mistaken "watched" mark. Rated rounds stay rated."""
        row = await self._load_round(round_id, actor_id)
        view = RoundView.from_row(row)
        if view.status != RoundStatus.WATCHED.value:
            raise ValidationError(
                f"Round is in '{view.status}' status; undoing watched requires 'watched'",
                status=view.status,
                required_status=[RoundStatus.WATCHED.value],
            )
        require_transition(row.status, RoundStatus.SELECTED)

        row.status = RoundStatus.SELECTED.value
        row.watched_at = None
        pick = await self._pick(row)
        if pick is not None:
            pick.watched = False
            pick.watched_at = None
        await self.db.flush()
        logger.info(f"Round {round_id} un-watched by {actor_id}")
        return RoundView.from_row(row), pick

    # ── Ratings ──────────────────────────────────────────────────

    async def submit_rating(self, round_id: str, actor_id: str, rating: str) -> tuple[RoundView, Rating]:
        """Store the actor's rating; the first rating moves a watched round to rated."""
        if rating not in RATING_VALUES:
            raise ValidationError("Rating must be one of: " + ", ".join(RATING_VALUES))
        row = await self._load_round(round_id, actor_id)
        await self._require_attendee(row, actor_id)

        view = RoundView.from_row(row)
        if view.status not in (RoundStatus.WATCHED.value, RoundStatus.RATED.value):
            raise ValidationError(
                f"Round is in '{view.status}' status; ratings require 'watched'",
                status=view.status,
                required_status=[RoundStatus.WATCHED.value],
            )

        now = _now()
        stmt = dialect_insert(self.db, Rating).values(
            round_id=round_id, member_id=actor_id, rating=rating, rated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["round_id", "member_id"],
            set_={"rating": rating, "rated_at": now},
        )
        await self.db.execute(stmt)

        await self.db.execute(
            update(Round)
            .where(and_(Round.round_id == round_id, Round.status == RoundStatus.WATCHED.value))
            .values(status=RoundStatus.RATED.value, rated_at=now)
            .execution_options(synchronize_session=False)
        )

        row = await self._refresh(round_id)
        result = await self.db.execute(
            select(Rating)
            .where(and_(Rating.round_id == round_id, Rating.member_id == actor_id))
            .execution_options(populate_existing=True)
        )
        return RoundView.from_row(row), result.scalar_one()

    async def list_ratings(self, round_id: str, actor_id: str) -> list[tuple[Rating, str]]:
        """Ratings with the rater's display name, oldest first."""
        row = await self._load_round(round_id, actor_id)
        names = await self.groups.display_names(row.group_id)
        result = await self.db.execute(
            select(Rating).where(Rating.round_id == round_id).order_by(Rating.rated_at, Rating.member_id)
        )
        return [(r, names.get(r.member_id, r.member_id)) for r in result.scalars()]
