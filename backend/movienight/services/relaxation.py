"""Constraint relaxation — filter the pool, loosen taste filters when it runs dry.

Filters apply in a fixed order: (1) content-rating ceiling, (2) disliked-genre
exclusion, (3) liked-genre requirement. When fewer candidates than the target
remain, constraints are loosened one at a time: liked genres first, then
disliked genres, then the catalog breadth floors. The rating ceiling is a
safety constraint and is never loosened.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from movienight.clients.base import DiscoverQuery
from movienight.services.candidate_pool import Candidate, CandidatePool
from movienight.services.preferences import GroupConstraints, rating_rank

logger = logging.getLogger(__name__)


DEFAULT_VOTE_COUNT_FLOOR = 50
RELAXED_VOTE_COUNT_FLOOR = 10
DEFAULT_RELEASE_FLOOR = "1980-01-01"
RELAXED_RELEASE_FLOOR = "1960-01-01"


def _folded(genres) -> frozenset[str]:
    return frozenset(str(g).casefold() for g in genres)


@dataclass(frozen=True)
class ConstraintSet:
    """Active filters. Each taste filter can be switched off independently."""
    max_content_rating: Optional[str] = None
    liked_genres: frozenset[str] = frozenset()
    disliked_genres: frozenset[str] = frozenset()
    apply_liked: bool = True
    apply_disliked: bool = True
    vote_count_gte: int = DEFAULT_VOTE_COUNT_FLOOR
    release_date_gte: str = DEFAULT_RELEASE_FLOOR

    @classmethod
    def from_group(cls, constraints: GroupConstraints) -> "ConstraintSet":
        return cls(
            max_content_rating=constraints.max_content_rating,
            liked_genres=frozenset(constraints.liked_genres),
            disliked_genres=frozenset(constraints.disliked_genres),
        )

    def to_query(self) -> DiscoverQuery:
        return DiscoverQuery(
            with_genres=tuple(sorted(self.liked_genres)) if self.apply_liked else (),
            without_genres=tuple(sorted(self.disliked_genres)) if self.apply_disliked else (),
            certification_lte=self.max_content_rating,
            vote_count_gte=self.vote_count_gte,
            release_date_gte=self.release_date_gte,
        )

    def passes_rating(self, candidate: Candidate, strict: bool = False) -> bool:
        """`strict` rejects unknown certifications once lookups are done."""
        if self.max_content_rating is None:
            return True
        if candidate.movie.content_rating is None:
            # Catalog discovery already filtered by certification
            return not strict
        rank = rating_rank(candidate.movie.content_rating)
        return rank is not None and rank <= rating_rank(self.max_content_rating)

    def admits(self, candidate: Candidate) -> bool:
        if not self.passes_rating(candidate):
            return False

        genres = _folded(candidate.movie.genres)
        if self.apply_disliked and genres & _folded(self.disliked_genres):
            return False
        if self.apply_liked and self.liked_genres and not genres & _folded(self.liked_genres):
            return False
        return True


# Loosening steps, in the order they are tried
RELAXATIONS: list[tuple[str, Callable[[ConstraintSet], ConstraintSet]]] = [
    ("liked_genre_requirement", lambda c: replace(c, apply_liked=False)),
    ("disliked_genre_exclusion", lambda c: replace(c, apply_disliked=False)),
    ("lowered_popularity_floor", lambda c: replace(c, vote_count_gte=RELAXED_VOTE_COUNT_FLOOR)),
    ("included_older_movies", lambda c: replace(c, release_date_gte=RELAXED_RELEASE_FLOOR)),
]


@dataclass
class RelaxationResult:
    candidates: list[Candidate]
    relaxed_constraints: list[str] = field(default_factory=list)
    constraints: Optional[ConstraintSet] = None


class ConstraintRelaxationEngine:
    """Runs the pool through the filters, loosening until `target` candidates remain."""

    def __init__(self, pool: CandidatePool, target: int):
        self.pool = pool
        self.target = target

    async def _filtered(self, constraints: ConstraintSet) -> list[Candidate]:
        candidates = await self.pool.gather(constraints.to_query())
        return [c for c in candidates if constraints.admits(c)]

    async def run(self, constraints: ConstraintSet) -> RelaxationResult:
        active = constraints
        candidates = await self._filtered(active)
        relaxed: list[str] = []

        for name, loosen in RELAXATIONS:
            if len(candidates) >= self.target:
                break
            loosened = loosen(active)
            if loosened == active:
                continue
            active = loosened

            # Earlier survivors still satisfy the looser filters
            seen = {c.tmdb_id for c in candidates}
            merged = candidates + [c for c in await self._filtered(active) if c.tmdb_id not in seen]
            if len(merged) != len(candidates):
                relaxed.append(name)
                logger.info(f"Relaxed {name}: {len(candidates)} → {len(merged)} candidates")
            candidates = merged

        if not candidates:
            logger.info(f"No candidates after relaxation (relaxed={relaxed})")
        return RelaxationResult(candidates=candidates, relaxed_constraints=relaxed, constraints=active)
