"""Suggestion scoring — transparent heuristic ranking for the slate.

    score = 0.45 · popularity + 0.25 · taste + 0.20 · streaming − 0.25 · ignored

All factors are in [0, 1]. Popularity is normalized against the most popular
candidate in the same batch. Scoring is pure: it never looks at where a
candidate came from, so watchlist and catalog entries compete on equal terms.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from movienight.clients.base import StreamingProvider
from movienight.services.candidate_pool import Candidate


# ── Weights ──────────────────────────────────────────────────────

WEIGHTS = {
    "popularity": 0.45,
    "taste": 0.25,
    "streaming": 0.20,
    "ignored": 0.25,
}

IGNORED_STEP = 0.5          # Penalty per earlier slate the movie sat on unpicked

# ── Reason templates ─────────────────────────────────────────────

REASONS = {
    "taste": "Matches your top genres: {genres}",
    "streaming": "Available on your streaming services",
    "popularity": "Popular with families",
    "fallback": "Fits your group's preferences",
}

# Tie-break order when two factors contribute equally
REASON_PRIORITY = ["taste", "streaming", "popularity"]


@dataclass
class ScoredCandidate:
    candidate: Candidate
    score: float
    reason: str
    streaming: list[StreamingProvider] = field(default_factory=list)

    @property
    def tmdb_id(self) -> int:
        return self.candidate.tmdb_id


class SuggestionScorer:
    """Scores candidates against the group's original (unrelaxed) taste."""

    def __init__(
        self,
        liked_genres: Iterable[str] = (),
        disliked_genres: Iterable[str] = (),
        streaming_services: Iterable[str] = (),
        ignored_counts: Optional[dict[int, int]] = None,
    ):
        self.liked = {g.casefold() for g in liked_genres}
        self.disliked = {g.casefold() for g in disliked_genres}
        self.services = {s.casefold() for s in streaming_services}
        self.ignored_counts = ignored_counts or {}

    def _taste(self, genres: list[str]) -> tuple[float, list[str]]:
        if not genres:
            return 0.0, []
        matched = [g for g in genres if g.casefold() in self.liked]
        disliked = sum(1 for g in genres if g.casefold() in self.disliked)
        return max(0, len(matched) - disliked) / len(genres), matched

    def _streams(self, providers: list[StreamingProvider]) -> list[StreamingProvider]:
        return [p for p in providers if p.provider_name.casefold() in self.services]

    def _reason(self, contributions: dict[str, float], matched_genres: list[str]) -> str:
        best = max(REASON_PRIORITY, key=lambda k: (contributions[k], -REASON_PRIORITY.index(k)))
        if contributions[best] <= 0:
            return REASONS["fallback"]
        if best == "taste":
            return REASONS["taste"].format(genres=", ".join(matched_genres[:3]))
        return REASONS[best]

    def score(
        self,
        candidates: list[Candidate],
        providers: Optional[dict[int, list[StreamingProvider]]] = None,
    ) -> list[ScoredCandidate]:
        """Score every candidate, in input order."""
        providers = providers or {}
        top_popularity = max((c.movie.popularity for c in candidates), default=0.0)

        scored = []
        for c in candidates:
            popularity = c.movie.popularity / top_popularity if top_popularity > 0 else 0.0
            taste, matched = self._taste(c.movie.genres)
            on_services = self._streams(providers.get(c.tmdb_id, []))
            streaming = 1.0 if on_services else 0.0
            ignored = min(1.0, IGNORED_STEP * self.ignored_counts.get(c.tmdb_id, 0))

            contributions = {
                "popularity": WEIGHTS["popularity"] * popularity,
                "taste": WEIGHTS["taste"] * taste,
                "streaming": WEIGHTS["streaming"] * streaming,
            }
            total = sum(contributions.values()) - WEIGHTS["ignored"] * ignored

            scored.append(ScoredCandidate(
                candidate=c,
                score=round(total, 4),
                reason=self._reason(contributions, matched),
                streaming=providers.get(c.tmdb_id, []),
            ))
        return scored

    def rank(
        self,
        candidates: list[Candidate],
        providers: Optional[dict[int, list[StreamingProvider]]] = None,
        limit: Optional[int] = None,
    ) -> list[ScoredCandidate]:
        """Highest score first, lower movie id on ties, cut to `limit`."""
        ranked = sorted(self.score(candidates, providers), key=lambda s: (-s.score, s.tmdb_id))
        return ranked if limit is None else ranked[:limit]
