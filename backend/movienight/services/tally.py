"""Vote tally and ranking.

Pure functions over a round's suggestion rows and live vote rows. The vote
table already holds at most one vote per (round, movie, member), so counting
rows is counting members.

Ranking is a total order: net score descending, then popularity descending,
then movie id ascending. Entries that share a net score are flagged `tied`
even though the display order separates them.
"""

from collections import Counter
from dataclasses import dataclass, field, asdict
from typing import Iterable, Optional

from movienight.models.tables import RoundSuggestion, Vote


@dataclass
class VoterEntry:
    user_id: str
    display_name: str
    vote: str                       # up | down


@dataclass
class MovieTally:
    tmdb_movie_id: int
    title: str
    popularity: float
    up: int = 0
    down: int = 0
    voters: list[VoterEntry] = field(default_factory=list)

    @property
    def net(self) -> int:
        return self.up - self.down


@dataclass
class VoteProgress:
    voted: int
    total: int

    @property
    def fraction(self) -> float:
        return self.voted / self.total if self.total else 0.0

    def to_dict(self) -> dict:
        return {"voted": self.voted, "total": self.total, "fraction": round(self.fraction, 4)}


@dataclass
class RankedResult:
    rank: int                       # 1-based display position
    tied: bool
    tally: MovieTally

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "tied": self.tied,
            "tmdb_movie_id": self.tally.tmdb_movie_id,
            "title": self.tally.title,
            "popularity": self.tally.popularity,
            "up": self.tally.up,
            "down": self.tally.down,
            "net": self.tally.net,
            "voters": [asdict(v) for v in self.tally.voters],
        }


def tally(
    suggestions: Iterable[RoundSuggestion],
    votes: Iterable[Vote],
    display_names: Optional[dict[str, str]] = None,
) -> list[MovieTally]:
    """Per-movie counts and voter roster, in slate order.

    Votes for movies that are not on the slate are ignored.
    """
    names = display_names or {}
    by_movie = {
        s.tmdb_movie_id: MovieTally(
            tmdb_movie_id=s.tmdb_movie_id,
            title=s.title,
            popularity=s.popularity or 0.0,
        )
        for s in sorted(suggestions, key=lambda s: s.position)
    }

    for v in sorted(votes, key=lambda v: (v.voted_at, v.user_id)):
        entry = by_movie.get(v.tmdb_movie_id)
        if entry is None:
            continue
        if v.vote == "up":
            entry.up += 1
        else:
            entry.down += 1
        entry.voters.append(VoterEntry(
            user_id=v.user_id,
            display_name=names.get(v.user_id, v.user_id),
            vote=v.vote,
        ))

    return list(by_movie.values())


def vote_progress(votes: Iterable[Vote], attendees: Iterable[str]) -> VoteProgress:
    """Distinct attendees who voted on anything, over all attendees."""
    attendee_ids = set(attendees)
    voters = {v.user_id for v in votes if v.user_id in attendee_ids}
    return VoteProgress(voted=len(voters), total=len(attendee_ids))


def rank_results(tallies: Iterable[MovieTally]) -> list[RankedResult]:
    """Order tallies for display and flag every entry whose net score is shared."""
    tallies = list(tallies)
    net_counts = Counter(t.net for t in tallies)
    ordered = sorted(tallies, key=lambda t: (-t.net, -t.popularity, t.tmdb_movie_id))
    return [
        RankedResult(rank=i, tied=net_counts[t.net] > 1, tally=t)
        for i, t in enumerate(ordered, start=1)
    ]
