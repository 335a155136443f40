"""Response shapes shared by the round, vote and rating endpoints."""

from typing import Optional

from movienight.clients.tmdb import TmdbClient
from movienight.models.tables import Pick, RoundSuggestion
from movienight.services.rounds import RoundDetail
from movienight.services.tally import MovieTally


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def pick_dict(pick: Optional[Pick]) -> Optional[dict]:
    if pick is None:
        return None
    return {
        "pick_id": pick.pick_id,
        "round_id": pick.round_id,
        "tmdb_movie_id": pick.tmdb_movie_id,
        "title": pick.title,
        "poster_url": TmdbClient.poster_url(pick.poster_path),
        "picked_by": pick.picked_by,
        "picked_at": _iso(pick.picked_at),
        "watched": pick.watched,
        "watched_at": _iso(pick.watched_at),
    }


def suggestion_dict(s: RoundSuggestion, t: Optional[MovieTally] = None) -> dict:
    data = {
        "tmdb_movie_id": s.tmdb_movie_id,
        "title": s.title,
        "year": s.year,
        "poster_url": TmdbClient.poster_url(s.poster_path),
        "overview": s.overview,
        "genres": s.genres,
        "content_rating": s.content_rating,
        "popularity": s.popularity,
        "vote_average": s.vote_average,
        "streaming": s.streaming,
        "score": s.score,
        "reason": s.reason,
        "source": s.source,
    }
    if t is not None:
        data["votes"] = {"up": t.up, "down": t.down, "net": t.net}
        data["voters"] = [
            {"user_id": v.user_id, "display_name": v.display_name, "vote": v.vote}
            for v in t.voters
        ]
    return data


def detail_dict(detail: RoundDetail) -> dict:
    tallies = {t.tmdb_movie_id: t for t in detail.tallies}
    data = {
        "round": detail.round.to_dict(),
        "suggestions": [suggestion_dict(s, tallies.get(s.tmdb_movie_id)) for s in detail.suggestions],
        "vote_progress": detail.progress.to_dict(),
        "pick": pick_dict(detail.pick),
    }
    if detail.watchlist_eligible_count is not None:
        data["relaxed_constraints"] = detail.relaxed_constraints
        data["watchlist_eligible_count"] = detail.watchlist_eligible_count
    return data
