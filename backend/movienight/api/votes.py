"""Voting endpoints — cast votes and read ranked results."""

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from movienight.api.deps import ActorContext, get_actor, get_round_service
from movienight.api.serializers import pick_dict
from movienight.services.rounds import RoundService

router = APIRouter()


class VoteRequest(BaseModel):
    tmdb_movie_id: int
    vote: Literal["up", "down"]


@router.post("/rounds/{round_id}/votes")
async def submit_vote(
    round_id: str,
    body: VoteRequest,
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    """Cast or change a vote. The latest vote per member and movie wins."""
    vote = await service.submit_vote(round_id, actor.member_id, body.tmdb_movie_id, body.vote)
    return {
        "round_id": vote.round_id,
        "tmdb_movie_id": vote.tmdb_movie_id,
        "user_id": vote.user_id,
        "vote": vote.vote,
        "voted_at": vote.voted_at.isoformat(),
    }


@router.get("/rounds/{round_id}/results")
async def get_results(
    round_id: str,
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    """Ranked tally with ties flagged."""
    results = await service.get_results(round_id, actor.member_id)
    return {
        "round": results.round.to_dict(),
        "results": [r.to_dict() for r in results.ranking],
        "vote_progress": results.progress.to_dict(),
        "pick": pick_dict(results.pick),
    }
