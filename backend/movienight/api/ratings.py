"""Post-viewing rating endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from movienight.api.deps import ActorContext, get_actor, get_round_service
from movienight.services.rounds import RoundService

router = APIRouter()


class RatingRequest(BaseModel):
    rating: Literal["loved", "liked", "did_not_like"]


@router.post("/rounds/{round_id}/ratings")
async def submit_rating(
    round_id: str,
    body: RatingRequest,
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    view, rating = await service.submit_rating(round_id, actor.member_id, body.rating)
    return {
        "round": view.to_dict(),
        "rating": {
            "member_id": rating.member_id,
            "rating": rating.rating,
            "rated_at": rating.rated_at.isoformat(),
        },
    }


@router.get("/rounds/{round_id}/ratings")
async def list_ratings(
    round_id: str,
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    ratings = await service.list_ratings(round_id, actor.member_id)
    return {
        "ratings": [
            {
                "member_id": r.member_id,
                "display_name": name,
                "rating": r.rating,
                "rated_at": r.rated_at.isoformat(),
            }
            for r, name in ratings
        ],
        "count": len(ratings),
    }
