"""Round endpoints — create, read, lifecycle transitions and picks."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from movienight.api.deps import ActorContext, get_actor, get_round_service
from movienight.api.serializers import detail_dict, pick_dict
from movienight.services.rounds import RoundService

router = APIRouter()


class CreateRoundRequest(BaseModel):
    attendees: Optional[list[str]] = None
    exclude_movie_ids: list[int] = Field(default_factory=list)
    include_watchlist: bool = False


class UpdateRoundRequest(BaseModel):
    status: Literal["closed", "discarded"]


class PickRequest(BaseModel):
    tmdb_movie_id: int
    allow_off_slate: bool = False
    title: str = ""                         # Only used for off-slate picks
    poster_path: Optional[str] = None


@router.post("/groups/{group_id}/rounds", status_code=201)
async def create_round(
    group_id: str,
    body: CreateRoundRequest,
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    """Open a voting round and generate its slate."""
    detail = await service.create_round(
        group_id,
        actor.member_id,
        attendees=body.attendees,
        exclude_movie_ids=body.exclude_movie_ids,
        include_watchlist=body.include_watchlist,
    )
    return detail_dict(detail)


@router.get("/groups/{group_id}/rounds")
async def list_rounds(
    group_id: str,
    limit: int = Query(20, ge=1, le=100),
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    """Session history, newest first."""
    rounds = await service.list_rounds(group_id, actor.member_id, limit=limit)
    return {
        "rounds": [{**view.to_dict(), "pick": pick_dict(pick)} for view, pick in rounds],
        "count": len(rounds),
    }


@router.get("/groups/{group_id}/rounds/active")
async def get_active_round(
    group_id: str,
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    detail = await service.get_active_round(group_id, actor.member_id)
    return detail_dict(detail) if detail else {"round": None}


@router.get("/rounds/{round_id}")
async def get_round(
    round_id: str,
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    """Round with its slate, live tallies and voter rosters."""
    return detail_dict(await service.get_round(round_id, actor.member_id))


@router.patch("/rounds/{round_id}")
async def update_round(
    round_id: str,
    body: UpdateRoundRequest,
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    """Close voting or discard the round."""
    if body.status == "closed":
        view = await service.close_round(round_id, actor.member_id)
    else:
        view = await service.discard_round(round_id, actor.member_id)
    return {"round": view.to_dict()}


@router.post("/rounds/{round_id}/pick", status_code=201)
async def pick_movie(
    round_id: str,
    body: PickRequest,
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    view, pick = await service.pick_movie(
        round_id,
        actor.member_id,
        body.tmdb_movie_id,
        allow_off_slate=body.allow_off_slate,
        title=body.title,
        poster_path=body.poster_path,
    )
    return {"round": view.to_dict(), "pick": pick_dict(pick)}


@router.post("/rounds/{round_id}/watched")
async def mark_watched(
    round_id: str,
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    view, pick = await service.mark_watched(round_id, actor.member_id)
    return {"round": view.to_dict(), "pick": pick_dict(pick)}


@router.delete("/rounds/{round_id}/watched")
async def undo_watched(
    round_id: str,
    actor: ActorContext = Depends(get_actor),
    service: RoundService = Depends(get_round_service),
):
    view, pick = await service.undo_watched(round_id, actor.member_id)
    return {"round": view.to_dict(), "pick": pick_dict(pick)}
