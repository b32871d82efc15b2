"""Match lifecycle route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from padelhub.api.auth_dependencies import get_current_player, require_admin
from padelhub.api.routes import http_error, limiter
from padelhub.database.db import get_db_session
from padelhub.database.models import MatchStatus
from padelhub.models.schemas import (
    CreateMatchRequest,
    InvitePlayerRequest,
    MatchPlayerResponse,
    MatchResponse,
    MatchResultResponse,
    RecordPastMatchRequest,
    SubmitScoreRequest,
    SubmitScoreResponse,
    UpdateMatchRequest,
)
from padelhub.services import match_service
from padelhub.services.exceptions import PadelHubError

logger = logging.getLogger(__name__)
router = APIRouter()


def _server_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Error {action}: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Error {action}")


@router.post("/api/matches", response_model=MatchResponse, status_code=201)
@limiter.limit("30/minute")
async def create_match(
    request: Request,
    payload: CreateMatchRequest,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a match with the caller as creator.

    Request body:
        {
            "scheduled_at": "2026-05-01T18:00:00Z",  // must be in the future
            "duration_min": 90,
            "venue": "Club Norte",
            "notes": "Bring balls",
            "requires_approval": true  // false = joiners approved immediately
        }
    """
    try:
        match = await match_service.create_match(
            session,
            creator_id=player["id"],
            scheduled_at=payload.scheduled_at,
            duration_min=payload.duration_min,
            venue=payload.venue,
            notes=payload.notes,
            requires_approval=payload.requires_approval,
        )
        return MatchResponse.model_validate(match)
    except HTTPException:
        raise
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("creating match", e)


@router.post("/api/matches/past", response_model=MatchResponse, status_code=201)
@limiter.limit("30/minute")
async def record_past_match(
    request: Request,
    payload: RecordPastMatchRequest,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Record an already played match: created FULL with the caller plus three players."""
    try:
        match = await match_service.record_past_match(
            session,
            creator_id=player["id"],
            player_ids=payload.player_ids,
            scheduled_at=payload.scheduled_at,
            duration_min=payload.duration_min,
            venue=payload.venue,
            notes=payload.notes,
        )
        return MatchResponse.model_validate(match)
    except HTTPException:
        raise
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("recording past match", e)


@router.get("/api/matches", response_model=List[MatchResponse])
async def list_matches(
    status: Optional[MatchStatus] = Query(default=None),
    player_id: Optional[int] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_db_session),
):
    """List matches, optionally filtered by status and participant."""
    try:
        matches = await match_service.list_matches(
            session, status=status, player_id=player_id, limit=limit, offset=offset
        )
        return [MatchResponse.model_validate(m) for m in matches]
    except Exception as e:
        raise _server_error("listing matches", e)


@router.get("/api/matches/{match_id}", response_model=MatchResponse)
async def get_match(match_id: int, session: AsyncSession = Depends(get_db_session)):
    """Match detail, including any score awaiting confirmation and its deadline."""
    try:
        match = await match_service.get_match(session, match_id)
        return MatchResponse.model_validate(match)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("getting match", e)


@router.patch("/api/matches/{match_id}", response_model=MatchResponse)
async def update_match(
    match_id: int,
    payload: UpdateMatchRequest,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Edit match details (creator only, before scoring starts)."""
    try:
        match = await match_service.update_match(
            session, match_id, actor_id=player["id"], **payload.model_dump(exclude_unset=True)
        )
        return MatchResponse.model_validate(match)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("updating match", e)


@router.delete("/api/matches/{match_id}", response_model=MatchResponse)
async def delete_match(
    match_id: int,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a match (creator or admin)."""
    try:
        match = await match_service.delete_match(
            session, match_id, actor_id=player["id"], is_admin=player["is_admin"]
        )
        return MatchResponse.model_validate(match)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("deleting match", e)


# ---------------------------------------------------------------------------
# Roster
# ---------------------------------------------------------------------------

@router.post("/api/matches/{match_id}/join", response_model=MatchPlayerResponse)
@limiter.limit("30/minute")
async def join_match(
    request: Request,
    match_id: int,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        entry = await match_service.join_match(session, match_id, player["id"])
        return MatchPlayerResponse.model_validate(entry)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("joining match", e)


@router.post("/api/matches/{match_id}/leave", response_model=MatchResponse)
async def leave_match(
    match_id: int,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        match = await match_service.leave_match(session, match_id, player["id"])
        return MatchResponse.model_validate(match)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("leaving match", e)


@router.post("/api/matches/{match_id}/approve/{player_id}", response_model=MatchPlayerResponse)
async def approve_player(
    match_id: int,
    player_id: int,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        entry = await match_service.approve_player(session, match_id, player["id"], player_id)
        return MatchPlayerResponse.model_validate(entry)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("approving player", e)


@router.post("/api/matches/{match_id}/reject/{player_id}")
async def reject_player(
    match_id: int,
    player_id: int,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await match_service.reject_player(session, match_id, player["id"], player_id)
        return {"status": "success", "message": f"Player {player_id} rejected"}
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("rejecting player", e)


@router.post("/api/matches/{match_id}/invite", response_model=MatchPlayerResponse)
async def invite_player(
    match_id: int,
    payload: InvitePlayerRequest,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        entry = await match_service.invite_player(
            session, match_id, player["id"], payload.player_id
        )
        return MatchPlayerResponse.model_validate(entry)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("inviting player", e)


@router.post("/api/matches/{match_id}/accept-invite", response_model=MatchPlayerResponse)
async def accept_invite(
    match_id: int,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        entry = await match_service.accept_invite(session, match_id, player["id"])
        return MatchPlayerResponse.model_validate(entry)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("accepting invitation", e)


@router.post("/api/matches/{match_id}/decline-invite")
async def decline_invite(
    match_id: int,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await match_service.decline_invite(session, match_id, player["id"])
        return {"status": "success", "message": "Invitation declined"}
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("declining invitation", e)


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

@router.post("/api/matches/{match_id}/score", response_model=SubmitScoreResponse)
@limiter.limit("20/minute")
async def submit_score(
    request: Request,
    match_id: int,
    payload: SubmitScoreRequest,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Submit the score of a full match.

    Request body:
        {
            "team1": [1, 2],
            "team2": [3, 4],
            "sets": [{"team1_games": 6, "team2_games": 3}, {"team1_games": 7, "team2_games": 6,
                      "team1_tiebreak": 7, "team2_tiebreak": 4}]
        }

    Returns the confirmation deadline and the rating changes confirmation would apply.
    """
    try:
        result = await match_service.submit_score(
            session,
            match_id,
            submitter_id=player["id"],
            team1_ids=payload.team1,
            team2_ids=payload.team2,
            sets=[s.model_dump() for s in payload.sets],
        )
        return SubmitScoreResponse(
            match=MatchResponse.model_validate(result["match"]),
            confirm_deadline=result["confirm_deadline"],
            winning_team=result["winning_team"],
            rating_preview=result["rating_preview"],
        )
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("submitting score", e)


@router.post("/api/matches/{match_id}/confirm", response_model=MatchResultResponse)
@limiter.limit("20/minute")
async def confirm_score(
    request: Request,
    match_id: int,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Confirm the outstanding score as a player of the opposing team."""
    try:
        result = await match_service.confirm_score(session, match_id, player["id"])
        return MatchResultResponse(**result)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("confirming score", e)


@router.post("/api/admin/matches/{match_id}/force-confirm", response_model=MatchResultResponse)
async def force_confirm(
    match_id: int,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Confirm an outstanding score without the opposing team (admin only)."""
    try:
        result = await match_service.force_confirm(session, match_id)
        logger.info(f"Admin {admin['id']} force-confirmed match {match_id}")
        return MatchResultResponse(**result)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("force-confirming score", e)
