"""Tournament registration, live view and admin round management handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from padelhub.api.auth_dependencies import get_current_player, require_admin
from padelhub.api.routes import http_error, limiter
from padelhub.database.db import get_db_session
from padelhub.models.schemas import (
    CompleteTournamentResponse,
    CreateTournamentRequest,
    RecordTournamentScoreRequest,
    RegisterTeamRequest,
    RegistrationResponse,
    TournamentLiveResponse,
    TournamentMatchResponse,
    TournamentResponse,
    TournamentRoundResponse,
)
from padelhub.services import tournament_service
from padelhub.services.exceptions import PadelHubError

logger = logging.getLogger(__name__)
router = APIRouter()


def _server_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Error {action}: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Error {action}")


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------

@router.get("/api/tournaments/{tournament_id}", response_model=TournamentResponse)
async def get_tournament(tournament_id: int, session: AsyncSession = Depends(get_db_session)):
    try:
        tournament = await tournament_service.get_tournament(session, tournament_id)
        return TournamentResponse.model_validate(tournament)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("getting tournament", e)


@router.get("/api/tournaments/{tournament_id}/live", response_model=TournamentLiveResponse)
async def get_live(tournament_id: int, session: AsyncSession = Depends(get_db_session)):
    """
    Rounds plus standings snapshot; viewers poll this every few seconds.
    """
    try:
        snapshot = await tournament_service.get_live_snapshot(session, tournament_id)
        return TournamentLiveResponse.model_validate(snapshot, from_attributes=True)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("getting live tournament", e)


@router.post(
    "/api/tournaments/{tournament_id}/register",
    response_model=RegistrationResponse,
    status_code=201,
)
@limiter.limit("20/minute")
async def register_team(
    request: Request,
    tournament_id: int,
    payload: RegisterTeamRequest,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Register the caller and a partner as a team."""
    try:
        registration = await tournament_service.register_team(
            session, tournament_id, player["id"], payload.partner_id
        )
        return RegistrationResponse.model_validate(registration)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("registering team", e)


@router.delete("/api/tournaments/{tournament_id}/register")
async def unregister_team(
    tournament_id: int,
    player: dict = Depends(get_current_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Withdraw the caller's team while registration is open."""
    try:
        await tournament_service.unregister_team(session, tournament_id, player["id"])
        return {"status": "success", "message": "Registration withdrawn"}
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("withdrawing registration", e)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

@router.post("/api/admin/tournaments", response_model=TournamentResponse, status_code=201)
async def create_tournament(
    payload: CreateTournamentRequest,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        tournament = await tournament_service.create_tournament(session, **payload.model_dump())
        return TournamentResponse.model_validate(tournament)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("creating tournament", e)


@router.post("/api/admin/tournaments/{tournament_id}/start", response_model=TournamentResponse)
async def start_tournament(
    tournament_id: int,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        tournament = await tournament_service.start_tournament(session, tournament_id)
        return TournamentResponse.model_validate(tournament)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("starting tournament", e)


@router.post(
    "/api/admin/tournaments/{tournament_id}/next-round",
    response_model=TournamentRoundResponse,
)
async def next_round(
    tournament_id: int,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        new_round = await tournament_service.next_round(session, tournament_id)
        return TournamentRoundResponse.model_validate(new_round)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("generating next round", e)


@router.post(
    "/api/admin/tournaments/{tournament_id}/matches/{match_id}/score",
    response_model=TournamentMatchResponse,
)
async def record_score(
    tournament_id: int,
    match_id: int,
    payload: RecordTournamentScoreRequest,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Enter a court's score.

    Request body:
        {"team1_score": 14, "team2_score": 10}  // must add up to points_per_match
    """
    try:
        match = await tournament_service.record_score(
            session, tournament_id, match_id, payload.team1_score, payload.team2_score
        )
        return TournamentMatchResponse.model_validate(match)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("recording tournament score", e)


@router.post(
    "/api/admin/tournaments/{tournament_id}/complete",
    response_model=CompleteTournamentResponse,
)
async def complete_tournament(
    tournament_id: int,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        result = await tournament_service.complete_tournament(session, tournament_id)
        return CompleteTournamentResponse(**result)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("completing tournament", e)


@router.post("/api/admin/tournaments/{tournament_id}/cancel", response_model=TournamentResponse)
async def cancel_tournament(
    tournament_id: int,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        tournament = await tournament_service.cancel_tournament(session, tournament_id)
        return TournamentResponse.model_validate(tournament)
    except PadelHubError as e:
        raise http_error(e)
    except Exception as e:
        raise _server_error("cancelling tournament", e)
