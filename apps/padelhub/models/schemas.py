"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict

from padelhub.database.models import (
    MatchPlayerRole,
    MatchStatus,
    RoundStatus,
    TournamentFormat,
    TournamentStatus,
)


# ============================================================================
# Matches
# ============================================================================

class SetScore(BaseModel):
    """Games of one set, with optional tiebreak points on a 7-6 set."""

    team1_games: int = Field(ge=0)
    team2_games: int = Field(ge=0)
    team1_tiebreak: Optional[int] = Field(default=None, ge=0)
    team2_tiebreak: Optional[int] = Field(default=None, ge=0)


class CreateMatchRequest(BaseModel):
    """Request to create a new match."""

    scheduled_at: datetime
    duration_min: int = 90
    venue: Optional[str] = None
    notes: Optional[str] = None
    requires_approval: bool = True


class RecordPastMatchRequest(BaseModel):
    """Request to record a match that was already played."""

    scheduled_at: datetime
    player_ids: List[int]  # The three players besides the creator
    duration_min: int = 90
    venue: Optional[str] = None
    notes: Optional[str] = None


class UpdateMatchRequest(BaseModel):
    """Request to update match details (all fields optional)."""

    scheduled_at: Optional[datetime] = None
    duration_min: Optional[int] = None
    venue: Optional[str] = None
    notes: Optional[str] = None
    requires_approval: Optional[bool] = None


class InvitePlayerRequest(BaseModel):
    player_id: int


class SubmitScoreRequest(BaseModel):
    """Score submission: final team split plus set scores."""

    team1: List[int]
    team2: List[int]
    sets: List[SetScore]


class MatchPlayerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    player_id: int
    role: MatchPlayerRole
    team: int


class MatchSetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    set_number: int
    team1_games: int
    team2_games: int
    team1_tiebreak: Optional[int] = None
    team2_tiebreak: Optional[int] = None


class ScoreSubmissionResponse(BaseModel):
    """Outstanding submission and its confirmation deadline."""

    model_config = ConfigDict(from_attributes=True)

    submitter_id: int
    team1_player_ids: List[int]
    team2_player_ids: List[int]
    submitted_at: datetime
    confirm_deadline: datetime


class MatchResponse(BaseModel):
    """Match detail including roster, sets and any outstanding submission."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    creator_id: int
    scheduled_at: datetime
    duration_min: int
    venue: Optional[str] = None
    notes: Optional[str] = None
    status: MatchStatus
    requires_approval: bool
    winning_team: Optional[int] = None
    completed_at: Optional[datetime] = None
    players: List[MatchPlayerResponse]
    sets: List[MatchSetResponse]
    submission: Optional[ScoreSubmissionResponse] = None


class RatingChange(BaseModel):
    player_id: int
    old_rating: int
    new_rating: int
    change: int
    won: Optional[bool] = None


class SubmitScoreResponse(BaseModel):
    """Submission accepted; ratings change only once it is confirmed."""

    match: MatchResponse
    confirm_deadline: datetime
    winning_team: Optional[int] = None
    rating_preview: List[RatingChange]


class MatchResultResponse(BaseModel):
    """Result of a confirmed match."""

    match_id: int
    status: MatchStatus
    winning_team: Optional[int] = None
    changes: List[RatingChange]


# ============================================================================
# Tournaments
# ============================================================================

class CreateTournamentRequest(BaseModel):
    """Request to create a tournament."""

    name: str
    format: TournamentFormat
    points_per_match: int = 24
    max_teams: int = 16
    rounds_count: Optional[int] = None
    rating_multiplier: float = 1.0
    scheduled_at: Optional[datetime] = None


class RegisterTeamRequest(BaseModel):
    partner_id: int


class RecordTournamentScoreRequest(BaseModel):
    team1_score: int = Field(ge=0)
    team2_score: int = Field(ge=0)


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    format: TournamentFormat
    points_per_match: int
    max_teams: int
    status: TournamentStatus
    current_round: int
    rounds_count: Optional[int] = None
    rating_multiplier: float
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class RegistrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    player1_id: int
    player2_id: int


class TournamentMatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    court_number: int
    team1_ids: List[int]
    team2_ids: List[int]
    team1_score: Optional[int] = None
    team2_score: Optional[int] = None
    status: RoundStatus


class TournamentRoundResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    round_number: int
    status: RoundStatus
    is_playoff: bool
    matches: List[TournamentMatchResponse]


class StandingResponse(BaseModel):
    player_id: int
    rating: int
    points: int
    wins: int
    losses: int
    draws: int
    points_for: int
    points_against: int
    point_diff: int
    matches_played: int
    position: int


class TeamStandingResponse(BaseModel):
    team: List[int]
    points: int
    wins: int
    losses: int
    points_for: int
    points_against: int
    rating: float
    position: int


class TournamentRatingChangeResponse(BaseModel):
    player_id: int
    old_rating: int
    new_rating: int
    change: int


class TournamentLiveResponse(BaseModel):
    """Snapshot served to polling viewers."""

    tournament: TournamentResponse
    registrations: List[RegistrationResponse]
    rounds: List[TournamentRoundResponse]
    standings: List[StandingResponse]
    team_standings: Optional[List[TeamStandingResponse]] = None
    rating_changes: List[TournamentRatingChangeResponse]


class CompleteTournamentResponse(BaseModel):
    tournament_id: int
    standings: List[StandingResponse]
    rating_changes: List[TournamentRatingChangeResponse]
