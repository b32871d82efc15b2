"""
Match lifecycle: roster management, score submission and confirmation.

Every mutating operation takes the per-match lock, loads the match row
FOR UPDATE, validates, mutates and commits before the lock is released.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from padelhub.database.models import (
    Match,
    MatchPlayer,
    MatchPlayerRole,
    MatchSet,
    MatchStatus,
    Player,
    RatingChangeReason,
    RatingHistory,
    ScoreSubmission,
)
from padelhub.services import rating_service
from padelhub.services.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from padelhub.services.locks import match_lock
from padelhub.utils.constants import (
    CONFIRMATION_WINDOW_DAYS,
    MATCH_CAPACITY,
    MAX_SETS_PER_MATCH,
    PLAYERS_PER_TEAM,
)
from padelhub.utils.datetime_utils import ensure_aware, utcnow

logger = logging.getLogger(__name__)


# Exhaustive status transition table
MATCH_TRANSITIONS = {
    MatchStatus.RECRUITING: {MatchStatus.FULL, MatchStatus.CANCELLED},
    MatchStatus.FULL: {
        MatchStatus.RECRUITING,
        MatchStatus.PENDING_CONFIRMATION,
        MatchStatus.CANCELLED,
    },
    MatchStatus.PENDING_CONFIRMATION: {MatchStatus.COMPLETED},
    MatchStatus.COMPLETED: set(),
    MatchStatus.CANCELLED: set(),
}

OPEN_STATUSES = (MatchStatus.RECRUITING, MatchStatus.FULL)


def assert_transition(current: MatchStatus, target: MatchStatus) -> None:
    """Raise StateError unless current -> target is a legal transition."""
    if target not in MATCH_TRANSITIONS[current]:
        raise StateError(f"Cannot move match from {current.value} to {target.value}")


def _set_status(match: Match, target: MatchStatus) -> None:
    assert_transition(match.status, target)
    match.status = target


# ============================================================================
# Loading helpers
# ============================================================================

async def get_player(session: AsyncSession, player_id: int) -> Player:
    """Load a player or raise NotFoundError."""
    result = await session.execute(select(Player).where(Player.id == player_id))
    player = result.scalar_one_or_none()
    if player is None:
        raise NotFoundError(f"Player {player_id} not found")
    return player


async def _load_players_for_update(
    session: AsyncSession, player_ids: Iterable[int]
) -> Dict[int, Player]:
    ids = list(player_ids)
    result = await session.execute(
        select(Player)
        .where(Player.id.in_(ids))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    players = {p.id: p for p in result.scalars().all()}
    missing = [pid for pid in ids if pid not in players]
    if missing:
        raise NotFoundError(f"Players not found: {missing}")
    return players


async def _load_match(session: AsyncSession, match_id: int, for_update: bool = True) -> Match:
    query = select(Match).where(Match.id == match_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query.execution_options(populate_existing=True))
    match = result.scalar_one_or_none()
    if match is None:
        raise NotFoundError(f"Match {match_id} not found")
    return match


async def _commit(session: AsyncSession) -> None:
    """Commit, translating lost updates and constraint races into ConflictError."""
    try:
        await session.commit()
    except (StaleDataError, IntegrityError) as e:
        await session.rollback()
        raise ConflictError("Match was modified concurrently, please retry") from e


def _touch(match: Match, now: datetime) -> None:
    # Dirties the match row so the version column is checked and bumped
    match.updated_at = now


def _require_creator(match: Match, actor_id: int) -> None:
    if match.creator_id != actor_id:
        raise AuthorizationError("Only the match creator can do this")


def _balanced_team(match: Match) -> int:
    """Team 1 while it has no more approved players than team 2, otherwise team 2."""
    team1 = sum(1 for p in match.approved_players if p.team == 1)
    team2 = sum(1 for p in match.approved_players if p.team == 2)
    return 1 if team1 <= team2 else 2


def _approve(match: Match, entry: MatchPlayer) -> None:
    entry.team = _balanced_team(match)
    entry.role = MatchPlayerRole.APPROVED
    if len(match.approved_players) >= MATCH_CAPACITY:
        _set_status(match, MatchStatus.FULL)


def _assert_has_slot(match: Match) -> None:
    if match.status not in OPEN_STATUSES:
        raise StateError(f"Match is {match.status.value}, not recruiting")
    if match.status == MatchStatus.FULL or len(match.approved_players) >= MATCH_CAPACITY:
        raise ConflictError("Match is full")


def _assert_open(match: Match) -> None:
    if match.status not in OPEN_STATUSES:
        raise StateError(f"Match is {match.status.value}")


def _assert_future(scheduled_at: datetime, now: datetime) -> datetime:
    scheduled_at = ensure_aware(scheduled_at)
    if scheduled_at <= now:
        raise ValidationError("Scheduled time must be in the future")
    return scheduled_at


# ============================================================================
# Creation
# ============================================================================

async def create_match(
    session: AsyncSession,
    creator_id: int,
    scheduled_at: datetime,
    duration_min: int = 90,
    venue: Optional[str] = None,
    notes: Optional[str] = None,
    requires_approval: bool = True,
    now: Optional[datetime] = None,
) -> Match:
    """
    Create a recruiting match with the creator as its first approved player.

    Raises:
        ValidationError: scheduled_at is not strictly in the future
        NotFoundError: creator does not exist
    """
    now = now or utcnow()
    scheduled_at = _assert_future(scheduled_at, now)
    if duration_min <= 0:
        raise ValidationError("Duration must be positive")
    await get_player(session, creator_id)

    match = Match(
        creator_id=creator_id,
        scheduled_at=scheduled_at,
        duration_min=duration_min,
        venue=venue,
        notes=notes,
        requires_approval=requires_approval,
        status=MatchStatus.RECRUITING,
    )
    match.players.append(
        MatchPlayer(player_id=creator_id, role=MatchPlayerRole.APPROVED, team=1)
    )
    session.add(match)
    await session.commit()
    logger.info(f"Player {creator_id} created match {match.id} at {scheduled_at}")
    return match


async def record_past_match(
    session: AsyncSession,
    creator_id: int,
    player_ids: List[int],
    scheduled_at: datetime,
    duration_min: int = 90,
    venue: Optional[str] = None,
    notes: Optional[str] = None,
) -> Match:
    """
    Record a match that already took place.

    Skips recruiting: the match is created FULL with the creator plus the three
    given players approved. Provisional teams are creator + player_ids[0]
    against player_ids[1] + player_ids[2]; the score submission fixes the
    real split.
    """
    roster = [creator_id] + list(player_ids)
    if len(roster) != MATCH_CAPACITY or len(set(roster)) != MATCH_CAPACITY:
        raise ValidationError("A past match needs the creator plus three other distinct players")
    if duration_min <= 0:
        raise ValidationError("Duration must be positive")
    for player_id in roster:
        await get_player(session, player_id)

    match = Match(
        creator_id=creator_id,
        scheduled_at=ensure_aware(scheduled_at),
        duration_min=duration_min,
        venue=venue,
        notes=notes,
        requires_approval=False,
        status=MatchStatus.FULL,
    )
    for idx, player_id in enumerate(roster):
        match.players.append(
            MatchPlayer(player_id=player_id, role=MatchPlayerRole.APPROVED, team=1 if idx < 2 else 2)
        )
    session.add(match)
    await session.commit()
    logger.info(f"Player {creator_id} recorded past match {match.id} with {roster}")
    return match


# ============================================================================
# Roster operations
# ============================================================================

async def join_match(
    session: AsyncSession, match_id: int, player_id: int, now: Optional[datetime] = None
) -> MatchPlayer:
    """
    Ask to join a recruiting match.

    The player is added PENDING, or APPROVED straight away when the match does
    not require approval. Raises ConflictError if the player is already on the
    roster or the match has no free slot.
    """
    now = now or utcnow()
    await get_player(session, player_id)
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        if match.roster_entry(player_id) is not None:
            raise ConflictError(f"Player {player_id} is already in match {match_id}")
        _assert_has_slot(match)

        entry = MatchPlayer(player_id=player_id, role=MatchPlayerRole.PENDING, team=0)
        match.players.append(entry)
        if not match.requires_approval:
            _approve(match, entry)
        _touch(match, now)
        await _commit(session)

    logger.info(f"Player {player_id} joined match {match_id} as {entry.role.value}")
    return entry


async def approve_player(
    session: AsyncSession,
    match_id: int,
    actor_id: int,
    player_id: int,
    now: Optional[datetime] = None,
) -> MatchPlayer:
    """Creator approves a pending join request; the match fills at four approved."""
    now = now or utcnow()
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        _require_creator(match, actor_id)
        entry = match.roster_entry(player_id)
        if entry is None or entry.role != MatchPlayerRole.PENDING:
            raise NotFoundError(f"No pending join request from player {player_id}")
        _assert_has_slot(match)

        _approve(match, entry)
        _touch(match, now)
        await _commit(session)

    logger.info(f"Player {player_id} approved for match {match_id}")
    return entry


async def reject_player(
    session: AsyncSession,
    match_id: int,
    actor_id: int,
    player_id: int,
    now: Optional[datetime] = None,
) -> None:
    """Creator rejects a pending join request; the request is removed."""
    now = now or utcnow()
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        _require_creator(match, actor_id)
        _assert_open(match)
        entry = match.roster_entry(player_id)
        if entry is None or entry.role != MatchPlayerRole.PENDING:
            raise NotFoundError(f"No pending join request from player {player_id}")

        match.players.remove(entry)
        _touch(match, now)
        await _commit(session)

    logger.info(f"Player {player_id} rejected from match {match_id}")


async def invite_player(
    session: AsyncSession,
    match_id: int,
    actor_id: int,
    player_id: int,
    now: Optional[datetime] = None,
) -> MatchPlayer:
    """Creator invites a player; the invitation does not take a slot until accepted."""
    now = now or utcnow()
    await get_player(session, player_id)
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        _require_creator(match, actor_id)
        if match.roster_entry(player_id) is not None:
            raise ConflictError(f"Player {player_id} is already in match {match_id}")
        _assert_has_slot(match)

        entry = MatchPlayer(player_id=player_id, role=MatchPlayerRole.INVITED, team=0)
        match.players.append(entry)
        _touch(match, now)
        await _commit(session)

    logger.info(f"Player {player_id} invited to match {match_id}")
    return entry


async def accept_invite(
    session: AsyncSession, match_id: int, player_id: int, now: Optional[datetime] = None
) -> MatchPlayer:
    """
    Accept an invitation.

    If the match filled up in the meantime the invitation is withdrawn and
    ConflictError is raised.
    """
    now = now or utcnow()
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        entry = match.roster_entry(player_id)
        if entry is None or entry.role != MatchPlayerRole.INVITED:
            raise NotFoundError(f"Player {player_id} has no invitation to match {match_id}")

        if match.status not in OPEN_STATUSES:
            raise StateError(f"Match is {match.status.value}, not recruiting")
        if match.status == MatchStatus.FULL or len(match.approved_players) >= MATCH_CAPACITY:
            match.players.remove(entry)
            _touch(match, now)
            await _commit(session)
            raise ConflictError("Match is full")

        _approve(match, entry)
        _touch(match, now)
        await _commit(session)

    logger.info(f"Player {player_id} accepted invitation to match {match_id}")
    return entry


async def decline_invite(
    session: AsyncSession, match_id: int, player_id: int, now: Optional[datetime] = None
) -> None:
    now = now or utcnow()
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        entry = match.roster_entry(player_id)
        if entry is None or entry.role != MatchPlayerRole.INVITED:
            raise NotFoundError(f"Player {player_id} has no invitation to match {match_id}")

        match.players.remove(entry)
        _touch(match, now)
        await _commit(session)

    logger.info(f"Player {player_id} declined invitation to match {match_id}")


async def leave_match(
    session: AsyncSession, match_id: int, player_id: int, now: Optional[datetime] = None
) -> Match:
    """
    Leave a match before scoring starts.

    An approved player leaving a FULL match reopens it. The creator leaving
    cancels the match.
    """
    now = now or utcnow()
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        entry = match.roster_entry(player_id)
        if entry is None:
            raise NotFoundError(f"Player {player_id} is not in match {match_id}")
        _assert_open(match)

        if player_id == match.creator_id:
            _set_status(match, MatchStatus.CANCELLED)
            logger.info(f"Creator {player_id} left match {match_id}; match cancelled")
        else:
            was_approved = entry.role == MatchPlayerRole.APPROVED
            match.players.remove(entry)
            if was_approved and match.status == MatchStatus.FULL:
                _set_status(match, MatchStatus.RECRUITING)
            logger.info(f"Player {player_id} left match {match_id}")
        _touch(match, now)
        await _commit(session)
    return match


async def update_match(
    session: AsyncSession,
    match_id: int,
    actor_id: int,
    scheduled_at: Optional[datetime] = None,
    duration_min: Optional[int] = None,
    venue: Optional[str] = None,
    notes: Optional[str] = None,
    requires_approval: Optional[bool] = None,
    now: Optional[datetime] = None,
) -> Match:
    """Creator edits match details while it is RECRUITING or FULL."""
    now = now or utcnow()
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        _require_creator(match, actor_id)
        _assert_open(match)

        # Validate every field before assigning any
        if scheduled_at is not None:
            scheduled_at = _assert_future(scheduled_at, now)
        if duration_min is not None and duration_min <= 0:
            raise ValidationError("Duration must be positive")

        if scheduled_at is not None:
            match.scheduled_at = scheduled_at
        if duration_min is not None:
            match.duration_min = duration_min
        if venue is not None:
            match.venue = venue
        if notes is not None:
            match.notes = notes
        if requires_approval is not None:
            match.requires_approval = requires_approval
        _touch(match, now)
        await _commit(session)
    return match


async def delete_match(
    session: AsyncSession,
    match_id: int,
    actor_id: int,
    is_admin: bool = False,
    now: Optional[datetime] = None,
) -> Match:
    """
    Cancel a match (soft delete).

    Raises:
        AuthorizationError: actor is neither the creator nor an admin
        ConflictError: a score submission is outstanding
        StateError: match already COMPLETED or CANCELLED
    """
    now = now or utcnow()
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        if not is_admin:
            _require_creator(match, actor_id)
        if match.status == MatchStatus.PENDING_CONFIRMATION:
            raise ConflictError("Cannot delete a match with a score awaiting confirmation")
        _assert_open(match)

        _set_status(match, MatchStatus.CANCELLED)
        _touch(match, now)
        await _commit(session)

    logger.info(f"Match {match_id} cancelled by player {actor_id}")
    return match


# ============================================================================
# Scores
# ============================================================================

def validate_sets(sets: List[Dict]) -> None:
    """
    Validate the shape of submitted set scores.

    1 to MAX_SETS_PER_MATCH sets, non-negative games, no tied sets, and
    tiebreak points only on a 7-6 / 6-7 set, given for both teams.
    """
    if not sets:
        raise ValidationError("At least one set is required")
    if len(sets) > MAX_SETS_PER_MATCH:
        raise ValidationError(f"At most {MAX_SETS_PER_MATCH} sets are allowed")

    for number, score in enumerate(sets, start=1):
        t1, t2 = score.get("team1_games"), score.get("team2_games")
        if not isinstance(t1, int) or not isinstance(t2, int) or t1 < 0 or t2 < 0:
            raise ValidationError(f"Set {number}: games must be non-negative integers")
        if t1 == t2:
            raise ValidationError(f"Set {number}: a set cannot end level")

        tb1, tb2 = score.get("team1_tiebreak"), score.get("team2_tiebreak")
        if tb1 is None and tb2 is None:
            continue
        if (t1, t2) not in ((7, 6), (6, 7)):
            raise ValidationError(f"Set {number}: tiebreak points are only valid on a 7-6 set")
        if tb1 is None or tb2 is None or tb1 < 0 or tb2 < 0 or tb1 == tb2:
            raise ValidationError(f"Set {number}: tiebreak needs a decided score for both teams")
        if (tb1 > tb2) != (t1 > t2):
            raise ValidationError(f"Set {number}: tiebreak winner must win the set")


def _validate_teams(match: Match, team1_ids: List[int], team2_ids: List[int]) -> None:
    if len(team1_ids) != PLAYERS_PER_TEAM or len(team2_ids) != PLAYERS_PER_TEAM:
        raise ValidationError("Each team must have exactly two players")
    submitted = set(team1_ids) | set(team2_ids)
    if len(submitted) != MATCH_CAPACITY:
        raise ValidationError("A player cannot appear twice in the team split")
    if submitted != set(match.approved_player_ids):
        raise ValidationError("Teams must consist of the match's four approved players")


def _set_games(sets) -> List[tuple]:
    return [(s.team1_games, s.team2_games) for s in sets]


async def _preview(
    session: AsyncSession, team1_ids: List[int], team2_ids: List[int], games: List[tuple]
) -> Dict:
    result = await session.execute(
        select(Player.id, Player.rating).where(Player.id.in_(team1_ids + team2_ids))
    )
    ratings = dict(result.all())
    return rating_service.compute_rating_changes(
        [(pid, ratings[pid]) for pid in team1_ids],
        [(pid, ratings[pid]) for pid in team2_ids],
        games,
    )


async def submit_score(
    session: AsyncSession,
    match_id: int,
    submitter_id: int,
    team1_ids: List[int],
    team2_ids: List[int],
    sets: List[Dict],
    now: Optional[datetime] = None,
) -> Dict:
    """
    Submit the result of a FULL match for confirmation by the other team.

    Args:
        session: Database session
        match_id: Match ID
        submitter_id: Approved player submitting the score
        team1_ids / team2_ids: Final team split (two approved players each)
        sets: [{team1_games, team2_games, team1_tiebreak?, team2_tiebreak?}]
        now: Clock override

    Returns:
        Dict with the match, the confirmation deadline and a preview of the
        rating changes confirmation would apply
    """
    now = now or utcnow()
    validate_sets(sets)
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        if match.status == MatchStatus.PENDING_CONFIRMATION:
            raise ConflictError("A score is already awaiting confirmation for this match")
        if match.status != MatchStatus.FULL:
            raise StateError(f"Scores can only be submitted for a full match, not {match.status.value}")
        entry = match.roster_entry(submitter_id)
        if entry is None or entry.role != MatchPlayerRole.APPROVED:
            raise AuthorizationError("Only approved players can submit a score")
        _validate_teams(match, team1_ids, team2_ids)

        games = [(s["team1_games"], s["team2_games"]) for s in sets]
        preview = await _preview(session, list(team1_ids), list(team2_ids), games)

        match.sets = [
            MatchSet(
                set_number=number,
                team1_games=s["team1_games"],
                team2_games=s["team2_games"],
                team1_tiebreak=s.get("team1_tiebreak"),
                team2_tiebreak=s.get("team2_tiebreak"),
            )
            for number, s in enumerate(sets, start=1)
        ]
        deadline = now + timedelta(days=CONFIRMATION_WINDOW_DAYS)
        match.submission = ScoreSubmission(
            submitter_id=submitter_id,
            team1_player_ids=list(team1_ids),
            team2_player_ids=list(team2_ids),
            submitted_at=now,
            confirm_deadline=deadline,
        )
        for player in match.approved_players:
            player.team = 1 if player.player_id in team1_ids else 2
        _set_status(match, MatchStatus.PENDING_CONFIRMATION)
        _touch(match, now)
        await _commit(session)

    logger.info(f"Player {submitter_id} submitted score for match {match_id}")
    return {
        "match": match,
        "confirm_deadline": deadline,
        "winning_team": preview["winning_team"],
        "rating_preview": preview["changes"],
    }


def _record_result(player: Player, won: bool) -> None:
    player.matches_played = (player.matches_played or 0) + 1
    if won:
        player.wins = (player.wins or 0) + 1
        player.win_streak = (player.win_streak or 0) + 1
        player.max_win_streak = max(player.max_win_streak or 0, player.win_streak)
    else:
        player.losses = (player.losses or 0) + 1
        player.win_streak = 0


async def _finalize(session: AsyncSession, match: Match, now: datetime) -> Dict:
    """Apply ratings for the outstanding submission and complete the match."""
    submission = match.submission
    team1_ids = list(submission.team1_player_ids)
    team2_ids = list(submission.team2_player_ids)
    players = await _load_players_for_update(session, team1_ids + team2_ids)

    result = rating_service.compute_rating_changes(
        [(pid, players[pid].rating) for pid in team1_ids],
        [(pid, players[pid].rating) for pid in team2_ids],
        _set_games(match.sets),
    )

    for change in result["changes"]:
        player = players[change["player_id"]]
        player.rating = change["new_rating"]
        _record_result(player, change["won"])
        session.add(
            RatingHistory(
                player_id=player.id,
                match_id=match.id,
                old_rating=change["old_rating"],
                new_rating=change["new_rating"],
                change=change["change"],
                reason=RatingChangeReason.MATCH_WIN if change["won"] else RatingChangeReason.MATCH_LOSS,
                created_at=now,
            )
        )

    match.winning_team = result["winning_team"]
    match.completed_at = now
    match.submission = None
    _set_status(match, MatchStatus.COMPLETED)
    _touch(match, now)
    await _commit(session)

    logger.info(
        f"Match {match.id} completed, team {result['winning_team']} won "
        f"({result['team_a_delta']:+d}/{result['team_b_delta']:+d})"
    )
    return {
        "match_id": match.id,
        "status": MatchStatus.COMPLETED,
        "winning_team": result["winning_team"],
        "changes": result["changes"],
    }


async def get_match_result(session: AsyncSession, match: Match) -> Dict:
    """Rebuild the result of a COMPLETED match from its rating history."""
    rows = await session.execute(
        select(RatingHistory)
        .where(RatingHistory.match_id == match.id)
        .order_by(RatingHistory.id)
    )
    changes = [
        {
            "player_id": row.player_id,
            "old_rating": row.old_rating,
            "new_rating": row.new_rating,
            "change": row.change,
            "won": row.reason == RatingChangeReason.MATCH_WIN,
        }
        for row in rows.scalars().all()
    ]
    return {
        "match_id": match.id,
        "status": match.status,
        "winning_team": match.winning_team,
        "changes": changes,
    }


async def confirm_score(
    session: AsyncSession, match_id: int, confirmer_id: int, now: Optional[datetime] = None
) -> Dict:
    """
    Confirm the outstanding score as a player of the opposing team.

    Confirming an already COMPLETED match returns the stored result without
    touching ratings again.

    Raises:
        AuthorizationError: confirmer is not in the match or is on the submitter's team
        StateError: no score is awaiting confirmation
    """
    now = now or utcnow()
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        entry = match.roster_entry(confirmer_id)
        if entry is None or entry.role != MatchPlayerRole.APPROVED:
            raise AuthorizationError(f"Player {confirmer_id} is not playing in match {match_id}")

        if match.status == MatchStatus.COMPLETED:
            return await get_match_result(session, match)
        if match.status != MatchStatus.PENDING_CONFIRMATION:
            raise StateError(f"No score awaiting confirmation (match is {match.status.value})")

        submission = match.submission
        confirmer_team = submission.team_of(confirmer_id)
        if confirmer_team == submission.team_of(submission.submitter_id):
            raise AuthorizationError("The score must be confirmed by the opposing team")

        result = await _finalize(session, match, now)

    logger.info(f"Player {confirmer_id} confirmed score for match {match_id}")
    return result


async def force_confirm(
    session: AsyncSession, match_id: int, now: Optional[datetime] = None
) -> Dict:
    """
    Confirm the outstanding score without an opposing player.

    Used by the confirmation sweep once the deadline has passed. Idempotent:
    an already COMPLETED match is returned unchanged.
    """
    now = now or utcnow()
    async with match_lock(match_id):
        match = await _load_match(session, match_id)
        if match.status == MatchStatus.COMPLETED:
            return await get_match_result(session, match)
        if match.status != MatchStatus.PENDING_CONFIRMATION:
            raise StateError(f"No score awaiting confirmation (match is {match.status.value})")
        result = await _finalize(session, match, now)

    logger.info(f"Match {match_id} force-confirmed")
    return result


# ============================================================================
# Reads
# ============================================================================

async def get_match(session: AsyncSession, match_id: int) -> Match:
    return await _load_match(session, match_id, for_update=False)


async def list_matches(
    session: AsyncSession,
    status: Optional[MatchStatus] = None,
    player_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Match]:
    """List matches, soonest first, optionally filtered by status and roster membership."""
    query = select(Match)
    if status is not None:
        query = query.where(Match.status == status)
    if player_id is not None:
        query = query.where(
            Match.id.in_(select(MatchPlayer.match_id).where(MatchPlayer.player_id == player_id))
        )
    query = query.order_by(Match.scheduled_at, Match.id).limit(limit).offset(offset)
    result = await session.execute(query.execution_options(populate_existing=True))
    return list(result.scalars().all())
