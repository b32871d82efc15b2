"""
Tournament engine: registration, round generation, score entry, completion.

Fixed-partner formats (AMERICANO, ROUND_ROBIN, ROUND_ROBIN_PLAYOFF) generate
their round-robin rounds at start and advance automatically as rounds finish.
MEXICANO generates one round at a time from the live standings.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from padelhub.database.models import (
    Player,
    RatingChangeReason,
    RatingHistory,
    RoundStatus,
    Tournament,
    TournamentFormat,
    TournamentMatch,
    TournamentRatingChange,
    TournamentRegistration,
    TournamentRound,
    TournamentStanding,
    TournamentStatus,
)
from padelhub.services import pairing_service, rating_service, standings_service
from padelhub.services.exceptions import (
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from padelhub.services.locks import tournament_lock
from padelhub.utils.constants import (
    DEFAULT_MAX_TEAMS,
    DEFAULT_POINTS_PER_MATCH,
    MIN_TOURNAMENT_TEAMS,
)
from padelhub.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

FIXED_PARTNER_FORMATS = (
    TournamentFormat.AMERICANO,
    TournamentFormat.ROUND_ROBIN,
    TournamentFormat.ROUND_ROBIN_PLAYOFF,
)


# ============================================================================
# Loading helpers
# ============================================================================

async def _load_tournament(
    session: AsyncSession, tournament_id: int, for_update: bool = True
) -> Tournament:
    query = select(Tournament).where(Tournament.id == tournament_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query.execution_options(populate_existing=True))
    tournament = result.scalar_one_or_none()
    if tournament is None:
        raise NotFoundError(f"Tournament {tournament_id} not found")
    return tournament


async def _commit(session: AsyncSession) -> None:
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise ConflictError("Tournament was modified concurrently, please retry") from e


async def _player_ratings(session: AsyncSession, player_ids: List[int]) -> Dict[int, int]:
    if not player_ids:
        return {}
    result = await session.execute(
        select(Player.id, Player.rating).where(Player.id.in_(player_ids))
    )
    return dict(result.all())


def _all_matches(tournament: Tournament) -> List[TournamentMatch]:
    """Every tournament match in (round, court) order."""
    return [m for rnd in tournament.rounds for m in rnd.matches]


def _current_round(tournament: Tournament) -> Optional[TournamentRound]:
    for rnd in tournament.rounds:
        if rnd.round_number == tournament.current_round:
            return rnd
    return None


def _build_round(
    tournament: Tournament,
    round_number: int,
    fixtures: List[Dict],
    status: RoundStatus,
    is_playoff: bool = False,
) -> TournamentRound:
    rnd = TournamentRound(round_number=round_number, status=status, is_playoff=is_playoff)
    for fixture in fixtures:
        rnd.matches.append(
            TournamentMatch(
                tournament_id=tournament.id,
                court_number=fixture["court"],
                team1_player1_id=fixture["team1"][0],
                team1_player2_id=fixture["team1"][1],
                team2_player1_id=fixture["team2"][0],
                team2_player2_id=fixture["team2"][1],
                status=RoundStatus.PENDING,
            )
        )
    tournament.rounds.append(rnd)
    return rnd


def _bye_counts(tournament: Tournament) -> Dict[int, int]:
    counts = {player_id: 0 for player_id in tournament.player_ids}
    for rnd in tournament.rounds:
        playing = {pid for m in rnd.matches for pid in m.team1_ids + m.team2_ids}
        for player_id in counts:
            if player_id not in playing:
                counts[player_id] += 1
    return counts


# ============================================================================
# Standings
# ============================================================================

async def compute_tournament_standings(session: AsyncSession, tournament: Tournament) -> List[Dict]:
    """Recompute player standings from the tournament's completed matches."""
    ratings = await _player_ratings(session, tournament.player_ids)
    return standings_service.compute_standings(ratings, _all_matches(tournament))


async def refresh_standings_cache(
    session: AsyncSession, tournament: Tournament, standings: Optional[List[Dict]] = None
) -> List[Dict]:
    """Rewrite the cached standings rows for a tournament (flushed with the caller's commit)."""
    if standings is None:
        standings = await compute_tournament_standings(session, tournament)

    result = await session.execute(
        select(TournamentStanding).where(TournamentStanding.tournament_id == tournament.id)
    )
    existing = {row.player_id: row for row in result.scalars().all()}

    for standing in standings:
        row = existing.pop(standing["player_id"], None)
        if row is None:
            row = TournamentStanding(tournament_id=tournament.id, player_id=standing["player_id"])
            session.add(row)
        row.points = standing["points"]
        row.wins = standing["wins"]
        row.losses = standing["losses"]
        row.draws = standing["draws"]
        row.points_for = standing["points_for"]
        row.points_against = standing["points_against"]
        row.position = standing["position"]

    for stale in existing.values():
        await session.delete(stale)
    return standings


# ============================================================================
# Administration & registration
# ============================================================================

async def create_tournament(
    session: AsyncSession,
    name: str,
    format: TournamentFormat,
    points_per_match: int = DEFAULT_POINTS_PER_MATCH,
    max_teams: int = DEFAULT_MAX_TEAMS,
    rounds_count: Optional[int] = None,
    rating_multiplier: float = 1.0,
    scheduled_at: Optional[datetime] = None,
) -> Tournament:
    """Create a tournament open for registration."""
    if not name or not name.strip():
        raise ValidationError("Tournament name is required")
    if points_per_match <= 0:
        raise ValidationError("points_per_match must be positive")
    if max_teams < MIN_TOURNAMENT_TEAMS:
        raise ValidationError(f"max_teams must be at least {MIN_TOURNAMENT_TEAMS}")
    if rounds_count is not None and rounds_count < 1:
        raise ValidationError("rounds_count must be at least 1")
    if rating_multiplier <= 0:
        raise ValidationError("rating_multiplier must be positive")

    tournament = Tournament(
        name=name.strip(),
        format=format,
        points_per_match=points_per_match,
        max_teams=max_teams,
        rounds_count=rounds_count,
        rating_multiplier=rating_multiplier,
        scheduled_at=scheduled_at,
        status=TournamentStatus.REGISTRATION,
        current_round=0,
    )
    session.add(tournament)
    await session.commit()
    logger.info(f"Created {format.value} tournament {tournament.id} ({tournament.name!r})")
    return tournament


async def register_team(
    session: AsyncSession, tournament_id: int, player_id: int, partner_id: int
) -> TournamentRegistration:
    """
    Register a pair of players.

    Raises:
        ValidationError: player registering with themselves
        StateError: tournament no longer in REGISTRATION
        ConflictError: tournament full or either player already registered
    """
    if player_id == partner_id:
        raise ValidationError("A player cannot partner with themselves")

    async with tournament_lock(tournament_id):
        tournament = await _load_tournament(session, tournament_id)
        if tournament.status != TournamentStatus.REGISTRATION:
            raise StateError(f"Tournament is {tournament.status.value}, registration closed")

        found = await _player_ratings(session, [player_id, partner_id])
        for pid in (player_id, partner_id):
            if pid not in found:
                raise NotFoundError(f"Player {pid} not found")

        if len(tournament.registrations) >= tournament.max_teams:
            raise ConflictError("Tournament is full")
        registered = set(tournament.player_ids)
        for pid in (player_id, partner_id):
            if pid in registered:
                raise ConflictError(f"Player {pid} is already registered")

        registration = TournamentRegistration(player1_id=player_id, player2_id=partner_id)
        tournament.registrations.append(registration)
        await _commit(session)

    logger.info(f"Registered team {player_id}+{partner_id} for tournament {tournament_id}")
    return registration


async def unregister_team(session: AsyncSession, tournament_id: int, player_id: int) -> None:
    """Withdraw the registration containing player_id while registration is open."""
    async with tournament_lock(tournament_id):
        tournament = await _load_tournament(session, tournament_id)
        if tournament.status != TournamentStatus.REGISTRATION:
            raise StateError(f"Tournament is {tournament.status.value}, registration closed")
        registration = next(
            (r for r in tournament.registrations if player_id in r.team), None
        )
        if registration is None:
            raise NotFoundError(f"Player {player_id} is not registered")
        tournament.registrations.remove(registration)
        await _commit(session)

    logger.info(f"Unregistered team {registration.team} from tournament {tournament_id}")


async def cancel_tournament(session: AsyncSession, tournament_id: int) -> Tournament:
    async with tournament_lock(tournament_id):
        tournament = await _load_tournament(session, tournament_id)
        if tournament.status not in (TournamentStatus.REGISTRATION, TournamentStatus.IN_PROGRESS):
            raise StateError(f"Tournament is already {tournament.status.value}")
        tournament.status = TournamentStatus.CANCELLED
        await _commit(session)

    logger.info(f"Tournament {tournament_id} cancelled")
    return tournament


# ============================================================================
# Rounds
# ============================================================================

async def start_tournament(session: AsyncSession, tournament_id: int) -> Tournament:
    """
    Close registration and generate the opening round(s).

    Fixed-partner formats generate every round-robin round now, with round 1
    IN_PROGRESS. MEXICANO generates round 1 seeded by rating.
    """
    async with tournament_lock(tournament_id):
        tournament = await _load_tournament(session, tournament_id)
        if tournament.status != TournamentStatus.REGISTRATION:
            raise StateError(f"Tournament is {tournament.status.value}, cannot start")
        if len(tournament.registrations) < MIN_TOURNAMENT_TEAMS:
            raise StateError(
                f"At least {MIN_TOURNAMENT_TEAMS} teams are required to start, "
                f"{len(tournament.registrations)} registered"
            )

        if tournament.format in FIXED_PARTNER_FORMATS:
            teams = [tuple(r.team) for r in tournament.registrations]
            schedule = pairing_service.generate_americano_rounds(teams, tournament.rounds_count)
            for idx, fixtures in enumerate(schedule, start=1):
                status = RoundStatus.IN_PROGRESS if idx == 1 else RoundStatus.PENDING
                _build_round(tournament, idx, fixtures, status)
        else:
            ratings = await _player_ratings(session, tournament.player_ids)
            seeded = sorted(tournament.player_ids, key=lambda pid: (-ratings.get(pid, 0), pid))
            generated = pairing_service.generate_mexicano_round(seeded)
            _build_round(tournament, 1, generated["matches"], RoundStatus.IN_PROGRESS)

        tournament.status = TournamentStatus.IN_PROGRESS
        tournament.current_round = 1
        await refresh_standings_cache(session, tournament)
        await _commit(session)

    logger.info(
        f"Tournament {tournament_id} started with {len(tournament.registrations)} teams, "
        f"{len(tournament.rounds)} round(s) generated"
    )
    return tournament


async def next_round(session: AsyncSession, tournament_id: int) -> TournamentRound:
    """
    Generate the next round once the current one is COMPLETED.

    MEXICANO re-pairs from standings that include the just-finished round.
    ROUND_ROBIN_PLAYOFF adds a single placement round after the round robin.

    Raises:
        StateError: current round incomplete, or the format has no further rounds
        ConflictError: a concurrent call already created this round
    """
    async with tournament_lock(tournament_id):
        tournament = await _load_tournament(session, tournament_id)
        if tournament.status != TournamentStatus.IN_PROGRESS:
            raise StateError(f"Tournament is {tournament.status.value}")
        current = _current_round(tournament)
        if current is None or current.status != RoundStatus.COMPLETED:
            raise StateError(f"Round {tournament.current_round} is not complete yet")

        number = tournament.current_round + 1
        if tournament.format == TournamentFormat.MEXICANO:
            if tournament.rounds_count is not None and tournament.current_round >= tournament.rounds_count:
                raise StateError(f"All {tournament.rounds_count} rounds have been played")
            standings = await compute_tournament_standings(session, tournament)
            ordered = [s["player_id"] for s in standings]
            generated = pairing_service.generate_mexicano_round(ordered, _bye_counts(tournament))
            new_round = _build_round(tournament, number, generated["matches"], RoundStatus.IN_PROGRESS)
        elif tournament.format == TournamentFormat.ROUND_ROBIN_PLAYOFF and not current.is_playoff:
            ratings = await _player_ratings(session, tournament.player_ids)
            round_robin_matches = [
                m for rnd in tournament.rounds if not rnd.is_playoff for m in rnd.matches
            ]
            ranked = standings_service.compute_team_standings(
                [r.team for r in tournament.registrations], ratings, round_robin_matches
            )
            fixtures = pairing_service.generate_placement_round([row["team"] for row in ranked])
            new_round = _build_round(
                tournament, number, fixtures, RoundStatus.IN_PROGRESS, is_playoff=True
            )
        else:
            raise StateError("No further rounds to generate for this tournament")

        tournament.current_round = number
        await _commit(session)

    logger.info(f"Tournament {tournament_id}: generated round {number}")
    return new_round


async def record_score(
    session: AsyncSession,
    tournament_id: int,
    match_id: int,
    team1_score: int,
    team2_score: int,
    now: Optional[datetime] = None,
) -> TournamentMatch:
    """
    Enter the score of a tournament match.

    The two scores must add up to the tournament's points_per_match. When the
    last match of a round is scored the round completes, and for pre-generated
    formats the following round starts. Scores of the current round may be
    corrected until the next round begins.
    """
    now = now or utcnow()
    for score in (team1_score, team2_score):
        if isinstance(score, bool) or not isinstance(score, int) or score < 0:
            raise ValidationError("Scores must be non-negative integers")

    async with tournament_lock(tournament_id):
        tournament = await _load_tournament(session, tournament_id)
        if tournament.status != TournamentStatus.IN_PROGRESS:
            raise StateError(f"Tournament is {tournament.status.value}")
        if team1_score + team2_score != tournament.points_per_match:
            raise ValidationError(
                f"Scores must add up to {tournament.points_per_match}, "
                f"got {team1_score}+{team2_score}"
            )

        found = next(
            ((r, m) for r in tournament.rounds for m in r.matches if m.id == match_id), None
        )
        if found is None:
            raise NotFoundError(f"Match {match_id} not found in tournament {tournament_id}")
        rnd, match = found
        if rnd.round_number != tournament.current_round:
            raise StateError(f"Round {rnd.round_number} is not the current round")

        match.team1_score = team1_score
        match.team2_score = team2_score
        match.status = RoundStatus.COMPLETED
        match.completed_at = now

        if rnd.status != RoundStatus.COMPLETED and all(
            m.status == RoundStatus.COMPLETED for m in rnd.matches
        ):
            rnd.status = RoundStatus.COMPLETED
            logger.info(f"Tournament {tournament_id}: round {rnd.round_number} complete")
            upcoming = next(
                (r for r in tournament.rounds if r.round_number == rnd.round_number + 1), None
            )
            if upcoming is not None and upcoming.status == RoundStatus.PENDING:
                upcoming.status = RoundStatus.IN_PROGRESS
                tournament.current_round = upcoming.round_number

        await refresh_standings_cache(session, tournament)
        await _commit(session)

    logger.info(
        f"Tournament {tournament_id}: match {match_id} scored {team1_score}-{team2_score}"
    )
    return match


def compute_tournament_rating_changes(
    ratings: Dict[int, int], matches: List[TournamentMatch], multiplier: float
) -> Dict[int, Dict]:
    """
    Tournament Elo: every scored match is one event against running ratings.

    Matches are processed in the given (round, court) order; each event's
    result feeds the ratings used for the next one. Equal scores are a draw.

    Returns:
        player_id -> {old_rating, new_rating, change}
    """
    running = dict(ratings)
    for match in matches:
        if not standings_service.is_scored(match):
            continue
        if match.team1_score > match.team2_score:
            score_a = 1.0
        elif match.team1_score < match.team2_score:
            score_a = 0.0
        else:
            score_a = 0.5
        result = rating_service.compute_result_changes(
            [(pid, running[pid]) for pid in match.team1_ids],
            [(pid, running[pid]) for pid in match.team2_ids],
            score_a,
            multiplier,
        )
        for change in result["changes"]:
            running[change["player_id"]] = change["new_rating"]

    return {
        pid: {
            "old_rating": ratings[pid],
            "new_rating": running[pid],
            "change": running[pid] - ratings[pid],
        }
        for pid in ratings
    }


async def complete_tournament(
    session: AsyncSession, tournament_id: int, now: Optional[datetime] = None
) -> Dict:
    """
    Finish a tournament and apply its rating changes.

    Requires every round to be COMPLETED (and, for ROUND_ROBIN_PLAYOFF, the
    placement round to have been played). Writes final standings, one
    rating_history row and one tournament_rating_changes row per player.
    """
    now = now or utcnow()
    async with tournament_lock(tournament_id):
        tournament = await _load_tournament(session, tournament_id)
        if tournament.status != TournamentStatus.IN_PROGRESS:
            raise StateError(f"Tournament is {tournament.status.value}")
        incomplete = [r.round_number for r in tournament.rounds if r.status != RoundStatus.COMPLETED]
        if incomplete:
            raise StateError(f"Rounds not completed: {incomplete}")
        if tournament.format == TournamentFormat.ROUND_ROBIN_PLAYOFF and not any(
            r.is_playoff for r in tournament.rounds
        ):
            raise StateError("The placement round has not been played")

        player_ids = tournament.player_ids
        result = await session.execute(
            select(Player)
            .where(Player.id.in_(player_ids))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        players = {p.id: p for p in result.scalars().all()}
        ratings = {pid: players[pid].rating for pid in player_ids}

        standings = standings_service.compute_standings(ratings, _all_matches(tournament))
        changes = compute_tournament_rating_changes(
            ratings, _all_matches(tournament), tournament.rating_multiplier
        )

        for pid in player_ids:
            change = changes[pid]
            players[pid].rating = change["new_rating"]
            session.add(
                RatingHistory(
                    player_id=pid,
                    tournament_id=tournament.id,
                    old_rating=change["old_rating"],
                    new_rating=change["new_rating"],
                    change=change["change"],
                    reason=RatingChangeReason.TOURNAMENT,
                    created_at=now,
                )
            )
            session.add(
                TournamentRatingChange(
                    tournament_id=tournament.id,
                    player_id=pid,
                    old_rating=change["old_rating"],
                    new_rating=change["new_rating"],
                    change=change["change"],
                    created_at=now,
                )
            )

        await refresh_standings_cache(session, tournament, standings)
        tournament.status = TournamentStatus.COMPLETED
        tournament.completed_at = now
        await _commit(session)

    logger.info(f"Tournament {tournament_id} completed; ratings applied to {len(player_ids)} players")
    return {
        "tournament_id": tournament_id,
        "standings": standings,
        "rating_changes": [{"player_id": pid, **changes[pid]} for pid in player_ids],
    }


# ============================================================================
# Reads
# ============================================================================

async def get_tournament(session: AsyncSession, tournament_id: int) -> Tournament:
    return await _load_tournament(session, tournament_id, for_update=False)


async def get_live_snapshot(session: AsyncSession, tournament_id: int) -> Dict:
    """
    Consistent read of a tournament for polling viewers.

    Standings are recomputed from the match rows; fixed-partner formats also
    get a team table.
    """
    tournament = await _load_tournament(session, tournament_id, for_update=False)
    ratings = await _player_ratings(session, tournament.player_ids)
    matches = _all_matches(tournament)

    team_standings = None
    if tournament.format in FIXED_PARTNER_FORMATS:
        team_standings = standings_service.compute_team_standings(
            [r.team for r in tournament.registrations], ratings, matches
        )

    result = await session.execute(
        select(TournamentRatingChange)
        .where(TournamentRatingChange.tournament_id == tournament_id)
        .order_by(TournamentRatingChange.player_id)
    )
    rating_changes = [
        {
            "player_id": row.player_id,
            "old_rating": row.old_rating,
            "new_rating": row.new_rating,
            "change": row.change,
        }
        for row in result.scalars().all()
    ]

    return {
        "tournament": tournament,
        "registrations": tournament.registrations,
        "rounds": tournament.rounds,
        "standings": standings_service.compute_standings(ratings, matches),
        "team_standings": team_standings,
        "rating_changes": rating_changes,
    }
