"""
Tests for the tournament engine: registration, rounds, scores, completion.
"""

import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from conftest import NOW, make_players
from padelhub.database.models import (
    Player,
    RatingChangeReason,
    RatingHistory,
    RoundStatus,
    TournamentFormat,
    TournamentRatingChange,
    TournamentStanding,
    TournamentStatus,
)
from padelhub.services import tournament_service
from padelhub.services.exceptions import (
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)

MEXICANO_RATINGS = [1800, 1700, 1600, 1500, 1400, 1300, 1200, 1100]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _tournament(session, fmt, ratings, **kwargs):
    """Create a tournament with players registered in consecutive pairs."""
    players = await make_players(session, ratings)
    tournament = await tournament_service.create_tournament(session, "Club Night", fmt, **kwargs)
    for i in range(0, len(players), 2):
        await tournament_service.register_team(
            session, tournament.id, players[i].id, players[i + 1].id
        )
    return tournament, [p.id for p in players]


async def _play_round(session, tournament_id, rnd, scores=(14, 10)):
    for match in rnd.matches:
        await tournament_service.record_score(
            session, tournament_id, match.id, scores[0], scores[1], now=NOW
        )


def _teams(match):
    return (match.team1_ids, match.team2_ids)


def _players_in(rnd):
    return [pid for m in rnd.matches for pid in m.team1_ids + m.team2_ids]


# ============================================================================
# Registration
# ============================================================================

@pytest.mark.asyncio
async def test_register_rules(db_session):
    players = await make_players(db_session, [1500] * 7)
    ids = [p.id for p in players]
    tournament = await tournament_service.create_tournament(
        db_session, "Cup", TournamentFormat.AMERICANO, max_teams=2
    )

    with pytest.raises(ValidationError):
        await tournament_service.register_team(db_session, tournament.id, ids[0], ids[0])

    await tournament_service.register_team(db_session, tournament.id, ids[0], ids[1])
    with pytest.raises(ConflictError, match="already registered"):
        await tournament_service.register_team(db_session, tournament.id, ids[2], ids[1])

    await tournament_service.register_team(db_session, tournament.id, ids[2], ids[3])
    with pytest.raises(ConflictError, match="full"):
        await tournament_service.register_team(db_session, tournament.id, ids[4], ids[5])

    with pytest.raises(NotFoundError):
        await tournament_service.register_team(db_session, tournament.id, ids[6], 999)


@pytest.mark.asyncio
async def test_unregister_frees_a_slot(db_session):
    tournament, ids = await _tournament(
        db_session, TournamentFormat.AMERICANO, [1500] * 4, max_teams=2
    )
    await tournament_service.unregister_team(db_session, tournament.id, ids[3])

    tournament = await tournament_service.get_tournament(db_session, tournament.id)
    assert [r.team for r in tournament.registrations] == [[ids[0], ids[1]]]
    with pytest.raises(NotFoundError):
        await tournament_service.unregister_team(db_session, tournament.id, ids[3])


@pytest.mark.asyncio
async def test_create_tournament_validation(db_session):
    with pytest.raises(ValidationError):
        await tournament_service.create_tournament(db_session, "X", TournamentFormat.MEXICANO, points_per_match=0)
    with pytest.raises(ValidationError):
        await tournament_service.create_tournament(db_session, "X", TournamentFormat.MEXICANO, max_teams=1)
    with pytest.raises(ValidationError):
        await tournament_service.create_tournament(db_session, " ", TournamentFormat.MEXICANO)


@pytest.mark.asyncio
async def test_start_needs_two_teams_and_closes_registration(db_session):
    tournament, ids = await _tournament(db_session, TournamentFormat.AMERICANO, [1500, 1500])
    with pytest.raises(StateError):
        await tournament_service.start_tournament(db_session, tournament.id)

    extra = await make_players(db_session, [1500, 1500, 1500, 1500])
    await tournament_service.register_team(db_session, tournament.id, extra[0].id, extra[1].id)
    await tournament_service.start_tournament(db_session, tournament.id)

    with pytest.raises(StateError):
        await tournament_service.register_team(db_session, tournament.id, extra[2].id, extra[3].id)
    with pytest.raises(StateError):
        await tournament_service.start_tournament(db_session, tournament.id)


# ============================================================================
# Mexicano
# ============================================================================

@pytest.mark.asyncio
async def test_mexicano_eight_players_two_rounds(db_session):
    """8 players, 24 points: round 2 re-pairs from the standings after round 1."""
    tournament, p = await _tournament(db_session, TournamentFormat.MEXICANO, MEXICANO_RATINGS)

    tournament = await tournament_service.start_tournament(db_session, tournament.id)
    assert tournament.status == TournamentStatus.IN_PROGRESS
    assert tournament.current_round == 1
    assert len(tournament.rounds) == 1

    round1 = tournament.rounds[0]
    assert round1.status == RoundStatus.IN_PROGRESS
    # Seeded by rating: 1+4 vs 2+3 in each block
    assert [_teams(m) for m in round1.matches] == [
        ([p[0], p[3]], [p[1], p[2]]),
        ([p[4], p[7]], [p[5], p[6]]),
    ]

    court1, court2 = round1.matches
    await tournament_service.record_score(db_session, tournament.id, court1.id, 20, 4, now=NOW)
    await tournament_service.record_score(db_session, tournament.id, court2.id, 13, 11, now=NOW)

    tournament = await tournament_service.get_tournament(db_session, tournament.id)
    assert tournament.rounds[0].status == RoundStatus.COMPLETED

    round2 = await tournament_service.next_round(db_session, tournament.id)

    assert round2.round_number == 2
    assert round2.status == RoundStatus.IN_PROGRESS
    assert sorted(_players_in(round2)) == sorted(p)
    # Standings after round 1: p0, p3, p4, p7, p5, p6, p1, p2
    assert [_teams(m) for m in round2.matches] == [
        ([p[0], p[7]], [p[3], p[4]]),
        ([p[5], p[2]], [p[6], p[1]]),
    ]
    tournament = await tournament_service.get_tournament(db_session, tournament.id)
    assert tournament.current_round == 2


@pytest.mark.asyncio
async def test_next_round_with_incomplete_round_fails(db_session):
    tournament, _ = await _tournament(db_session, TournamentFormat.MEXICANO, MEXICANO_RATINGS)
    tournament = await tournament_service.start_tournament(db_session, tournament.id)
    first = tournament.rounds[0].matches[0]
    await tournament_service.record_score(db_session, tournament.id, first.id, 12, 12, now=NOW)

    with pytest.raises(StateError, match="not complete"):
        await tournament_service.next_round(db_session, tournament.id)

    tournament = await tournament_service.get_tournament(db_session, tournament.id)
    assert len(tournament.rounds) == 1
    assert tournament.current_round == 1


@pytest.mark.asyncio
async def test_concurrent_next_round_creates_one_round(session_factory):
    async with session_factory() as session:
        tournament, _ = await _tournament(session, TournamentFormat.MEXICANO, MEXICANO_RATINGS)
        tournament = await tournament_service.start_tournament(session, tournament.id)
        await _play_round(session, tournament.id, tournament.rounds[0])
        tournament_id = tournament.id

    async def advance():
        async with session_factory() as session:
            return await tournament_service.next_round(session, tournament_id)

    results = await asyncio.gather(advance(), advance(), return_exceptions=True)

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert sum(1 for r in results if isinstance(r, (StateError, ConflictError))) == 1
    async with session_factory() as session:
        tournament = await tournament_service.get_tournament(session, tournament_id)
        assert [r.round_number for r in tournament.rounds] == [1, 2]


@pytest.mark.asyncio
async def test_mexicano_rounds_count_cap(db_session):
    tournament, _ = await _tournament(
        db_session, TournamentFormat.MEXICANO, [1500] * 4, rounds_count=1
    )
    tournament = await tournament_service.start_tournament(db_session, tournament.id)
    await _play_round(db_session, tournament.id, tournament.rounds[0])
    with pytest.raises(StateError):
        await tournament_service.next_round(db_session, tournament.id)


# ============================================================================
# Americano / round robin
# ============================================================================

@pytest.mark.asyncio
async def test_americano_pregenerates_and_advances(db_session):
    tournament, _ = await _tournament(db_session, TournamentFormat.AMERICANO, [1500] * 8)
    tournament = await tournament_service.start_tournament(db_session, tournament.id)

    assert [r.round_number for r in tournament.rounds] == [1, 2, 3]
    assert [r.status for r in tournament.rounds] == [
        RoundStatus.IN_PROGRESS, RoundStatus.PENDING, RoundStatus.PENDING
    ]

    # Future round cannot be scored yet
    future_match = tournament.rounds[1].matches[0]
    with pytest.raises(StateError):
        await tournament_service.record_score(db_session, tournament.id, future_match.id, 12, 12)

    await _play_round(db_session, tournament.id, tournament.rounds[0])
    tournament = await tournament_service.get_tournament(db_session, tournament.id)
    assert tournament.current_round == 2
    assert tournament.rounds[0].status == RoundStatus.COMPLETED
    assert tournament.rounds[1].status == RoundStatus.IN_PROGRESS

    # Rounds are pre-generated: no manual next round
    with pytest.raises(StateError):
        await tournament_service.next_round(db_session, tournament.id)


@pytest.mark.asyncio
async def test_record_score_validation(db_session):
    tournament, _ = await _tournament(
        db_session, TournamentFormat.AMERICANO, [1500] * 4, points_per_match=21
    )
    tournament = await tournament_service.start_tournament(db_session, tournament.id)
    match = tournament.rounds[0].matches[0]

    with pytest.raises(ValidationError, match="add up to 21"):
        await tournament_service.record_score(db_session, tournament.id, match.id, 12, 12)
    with pytest.raises(ValidationError):
        await tournament_service.record_score(db_session, tournament.id, match.id, -1, 22)
    with pytest.raises(NotFoundError):
        await tournament_service.record_score(db_session, tournament.id, 999, 11, 10)

    scored = await tournament_service.record_score(db_session, tournament.id, match.id, 11, 10, now=NOW)
    assert scored.status == RoundStatus.COMPLETED
    assert (scored.team1_score, scored.team2_score) == (11, 10)


@pytest.mark.asyncio
async def test_standings_cache_refreshed_on_score(db_session):
    tournament, ids = await _tournament(db_session, TournamentFormat.AMERICANO, [1500] * 4)
    tournament = await tournament_service.start_tournament(db_session, tournament.id)
    await _play_round(db_session, tournament.id, tournament.rounds[0], scores=(18, 6))

    rows = (
        await db_session.execute(
            select(TournamentStanding)
            .where(TournamentStanding.tournament_id == tournament.id)
            .order_by(TournamentStanding.position)
        )
    ).scalars().all()
    assert [row.position for row in rows] == [1, 2, 3, 4]
    assert [row.player_id for row in rows[:2]] == [ids[0], ids[1]]
    assert rows[0].points == 18
    assert rows[-1].points_against == 18


@pytest.mark.asyncio
async def test_round_robin_playoff_adds_placement_round(db_session):
    tournament, p = await _tournament(db_session, TournamentFormat.ROUND_ROBIN_PLAYOFF, [1500] * 8)
    tournament = await tournament_service.start_tournament(db_session, tournament.id)
    for rnd in list(tournament.rounds):
        await _play_round(db_session, tournament.id, rnd)

    with pytest.raises(StateError, match="placement"):
        await tournament_service.complete_tournament(db_session, tournament.id)

    playoff = await tournament_service.next_round(db_session, tournament.id)
    assert playoff.is_playoff
    assert playoff.round_number == 4
    # Team 1 won every round; teams 2-4 tie and fall back to lowest player id
    assert [_teams(m) for m in playoff.matches] == [
        ([p[0], p[1]], [p[2], p[3]]),
        ([p[4], p[5]], [p[6], p[7]]),
    ]

    await _play_round(db_session, tournament.id, playoff)
    with pytest.raises(StateError):
        await tournament_service.next_round(db_session, tournament.id)

    result = await tournament_service.complete_tournament(db_session, tournament.id, now=NOW)
    assert len(result["rating_changes"]) == 8


# ============================================================================
# Completion
# ============================================================================

@pytest.mark.asyncio
async def test_complete_applies_ratings_once(db_session):
    tournament, ids = await _tournament(db_session, TournamentFormat.AMERICANO, [1500] * 4)
    tournament = await tournament_service.start_tournament(db_session, tournament.id)
    await _play_round(db_session, tournament.id, tournament.rounds[0])

    result = await tournament_service.complete_tournament(db_session, tournament.id, now=NOW)

    changes = {c["player_id"]: c["change"] for c in result["rating_changes"]}
    assert changes == {ids[0]: 16, ids[1]: 16, ids[2]: -16, ids[3]: -16}
    assert result["standings"][0]["player_id"] == ids[0]
    assert (await db_session.get(Player, ids[0])).rating == 1516

    tournament = await tournament_service.get_tournament(db_session, tournament.id)
    assert tournament.status == TournamentStatus.COMPLETED

    history = (
        await db_session.execute(
            select(RatingHistory).where(RatingHistory.tournament_id == tournament.id)
        )
    ).scalars().all()
    assert len(history) == 4
    assert all(row.reason == RatingChangeReason.TOURNAMENT for row in history)

    stored = (
        await db_session.execute(
            select(TournamentRatingChange).where(TournamentRatingChange.tournament_id == tournament.id)
        )
    ).scalars().all()
    assert {row.player_id: row.change for row in stored} == changes

    # Immutable once completed
    with pytest.raises(StateError):
        await tournament_service.complete_tournament(db_session, tournament.id)
    with pytest.raises(StateError):
        await tournament_service.record_score(
            db_session, tournament.id, tournament.rounds[0].matches[0].id, 24, 0
        )
    assert (await db_session.get(Player, ids[0])).rating == 1516


@pytest.mark.asyncio
async def test_complete_requires_all_rounds(db_session):
    tournament, _ = await _tournament(db_session, TournamentFormat.AMERICANO, [1500] * 6)
    tournament = await tournament_service.start_tournament(db_session, tournament.id)
    await _play_round(db_session, tournament.id, tournament.rounds[0])
    with pytest.raises(StateError, match="Rounds not completed"):
        await tournament_service.complete_tournament(db_session, tournament.id)


@pytest.mark.asyncio
async def test_rating_multiplier_scales_tournament_changes(db_session):
    tournament, ids = await _tournament(
        db_session, TournamentFormat.AMERICANO, [1500] * 4, rating_multiplier=1.5
    )
    tournament = await tournament_service.start_tournament(db_session, tournament.id)
    await _play_round(db_session, tournament.id, tournament.rounds[0])
    result = await tournament_service.complete_tournament(db_session, tournament.id, now=NOW)
    assert {c["change"] for c in result["rating_changes"]} == {24, -24}


def test_tournament_elo_uses_running_ratings():
    def match(team1, team2, s1, s2):
        return SimpleNamespace(
            team1_ids=team1, team2_ids=team2, team1_score=s1, team2_score=s2,
            status=RoundStatus.COMPLETED,
        )

    ratings = {i: 1500 for i in range(1, 7)}
    matches = [
        match([1, 2], [3, 4], 14, 10),
        match([1, 2], [5, 6], 14, 10),  # 1,2 now rated 1516
    ]
    changes = tournament_service.compute_tournament_rating_changes(ratings, matches, 1.0)
    assert changes[1] == {"old_rating": 1500, "new_rating": 1531, "change": 31}
    assert changes[3]["change"] == -16
    assert changes[5]["change"] == -15


@pytest.mark.asyncio
async def test_cancel_tournament(db_session):
    tournament, _ = await _tournament(db_session, TournamentFormat.MEXICANO, [1500] * 4)
    tournament = await tournament_service.cancel_tournament(db_session, tournament.id)
    assert tournament.status == TournamentStatus.CANCELLED
    with pytest.raises(StateError):
        await tournament_service.start_tournament(db_session, tournament.id)
    with pytest.raises(StateError):
        await tournament_service.cancel_tournament(db_session, tournament.id)


# ============================================================================
# Live snapshot
# ============================================================================

@pytest.mark.asyncio
async def test_live_snapshot(db_session):
    tournament, ids = await _tournament(db_session, TournamentFormat.AMERICANO, [1500] * 4)
    tournament = await tournament_service.start_tournament(db_session, tournament.id)
    await _play_round(db_session, tournament.id, tournament.rounds[0])

    snapshot = await tournament_service.get_live_snapshot(db_session, tournament.id)

    assert snapshot["tournament"].id == tournament.id
    assert len(snapshot["registrations"]) == 2
    assert len(snapshot["rounds"]) == 1
    assert [s["player_id"] for s in snapshot["standings"]][:2] == [ids[0], ids[1]]
    assert snapshot["team_standings"][0]["team"] == [ids[0], ids[1]]
    assert snapshot["rating_changes"] == []

    with pytest.raises(NotFoundError):
        await tournament_service.get_live_snapshot(db_session, 999)
