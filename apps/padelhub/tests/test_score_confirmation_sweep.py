"""
Tests for the score confirmation sweep (auto-confirm after the deadline).

Verifies that submissions older than the confirmation window are confirmed
through the normal path, and that younger ones are left alone.
"""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, TOMORROW, make_players
from padelhub.database.models import MatchStatus, Player
from padelhub.services import match_service
from padelhub.services.score_confirmation_service import (
    ScoreConfirmationSweeper,
    get_score_confirmation_sweeper,
)

SETS = [{"team1_games": 6, "team2_games": 2}, {"team1_games": 6, "team2_games": 1}]


async def _pending_match(session, ratings=(1500, 1500, 1500, 1500), submitted_at=NOW):
    players = await make_players(session, list(ratings))
    ids = [p.id for p in players]
    match = await match_service.create_match(
        session, ids[0], TOMORROW, requires_approval=False, now=NOW
    )
    for pid in ids[1:]:
        await match_service.join_match(session, match.id, pid, now=NOW)
    await match_service.submit_score(
        session, match.id, ids[0], ids[:2], ids[2:], SETS, now=submitted_at
    )
    return match.id, ids


@pytest.mark.asyncio
async def test_sweep_ignores_submissions_inside_window(session_factory):
    async with session_factory() as session:
        match_id, _ = await _pending_match(session)

    sweeper = ScoreConfirmationSweeper(session_factory=session_factory)
    confirmed = await sweeper.run_once(now=NOW + timedelta(days=6, hours=23))

    assert confirmed == []
    async with session_factory() as session:
        match = await match_service.get_match(session, match_id)
        assert match.status == MatchStatus.PENDING_CONFIRMATION


@pytest.mark.asyncio
async def test_sweep_force_confirms_overdue_submission(session_factory):
    async with session_factory() as session:
        match_id, ids = await _pending_match(session)

    sweeper = ScoreConfirmationSweeper(session_factory=session_factory)
    confirmed = await sweeper.run_once(now=NOW + timedelta(days=7, minutes=1))

    assert confirmed == [match_id]
    async with session_factory() as session:
        match = await match_service.get_match(session, match_id)
        assert match.status == MatchStatus.COMPLETED
        assert match.winning_team == 1
        assert match.submission is None
        winner = await session.get(Player, ids[0])
        loser = await session.get(Player, ids[3])
        assert winner.rating == 1516
        assert loser.rating == 1484


@pytest.mark.asyncio
async def test_sweep_is_idempotent(session_factory):
    async with session_factory() as session:
        match_id, ids = await _pending_match(session)

    sweeper = ScoreConfirmationSweeper(session_factory=session_factory)
    later = NOW + timedelta(days=8)
    assert await sweeper.run_once(now=later) == [match_id]
    assert await sweeper.run_once(now=later) == []

    async with session_factory() as session:
        assert (await session.get(Player, ids[0])).rating == 1516


@pytest.mark.asyncio
async def test_sweep_only_touches_overdue_matches(session_factory):
    async with session_factory() as session:
        old_id, _ = await _pending_match(session, submitted_at=NOW - timedelta(days=3))
        new_id, _ = await _pending_match(session, submitted_at=NOW + timedelta(days=3))

    sweeper = ScoreConfirmationSweeper(session_factory=session_factory)
    confirmed = await sweeper.run_once(now=NOW + timedelta(days=5))

    assert confirmed == [old_id]
    async with session_factory() as session:
        assert (await match_service.get_match(session, new_id)).status == MatchStatus.PENDING_CONFIRMATION


@pytest.mark.asyncio
async def test_worker_start_and_stop(session_factory):
    sweeper = ScoreConfirmationSweeper(session_factory=session_factory, poll_interval=3600)
    sweeper.start()
    task = sweeper._worker_task
    assert task is not None and not task.done()

    await asyncio.sleep(0.05)
    sweeper.stop()
    assert sweeper._stop_event.is_set()
    # The loop ends either through the stop event or through cancellation
    await asyncio.gather(task, return_exceptions=True)
    assert task.done()


def test_global_sweeper_is_singleton():
    assert get_score_confirmation_sweeper() is get_score_confirmation_sweeper()
