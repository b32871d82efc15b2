"""
Tests for tournament standings aggregation.
"""

from types import SimpleNamespace

from padelhub.database.models import RoundStatus
from padelhub.services import standings_service


def _match(team1, team2, s1=None, s2=None, status=RoundStatus.COMPLETED):
    return SimpleNamespace(team1_ids=team1, team2_ids=team2, team1_score=s1, team2_score=s2, status=status)


def _positions(rows):
    return [row["player_id"] for row in rows]


def test_points_accumulate_from_own_side_score():
    rows = standings_service.compute_standings(
        {1: 1500, 2: 1500, 3: 1500, 4: 1500},
        [_match([1, 2], [3, 4], 15, 9)],
    )
    by_player = {row["player_id"]: row for row in rows}
    assert by_player[1]["points"] == 15
    assert by_player[1]["wins"] == 1
    assert by_player[1]["point_diff"] == 6
    assert by_player[3]["points"] == 9
    assert by_player[3]["losses"] == 1
    assert by_player[3]["points_against"] == 15


def test_sorted_by_points_then_diff_then_rating_then_id():
    ratings = {1: 1500, 2: 1600, 3: 1500, 4: 1500, 5: 1500, 6: 1500, 7: 1500, 8: 1500}
    matches = [
        _match([1, 2], [3, 4], 12, 12),   # 1,2,3,4: 12 pts, diff 0
        _match([5, 6], [7, 8], 16, 8),    # 5,6: 16 pts; 7,8: 8 pts
        _match([1, 3], [5, 7], 10, 14),   # 1,3: 22; 5: 30; 7: 22
    ]
    rows = standings_service.compute_standings(ratings, matches)
    # 5: 30 pts; 1,3,7: 22 pts, diff -4 each; 6: 16; 2,4: 12 (2 rated higher); 8: 8
    assert _positions(rows) == [5, 1, 3, 7, 6, 2, 4, 8]
    assert [row["position"] for row in rows] == list(range(1, 9))


def test_full_tie_falls_back_to_player_id():
    ratings = {9: 1500, 4: 1500, 7: 1500, 2: 1500}
    rows = standings_service.compute_standings(ratings, [_match([9, 4], [7, 2], 12, 12)])
    assert _positions(rows) == [2, 4, 7, 9]
    assert all(row["draws"] == 1 for row in rows)


def test_unscored_and_pending_matches_ignored():
    ratings = {1: 1500, 2: 1500, 3: 1500, 4: 1500}
    rows = standings_service.compute_standings(
        ratings,
        [
            _match([1, 2], [3, 4], None, None, status=RoundStatus.PENDING),
            _match([1, 2], [3, 4], 20, 4, status=RoundStatus.PENDING),
        ],
    )
    assert all(row["matches_played"] == 0 for row in rows)
    assert len(rows) == 4


def test_players_without_matches_still_listed():
    rows = standings_service.compute_standings({1: 1400, 2: 1700}, [])
    assert _positions(rows) == [2, 1]


def test_team_standings_only_count_fixed_pairs():
    teams = [[1, 2], [3, 4], [5, 6]]
    ratings = {i: 1500 for i in range(1, 7)}
    matches = [
        _match([1, 2], [3, 4], 14, 10),
        _match([5, 6], [1, 2], 13, 11),
        _match([1, 3], [5, 6], 20, 4),  # mixed pair, ignored for [1,3]
    ]
    rows = standings_service.compute_team_standings(teams, ratings, matches)
    assert [row["team"] for row in rows] == [[1, 2], [5, 6], [3, 4]]
    assert rows[0]["points"] == 25
    assert rows[1]["points"] == 17
    assert rows[1]["losses"] == 1
    assert [row["position"] for row in rows] == [1, 2, 3]
