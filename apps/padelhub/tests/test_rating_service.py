"""
Tests for the Elo rating engine.
"""

import pytest

from padelhub.services import rating_service
from padelhub.services.exceptions import ValidationError


def _deltas(result):
    return {c["player_id"]: c["change"] for c in result["changes"]}


def test_expected_score_equal_ratings():
    assert rating_service.expected_score(1500, 1500) == pytest.approx(0.5)


def test_expected_score_400_points_apart():
    assert rating_service.expected_score(1900, 1500) == pytest.approx(10 / 11)
    assert rating_service.expected_score(1500, 1900) == pytest.approx(1 / 11)


def test_team_rating_is_mean():
    assert rating_service.team_rating([(1, 1400), (2, 1600)]) == 1500


def test_equal_average_teams_move_16_points():
    """[1500,1500] vs [1400,1600], 6-3 6-4: both averages 1500, winners +16, losers -16."""
    result = rating_service.compute_rating_changes(
        [(1, 1500), (2, 1500)],
        [(3, 1400), (4, 1600)],
        [(6, 3), (6, 4)],
    )
    assert result["winning_team"] == 1
    assert result["team_a_delta"] == 16
    assert result["team_b_delta"] == -16
    assert _deltas(result) == {1: 16, 2: 16, 3: -16, 4: -16}
    new = {c["player_id"]: c["new_rating"] for c in result["changes"]}
    assert new == {1: 1516, 2: 1516, 3: 1384, 4: 1584}


def test_deltas_sum_to_zero_without_clamping():
    result = rating_service.compute_rating_changes(
        [(1, 1720), (2, 1310)],
        [(3, 1555), (4, 1490)],
        [(4, 6), (6, 2), (3, 6)],
    )
    assert result["winning_team"] == 2
    assert sum(_deltas(result).values()) == 0


def test_teammates_receive_same_delta():
    result = rating_service.compute_rating_changes(
        [(1, 2100), (2, 1100)],
        [(3, 1500), (4, 1500)],
        [(6, 4), (6, 4)],
    )
    deltas = _deltas(result)
    assert deltas[1] == deltas[2]
    assert deltas[3] == deltas[4]


def test_underdog_win_moves_more_than_favourite_win():
    favourite = rating_service.compute_rating_changes(
        [(1, 1700), (2, 1700)], [(3, 1300), (4, 1300)], [(6, 2), (6, 2)]
    )
    underdog = rating_service.compute_rating_changes(
        [(1, 1700), (2, 1700)], [(3, 1300), (4, 1300)], [(2, 6), (2, 6)]
    )
    assert favourite["team_a_delta"] == 3
    assert underdog["team_b_delta"] == 29


def test_clamping_at_floor_is_the_only_asymmetry():
    """Player at 10 can only lose 10; the winners still gain the full delta."""
    result = rating_service.compute_rating_changes(
        [(1, 10), (2, 20)],
        [(3, 10), (4, 20)],
        [(3, 6), (4, 6)],
    )
    deltas = _deltas(result)
    assert result["team_a_delta"] == -16
    assert deltas == {1: -10, 2: -16, 3: 16, 4: 16}
    assert sum(deltas.values()) == 6
    new = {c["player_id"]: c["new_rating"] for c in result["changes"]}
    assert new[1] == 0


def test_clamping_at_ceiling():
    result = rating_service.compute_rating_changes(
        [(1, 4995), (2, 4995)],
        [(3, 4995), (4, 4995)],
        [(6, 0)],
    )
    new = {c["player_id"]: c["new_rating"] for c in result["changes"]}
    assert new[1] == 5000
    assert new[3] == 4979


def test_decided_match_never_moves_zero():
    result = rating_service.compute_rating_changes(
        [(1, 3000), (2, 3000)],
        [(3, 1000), (4, 1000)],
        [(6, 0), (6, 0)],
    )
    assert result["team_a_delta"] == 1
    assert result["team_b_delta"] == -1


def test_multiplier_scales_both_sides():
    result = rating_service.compute_rating_changes(
        [(1, 1500), (2, 1500)],
        [(3, 1500), (4, 1500)],
        [(6, 4)],
        multiplier=2.0,
    )
    assert result["team_a_delta"] == 32
    assert result["team_b_delta"] == -32


def test_set_modifiers_only_when_enabled():
    sets = [(6, 0), (6, 1)]
    teams = ([(1, 1500), (2, 1500)], [(3, 1500), (4, 1500)])
    plain = rating_service.compute_rating_changes(*teams, sets, use_set_modifiers=False)
    modified = rating_service.compute_rating_changes(*teams, sets, use_set_modifiers=True)
    assert plain["team_a_delta"] == 16
    assert modified["team_a_delta"] == 18  # 32 * 1.1 * 0.5 = 17.6


def test_set_modifier_shapes():
    assert rating_service.set_modifier([(6, 4)]) == pytest.approx(1.0)
    assert rating_service.set_modifier([(7, 6)]) == pytest.approx(0.9)
    assert rating_service.set_modifier([(6, 4), (4, 6), (6, 3)]) == pytest.approx(0.95)
    assert rating_service.set_modifier([(1, 6), (7, 6), (6, 2)]) == pytest.approx(1.1 * 0.9 * 0.95)


def test_determine_winner_by_sets_not_games():
    # Team 2 wins more games but fewer sets
    assert rating_service.determine_winner([(6, 4), (0, 6), (7, 5)]) == 1
    assert rating_service.determine_winner([(6, 4), (4, 6)]) == -1


def test_level_sets_rejected_without_draws():
    with pytest.raises(ValidationError, match="winner"):
        rating_service.compute_rating_changes(
            [(1, 1500), (2, 1500)], [(3, 1500), (4, 1500)], [(6, 3), (3, 6)]
        )


def test_draw_result_when_allowed():
    result = rating_service.compute_result_changes(
        [(1, 1600), (2, 1600)], [(3, 1400), (4, 1400)], 0.5
    )
    # Favourite drawing loses a little, no minimum movement for draws
    assert result["team_a_delta"] == -8
    assert all(c["won"] is None for c in result["changes"])


def test_empty_sets_rejected():
    with pytest.raises(ValidationError, match="At least one set"):
        rating_service.compute_rating_changes([(1, 1500), (2, 1500)], [(3, 1500), (4, 1500)], [])


def test_team_must_have_two_players():
    with pytest.raises(ValidationError, match="exactly two"):
        rating_service.compute_rating_changes([(1, 1500)], [(3, 1500), (4, 1500)], [(6, 0)])


@pytest.mark.parametrize("rating", [1500.5, "1500", None, -1, 5001, True])
def test_validate_rating_rejects_bad_values(rating):
    with pytest.raises(ValidationError):
        rating_service.validate_rating(rating)


def test_round_half_away_from_zero():
    assert rating_service.round_half_away(2.5) == 3
    assert rating_service.round_half_away(-2.5) == -3
    assert rating_service.round_half_away(0.4) == 0
