"""
Elo rating engine.

Pure functions only: nothing here touches the database. Callers pass the
current ratings of both teams plus the result and get back per-player changes.
"""

import math
from typing import Dict, List, Optional, Sequence, Tuple

from padelhub.services.exceptions import ValidationError
from padelhub.utils.constants import (
    K,
    MIN_RATING,
    MAX_RATING,
    MIN_RATING_CHANGE,
    USE_SET_MODIFIERS,
    BLOWOUT_MULTIPLIER,
    TIGHT_MULTIPLIER,
    THREE_SET_MULTIPLIER,
    ALLOW_DRAWS,
)

# (player_id, current_rating)
TeamRatings = Sequence[Tuple[int, int]]
# (team1_games, team2_games)
SetGames = Sequence[Tuple[int, int]]


# ============================================================================
# Helper Functions (Elo Calculations)
# ============================================================================

def expected_score(rating_a: float, rating_b: float) -> float:
    """
    Calculate expected score for side A against side B using the Elo formula.

    Formula: E_A = 1 / (1 + 10^((R_B - R_A) / 400))
    """
    return 1 / (1 + 10 ** ((rating_b - rating_a) / 400))


def team_rating(team: TeamRatings) -> float:
    """Team rating is the arithmetic mean of its members' ratings."""
    return sum(rating for _, rating in team) / len(team)


def round_half_away(value: float) -> int:
    """Round .5 away from zero so +x and -x round to opposite integers."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def clamp_rating(rating: int) -> int:
    """Keep a rating inside the [MIN_RATING, MAX_RATING] domain."""
    return max(MIN_RATING, min(MAX_RATING, rating))


def validate_rating(rating) -> int:
    """Reject ratings that are not integers inside the rating domain."""
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError(f"Rating must be an integer, got {rating!r}")
    if rating < MIN_RATING or rating > MAX_RATING:
        raise ValidationError(
            f"Rating {rating} outside of allowed range {MIN_RATING}-{MAX_RATING}"
        )
    return rating


# ============================================================================
# Set Helpers
# ============================================================================

def sets_won(sets: SetGames) -> Tuple[int, int]:
    """Count sets won by each team. Tied sets count for neither."""
    team1 = sum(1 for t1, t2 in sets if t1 > t2)
    team2 = sum(1 for t1, t2 in sets if t2 > t1)
    return team1, team2


def determine_winner(sets: SetGames) -> int:
    """
    Determine the winner from set scores.

    Returns:
        1 = team1, 2 = team2, -1 = tie on sets won
    """
    team1, team2 = sets_won(sets)
    if team1 > team2:
        return 1
    elif team2 > team1:
        return 2
    return -1


def set_modifier(sets: SetGames) -> float:
    """
    Scale factor from the shape of the sets.

    Blowouts (6-0, 6-1) count a little more, tiebreak sets a little less and
    long matches slightly less again. Both teams get the same factor.
    """
    multiplier = 1.0
    if any((t1 == 6 and t2 <= 1) or (t2 == 6 and t1 <= 1) for t1, t2 in sets):
        multiplier *= BLOWOUT_MULTIPLIER
    if any((t1, t2) in ((7, 6), (6, 7)) for t1, t2 in sets):
        multiplier *= TIGHT_MULTIPLIER
    if len(sets) >= 3:
        multiplier *= THREE_SET_MULTIPLIER
    return multiplier


def actual_score_from_sets(sets: SetGames, allow_draws: bool = ALLOW_DRAWS) -> float:
    """Outcome score S for team 1: 1 win, 0 loss, 0.5 draw (only when allowed)."""
    winner = determine_winner(sets)
    if winner == 1:
        return 1.0
    if winner == 2:
        return 0.0
    if not allow_draws:
        raise ValidationError("Match must have a winner: both teams won the same number of sets")
    return 0.5


# ============================================================================
# Rating Changes
# ============================================================================

def team_delta(
    team_a_rating: float,
    team_b_rating: float,
    score_a: float,
    multiplier: float = 1.0,
    k: float = K,
) -> int:
    """
    Rating delta for team A; team B receives exactly the negation.

    delta = round(K * multiplier * (S - E_A)). A decided result never rounds
    to zero: the winner gains at least MIN_RATING_CHANGE.
    """
    expected = expected_score(team_a_rating, team_b_rating)
    delta = round_half_away(k * multiplier * (score_a - expected))
    if delta == 0 and score_a != 0.5:
        delta = MIN_RATING_CHANGE if score_a > 0.5 else -MIN_RATING_CHANGE
    return delta


def _apply(player_id: int, rating: int, delta: int, won: Optional[bool]) -> Dict:
    """Apply a delta with clamping; the stored change is what was actually applied."""
    new_rating = clamp_rating(rating + delta)
    return {
        "player_id": player_id,
        "old_rating": rating,
        "new_rating": new_rating,
        "change": new_rating - rating,
        "won": won,
    }


def compute_result_changes(
    team_a: TeamRatings,
    team_b: TeamRatings,
    score_a: float,
    multiplier: float = 1.0,
    k: float = K,
) -> Dict:
    """
    Compute per-player rating changes for a result expressed as S for team A.

    Both teammates receive the same delta; team B receives the negated delta.
    Clamping at the rating floor/ceiling is the only source of asymmetry.
    """
    if len(team_a) != 2 or len(team_b) != 2:
        raise ValidationError("Each team must have exactly two players")
    for _, rating in list(team_a) + list(team_b):
        validate_rating(rating)

    delta_a = team_delta(team_rating(team_a), team_rating(team_b), score_a, multiplier, k)
    delta_b = -delta_a

    won_a: Optional[bool] = None if score_a == 0.5 else score_a > 0.5
    won_b: Optional[bool] = None if won_a is None else not won_a

    changes: List[Dict] = []
    for player_id, rating in team_a:
        changes.append(_apply(player_id, rating, delta_a, won_a))
    for player_id, rating in team_b:
        changes.append(_apply(player_id, rating, delta_b, won_b))

    return {"team_a_delta": delta_a, "team_b_delta": delta_b, "changes": changes}


def compute_rating_changes(
    team_a: TeamRatings,
    team_b: TeamRatings,
    sets: SetGames,
    multiplier: float = 1.0,
    use_set_modifiers: bool = USE_SET_MODIFIERS,
) -> Dict:
    """
    Compute rating changes for a completed match from its set scores.

    Args:
        team_a: [(player_id, rating), (player_id, rating)] for team 1
        team_b: [(player_id, rating), (player_id, rating)] for team 2
        sets: [(team1_games, team2_games), ...]
        multiplier: Tournament-level scaling, applied identically to both sides
        use_set_modifiers: Fold the set-shape modifier into the multiplier

    Returns:
        Dict with winning_team (1, 2, or None for a draw), team deltas and a
        "changes" list of {player_id, old_rating, new_rating, change, won}
    """
    if not sets:
        raise ValidationError("At least one set is required")

    score_a = actual_score_from_sets(sets)
    if use_set_modifiers:
        multiplier *= set_modifier(sets)

    result = compute_result_changes(team_a, team_b, score_a, multiplier)
    if score_a == 0.5:
        result["winning_team"] = None
    else:
        result["winning_team"] = 1 if score_a == 1.0 else 2
    return result
