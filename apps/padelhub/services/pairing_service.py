"""
Round pairing algorithms for tournaments.

Americano (and the round-robin formats): fixed pairs, circle-method round robin
across teams, every round generated up front.

Mexicano: partners re-derived each round from the live standings. Players are
taken in standings order in blocks of four and paired #1+#4 vs #2+#3.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from padelhub.services.exceptions import ValidationError

Team = Tuple[int, int]


def _match(court: int, team1: Sequence[int], team2: Sequence[int]) -> Dict:
    return {"court": court, "team1": [team1[0], team1[1]], "team2": [team2[0], team2[1]]}


# ============================================================================
# Round robin (Americano / ROUND_ROBIN / ROUND_ROBIN_PLAYOFF)
# ============================================================================

def round_robin_schedule(teams: Sequence[Team]) -> List[List[Tuple[Team, Team]]]:
    """
    Full single round robin between teams using the circle method.

    The first team stays fixed while the others rotate one position per round.
    With an odd number of teams a phantom slot is added; whoever draws it sits
    the round out. Returns n-1 rounds (n rounded up to even), in which every
    pair of teams meets exactly once.
    """
    slots: List[Optional[Team]] = [tuple(t) for t in teams]
    if len(slots) % 2:
        slots.append(None)
    n = len(slots)

    schedule = []
    for _ in range(n - 1):
        round_matches = []
        for j in range(n // 2):
            home, away = slots[j], slots[n - 1 - j]
            if home is not None and away is not None:
                round_matches.append((home, away))
        schedule.append(round_matches)
        # Rotate: keep slot 0 fixed, move the last slot to position 1
        slots = [slots[0], slots[-1]] + slots[1:-1]
    return schedule


def generate_americano_rounds(
    teams: Sequence[Team], rounds_count: Optional[int] = None
) -> List[List[Dict]]:
    """
    Generate every round for a fixed-partner tournament.

    Args:
        teams: Registered pairs, in registration order
        rounds_count: Optional cap on the number of rounds. When larger than the
            full round-robin length the schedule starts over, so no opponent
            pairing repeats before all others have been played.

    Returns:
        List of rounds, each a list of {court, team1, team2}
    """
    if len(teams) < 2:
        raise ValidationError("At least two teams are required")

    cycle = round_robin_schedule(teams)
    total = len(cycle) if rounds_count is None else rounds_count
    if total < 1:
        raise ValidationError("rounds_count must be at least 1")

    rounds = []
    for idx in range(total):
        fixtures = cycle[idx % len(cycle)]
        rounds.append(
            [_match(court, home, away) for court, (home, away) in enumerate(fixtures, start=1)]
        )
    return rounds


# ============================================================================
# Mexicano
# ============================================================================

def select_byes(
    ordered_player_ids: Sequence[int], bye_counts: Dict[int, int]
) -> List[int]:
    """
    Choose who sits out when the player count is not a multiple of four.

    Players with the fewest byes so far sit out first; among equals the
    lowest-ranked player sits out.
    """
    bye_slots = len(ordered_player_ids) % 4
    if bye_slots == 0:
        return []
    rank = {player_id: idx for idx, player_id in enumerate(ordered_player_ids)}
    candidates = sorted(
        ordered_player_ids,
        key=lambda p: (bye_counts.get(p, 0), -rank[p]),
    )
    return candidates[:bye_slots]


def generate_mexicano_round(
    ordered_player_ids: Sequence[int], bye_counts: Optional[Dict[int, int]] = None
) -> Dict:
    """
    Generate one Mexicano round.

    Args:
        ordered_player_ids: Player ids in current standings order (rank 1 first).
            The caller must pass standings that include the latest round.
        bye_counts: player_id -> number of rounds already sat out

    Returns:
        {"matches": [{court, team1, team2}], "byes": [player_id, ...]}
    """
    if len(ordered_player_ids) < 4:
        raise ValidationError("At least four players are required")
    if len(set(ordered_player_ids)) != len(ordered_player_ids):
        raise ValidationError("Players may appear only once in the standings")

    byes = select_byes(ordered_player_ids, bye_counts or {})
    active = [p for p in ordered_player_ids if p not in byes]

    matches = []
    for court, offset in enumerate(range(0, len(active), 4), start=1):
        first, second, third, fourth = active[offset:offset + 4]
        matches.append(_match(court, (first, fourth), (second, third)))
    return {"matches": matches, "byes": byes}


# ============================================================================
# Playoff placement round (ROUND_ROBIN_PLAYOFF)
# ============================================================================

def generate_placement_round(ranked_teams: Sequence[Sequence[int]]) -> List[Dict]:
    """
    Pair teams by final round-robin rank: 1v2 on court 1, 3v4 on court 2, ...

    An odd team out finishes in its round-robin position without playing.
    """
    if len(ranked_teams) < 2:
        raise ValidationError("At least two teams are required for a playoff round")
    matches = []
    for court, offset in enumerate(range(0, len(ranked_teams) - 1, 2), start=1):
        matches.append(_match(court, ranked_teams[offset], ranked_teams[offset + 1]))
    return matches
