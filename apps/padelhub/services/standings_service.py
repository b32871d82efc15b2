"""
Standings aggregation for tournaments.

Pure computation over completed tournament matches: nothing here is a source
of truth, every table is rebuilt from the match rows on each call.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from padelhub.database.models import RoundStatus


# ============================================================================
# PlayerStanding Class
# ============================================================================

class PlayerStanding:
    """Accumulated tournament record for a single player."""

    def __init__(self, player_id: int, rating: int = 0):
        self.player_id = player_id
        self.rating = rating
        self.points = 0
        self.wins = 0
        self.losses = 0
        self.draws = 0
        self.points_for = 0
        self.points_against = 0
        self.matches_played = 0
        self.position = 0

    @property
    def point_diff(self) -> int:
        return self.points_for - self.points_against

    def sort_key(self):
        """Points desc, point differential desc, rating desc, player id asc."""
        return (-self.points, -self.point_diff, -self.rating, self.player_id)

    def record(self, scored: int, conceded: int) -> None:
        """Record one completed match from this player's side."""
        self.matches_played += 1
        self.points += scored
        self.points_for += scored
        self.points_against += conceded
        if scored > conceded:
            self.wins += 1
        elif scored < conceded:
            self.losses += 1
        else:
            self.draws += 1

    def to_dict(self) -> Dict:
        return {
            "player_id": self.player_id,
            "rating": self.rating,
            "points": self.points,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "points_for": self.points_for,
            "points_against": self.points_against,
            "point_diff": self.point_diff,
            "matches_played": self.matches_played,
            "position": self.position,
        }


# ============================================================================
# StandingsTracker Class
# ============================================================================

class StandingsTracker:
    """Tracks standings for every player of one tournament."""

    def __init__(self, ratings: Optional[Dict[int, int]] = None):
        self.players: Dict[int, PlayerStanding] = {}
        for player_id, rating in (ratings or {}).items():
            self.players[player_id] = PlayerStanding(player_id, rating)

    def get_player(self, player_id: int) -> PlayerStanding:
        """Get or create a player's standing."""
        if player_id not in self.players:
            self.players[player_id] = PlayerStanding(player_id)
        return self.players[player_id]

    def process_match(
        self,
        team1_ids: Sequence[int],
        team2_ids: Sequence[int],
        team1_score: int,
        team2_score: int,
    ) -> None:
        for player_id in team1_ids:
            self.get_player(player_id).record(team1_score, team2_score)
        for player_id in team2_ids:
            self.get_player(player_id).record(team2_score, team1_score)

    def ranked(self) -> List[PlayerStanding]:
        """Return standings sorted into a total order with positions assigned."""
        ordered = sorted(self.players.values(), key=PlayerStanding.sort_key)
        for idx, standing in enumerate(ordered, start=1):
            standing.position = idx
        return ordered


def is_scored(match) -> bool:
    """A tournament match counts once it is COMPLETED with both scores entered."""
    return (
        match.status == RoundStatus.COMPLETED
        and match.team1_score is not None
        and match.team2_score is not None
    )


def compute_standings(ratings: Dict[int, int], matches: Iterable) -> List[Dict]:
    """
    Build the ranked standings table.

    Args:
        ratings: player_id -> current rating for every tournament player
            (players without completed matches still appear, with zeros)
        matches: TournamentMatch rows (anything exposing team1_ids, team2_ids,
            team1_score, team2_score and status)

    Returns:
        List of standing dicts ordered by position (1-indexed)
    """
    tracker = StandingsTracker(ratings)
    for match in matches:
        if not is_scored(match):
            continue
        tracker.process_match(match.team1_ids, match.team2_ids, match.team1_score, match.team2_score)
    return [standing.to_dict() for standing in tracker.ranked()]


def compute_team_standings(
    teams: Sequence[Sequence[int]],
    ratings: Dict[int, int],
    matches: Iterable,
) -> List[Dict]:
    """
    Rank fixed pairs by their combined results.

    Only matches where the pair played together count. Sort: points desc,
    point differential desc, average rating desc, lowest player id asc.
    """
    table = {}
    for team in teams:
        key = frozenset(team)
        table[key] = {
            "team": list(team),
            "points": 0,
            "wins": 0,
            "losses": 0,
            "points_for": 0,
            "points_against": 0,
            "rating": sum(ratings.get(p, 0) for p in team) / len(team),
        }

    for match in matches:
        if not is_scored(match):
            continue
        sides = (
            (frozenset(match.team1_ids), match.team1_score, match.team2_score),
            (frozenset(match.team2_ids), match.team2_score, match.team1_score),
        )
        for key, scored, conceded in sides:
            row = table.get(key)
            if row is None:
                continue
            row["points"] += scored
            row["points_for"] += scored
            row["points_against"] += conceded
            if scored > conceded:
                row["wins"] += 1
            elif scored < conceded:
                row["losses"] += 1

    ordered = sorted(
        table.values(),
        key=lambda r: (
            -r["points"],
            -(r["points_for"] - r["points_against"]),
            -r["rating"],
            min(r["team"]),
        ),
    )
    for idx, row in enumerate(ordered, start=1):
        row["position"] = idx
    return ordered
