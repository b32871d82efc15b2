"""
SQLAlchemy ORM models for the padel match and tournament system.
"""

from typing import List
import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    JSON,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from padelhub.database.db import Base
from padelhub.utils.constants import INITIAL_RATING


class MatchStatus(str, enum.Enum):
    """Match lifecycle status."""

    RECRUITING = "RECRUITING"
    FULL = "FULL"
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class MatchPlayerRole(str, enum.Enum):
    """Roster role of a player within a match."""

    INVITED = "INVITED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"


class TournamentFormat(str, enum.Enum):
    """Tournament format enum."""

    AMERICANO = "AMERICANO"
    MEXICANO = "MEXICANO"
    ROUND_ROBIN = "ROUND_ROBIN"
    ROUND_ROBIN_PLAYOFF = "ROUND_ROBIN_PLAYOFF"


class TournamentStatus(str, enum.Enum):
    """Tournament status enum."""

    REGISTRATION = "REGISTRATION"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RoundStatus(str, enum.Enum):
    """Status shared by tournament rounds and tournament matches."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class RatingChangeReason(str, enum.Enum):
    """Why a rating history entry was written."""

    MATCH_WIN = "match_win"
    MATCH_LOSS = "match_loss"
    TOURNAMENT = "tournament"


class Player(Base):
    """Player profiles (rating owner)."""

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String, nullable=False)
    rating = Column(Integer, nullable=False, default=INITIAL_RATING)
    matches_played = Column(Integer, nullable=False, default=0)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    win_streak = Column(Integer, nullable=False, default=0)
    max_win_streak = Column(Integer, nullable=False, default=0)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    rating_history = relationship(
        "RatingHistory",
        back_populates="player",
        order_by="RatingHistory.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("rating >= 0 AND rating <= 5000", name="ck_players_rating_range"),
        Index("idx_players_rating", "rating"),
    )


class RatingHistory(Base):
    """Append-only log of every rating change a player received."""

    __tablename__ = "rating_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="SET NULL"), nullable=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="SET NULL"), nullable=True)
    old_rating = Column(Integer, nullable=False)
    new_rating = Column(Integer, nullable=False)
    change = Column(Integer, nullable=False)
    reason = Column(Enum(RatingChangeReason), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    player = relationship("Player", back_populates="rating_history")

    __table_args__ = (
        Index("idx_rating_history_player", "player_id"),
        Index("idx_rating_history_match", "match_id"),
    )


class Match(Base):
    """Ad-hoc four-player match."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    creator_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    duration_min = Column(Integer, nullable=False, default=90)
    venue = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(Enum(MatchStatus), default=MatchStatus.RECRUITING, nullable=False)
    requires_approval = Column(Boolean, default=True, nullable=False)
    winning_team = Column(Integer, nullable=True)  # 1 or 2 once COMPLETED
    completed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    players = relationship(
        "MatchPlayer",
        back_populates="match",
        cascade="all, delete-orphan",
        order_by="MatchPlayer.id",
        lazy="selectin",
    )
    sets = relationship(
        "MatchSet",
        back_populates="match",
        cascade="all, delete-orphan",
        order_by="MatchSet.set_number",
        lazy="selectin",
    )
    submission = relationship(
        "ScoreSubmission",
        back_populates="match",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin",
    )
    creator = relationship("Player", foreign_keys=[creator_id])

    __mapper_args__ = {"version_id_col": version}

    @property
    def approved_players(self) -> List["MatchPlayer"]:
        """Roster entries that count against the four-player capacity."""
        return [p for p in self.players if p.role == MatchPlayerRole.APPROVED]

    @property
    def approved_player_ids(self) -> List[int]:
        return [p.player_id for p in self.approved_players]

    def roster_entry(self, player_id: int):
        """Return the roster row for player_id, or None."""
        for entry in self.players:
            if entry.player_id == player_id:
                return entry
        return None

    __table_args__ = (
        Index("idx_matches_status", "status"),
        Index("idx_matches_scheduled_at", "scheduled_at"),
        Index("idx_matches_creator", "creator_id"),
    )


class MatchPlayer(Base):
    """A player's slot in a match roster."""

    __tablename__ = "match_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    role = Column(Enum(MatchPlayerRole), nullable=False, default=MatchPlayerRole.PENDING)
    team = Column(Integer, nullable=False, default=0)  # 0 = unassigned, 1 or 2
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    match = relationship("Match", back_populates="players")

    __table_args__ = (
        UniqueConstraint("match_id", "player_id", name="uq_match_players_match_player"),
        CheckConstraint("team IN (0, 1, 2)", name="ck_match_players_team"),
        Index("idx_match_players_player", "player_id"),
    )


class MatchSet(Base):
    """Games (and optional tiebreak points) of one set."""

    __tablename__ = "match_sets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    set_number = Column(Integer, nullable=False)
    team1_games = Column(Integer, nullable=False)
    team2_games = Column(Integer, nullable=False)
    team1_tiebreak = Column(Integer, nullable=True)
    team2_tiebreak = Column(Integer, nullable=True)

    match = relationship("Match", back_populates="sets")

    __table_args__ = (
        UniqueConstraint("match_id", "set_number", name="uq_match_sets_match_set"),
    )


class ScoreSubmission(Base):
    """Outstanding score awaiting confirmation by the opposing team."""

    __tablename__ = "score_submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(
        Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    submitter_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    team1_player_ids = Column(JSON, nullable=False)
    team2_player_ids = Column(JSON, nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    confirm_deadline = Column(DateTime(timezone=True), nullable=False)

    match = relationship("Match", back_populates="submission")

    def team_of(self, player_id: int) -> int:
        """Return 1 or 2 for a submitted player, 0 if absent."""
        if player_id in self.team1_player_ids:
            return 1
        if player_id in self.team2_player_ids:
            return 2
        return 0

    __table_args__ = (
        Index("idx_score_submissions_deadline", "confirm_deadline"),
    )


class Tournament(Base):
    """Americano / Mexicano / round-robin tournaments."""

    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    format = Column(Enum(TournamentFormat), nullable=False)
    points_per_match = Column(Integer, nullable=False, default=24)
    max_teams = Column(Integer, nullable=False, default=16)
    status = Column(Enum(TournamentStatus), default=TournamentStatus.REGISTRATION, nullable=False)
    current_round = Column(Integer, nullable=False, default=0)
    rounds_count = Column(Integer, nullable=True)  # Cap on pre-generated rounds
    rating_multiplier = Column(Float, nullable=False, default=1.0)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    registrations = relationship(
        "TournamentRegistration",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="TournamentRegistration.id",
        lazy="selectin",
    )
    rounds = relationship(
        "TournamentRound",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="TournamentRound.round_number",
        lazy="selectin",
    )

    @property
    def player_ids(self) -> List[int]:
        """All registered players in registration order."""
        ids = []
        for reg in self.registrations:
            ids.extend([reg.player1_id, reg.player2_id])
        return ids

    __table_args__ = (
        CheckConstraint("points_per_match > 0", name="ck_tournaments_points_per_match"),
        CheckConstraint("max_teams >= 2", name="ck_tournaments_max_teams"),
        Index("idx_tournaments_status", "status"),
    )


class TournamentRegistration(Base):
    """A registered pair of players."""

    __tablename__ = "tournament_registrations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(
        Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    player1_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    player2_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    tournament = relationship("Tournament", back_populates="registrations")

    @property
    def team(self) -> List[int]:
        return [self.player1_id, self.player2_id]

    __table_args__ = (
        UniqueConstraint("tournament_id", "player1_id", name="uq_registrations_player1"),
        UniqueConstraint("tournament_id", "player2_id", name="uq_registrations_player2"),
        CheckConstraint("player1_id <> player2_id", name="ck_registrations_distinct_players"),
    )


class TournamentRound(Base):
    """One round of a tournament."""

    __tablename__ = "tournament_rounds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(
        Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    round_number = Column(Integer, nullable=False)
    status = Column(Enum(RoundStatus), default=RoundStatus.PENDING, nullable=False)
    is_playoff = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    tournament = relationship("Tournament", back_populates="rounds")
    matches = relationship(
        "TournamentMatch",
        back_populates="round",
        cascade="all, delete-orphan",
        order_by="TournamentMatch.court_number",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("tournament_id", "round_number", name="uq_tournament_rounds_number"),
        CheckConstraint("round_number >= 1", name="ck_tournament_rounds_number"),
    )


class TournamentMatch(Base):
    """A 2v2 match on one court within a round."""

    __tablename__ = "tournament_matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(
        Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    round_id = Column(
        Integer, ForeignKey("tournament_rounds.id", ondelete="CASCADE"), nullable=False
    )
    court_number = Column(Integer, nullable=False)
    team1_player1_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    team1_player2_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    team2_player1_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    team2_player2_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    team1_score = Column(Integer, nullable=True)
    team2_score = Column(Integer, nullable=True)
    status = Column(Enum(RoundStatus), default=RoundStatus.PENDING, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    round = relationship("TournamentRound", back_populates="matches")

    @property
    def team1_ids(self) -> List[int]:
        return [self.team1_player1_id, self.team1_player2_id]

    @property
    def team2_ids(self) -> List[int]:
        return [self.team2_player1_id, self.team2_player2_id]

    __table_args__ = (
        Index("idx_tournament_matches_tournament", "tournament_id"),
        Index("idx_tournament_matches_round", "round_id"),
    )


class TournamentStanding(Base):
    """Cached standings row; recomputed from tournament matches on every score."""

    __tablename__ = "tournament_standings"

    tournament_id = Column(
        Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), primary_key=True
    )
    player_id = Column(Integer, ForeignKey("players.id"), primary_key=True)
    points = Column(Integer, nullable=False, default=0)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    draws = Column(Integer, nullable=False, default=0)
    points_for = Column(Integer, nullable=False, default=0)
    points_against = Column(Integer, nullable=False, default=0)
    position = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_tournament_standings_position", "tournament_id", "position"),
    )


class TournamentRatingChange(Base):
    """Rating movement applied to a player when a tournament completes."""

    __tablename__ = "tournament_rating_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(
        Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    old_rating = Column(Integer, nullable=False)
    new_rating = Column(Integer, nullable=False)
    change = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_tournament_rating_changes"),
    )
