"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

Creates every table from the current models:
- Players and rating_history
- Matches: matches, match_players, match_sets, score_submissions
- Tournaments: tournaments, tournament_registrations, tournament_rounds,
  tournament_matches, tournament_standings, tournament_rating_changes
- All enum types and indexes
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from scratch."""
    from padelhub.database.db import Base
    from padelhub.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)


def downgrade() -> None:
    """Drop all tables."""
    from padelhub.database.db import Base
    from padelhub.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)
