"""
Constants used across the rating, match and tournament engines.
"""

import os

# Rating engine
K = 32  # K-factor for match ratings
INITIAL_RATING = 1500
MIN_RATING = 0
MAX_RATING = 5000
MIN_RATING_CHANGE = 1  # A decided match always moves ratings by at least this much
USE_SET_MODIFIERS = os.getenv("USE_SET_MODIFIERS", "false").lower() == "true"
BLOWOUT_MULTIPLIER = 1.1  # Any set won 6-0 or 6-1
TIGHT_MULTIPLIER = 0.9  # Any set decided 7-6
THREE_SET_MULTIPLIER = 0.95  # Match went to three or more sets
ALLOW_DRAWS = False  # Submitted matches must have a winner

# Match lifecycle
MATCH_CAPACITY = 4
PLAYERS_PER_TEAM = 2
MAX_SETS_PER_MATCH = 10

# Score confirmation
CONFIRMATION_WINDOW_DAYS = int(os.getenv("CONFIRMATION_WINDOW_DAYS", "7"))
CONFIRMATION_SWEEP_INTERVAL_SECONDS = int(os.getenv("CONFIRMATION_SWEEP_INTERVAL_SECONDS", "900"))

# Tournaments
DEFAULT_POINTS_PER_MATCH = 24
DEFAULT_MAX_TEAMS = 16
MIN_TOURNAMENT_TEAMS = 2
