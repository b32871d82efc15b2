"""
Typed errors raised by the match, rating and tournament services.

All of them subclass ValueError so callers that only care about "bad request"
can keep catching ValueError; the API layer maps each subclass to its own
HTTP status without inspecting the message.
"""


class PadelHubError(ValueError):
    """Base class for domain errors."""


class ValidationError(PadelHubError):
    """Malformed input (bad team split, score sum mismatch, past-dated match)."""


class ConflictError(PadelHubError):
    """Invariant violated under concurrent access (match full, duplicate registration)."""


class StateError(PadelHubError):
    """Operation not valid for the entity's current status."""


class AuthorizationError(PadelHubError):
    """Actor lacks the role the operation requires."""


class NotFoundError(PadelHubError):
    """Referenced match, tournament, player or registration does not exist."""
