"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from padelhub.services.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PadelHubError,
    StateError,
    ValidationError,
)

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Domain error -> HTTP status
# ---------------------------------------------------------------------------
ERROR_STATUS_CODES = (
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StateError, 409),
)


def http_error(error: PadelHubError) -> HTTPException:
    """Translate a domain error into an HTTPException by its type."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from padelhub.api.routes.matches import router as matches_router  # noqa: E402
from padelhub.api.routes.tournaments import router as tournaments_router  # noqa: E402

router = APIRouter()
router.include_router(matches_router)
router.include_router(tournaments_router)
