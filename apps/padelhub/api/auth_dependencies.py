"""
Actor identity dependencies for FastAPI routes.

Authentication happens upstream; the gateway forwards the authenticated
player's id in the X-Player-Id header.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padelhub.database.db import get_db_session
from padelhub.database.models import Player


async def get_current_player(
    x_player_id: Optional[int] = Header(default=None, alias="X-Player-Id"),
    session: AsyncSession = Depends(get_db_session),
) -> dict:
    """
    Resolve the acting player from the forwarded identity header.

    Returns:
        Dict with the player's id and is_admin flag

    Raises:
        HTTPException: 401 if the header is missing or names an unknown player
    """
    if x_player_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Player-Id header",
        )

    result = await session.execute(
        select(Player.id, Player.is_admin).where(Player.id == x_player_id)
    )
    row = result.first()
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown player",
        )
    return {"id": row.id, "is_admin": bool(row.is_admin)}


async def require_admin(player: dict = Depends(get_current_player)) -> dict:
    """Require a platform admin."""
    if not player.get("is_admin"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return player
