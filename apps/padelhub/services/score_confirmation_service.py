"""
Score confirmation sweep: auto-confirms submissions nobody confirmed in time.

Background worker that polls every CONFIRMATION_SWEEP_INTERVAL_SECONDS. Each
submission past its confirmation deadline goes through the normal
force_confirm path, so ratings are applied exactly as a manual confirmation
would apply them. run_once() is exposed for an external cron.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select

from padelhub.database import db
from padelhub.database.models import Match, MatchStatus, ScoreSubmission
from padelhub.services import match_service
from padelhub.utils.constants import CONFIRMATION_SWEEP_INTERVAL_SECONDS
from padelhub.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


class ScoreConfirmationSweeper:
    """Background service that force-confirms overdue score submissions."""

    def __init__(self, session_factory=None, poll_interval: int = CONFIRMATION_SWEEP_INTERVAL_SECONDS):
        self._session_factory = session_factory
        self.poll_interval = poll_interval
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def start(self) -> None:
        """Start the background sweep worker."""
        if self._worker_task is None or self._worker_task.done():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info("Score confirmation sweeper started")

    def stop(self) -> None:
        """Stop the background sweep worker."""
        self._stop_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            logger.info("Score confirmation sweeper stopped")

    async def _poll_loop(self) -> None:
        """Main loop: sweep, then sleep. Repeats until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in score confirmation sweeper: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
                break
            except asyncio.TimeoutError:
                pass

    async def run_once(self, now: Optional[datetime] = None) -> List[int]:
        """
        Force-confirm every submission whose deadline has passed.

        Args:
            now: Clock override

        Returns:
            IDs of the matches that were completed by this sweep
        """
        now = now or utcnow()
        session_factory = self._session_factory or db.AsyncSessionLocal
        confirmed = []

        async with session_factory() as session:
            result = await session.execute(
                select(ScoreSubmission.match_id)
                .join(Match, Match.id == ScoreSubmission.match_id)
                .where(
                    ScoreSubmission.confirm_deadline <= now,
                    Match.status == MatchStatus.PENDING_CONFIRMATION,
                )
                .order_by(ScoreSubmission.confirm_deadline)
            )
            overdue = list(result.scalars().all())
            if not overdue:
                return confirmed

            logger.info(f"Found {len(overdue)} overdue score submission(s)")

            for match_id in overdue:
                try:
                    await match_service.force_confirm(session, match_id, now=now)
                    confirmed.append(match_id)
                except Exception as e:
                    logger.error(f"Error auto-confirming match {match_id}: {e}", exc_info=True)
                    await session.rollback()

        return confirmed


# Global singleton
_sweeper = ScoreConfirmationSweeper()


def get_score_confirmation_sweeper() -> ScoreConfirmationSweeper:
    """Get the global score confirmation sweeper instance."""
    return _sweeper
