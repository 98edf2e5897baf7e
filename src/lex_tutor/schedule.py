"""Study schedule with preview-then-apply revisions.

Revisions never edit the accepted schedule in place. A revision returned by
the gateway is held as a pending candidate; ``apply()`` swaps it in whole and
``discard()`` drops it.
"""
from datetime import datetime
from typing import Optional

from loguru import logger

from lex_tutor.errors import GenerationFailed, SessionBusy
from lex_tutor.models import UserStats
from lex_tutor.schemas import OptimizedSchedule, parse_schedule


class ScheduleMerger:
    def __init__(self, gateway, accepted: Optional[OptimizedSchedule] = None):
        self.gateway = gateway
        self.accepted = accepted
        self.pending: Optional[OptimizedSchedule] = None
        self.busy = False

    @property
    def latest(self) -> Optional[OptimizedSchedule]:
        """The schedule the next revision request builds on."""
        return self.pending or self.accepted

    async def _call(self, what: str, coro_factory) -> OptimizedSchedule:
        if self.busy:
            raise SessionBusy()
        self.busy = True
        try:
            payload = await coro_factory()
        except GenerationFailed:
            raise
        except Exception as e:
            logger.exception(f"Gateway error during {what}")
            raise GenerationFailed(f"Failed to {what}. Details: {e}") from e
        finally:
            self.busy = False
        return parse_schedule(payload)

    async def propose(
        self,
        remaining_topics: list[str],
        stats: Optional[UserStats],
        start: datetime,
        end: datetime,
    ) -> OptimizedSchedule:
        """Build a fresh plan; it becomes the accepted schedule immediately."""
        if end <= start:
            raise ValueError("The schedule must end after it starts")
        schedule = await self._call(
            "generate schedule",
            lambda: self.gateway.propose_schedule(remaining_topics, stats, start, end),
        )
        self.accepted = schedule
        self.pending = None
        logger.info(f"Accepted new schedule with {len(schedule.items)} blocks")
        return schedule

    async def request_revision(self, request: str) -> OptimizedSchedule:
        current = self.latest
        if current is None:
            raise GenerationFailed("There is no schedule to customize yet.")
        if not request.strip():
            raise ValueError("Describe the change you want")
        candidate = await self._call(
            "customize schedule",
            lambda: self.gateway.revise_schedule(current, request),
        )
        self.pending = candidate
        return candidate

    def apply(self) -> Optional[OptimizedSchedule]:
        if self.pending is not None:
            self.accepted = self.pending
            self.pending = None
            logger.info("Applied schedule revision")
        return self.accepted

    def discard(self) -> None:
        self.pending = None
