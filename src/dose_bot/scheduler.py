"""Quarter-hour reminder delivery via APScheduler.

A single interval job polls the clock every few seconds. Whenever local time
sits on a quarter-hour boundary (:00, :15, :30, :45) that has not been handled
yet, every due reminder of every active user is sent, and each successful
delivery counts one dose. A slot that yielded nothing is not marked, so a
reminder added during the slot minute is still picked up by the next poll.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from dose_bot import engine, repository
from dose_bot.reminders import QUARTERS
from dose_bot.storage import StorageError

if TYPE_CHECKING:
    from dose_bot.notifier import Notifier
    from dose_bot.reminders import Reminder
    from dose_bot.repository import Repository

log = logging.getLogger(__name__)

# A slot fires only during its own minute, so polls must be under a minute apart.
MAX_POLL_SECONDS = 59


class DosePoller:
    def __init__(
        self,
        repo: Repository,
        notifier: Notifier,
        *,
        tz: ZoneInfo,
        send_timeout: float = 10.0,
        storage_timeout: float = 5.0,
        count_on_delivery: bool = True,
    ) -> None:
        self.repo = repo
        self.notifier = notifier
        self.tz = tz
        self.count_on_delivery = count_on_delivery
        self.last_fired: str | None = None
        self._send_timeout = send_timeout
        self._storage_timeout = storage_timeout

    async def tick(self, now: datetime | None = None) -> int:
        """Handle one poll. Returns the number of reminders delivered."""
        now = now or datetime.now(self.tz)
        if now.minute not in QUARTERS:
            self.last_fired = None
            return 0
        slot = f"{now.hour:02d}:{now.minute:02d}"
        if slot == self.last_fired:
            return 0

        try:
            due = await repository.call(
                self._storage_timeout, engine.due_reminders, self.repo, now.hour, now.minute
            )
        except StorageError:
            log.exception("Could not load reminders due at %s", slot)
            return 0
        if not due:
            return 0

        self.last_fired = slot
        log.info("Sending reminders at %s to %d users", slot, len(due))
        delivered = 0
        for user_id, reminders in due.items():
            for reminder in reminders:
                if await self._deliver(user_id, reminder):
                    delivered += 1
        return delivered

    async def _deliver(self, user_id: int, reminder: Reminder) -> bool:
        text = engine.reminder_text(reminder, counted=self.count_on_delivery)
        try:
            await asyncio.wait_for(
                self.notifier.send_reminder(user_id, text, reminder.id),
                self._send_timeout,
            )
        except Exception:
            log.warning(
                "Reminder %d for user %d not delivered", reminder.id, user_id, exc_info=True
            )
            return False

        if not self.count_on_delivery:
            return True
        try:
            result = await repository.call(
                self._storage_timeout, engine.increment_dose, self.repo, user_id, reminder.id
            )
        except StorageError:
            log.exception("Dose of reminder %d for user %d not counted", reminder.id, user_id)
            return True
        if result.completed:
            await self._congratulate(user_id, result.medicine)
        return True

    async def _congratulate(self, user_id: int, medicine: str) -> None:
        try:
            await asyncio.wait_for(
                self.notifier.send_text(user_id, engine.completed_text(medicine)),
                self._send_timeout,
            )
        except Exception:
            log.warning("Completion notice for user %d not delivered", user_id, exc_info=True)


def setup_scheduler(poller: DosePoller, interval_seconds: int = 15) -> AsyncIOScheduler:
    """One polling job; a poll interval of a minute or more can step over a slot minute."""
    if not 0 < interval_seconds <= MAX_POLL_SECONDS:
        raise ValueError(f"poll interval must be 1..{MAX_POLL_SECONDS} seconds")
    scheduler = AsyncIOScheduler(timezone=str(poller.tz))

    @scheduler.scheduled_job(
        IntervalTrigger(seconds=interval_seconds),
        id="dose_poll",
        max_instances=1,
        coalesce=True,
    )
    async def poll() -> None:
        await poller.tick()

    return scheduler
