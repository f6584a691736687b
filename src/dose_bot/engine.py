"""Reminder engine: due selection, dose counting, and the texts around them."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dose_bot.reminders import DoseResult, Reminder, Stats, progress_label

if TYPE_CHECKING:
    from dose_bot.repository import Repository

log = logging.getLogger(__name__)


def due_reminders(repo: Repository, hour: int, minute: int) -> dict[int, list[Reminder]]:
    """Reminders of active users that fire at hour:minute, per user, by id.

    Completed courses are dropped even if the store still returns them.
    """
    due: dict[int, list[Reminder]] = {}
    for user_id, reminders in repo.due_reminders(hour, minute).items():
        pending = sorted(
            (
                r
                for r in reminders
                if r.hour == hour and r.minute == minute and not r.is_completed
            ),
            key=lambda r: r.id,
        )
        if pending:
            due[user_id] = pending
    return due


def increment_dose(repo: Repository, user_id: int, reminder_id: int) -> DoseResult:
    """Count one dose. A course that reaches its length is deleted atomically.

    Returns ``NOT_FOUND`` (empty medicine) when the reminder is already gone.
    """
    result = repo.increment_dose(user_id, reminder_id)
    if result.completed:
        log.info(
            "Course %r of user %d completed at %s", result.medicine, user_id, result.progress
        )
    return result


def reminder_text(reminder: Reminder, *, counted: bool) -> str:
    """When the dose is counted on delivery the label shows the dose being sent."""
    count = reminder.doses_taken + 1 if counted else reminder.doses_taken
    return (
        f"⏰ Time to take: 💊 {reminder.medicine}\n"
        f"📊 Dose: {progress_label(count, reminder.course_days)}"
    )


def taken_text(medicine: str, progress: str | None = None) -> str:
    if progress is None:
        return f"✅ Taken: 💊 {medicine}"
    return f"✅ Taken: 💊 {medicine}\n📊 Dose: {progress}"


def completed_text(medicine: str) -> str:
    return f'🎉 Course "{medicine}" is complete! Well done!'


LIST_PAGE_ITEMS = 25
LIST_PAGE_CHARS = 2000


def _list_header(tz_label: str) -> list[str]:
    return [f"📋 Your reminders ({tz_label}):", ""]


def _list_line(r: Reminder) -> str:
    return f"⏰ {r.time_label} — 💊 {r.medicine} — 📊 {r.progress}"


def list_pages(reminders: list[Reminder], tz_label: str) -> list[tuple[list[Reminder], str]]:
    """Split a reminder list into message-sized pages.

    A page holds at most 25 reminders (one delete button each) and its text
    stays within Discord's 2000-character limit.
    """
    pages: list[tuple[list[Reminder], str]] = []
    chunk: list[Reminder] = []
    lines = _list_header(tz_label)
    for r in reminders:
        line = _list_line(r)
        size = len("\n".join(lines)) + 1 + len(line)
        if chunk and (len(chunk) >= LIST_PAGE_ITEMS or size > LIST_PAGE_CHARS):
            pages.append((chunk, "\n".join(lines)))
            chunk, lines = [], _list_header(tz_label)
        chunk.append(r)
        lines.append(line)
    if chunk:
        pages.append((chunk, "\n".join(lines)))
    return pages


def stats_text(stats: Stats) -> str:
    return (
        "📊 Bot statistics:\n\n"
        f"👥 Total users: {stats.total_users}\n"
        f"✅ Active: {stats.active_users}\n\n"
        f"💊 Total reminders: {stats.total_reminders}\n"
        f"   📅 Finite courses: {stats.finite_courses}\n"
        f"   ♾ Unbounded courses: {stats.unbounded_courses}\n\n"
        f"📈 Doses taken: {stats.doses_taken}\n"
        f"📋 Doses planned: {stats.doses_planned}"
    )
