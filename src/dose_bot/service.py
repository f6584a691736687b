"""Inbound handling: commands, free text, and button presses.

``DoseService`` is transport-agnostic. The Discord layer turns slash commands,
DMs and button interactions into ``handle_command`` / ``handle_text`` /
``handle_action`` calls; everything outbound goes through the ``Notifier``.

Events for one user are handled one at a time, in arrival order (per-user
``asyncio.Lock``). Different users interleave freely.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from dose_bot import engine, repository
from dose_bot.controls import Keyboard, main_keyboard, reminder_list_keyboard
from dose_bot.dialog import (
    Cancelled,
    CoursePicked,
    CustomCourseRequested,
    Delete,
    DialogStore,
    Edit,
    Event,
    HourPicked,
    Prompt,
    ReminderDraft,
    Reply,
    Save,
    StartDialog,
    TextEntered,
    TimePicked,
    Transition,
)
from dose_bot.reminders import course_label
from dose_bot.storage import StorageError
from dose_bot.web import companion_link

if TYPE_CHECKING:
    from dose_bot.notifier import Notifier
    from dose_bot.repository import Repository

log = logging.getLogger(__name__)

START_TEXT = (
    "Hi! I'll help you remember to take your medication.\n\n"
    "Use the buttons below or these commands:\n"
    "/add — add a reminder\n"
    "/list — your reminders\n"
    "/stop — pause reminders"
)
HELP_TEXT = (
    "Commands:\n"
    "/start — turn reminders on\n"
    "/add — add a reminder\n"
    "/list — your reminders\n"
    "/stop — pause reminders (your list is kept)\n"
    "/help — this message"
)
STOPPED_TEXT = "⏸ Reminders paused.\n\nYour reminders are kept. Press Resume or send /start to turn them back on."
EMPTY_LIST_TEXT = "You have no reminders yet.\n\nUse /add to add one."
DELETED_TEXT = "🗑 Reminder deleted."
ALREADY_GONE_TEXT = "That reminder no longer exists."
MARKED_TAKEN_TEXT = "✅ Marked as taken."
DENIED_TEXT = "⛔ This command is only available to the admin."
TRY_AGAIN_TEXT = "Something went wrong. Please try again."
SAVE_FAILED_TEXT = "Couldn't save the reminder. Try again: /add"
DEFAULT_NOTIFY_TEXT = "Important notice from the bot!"


def saved_text(draft: ReminderDraft) -> str:
    return (
        "✅ Reminder added!\n\n"
        f"💊 {draft.medicine}\n"
        f"⏰ {draft.hour:02d}:{draft.minute:02d}\n"
        f"📅 Course: {course_label(draft.course_days)}\n\n"
        "Use /list to see all your reminders."
    )


def _int(data: str, default: int = -1) -> int:
    try:
        return int(data)
    except ValueError:
        return default


def _parse_time(data: str) -> tuple[int, int]:
    hour, _, minute = data.partition(":")
    return _int(hour), _int(minute)


def dialog_event(action: str, data: str, message_id: int) -> Event | None:
    """Map a dialog button press to its event. Unparsable values become -1."""
    if action == "cancel":
        return Cancelled(message_id)
    if action == "hour":
        return HourPicked(_int(data), message_id)
    if action == "time":
        hour, minute = _parse_time(data)
        return TimePicked(hour, minute, message_id)
    if action == "course":
        if data == "custom":
            return CustomCourseRequested(message_id)
        return CoursePicked(_int(data), message_id)
    return None


def parse_command(text: str) -> tuple[str, str] | None:
    """``"/notify hello all"`` -> ``("notify", "hello all")``; None for plain text."""
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    head, _, args = stripped[1:].partition(" ")
    name = head.split("@", 1)[0].lower()
    return name, args.strip()


class DoseService:
    def __init__(
        self,
        repo: Repository,
        notifier: Notifier,
        *,
        admin_id: int | None = None,
        tz_label: str = "UTC",
        count_on_delivery: bool = True,
        send_timeout: float = 10.0,
        storage_timeout: float = 5.0,
        webapp_url: str | None = None,
        web_secret: str | None = None,
    ) -> None:
        self.repo = repo
        self.notifier = notifier
        self.admin_id = admin_id
        self.tz_label = tz_label
        self.count_on_delivery = count_on_delivery
        self.dialogs = DialogStore(tz_label=tz_label)
        self._send_timeout = send_timeout
        self._storage_timeout = storage_timeout
        self._webapp_url = webapp_url
        self._web_secret = web_secret
        self._locks: dict[int, asyncio.Lock] = {}
        self._commands: dict[str, Callable[[int, str], Awaitable[None]]] = {
            "start": self._cmd_start,
            "add": self._cmd_add,
            "list": self._cmd_list,
            "stop": self._cmd_stop,
            "stats": self._cmd_stats,
            "notify": self._cmd_notify,
            "help": self._cmd_help,
        }
        self._actions: dict[str, Callable[[int, int, str], Awaitable[None]]] = {
            "del": self._act_delete,
            "taken": self._act_taken,
        }

    def is_admin(self, user_id: int) -> bool:
        """No admin configured means nobody is one."""
        return self.admin_id is not None and user_id == self.admin_id

    def _user_lock(self, user_id: int) -> asyncio.Lock:
        return self._locks.setdefault(user_id, asyncio.Lock())

    # --- collaborator calls (bounded, failures logged) ---

    async def _storage(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await repository.call(self._storage_timeout, fn, *args)

    async def send(self, user_id: int, text: str, keyboard: Keyboard | None = None) -> int | None:
        """Returns the message id, or None when delivery failed."""
        try:
            return await asyncio.wait_for(
                self.notifier.send_text(user_id, text, keyboard), self._send_timeout
            )
        except Exception:
            log.warning("Failed to send message to %d", user_id, exc_info=True)
            return None

    async def _edit(
        self, user_id: int, message_id: int, text: str, keyboard: Keyboard | None = None
    ) -> None:
        try:
            await asyncio.wait_for(
                self.notifier.edit_text(user_id, message_id, text, keyboard),
                self._send_timeout,
            )
        except Exception:
            log.warning("Failed to edit message %d for %d", message_id, user_id, exc_info=True)

    async def _delete(self, user_id: int, message_id: int) -> None:
        try:
            await asyncio.wait_for(
                self.notifier.delete_message(user_id, message_id), self._send_timeout
            )
        except Exception:
            log.warning("Failed to delete message %d for %d", message_id, user_id, exc_info=True)

    # --- entry points ---

    async def handle_command(self, user_id: int, name: str, args: str = "") -> None:
        """Commands always win: any in-flight dialog is dropped first."""
        async with self._user_lock(user_id):
            if self.dialogs.clear(user_id) is not None:
                log.debug("Dialog of %d dropped by /%s", user_id, name)
            handler = self._commands.get(name)
            if handler is None:
                await self.send(user_id, f"Unknown command /{name}.\n\n{HELP_TEXT}")
                return
            try:
                await handler(user_id, args)
            except StorageError:
                log.exception("/%s failed for user %d", name, user_id)
                await self.send(user_id, TRY_AGAIN_TEXT)

    async def handle_text(self, user_id: int, text: str) -> None:
        log.debug("[MSG] user=%d text=%r", user_id, text)
        command = parse_command(text)
        if command is not None:
            await self.handle_command(user_id, *command)
            return
        await self._apply(user_id, TextEntered(text))

    async def handle_action(self, user_id: int, message_id: int, action: str, data: str) -> None:
        log.debug("[ACTION] user=%d action=%s data=%s", user_id, action, data)
        if action == "menu":
            await self.handle_command(user_id, data)
            return
        event = dialog_event(action, data, message_id)
        if event is not None:
            await self._apply(user_id, event)
            return
        handler = self._actions.get(action)
        if handler is None:
            log.warning("Unknown action %r from user %d", action, user_id)
            return
        await handler(user_id, message_id, data)

    # --- dialog plumbing ---

    async def _apply(self, user_id: int, event: Event) -> None:
        async with self._user_lock(user_id):
            await self._run(user_id, self.dialogs.apply(user_id, event))

    async def _run(self, user_id: int, result: Transition) -> None:
        for effect in result.effects:
            if isinstance(effect, Reply):
                await self.send(user_id, effect.text, effect.keyboard)
            elif isinstance(effect, Prompt):
                message_id = await self.send(user_id, effect.text, effect.keyboard)
                if message_id is not None:
                    self.dialogs.attach_message(user_id, message_id, result.state)
            elif isinstance(effect, Edit):
                await self._edit(user_id, effect.message_id, effect.text, effect.keyboard)
            elif isinstance(effect, Delete):
                await self._delete(user_id, effect.message_id)
            elif isinstance(effect, Save):
                await self._save(user_id, effect.draft)

    async def _save(self, user_id: int, draft: ReminderDraft) -> None:
        try:
            reminder_id = await self._storage(
                self.repo.add_reminder,
                user_id,
                draft.medicine,
                draft.hour,
                draft.minute,
                draft.course_days,
            )
            await self._storage(self.repo.set_active, user_id, True)
        except (StorageError, ValueError):
            log.exception("Failed to save reminder for user %d", user_id)
            await self.send(user_id, SAVE_FAILED_TEXT)
            return
        log.info(
            "User %d added reminder %d: %r at %02d:%02d, course %d",
            user_id,
            reminder_id,
            draft.medicine,
            draft.hour,
            draft.minute,
            draft.course_days,
        )
        await self.send(user_id, saved_text(draft))

    # --- commands (caller holds the user lock) ---

    async def _cmd_start(self, user_id: int, args: str) -> None:
        await self._storage(self.repo.get_or_create_user, user_id)
        await self._storage(self.repo.set_active, user_id, True)
        text = START_TEXT
        if self._webapp_url and self._web_secret:
            link = companion_link(self._webapp_url, self._web_secret, user_id)
            text += f"\n\n📊 History: {link}"
        await self.send(user_id, text, main_keyboard(True))

    async def _cmd_add(self, user_id: int, args: str) -> None:
        await self._storage(self.repo.get_or_create_user, user_id)
        await self._run(user_id, self.dialogs.apply(user_id, StartDialog()))

    async def _cmd_list(self, user_id: int, args: str) -> None:
        reminders = await self._storage(self.repo.list_reminders, user_id)
        if not reminders:
            await self.send(user_id, EMPTY_LIST_TEXT)
            return
        for page, text in engine.list_pages(reminders, self.tz_label):
            await self.send(user_id, text, reminder_list_keyboard(page))

    async def _cmd_stop(self, user_id: int, args: str) -> None:
        await self._storage(self.repo.set_active, user_id, False)
        await self.send(user_id, STOPPED_TEXT, main_keyboard(False))

    async def _cmd_stats(self, user_id: int, args: str) -> None:
        if not self.is_admin(user_id):
            await self.send(user_id, DENIED_TEXT)
            return
        stats = await self._storage(self.repo.stats)
        await self.send(user_id, engine.stats_text(stats))

    async def _cmd_notify(self, user_id: int, args: str) -> None:
        if not self.is_admin(user_id):
            await self.send(user_id, DENIED_TEXT)
            return
        text = args or DEFAULT_NOTIFY_TEXT
        user_ids = await self._storage(self.repo.list_user_ids)
        sent = 0
        for target in user_ids:
            if await self.send(target, text) is not None:
                sent += 1
        log.info("Broadcast delivered to %d of %d users", sent, len(user_ids))
        await self.send(user_id, f"Notification sent to {sent} of {len(user_ids)} users.")

    async def _cmd_help(self, user_id: int, args: str) -> None:
        await self.send(user_id, HELP_TEXT)

    # --- button actions ---

    async def _act_delete(self, user_id: int, message_id: int, data: str) -> None:
        async with self._user_lock(user_id):
            try:
                removed = await self._storage(self.repo.delete_reminder, user_id, _int(data))
            except StorageError:
                log.exception("Failed to delete reminder %s of user %d", data, user_id)
                await self.send(user_id, TRY_AGAIN_TEXT)
                return
            await self._delete(user_id, message_id)
            await self.send(user_id, DELETED_TEXT if removed else ALREADY_GONE_TEXT)

    async def _act_taken(self, user_id: int, message_id: int, data: str) -> None:
        reminder_id = _int(data)
        async with self._user_lock(user_id):
            try:
                if self.count_on_delivery:
                    await self._confirm_taken(user_id, message_id, reminder_id)
                else:
                    await self._count_taken(user_id, message_id, reminder_id)
            except StorageError:
                log.exception("Failed to record dose %s of user %d", data, user_id)
                await self.send(user_id, TRY_AGAIN_TEXT)

    async def _confirm_taken(self, user_id: int, message_id: int, reminder_id: int) -> None:
        """The dose was counted when it was delivered; just acknowledge."""
        reminder = await self._storage(self.repo.get_reminder, user_id, reminder_id)
        if reminder is None:
            await self._edit(user_id, message_id, MARKED_TAKEN_TEXT)
            return
        await self._edit(user_id, message_id, engine.taken_text(reminder.medicine, reminder.progress))

    async def _count_taken(self, user_id: int, message_id: int, reminder_id: int) -> None:
        result = await self._storage(engine.increment_dose, self.repo, user_id, reminder_id)
        if not result.found:
            await self._delete(user_id, message_id)
            return
        await self._edit(user_id, message_id, engine.taken_text(result.medicine, result.progress))
        if result.completed:
            await self.send(user_id, engine.completed_text(result.medicine))
