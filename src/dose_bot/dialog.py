"""Reminder-creation dialog: explicit states, a pure transition function, and
the per-user store of in-flight dialogs.

The flow is strictly linear::

    none -> waiting_medicine -> waiting_hour -> waiting_minute -> waiting_course
         [-> waiting_custom_course] -> none

``transition`` never talks to the chat platform or the repository. It returns
the next ``PendingDialog`` (``None`` for the rest state) plus a tuple of
effects for the caller to execute. Nothing is persisted until the final step
emits ``Save``, so losing a dialog only means the user has to start over.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

from dose_bot.controls import (
    COURSE_PRESETS,
    Keyboard,
    cancel_keyboard,
    course_keyboard,
    hour_keyboard,
    minute_keyboard,
)
from dose_bot.reminders import MAX_COURSE_DAYS, MAX_MEDICINE_LEN, QUARTERS

log = logging.getLogger(__name__)


class DialogState(Enum):
    NONE = "none"
    WAITING_MEDICINE = "waiting_medicine"
    WAITING_HOUR = "waiting_hour"
    WAITING_MINUTE = "waiting_minute"
    WAITING_COURSE = "waiting_course"
    WAITING_CUSTOM_COURSE = "waiting_custom_course"


@dataclass(frozen=True, slots=True)
class PendingDialog:
    state: DialogState = DialogState.WAITING_MEDICINE
    medicine: str = ""
    hour: int = 0
    minute: int = 0
    message_id: int | None = None  # prompt being edited in place


@dataclass(frozen=True, slots=True)
class ReminderDraft:
    medicine: str
    hour: int
    minute: int
    course_days: int


# --- events ---


@dataclass(frozen=True, slots=True)
class StartDialog:
    pass


@dataclass(frozen=True, slots=True)
class TextEntered:
    text: str


@dataclass(frozen=True, slots=True)
class HourPicked:
    hour: int
    message_id: int


@dataclass(frozen=True, slots=True)
class TimePicked:
    hour: int
    minute: int
    message_id: int


@dataclass(frozen=True, slots=True)
class CoursePicked:
    days: int
    message_id: int


@dataclass(frozen=True, slots=True)
class CustomCourseRequested:
    message_id: int


@dataclass(frozen=True, slots=True)
class Cancelled:
    message_id: int


Event = (
    StartDialog
    | TextEntered
    | HourPicked
    | TimePicked
    | CoursePicked
    | CustomCourseRequested
    | Cancelled
)


# --- effects ---


@dataclass(frozen=True, slots=True)
class Reply:
    text: str
    keyboard: Keyboard | None = None


@dataclass(frozen=True, slots=True)
class Prompt:
    """Send a new message and make it the dialog's in-place message."""

    text: str
    keyboard: Keyboard


@dataclass(frozen=True, slots=True)
class Edit:
    message_id: int
    text: str
    keyboard: Keyboard | None = None


@dataclass(frozen=True, slots=True)
class Delete:
    message_id: int


@dataclass(frozen=True, slots=True)
class Save:
    draft: ReminderDraft


Effect = Reply | Prompt | Edit | Delete | Save


@dataclass(frozen=True, slots=True)
class Transition:
    pending: PendingDialog | None
    effects: tuple[Effect, ...] = ()

    @property
    def state(self) -> DialogState:
        return self.pending.state if self.pending else DialogState.NONE


MEDICINE_PROMPT = "Enter the medicine name:"
EMPTY_NAME_TEXT = "The name can't be empty. Try again:"
CUSTOM_COURSE_PROMPT = f"Enter the course length in days (a number from 1 to {MAX_COURSE_DAYS}):"
BAD_COURSE_TEXT = f"Please enter a number from 1 to {MAX_COURSE_DAYS}:"
RESTART_TEXT = "Something went wrong with this step. Start again: /add"
CANCELLED_TEXT = "Cancelled."
USE_BUTTONS_TEXT = "Pick an option with the buttons above, or press Cancel."
BAD_CHOICE_TEXT = "That option isn't available. Pick one of the buttons above."
IDLE_TEXT = "Use /add to add a reminder or /list to see yours."


def _hour_text(medicine: str, tz_label: str) -> str:
    return f"💊 {medicine}\n\nPick the hour (time zone: {tz_label}):"


def _minute_text(medicine: str, tz_label: str) -> str:
    return f"💊 {medicine}\n\nPick the exact time (time zone: {tz_label}):"


def _course_text(medicine: str, hour: int, minute: int) -> str:
    return f"💊 {medicine}\n⏰ {hour:02d}:{minute:02d}\n\nPick the course length:"


def _stale(message_id: int) -> Transition:
    return Transition(None, (Delete(message_id), Reply(RESTART_TEXT)))


def _finish(pending: PendingDialog, course_days: int, prompt_id: int | None) -> Transition:
    draft = ReminderDraft(
        medicine=pending.medicine,
        hour=pending.hour,
        minute=pending.minute,
        course_days=course_days,
    )
    effects: tuple[Effect, ...] = (Save(draft),)
    if prompt_id is not None:
        effects = (Delete(prompt_id), *effects)
    return Transition(None, effects)


def _on_start(pending: PendingDialog | None, event: StartDialog, tz_label: str) -> Transition:
    return Transition(PendingDialog(), (Prompt(MEDICINE_PROMPT, cancel_keyboard()),))


def _on_text(pending: PendingDialog | None, event: TextEntered, tz_label: str) -> Transition:
    if pending is None:
        return Transition(None, (Reply(IDLE_TEXT),))

    if pending.state is DialogState.WAITING_MEDICINE:
        name = event.text.strip()[:MAX_MEDICINE_LEN].strip()
        if not name:
            return Transition(pending, (Reply(EMPTY_NAME_TEXT),))
        effects: tuple[Effect, ...] = (Prompt(_hour_text(name, tz_label), hour_keyboard()),)
        if pending.message_id is not None:
            effects = (Delete(pending.message_id), *effects)
        nxt = replace(pending, state=DialogState.WAITING_HOUR, medicine=name, message_id=None)
        return Transition(nxt, effects)

    if pending.state is DialogState.WAITING_CUSTOM_COURSE:
        if not pending.medicine:
            if pending.message_id is None:
                return Transition(None, (Reply(RESTART_TEXT),))
            return _stale(pending.message_id)
        try:
            days = int(event.text.strip())
        except ValueError:
            return Transition(pending, (Reply(BAD_COURSE_TEXT),))
        if not 1 <= days <= MAX_COURSE_DAYS:
            return Transition(pending, (Reply(BAD_COURSE_TEXT),))
        return _finish(pending, days, pending.message_id)

    return Transition(pending, (Reply(USE_BUTTONS_TEXT),))


def _on_hour(pending: PendingDialog | None, event: HourPicked, tz_label: str) -> Transition:
    if pending is None or not pending.medicine:
        return _stale(event.message_id)
    if pending.state is not DialogState.WAITING_HOUR:
        return Transition(pending)
    if not 0 <= event.hour <= 23:
        return Transition(pending, (Reply(BAD_CHOICE_TEXT),))
    nxt = replace(
        pending,
        state=DialogState.WAITING_MINUTE,
        hour=event.hour,
        message_id=event.message_id,
    )
    edit = Edit(
        event.message_id,
        _minute_text(pending.medicine, tz_label),
        minute_keyboard(event.hour),
    )
    return Transition(nxt, (edit,))


def _on_time(pending: PendingDialog | None, event: TimePicked, tz_label: str) -> Transition:
    if pending is None or not pending.medicine:
        return _stale(event.message_id)
    if pending.state is not DialogState.WAITING_MINUTE:
        return Transition(pending)
    if not 0 <= event.hour <= 23 or event.minute not in QUARTERS:
        return Transition(pending, (Reply(BAD_CHOICE_TEXT),))
    nxt = replace(
        pending,
        state=DialogState.WAITING_COURSE,
        hour=event.hour,
        minute=event.minute,
        message_id=event.message_id,
    )
    edit = Edit(
        event.message_id,
        _course_text(pending.medicine, event.hour, event.minute),
        course_keyboard(),
    )
    return Transition(nxt, (edit,))


def _on_course(pending: PendingDialog | None, event: CoursePicked, tz_label: str) -> Transition:
    if pending is None or not pending.medicine:
        return _stale(event.message_id)
    if pending.state is not DialogState.WAITING_COURSE:
        return Transition(pending)
    if event.days != 0 and event.days not in COURSE_PRESETS:
        return Transition(pending, (Reply(BAD_CHOICE_TEXT),))
    return _finish(pending, event.days, event.message_id)


def _on_custom(
    pending: PendingDialog | None, event: CustomCourseRequested, tz_label: str
) -> Transition:
    if pending is None or not pending.medicine:
        return _stale(event.message_id)
    if pending.state is not DialogState.WAITING_COURSE:
        return Transition(pending)
    nxt = replace(pending, state=DialogState.WAITING_CUSTOM_COURSE, message_id=None)
    return Transition(
        nxt,
        (Delete(event.message_id), Prompt(CUSTOM_COURSE_PROMPT, cancel_keyboard())),
    )


def _on_cancel(pending: PendingDialog | None, event: Cancelled, tz_label: str) -> Transition:
    return Transition(None, (Delete(event.message_id), Reply(CANCELLED_TEXT)))


_HANDLERS: dict[type, Callable[..., Transition]] = {
    StartDialog: _on_start,
    TextEntered: _on_text,
    HourPicked: _on_hour,
    TimePicked: _on_time,
    CoursePicked: _on_course,
    CustomCourseRequested: _on_custom,
    Cancelled: _on_cancel,
}


def transition(
    pending: PendingDialog | None, event: Event, *, tz_label: str = "UTC"
) -> Transition:
    """Pure: same input, same output. Mismatched button presses leave state as is."""
    handler = _HANDLERS[type(event)]
    return handler(pending, event, tz_label)


class DialogStore:
    """In-memory map of user id -> in-flight dialog, one lock for the whole map.

    Contention is human-paced, so a single lock is enough; every operation is
    a short read-modify-write with no I/O while the lock is held.
    """

    def __init__(self, *, tz_label: str = "UTC") -> None:
        self._tz_label = tz_label
        self._lock = threading.Lock()
        self._pending: dict[int, PendingDialog] = {}

    def get(self, user_id: int) -> PendingDialog | None:
        with self._lock:
            return self._pending.get(user_id)

    def state(self, user_id: int) -> DialogState:
        pending = self.get(user_id)
        return pending.state if pending else DialogState.NONE

    def apply(self, user_id: int, event: Event) -> Transition:
        with self._lock:
            before = self._pending.get(user_id)
            result = transition(before, event, tz_label=self._tz_label)
            if result.pending is None:
                self._pending.pop(user_id, None)
            else:
                self._pending[user_id] = result.pending
        if result.pending != before:
            log.debug(
                "Dialog %d: %s -> %s",
                user_id,
                before.state.value if before else "none",
                result.state.value,
            )
        return result

    def clear(self, user_id: int) -> PendingDialog | None:
        with self._lock:
            return self._pending.pop(user_id, None)

    def attach_message(self, user_id: int, message_id: int, state: DialogState) -> bool:
        """Record the prompt sent for ``state``; no-op if the dialog moved on."""
        with self._lock:
            pending = self._pending.get(user_id)
            if pending is None or pending.state is not state or pending.message_id is not None:
                return False
            self._pending[user_id] = replace(pending, message_id=message_id)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
