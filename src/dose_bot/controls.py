"""Transport-neutral buttons and keyboards.

Every button carries a ``custom_id`` of the form ``act:<action>:<data>`` so a
press can be routed after a restart without any stored view state.
"""

import re
from dataclasses import dataclass
from typing import Literal

from dose_bot.reminders import Reminder

ButtonStyle = Literal["primary", "secondary", "success", "danger"]

HOUR_BANDS: tuple[tuple[str, range], ...] = (
    ("🌅 Morning 06–11", range(6, 12)),
    ("☀️ Day 12–17", range(12, 18)),
    ("🌙 Evening 18–23", range(18, 24)),
)
COURSE_PRESETS: tuple[int, ...] = (7, 14, 21, 30, 60, 90)

_CUSTOM_ID_RE = re.compile(r"act:(?P<action>[a-z_]+):(?P<data>.+)")


@dataclass(frozen=True, slots=True)
class Button:
    label: str
    action: str
    data: str = "_"
    style: ButtonStyle = "secondary"

    @property
    def custom_id(self) -> str:
        return f"act:{self.action}:{self.data}"


@dataclass(frozen=True, slots=True)
class Row:
    buttons: tuple[Button, ...]
    label: str | None = None  # shown when a transport collapses the row into a picker


Keyboard = tuple[Row, ...]


def parse_custom_id(custom_id: str) -> tuple[str, str] | None:
    match = _CUSTOM_ID_RE.fullmatch(custom_id)
    if match is None:
        return None
    return match.group("action"), match.group("data")


def _row(*buttons: Button, label: str | None = None) -> Row:
    return Row(buttons=buttons, label=label)


CANCEL = Button("❌ Cancel", "cancel", style="danger")


def cancel_keyboard() -> Keyboard:
    return (_row(CANCEL),)


def hour_keyboard() -> Keyboard:
    rows = [
        Row(
            buttons=tuple(Button(f"{h:02d}", "hour", str(h)) for h in hours),
            label=label,
        )
        for label, hours in HOUR_BANDS
    ]
    return (*rows, _row(CANCEL))


def minute_keyboard(hour: int) -> Keyboard:
    times = tuple(
        Button(f"{hour:02d}:{m:02d}", "time", f"{hour}:{m}") for m in (0, 15, 30, 45)
    )
    return (_row(*times), _row(CANCEL))


def course_keyboard() -> Keyboard:
    presets = [Button(f"{d} days", "course", str(d)) for d in COURSE_PRESETS]
    return (
        _row(*presets[:3]),
        _row(*presets[3:]),
        _row(
            Button("♾ Unbounded", "course", "0"),
            Button("✏️ Custom", "course", "custom"),
        ),
        _row(CANCEL),
    )


def ack_keyboard(reminder_id: int) -> Keyboard:
    return (_row(Button("✅ Taken", "taken", str(reminder_id), style="success")),)


def reminder_list_keyboard(reminders: list[Reminder]) -> Keyboard:
    return tuple(
        _row(
            Button(
                f"🗑 {r.time_label} {r.medicine} [{r.progress}]",
                "del",
                str(r.id),
                style="danger",
            )
        )
        for r in reminders
    )


def main_keyboard(active: bool) -> Keyboard:
    if not active:
        return (_row(Button("▶️ Resume", "menu", "start", style="success")),)
    return (
        _row(
            Button("➕ Add", "menu", "add", style="primary"),
            Button("📋 My reminders", "menu", "list"),
            Button("⏸ Pause", "menu", "stop"),
        ),
    )
