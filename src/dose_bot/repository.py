"""Durable store of users and their reminders.

The core only talks to the ``Repository`` protocol. ``JsonRepository`` is the
shipped implementation: the whole data set lives in memory and every mutation
is written through to a single JSON file (atomic replace). One re-entrant lock
serializes all access, so callers on worker threads (``asyncio.to_thread``)
never observe a half-applied change.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, fields, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, TypeVar

from dose_bot.config import TZ
from dose_bot.reminders import (
    NOT_FOUND,
    DoseResult,
    Reminder,
    Stats,
    User,
    validate_reminder,
)
from dose_bot.storage import DATA_DIR, StorageError, read_json, write_json

REMINDERS_FILE = DATA_DIR / "reminders.json"

T = TypeVar("T")
log = logging.getLogger(__name__)

_REMINDER_FIELDS = tuple(f.name for f in fields(Reminder))


class Repository(Protocol):
    def get_or_create_user(self, user_id: int) -> User: ...

    def get_user(self, user_id: int) -> User | None: ...

    def set_active(self, user_id: int, active: bool) -> None: ...

    def list_reminders(self, user_id: int) -> list[Reminder]: ...

    def get_reminder(self, user_id: int, reminder_id: int) -> Reminder | None: ...

    def add_reminder(
        self, user_id: int, medicine: str, hour: int, minute: int, course_days: int
    ) -> int: ...

    def delete_reminder(self, user_id: int, reminder_id: int) -> bool: ...

    def due_reminders(self, hour: int, minute: int) -> dict[int, list[Reminder]]: ...

    def increment_dose(self, user_id: int, reminder_id: int) -> DoseResult: ...

    def stats(self) -> Stats: ...

    def list_user_ids(self) -> list[int]: ...


def open_repository() -> JsonRepository:
    return JsonRepository(REMINDERS_FILE)


class JsonRepository:
    """``path=None`` keeps everything in memory (nothing survives a restart)."""

    def __init__(self, path: Path | None) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._users: dict[int, User] | None = None
        self._reminders: dict[int, dict[int, Reminder]] = {}
        self._next_id = 1
        self._mtime: int | None = None

    # --- loading / persisting (caller holds the lock) ---

    def _disk_mtime(self) -> int | None:
        if self._path is None:
            return None
        try:
            return self._path.stat().st_mtime_ns
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"cannot stat {self._path}: {e}") from e

    def _loaded(self) -> dict[int, User]:
        """Reload when another process (the CLI) rewrote the file."""
        mtime = self._disk_mtime()
        if self._users is None or mtime != self._mtime:
            self._load()
            self._mtime = mtime
        assert self._users is not None
        return self._users

    def _load(self) -> None:
        users: dict[int, User] = {}
        reminders: dict[int, dict[int, Reminder]] = {}
        next_id = 1
        data = read_json(self._path) if self._path else None
        if data is not None:
            try:
                next_id = int(data.get("next_id", 1))
                for key, record in data.get("users", {}).items():
                    uid = int(key)
                    users[uid] = User(
                        user_id=uid,
                        active=bool(record.get("active", True)),
                        created_at=str(record.get("created_at", "")),
                    )
                    reminders[uid] = {}
                    for raw in record.get("reminders", []):
                        rem = Reminder(
                            **{k: raw[k] for k in _REMINDER_FIELDS if k in raw}
                        )
                        reminders[uid][rem.id] = rem
                        next_id = max(next_id, rem.id + 1)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise StorageError(f"corrupt data file {self._path}: {e}") from e
            log.info(
                "Loaded %d users and %d reminders from %s",
                len(users),
                sum(len(r) for r in reminders.values()),
                self._path,
            )
        self._users = users
        self._reminders = reminders
        self._next_id = next_id

    def _snapshot(self) -> dict[str, Any]:
        assert self._users is not None
        return {
            "next_id": self._next_id,
            "users": {
                str(uid): {
                    "active": user.active,
                    "created_at": user.created_at,
                    "reminders": [
                        asdict(r)
                        for r in sorted(
                            self._reminders.get(uid, {}).values(), key=lambda r: r.id
                        )
                    ],
                }
                for uid, user in self._users.items()
            },
        }

    def _commit(self) -> None:
        if self._path is None:
            return
        try:
            write_json(self._path, self._snapshot())
        except StorageError:
            # Memory is ahead of disk now; drop it so the next call reloads.
            self._users = None
            raise
        self._mtime = self._disk_mtime()

    def _ensure_user(self, user_id: int) -> tuple[User, bool]:
        users = self._loaded()
        user = users.get(user_id)
        if user is not None:
            return user, False
        user = User(user_id=user_id, active=True, created_at=datetime.now(TZ).isoformat())
        users[user_id] = user
        self._reminders.setdefault(user_id, {})
        return user, True

    # --- users ---

    def get_or_create_user(self, user_id: int) -> User:
        with self._lock:
            user, created = self._ensure_user(user_id)
            if created:
                self._commit()
                log.info("New user %d", user_id)
            return user

    def get_user(self, user_id: int) -> User | None:
        with self._lock:
            return self._loaded().get(user_id)

    def set_active(self, user_id: int, active: bool) -> None:
        with self._lock:
            user, created = self._ensure_user(user_id)
            if user.active == active and not created:
                return
            self._loaded()[user_id] = replace(user, active=active)
            self._commit()

    def list_user_ids(self) -> list[int]:
        with self._lock:
            return sorted(self._loaded())

    # --- reminders ---

    def list_reminders(self, user_id: int) -> list[Reminder]:
        """Ordered by time of day, then creation order."""
        with self._lock:
            self._loaded()
            items = self._reminders.get(user_id, {}).values()
            return sorted(items, key=lambda r: (r.hour, r.minute, r.id))

    def get_reminder(self, user_id: int, reminder_id: int) -> Reminder | None:
        with self._lock:
            self._loaded()
            return self._reminders.get(user_id, {}).get(reminder_id)

    def add_reminder(
        self, user_id: int, medicine: str, hour: int, minute: int, course_days: int
    ) -> int:
        validate_reminder(medicine, hour, minute, course_days)
        with self._lock:
            self._ensure_user(user_id)
            rid = self._next_id
            self._next_id += 1
            self._reminders.setdefault(user_id, {})[rid] = Reminder(
                id=rid,
                medicine=medicine.strip(),
                hour=hour,
                minute=minute,
                course_days=course_days,
            )
            self._commit()
            return rid

    def delete_reminder(self, user_id: int, reminder_id: int) -> bool:
        with self._lock:
            self._loaded()
            if self._reminders.get(user_id, {}).pop(reminder_id, None) is None:
                return False
            self._commit()
            return True

    def due_reminders(self, hour: int, minute: int) -> dict[int, list[Reminder]]:
        with self._lock:
            users = self._loaded()
            result: dict[int, list[Reminder]] = {}
            for uid, user in users.items():
                if not user.active:
                    continue
                matching = sorted(
                    (
                        r
                        for r in self._reminders.get(uid, {}).values()
                        if r.hour == hour and r.minute == minute and not r.is_completed
                    ),
                    key=lambda r: r.id,
                )
                if matching:
                    result[uid] = matching
            return result

    def increment_dose(self, user_id: int, reminder_id: int) -> DoseResult:
        """Increment and, when the course completes, delete in the same step."""
        with self._lock:
            self._loaded()
            owned = self._reminders.get(user_id, {})
            current = owned.get(reminder_id)
            if current is None:
                return NOT_FOUND
            updated = replace(current, doses_taken=current.doses_taken + 1)
            if updated.is_completed:
                del owned[reminder_id]
            else:
                owned[reminder_id] = updated
            self._commit()
            return DoseResult(
                medicine=updated.medicine,
                count=updated.doses_taken,
                total=updated.course_days,
                completed=updated.is_completed,
            )

    def stats(self) -> Stats:
        with self._lock:
            users = self._loaded()
            all_reminders = [r for rems in self._reminders.values() for r in rems.values()]
            return Stats(
                total_users=len(users),
                active_users=sum(1 for u in users.values() if u.active),
                total_reminders=len(all_reminders),
                finite_courses=sum(1 for r in all_reminders if r.course_days > 0),
                unbounded_courses=sum(1 for r in all_reminders if r.course_days == 0),
                doses_taken=sum(r.doses_taken for r in all_reminders),
                doses_planned=sum(r.course_days for r in all_reminders),
            )


async def call(timeout: float, fn: Callable[..., T], *args: Any) -> T:
    """Run a blocking repository call off the event loop with a deadline."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout)
    except asyncio.TimeoutError as e:
        name = getattr(fn, "__name__", "call")
        raise StorageError(f"{name} timed out after {timeout:g}s") from e
