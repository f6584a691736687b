"""Shared fixtures for dose-bot tests."""

import os

os.environ.setdefault("DOSE_BOT_TIMEZONE", "Asia/Yekaterinburg")

import pytest


@pytest.fixture()
def data_dir(tmp_path, monkeypatch):
    """Redirect all data file paths to a temp directory."""
    import dose_bot.main as main_mod
    import dose_bot.repository as repository_mod
    import dose_bot.storage as storage_mod

    state_dir = tmp_path / "state"
    monkeypatch.setattr(storage_mod, "DATA_DIR", tmp_path)
    monkeypatch.setattr(storage_mod, "STATE_DIR", state_dir)
    monkeypatch.setattr(repository_mod, "REMINDERS_FILE", tmp_path / "reminders.json")
    monkeypatch.setattr(main_mod, "STATE_DIR", state_dir)
    monkeypatch.setattr(main_mod, "PID_FILE", state_dir / "bot.pid")
    return tmp_path


@pytest.fixture()
def repo():
    """In-memory repository; nothing touches the disk."""
    from dose_bot.repository import JsonRepository

    return JsonRepository(None)


class FakeNotifier:
    """Records every outbound call. Message ids count up from 100."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.fail_for: set[int] = set()
        self.hang = False
        self._next_id = 100

    def _issue(self, user_id: int) -> int:
        if user_id in self.fail_for:
            raise ConnectionError(f"cannot reach {user_id}")
        self._next_id += 1
        return self._next_id

    async def send_text(self, user_id, text, keyboard=None):
        if self.hang:
            import asyncio

            await asyncio.sleep(3600)
        message_id = self._issue(user_id)
        self.calls.append(("send", user_id, text, keyboard, message_id))
        return message_id

    async def send_reminder(self, user_id, text, reminder_id):
        if self.hang:
            import asyncio

            await asyncio.sleep(3600)
        message_id = self._issue(user_id)
        self.calls.append(("reminder", user_id, text, reminder_id, message_id))
        return message_id

    async def edit_text(self, user_id, message_id, text, keyboard=None):
        if user_id in self.fail_for:
            raise ConnectionError(f"cannot reach {user_id}")
        self.calls.append(("edit", user_id, message_id, text, keyboard))

    async def delete_message(self, user_id, message_id):
        if user_id in self.fail_for:
            raise ConnectionError(f"cannot reach {user_id}")
        self.calls.append(("delete", user_id, message_id))

    def of(self, kind: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == kind]

    def texts(self, user_id: int | None = None) -> list[str]:
        return [
            c[2]
            for c in self.calls
            if c[0] in ("send", "reminder") and (user_id is None or c[1] == user_id)
        ]


@pytest.fixture()
def notifier():
    return FakeNotifier()
