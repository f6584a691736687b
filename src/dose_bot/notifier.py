"""Outbound messaging: the narrow interface the core uses, and its Discord adapter."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from dose_bot.controls import Keyboard, ack_keyboard

if TYPE_CHECKING:
    import discord

MAX_MSG_LEN = 2000


class Notifier(Protocol):
    """Any method may raise; callers log the failure and move on."""

    async def send_text(
        self, user_id: int, text: str, keyboard: Keyboard | None = None
    ) -> int: ...

    async def send_reminder(self, user_id: int, text: str, reminder_id: int) -> int: ...

    async def edit_text(
        self,
        user_id: int,
        message_id: int,
        text: str,
        keyboard: Keyboard | None = None,
    ) -> None: ...

    async def delete_message(self, user_id: int, message_id: int) -> None: ...


def _clip(text: str) -> str:
    if len(text) <= MAX_MSG_LEN:
        return text
    return text[: MAX_MSG_LEN - 3] + "..."


class DiscordNotifier:
    """Delivers to each user's DM channel. Message ids are Discord snowflakes."""

    def __init__(self, client: discord.Client) -> None:
        self._client = client

    async def _dm(self, user_id: int) -> discord.DMChannel:
        user = self._client.get_user(user_id) or await self._client.fetch_user(user_id)
        return user.dm_channel or await user.create_dm()

    async def send_text(
        self, user_id: int, text: str, keyboard: Keyboard | None = None
    ) -> int:
        from dose_bot.views import build_view

        dm = await self._dm(user_id)
        view = build_view(keyboard)
        if view is None:
            msg = await dm.send(_clip(text))
        else:
            msg = await dm.send(_clip(text), view=view)
        return msg.id

    async def send_reminder(self, user_id: int, text: str, reminder_id: int) -> int:
        return await self.send_text(user_id, text, ack_keyboard(reminder_id))

    async def edit_text(
        self,
        user_id: int,
        message_id: int,
        text: str,
        keyboard: Keyboard | None = None,
    ) -> None:
        from dose_bot.views import build_view

        dm = await self._dm(user_id)
        # view=None strips the old buttons
        await dm.get_partial_message(message_id).edit(
            content=_clip(text), view=build_view(keyboard)
        )

    async def delete_message(self, user_id: int, message_id: int) -> None:
        dm = await self._dm(user_id)
        await dm.get_partial_message(message_id).delete()
