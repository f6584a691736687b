"""Discord UI views and persistent button handlers."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import discord
from discord.ui import Button, DynamicItem, Select, View

from dose_bot.controls import Keyboard, Row, parse_custom_id

if TYPE_CHECKING:
    from dose_bot.controls import Button as KeyButton
    from dose_bot.controls import ButtonStyle
    from dose_bot.service import DoseService

log = logging.getLogger(__name__)

# Discord limits
MAX_ROW_BUTTONS = 5
MAX_ROWS = 5
MAX_LABEL_LEN = 80

STYLE_MAP: dict[ButtonStyle, discord.ButtonStyle] = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
}

# Buttons are reconstructed from custom_id on restart; module-level ref
# is the only way to reach the service from DynamicItem.
_service: DoseService | None = None


def init(service: DoseService) -> None:
    """Must be called before any button interaction is processed."""
    global _service
    _service = service


async def _dispatch(interaction: discord.Interaction, action: str, data: str) -> None:
    assert _service is not None
    await interaction.response.defer()
    message_id = interaction.message.id if interaction.message else 0
    await _service.handle_action(interaction.user.id, message_id, action, data)


class ActionButton(
    DynamicItem[Button], template=r"act:(?P<action>[a-z_]+):(?P<data>.+)"
):
    def __init__(self, button: Button):
        super().__init__(button)
        self.action: str = ""
        self.data: str = ""

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,
        item: Button,
        match: re.Match[str],
    ) -> ActionButton:
        inst = cls(item)
        inst.action = match.group("action")
        inst.data = match.group("data")
        return inst

    async def callback(self, interaction: discord.Interaction) -> None:
        await _dispatch(interaction, self.action, self.data)


class ActionSelect(DynamicItem[Select], template=r"pick:(?P<row>\d+)"):
    """A row too wide for buttons; each option value is a button custom_id."""

    def __init__(self, select: Select):
        super().__init__(select)

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,
        item: Select,
        match: re.Match[str],
    ) -> ActionSelect:
        return cls(item)

    async def callback(self, interaction: discord.Interaction) -> None:
        values = (interaction.data or {}).get("values") or []
        parsed = parse_custom_id(values[0]) if values else None
        if parsed is None:
            log.warning("Unparsable picker value %r", values)
            await interaction.response.defer()
            return
        await _dispatch(interaction, *parsed)


def _label(text: str) -> str:
    return text if len(text) <= MAX_LABEL_LEN else text[: MAX_LABEL_LEN - 1] + "…"


def _button(btn: KeyButton, row: int) -> Button:
    return Button(
        label=_label(btn.label),
        style=STYLE_MAP[btn.style],
        custom_id=btn.custom_id,
        row=row,
    )


def _select(row: Row, index: int) -> Select:
    select = Select(
        custom_id=f"pick:{index}",
        placeholder=row.label or "Choose…",
        row=index,
    )
    for btn in row.buttons[:25]:
        select.add_option(label=_label(btn.label), value=btn.custom_id)
    return select


def build_view(keyboard: Keyboard | None) -> View | None:
    """Returns None when empty.

    Rows wider than Discord allows become select menus. Keyboards with more
    rows than fit are repacked five buttons to a row, capped at 25.
    """
    if not keyboard:
        return None
    view = View(timeout=None)
    if len(keyboard) > MAX_ROWS:
        flat = [btn for row in keyboard for btn in row.buttons][: MAX_ROWS * MAX_ROW_BUTTONS]
        for i, btn in enumerate(flat):
            view.add_item(_button(btn, i // MAX_ROW_BUTTONS))
        return view
    for index, row in enumerate(keyboard):
        if len(row.buttons) > MAX_ROW_BUTTONS:
            view.add_item(_select(row, index))
            continue
        for btn in row.buttons:
            view.add_item(_button(btn, index))
    return view
