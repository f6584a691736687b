"""Entry point for dose-bot."""

from __future__ import annotations

import asyncio
import atexit
import contextlib
import logging
import os
import signal
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from discord.ext.commands import Bot

from dose_bot.storage import STATE_DIR

PID_FILE = STATE_DIR / "bot.pid"


HELP = """\
dose-bot -- Discord medication reminder bot

commands:
  dose-bot                   Run the Discord bot
  dose-bot reminder add      Add a reminder for a user
  dose-bot reminder list     Show a user's reminders
  dose-bot reminder delete   Delete a reminder by ID
  dose-bot stats             Show usage statistics
  dose-bot help              Show this help message

examples:
  dose-bot reminder add --user 123456789 -m "Vitamin D" --at 09:00 --course 30
  dose-bot reminder list --user 123456789
  dose-bot reminder delete --user 123456789 4
"""


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _check_already_running() -> None:
    """Two bots on one reminders file would deliver every dose twice."""
    STATE_DIR.mkdir(parents=True, exist_ok=True)
    with contextlib.suppress(FileNotFoundError, ValueError):
        pid = int(PID_FILE.read_text().strip())
        if pid != os.getpid() and _pid_alive(pid):
            print(f"dose-bot is already running (pid {pid})", file=sys.stderr)
            raise SystemExit(1)
    PID_FILE.write_text(str(os.getpid()))
    atexit.register(PID_FILE.unlink, missing_ok=True)


def _dispatch_subcommand() -> bool:
    """Route CLI subcommands. Returns True if handled."""
    if len(sys.argv) < 2:
        return False
    cmd, rest = sys.argv[1], sys.argv[2:]
    if cmd in ("help", "--help", "-h"):
        print(HELP)
        return True
    if cmd == "reminder":
        from dose_bot.reminder_cmd import run_reminder_command

        run_reminder_command(rest)
        return True
    if cmd == "stats":
        from dose_bot.reminder_cmd import run_stats_command

        run_stats_command(rest)
        return True
    return False


log = logging.getLogger(__name__)


async def _tell_admin(bot: Bot, reason: str) -> None:
    service = getattr(bot, "dose_service", None)
    admin_id = service.admin_id if service else None
    if not admin_id or bot.is_closed():
        return
    try:
        user = bot.get_user(admin_id) or await bot.fetch_user(admin_id)
        await user.send(f"dose-bot stopping: {reason[:200]}")
    except Exception:
        log.warning("Could not tell admin %d about shutdown", admin_id, exc_info=True)


async def _run(bot: Bot, token: str) -> None:
    """Run until the client dies or SIGTERM/SIGINT arrives."""
    from dose_bot import web

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    client = asyncio.create_task(bot.start(token))
    stopper = asyncio.create_task(stop.wait())
    try:
        await asyncio.wait({client, stopper}, return_when=asyncio.FIRST_COMPLETED)
        if stop.is_set():
            log.info("Shutdown requested")
            await _tell_admin(bot, "received a stop signal")
        elif not client.cancelled() and client.exception() is not None:
            exc = client.exception()
            await _tell_admin(bot, f"{type(exc).__name__}: {exc}")
            raise exc
    finally:
        stopper.cancel()
        await web.stop()
        if not bot.is_closed():
            await bot.close()
        if not client.done():
            await asyncio.gather(client, return_exceptions=True)


def main() -> None:
    if _dispatch_subcommand():
        return

    # Importing config loads .env and validates every setting.
    from dose_bot import config  # noqa: F401

    token = os.environ.get("DISCORD_TOKEN")
    if not token:
        print("Set DISCORD_TOKEN in .env", file=sys.stderr)
        raise SystemExit(1)

    import discord

    discord.utils.setup_logging(level=logging.INFO)
    _check_already_running()

    from dose_bot.bot import create_bot

    bot = create_bot()
    asyncio.run(_run(bot, token))


if __name__ == "__main__":
    main()
