"""Read-only HTTP endpoint that exposes a user's reminders to a companion page."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from aiohttp import web

from dose_bot import repository
from dose_bot.storage import StorageError

if TYPE_CHECKING:
    from dose_bot.reminders import Reminder
    from dose_bot.repository import Repository

log = logging.getLogger(__name__)


def user_token(secret: str, user_id: int) -> str:
    """Per-user bearer token: HMAC-SHA256 of the user id under the shared secret."""
    return hmac.new(secret.encode(), str(user_id).encode(), hashlib.sha256).hexdigest()


def verify_token(secret: str, user_id: int, auth_header: str) -> bool:
    """Constant-time comparison of Bearer token."""
    expected = f"Bearer {user_token(secret, user_id)}"
    return hmac.compare_digest(auth_header.encode(), expected.encode())


def companion_link(base_url: str, secret: str, user_id: int) -> str:
    query = urlencode({"user": user_id, "token": user_token(secret, user_id)})
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}{query}"


def reminder_json(reminder: Reminder) -> dict[str, Any]:
    return {
        "id": reminder.id,
        "medicine": reminder.medicine,
        "time": reminder.time_label,
        "course_days": reminder.course_days,
        "doses_taken": reminder.doses_taken,
        "progress": reminder.progress,
    }


# ---------------------------------------------------------------------------
# HTTP handler
# ---------------------------------------------------------------------------

_CORS = {"Access-Control-Allow-Origin": "*"}

_KEY_SECRET = web.AppKey("secret", str)
_KEY_REPO = web.AppKey("repo")
_KEY_TIMEOUT = web.AppKey("timeout", float)


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status, headers=_CORS)


async def _handle_reminders(request: web.Request) -> web.Response:
    """Handle GET /api/reminders?user=<id>."""
    raw_user = request.query.get("user", "")
    if not raw_user.isdigit():
        return _error("invalid user", 400)
    user_id = int(raw_user)

    secret: str = request.app[_KEY_SECRET]
    if not verify_token(secret, user_id, request.headers.get("Authorization", "")):
        return _error("unauthorized", 401)

    repo: Repository = request.app[_KEY_REPO]
    try:
        reminders = await repository.call(
            request.app[_KEY_TIMEOUT], repo.list_reminders, user_id
        )
    except StorageError:
        log.exception("Failed to load reminders for user %d", user_id)
        return _error("storage unavailable", 503)

    return web.json_response(
        {"reminders": [reminder_json(r) for r in reminders]}, headers=_CORS
    )


def create_app(*, secret: str, repo: Repository, timeout: float = 5.0) -> web.Application:
    app = web.Application()
    app[_KEY_SECRET] = secret
    app[_KEY_REPO] = repo
    app[_KEY_TIMEOUT] = timeout
    app.router.add_get("/api/reminders", _handle_reminders)
    return app


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------

_runner: web.AppRunner | None = None


async def start(repo: Repository, *, port: int | None, secret: str | None, timeout: float) -> None:
    """Start the endpoint when both a port and a secret are configured."""
    global _runner  # noqa: PLW0603
    if not port:
        return
    if not secret:
        log.error("DOSE_BOT_WEB_PORT set but DOSE_BOT_WEB_SECRET missing -- web endpoint disabled")
        return

    app = create_app(secret=secret, repo=repo, timeout=timeout)
    _runner = web.AppRunner(app)
    await _runner.setup()
    site = web.TCPSite(_runner, "0.0.0.0", port)
    await site.start()
    log.info("Web endpoint started on 0.0.0.0:%d", port)


async def stop() -> None:
    global _runner  # noqa: PLW0603
    if _runner:
        await _runner.cleanup()
        _runner = None
        log.info("Web endpoint stopped")
