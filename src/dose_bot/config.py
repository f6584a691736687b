"""User-configurable values loaded from environment variables."""

import os
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()


def _fail(message: str) -> None:
    print(message, file=sys.stderr)
    print("Set it in .env or your environment.", file=sys.stderr)
    raise SystemExit(1)


def _detect_local_tz() -> str:
    """Detect the system's IANA timezone name. Falls back to UTC."""
    # Debian/Ubuntu: plain text file with IANA name
    etc_tz = Path("/etc/timezone")
    if etc_tz.exists():
        name = etc_tz.read_text().strip()
        if name:
            return name

    # Most Linux/WSL: /etc/localtime is a symlink into zoneinfo
    localtime = Path("/etc/localtime")
    if localtime.is_symlink():
        target = str(localtime.resolve())
        marker = "/zoneinfo/"
        idx = target.find(marker)
        if idx != -1:
            return target[idx + len(marker) :]

    return "UTC"


def _number(name: str, default: float, *, low: float, high: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        _fail(f"{name} must be a number, got {raw!r}")
    if not low <= value <= high:
        _fail(f"{name} must be between {low:g} and {high:g}, got {raw}")
    return value


_tz_name = os.environ.get("DOSE_BOT_TIMEZONE") or _detect_local_tz()
try:
    TZ: ZoneInfo = ZoneInfo(_tz_name)
except (ZoneInfoNotFoundError, ValueError):
    _fail(f"Unknown DOSE_BOT_TIMEZONE: {_tz_name!r}")

_admin = os.environ.get("DOSE_BOT_ADMIN_ID", "").strip()
if _admin and not _admin.isdigit():
    _fail(f"DOSE_BOT_ADMIN_ID must be a numeric user id, got {_admin!r}")
ADMIN_ID: int | None = int(_admin) if _admin else None

# A slot is observed only during its own minute; every minute needs a poll.
POLL_SECONDS: int = int(_number("DOSE_BOT_POLL_SECONDS", 15, low=1, high=59))
SEND_TIMEOUT: float = _number("DOSE_BOT_SEND_TIMEOUT", 10, low=0.1, high=300)
STORAGE_TIMEOUT: float = _number("DOSE_BOT_STORAGE_TIMEOUT", 5, low=0.1, high=300)

COUNT_DOSES_ON: str = os.environ.get("DOSE_BOT_COUNT_DOSES_ON", "delivery").lower()
if COUNT_DOSES_ON not in ("delivery", "ack"):
    _fail(f"DOSE_BOT_COUNT_DOSES_ON must be 'delivery' or 'ack', got {COUNT_DOSES_ON!r}")

WEB_PORT: int | None = (
    int(_number("DOSE_BOT_WEB_PORT", 0, low=1, high=65535))
    if os.environ.get("DOSE_BOT_WEB_PORT")
    else None
)
WEB_SECRET: str | None = os.environ.get("DOSE_BOT_WEB_SECRET") or None
WEBAPP_URL: str | None = os.environ.get("DOSE_BOT_WEBAPP_URL") or None
