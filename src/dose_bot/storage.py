"""Data directory layout and atomic JSON file I/O."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

DATA_DIR = Path.home() / ".dose-bot"
STATE_DIR = DATA_DIR / "state"


class StorageError(Exception):
    """The backing store could not be read or written."""


def read_json(filepath: Path) -> Any | None:
    """Returns None when the file does not exist yet."""
    if not filepath.exists():
        return None
    try:
        return json.loads(filepath.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise StorageError(f"cannot read {filepath}: {e}") from e


def write_json(filepath: Path, data: Any) -> None:
    """Atomic write (temp file + rename) so readers never see a partial file."""
    try:
        filepath.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=filepath.parent, suffix=".tmp")
        try:
            os.write(fd, json.dumps(data, ensure_ascii=False).encode())
        finally:
            os.close(fd)
        os.replace(tmp, filepath)
    except OSError as e:
        raise StorageError(f"cannot write {filepath}: {e}") from e
