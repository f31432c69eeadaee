"""JSON document store for the baseline, activity cache, sync state and stats."""

import json
from datetime import datetime, timezone
from pathlib import Path

from formatting import iso_utc
from parsers import ActivityRecord

_MISSING = object()


def read_json(path: Path, fallback=_MISSING):
    """Read a JSON file. Returns ``fallback`` if it is missing or unreadable, when given."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        if fallback is not _MISSING:
            return fallback
        raise


def write_json(path: Path, data) -> None:
    """Write ``data`` as 2-space indented JSON with a trailing newline."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def load_baseline(path: Path) -> dict:
    data = read_json(path, {})
    return data if isinstance(data, dict) else {}


def load_activities(path: Path) -> list[ActivityRecord]:
    """Load the cached records. Non-object entries are skipped."""
    data = read_json(path, [])
    if not isinstance(data, list):
        return []
    return [ActivityRecord.from_dict(item) for item in data if isinstance(item, dict)]


def save_activities(path: Path, records: list[ActivityRecord]) -> None:
    write_json(path, [r.to_dict() for r in records])


def load_state(path: Path) -> dict:
    """Sync state with ``lastSyncEpoch`` coerced to a non-negative int."""
    data = read_json(path, {"lastSyncEpoch": 0, "updatedAt": None})
    if not isinstance(data, dict):
        data = {}
    try:
        epoch = int(data.get("lastSyncEpoch") or 0)
    except (TypeError, ValueError):
        epoch = 0
    return {"lastSyncEpoch": max(0, epoch), "updatedAt": data.get("updatedAt")}


def save_state(path: Path, last_sync_epoch: int, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    state = {
        "lastSyncEpoch": int(last_sync_epoch),
        "updatedAt": iso_utc(now),
    }
    write_json(path, state)
    return state
