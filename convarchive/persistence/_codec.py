"""Column encoding shared by the SQLite stores."""

from __future__ import annotations

import json
from datetime import UTC, datetime


def parse_dt(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def dump_list(values: list[str]) -> str:
    return json.dumps(values)


def load_list(value: str | None) -> list[str]:
    if not value:
        return []
    loaded = json.loads(value)
    return [str(item) for item in loaded] if isinstance(loaded, list) else []
