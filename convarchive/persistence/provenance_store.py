"""Append-only SQLite provenance log."""

from __future__ import annotations

import json

import aiosqlite

from convarchive.models.provenance import ProvenanceEvent
from convarchive.persistence._codec import parse_dt


class SQLiteProvenanceStore:
    """Stores provenance events and assigns their sequence numbers.

    Recording an event whose id is already present is a no-op that returns
    the stored event, so replaying an import does not duplicate history.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    async def record(self, event: ProvenanceEvent) -> ProvenanceEvent:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute(
                """INSERT OR IGNORE INTO provenance_events (
                    id, conversation_id, timestamp, actor_id, payload_json,
                    correlation_id, causation_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    event.id,
                    event.conversation_id,
                    event.timestamp.isoformat(),
                    event.actor_id,
                    event.payload.model_dump_json(by_alias=True, exclude_none=True),
                    event.correlation_id,
                    event.causation_id,
                ),
            )
            await db.commit()
            cursor = await db.execute("SELECT * FROM provenance_events WHERE id = ?", (event.id,))
            row = await cursor.fetchone()
        if row is None:
            raise RuntimeError(f"provenance event {event.id} vanished after insert")
        return _row_to_event(row)

    async def events_for_conversation(self, conversation_id: str) -> list[ProvenanceEvent]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM provenance_events WHERE conversation_id = ? ORDER BY sequence",
                (conversation_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_event(r) for r in rows]

    async def count(self) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM provenance_events")
            row = await cursor.fetchone()
        return int(row[0]) if row else 0


def _row_to_event(row: aiosqlite.Row) -> ProvenanceEvent:
    return ProvenanceEvent(
        id=row["id"],
        sequence=row["sequence"],
        timestamp=parse_dt(row["timestamp"]),
        conversation_id=row["conversation_id"],
        actor_id=row["actor_id"],
        payload=json.loads(row["payload_json"]),
        correlation_id=row["correlation_id"],
        causation_id=row["causation_id"],
    )


__all__ = ["SQLiteProvenanceStore"]
