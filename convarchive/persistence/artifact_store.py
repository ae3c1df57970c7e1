"""SQLite artifact store: references keyed by URI, their mentions and cached snapshots."""

from __future__ import annotations

import aiosqlite

from convarchive.models.artifacts import (
    ArtifactMention,
    ArtifactReference,
    ArtifactSnapshot,
    ArtifactType,
)
from convarchive.models.conversations import utc_now
from convarchive.models.format import normalize_extension
from convarchive.persistence._codec import parse_dt


def _display_name_for(uri: str) -> str:
    tail = uri.rstrip("/").rsplit("/", 1)[-1]
    return tail or uri


class SQLiteArtifactStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    async def get_artifacts(self, conversation_id: str) -> list[ArtifactReference]:
        """Artifacts mentioned in, or introduced by, the given conversation."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """SELECT DISTINCT a.* FROM artifacts a
                   LEFT JOIN artifact_mentions m ON m.artifact_uri = a.uri
                   WHERE m.conversation_id = ? OR a.introduced_by = ?
                   ORDER BY a.created_at, a.uri""",
                (conversation_id, conversation_id),
            )
            rows = await cursor.fetchall()
        return [_row_to_reference(r) for r in rows]

    async def get_artifact(self, uri: str) -> ArtifactReference | None:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM artifacts WHERE uri = ?", (uri,))
            row = await cursor.fetchone()
        return _row_to_reference(row) if row is not None else None

    async def get_or_create_artifact(
        self,
        uri: str,
        display_name: str | None = None,
        introduced_by: str | None = None,
        artifact_type: ArtifactType | None = None,
        version: str | None = None,
    ) -> ArtifactReference:
        existing = await self.get_artifact(uri)
        if existing is not None:
            return existing

        reference = ArtifactReference(
            uri=uri,
            type=artifact_type or ArtifactType.unknown,
            display_name=display_name or _display_name_for(uri),
            version=version,
            introduced_by=introduced_by,
            created_at=utc_now(),
        )
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR IGNORE INTO artifacts (
                    uri, type, display_name, version, introduced_by, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    reference.uri,
                    reference.type.value,
                    reference.display_name,
                    reference.version,
                    reference.introduced_by,
                    reference.created_at.isoformat(),
                ),
            )
            await db.commit()
        # A concurrent writer may have won the insert.
        return await self.get_artifact(uri) or reference

    async def get_mentions(self, conversation_id: str) -> list[ArtifactMention]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM artifact_mentions WHERE conversation_id = ? ORDER BY id",
                (conversation_id,),
            )
            rows = await cursor.fetchall()
        return [
            ArtifactMention(
                artifact_uri=r["artifact_uri"],
                conversation_id=r["conversation_id"],
                message_id=r["message_id"],
                mention_type=r["mention_type"],
                character_offset=r["character_offset"],
                character_length=r["character_length"],
                context_snippet=r["context_snippet"],
                mentioned_by=r["mentioned_by"],
                recorded_at=parse_dt(r["recorded_at"]),
                is_first_mention=bool(r["is_first_mention"]),
            )
            for r in rows
        ]

    async def record_mention(self, mention: ArtifactMention) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT INTO artifact_mentions (
                    artifact_uri, conversation_id, message_id, mention_type,
                    character_offset, character_length, context_snippet,
                    mentioned_by, recorded_at, is_first_mention
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    mention.artifact_uri,
                    mention.conversation_id,
                    mention.message_id,
                    mention.mention_type,
                    mention.character_offset,
                    mention.character_length,
                    mention.context_snippet,
                    mention.mentioned_by,
                    mention.recorded_at.isoformat(),
                    1 if mention.is_first_mention else 0,
                ),
            )
            await db.commit()

    async def get_snapshot(self, uri: str) -> ArtifactSnapshot | None:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT extension, data FROM artifact_snapshots WHERE uri = ?", (uri,)
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return ArtifactSnapshot(uri=uri, extension=row[0], data=bytes(row[1]))

    async def save_snapshot(self, snapshot: ArtifactSnapshot) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO artifact_snapshots (uri, extension, data) VALUES (?, ?, ?)",
                (snapshot.uri, normalize_extension(snapshot.extension), snapshot.data),
            )
            await db.commit()


def _row_to_reference(row: aiosqlite.Row) -> ArtifactReference:
    try:
        artifact_type = ArtifactType(row["type"])
    except ValueError:
        artifact_type = ArtifactType.unknown
    return ArtifactReference(
        uri=row["uri"],
        type=artifact_type,
        display_name=row["display_name"],
        version=row["version"],
        introduced_by=row["introduced_by"],
        created_at=parse_dt(row["created_at"]),
    )


__all__ = ["SQLiteArtifactStore"]
