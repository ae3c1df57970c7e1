"""SQLite conversation store: conversations, messages and content-addressed blobs."""

from __future__ import annotations

import aiosqlite

from convarchive.models.conversations import Attachment, Conversation, Message, SenderRole
from convarchive.models.format import content_hash, normalize_extension
from convarchive.persistence._codec import dump_list, load_list, parse_dt


class SQLiteConversationStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,))
            row = await cursor.fetchone()
        return _row_to_conversation(row) if row is not None else None

    async def list_messages(self, conversation_id: str) -> list[Message]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM messages WHERE conversation_id = ? ORDER BY sequence, rowid",
                (conversation_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_message(r) for r in rows]

    async def list_attachments(self, conversation_id: str) -> list[Attachment]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """SELECT a.id, a.conversation_id, a.message_id, a.filename,
                          a.content_type, b.data
                   FROM attachments a JOIN blobs b ON b.content_hash = a.content_hash
                   WHERE a.conversation_id = ?
                   ORDER BY a.rowid""",
                (conversation_id,),
            )
            rows = await cursor.fetchall()
        return [
            Attachment(
                id=r["id"],
                conversation_id=r["conversation_id"],
                message_id=r["message_id"],
                filename=r["filename"],
                content_type=r["content_type"],
                data=bytes(r["data"]),
            )
            for r in rows
        ]

    async def save_conversation(self, conversation: Conversation) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT INTO conversations (
                    id, title, participants_json, created_at, last_activity_at,
                    summary, tags_json, mode, is_archived, parent_id, child_ids_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    participants_json = excluded.participants_json,
                    created_at = excluded.created_at,
                    last_activity_at = excluded.last_activity_at,
                    summary = excluded.summary,
                    tags_json = excluded.tags_json,
                    mode = excluded.mode,
                    is_archived = excluded.is_archived,
                    parent_id = excluded.parent_id,
                    child_ids_json = excluded.child_ids_json""",
                (
                    conversation.id,
                    conversation.title,
                    dump_list(conversation.participants),
                    conversation.created_at.isoformat(),
                    conversation.last_activity_at.isoformat(),
                    conversation.summary,
                    dump_list(conversation.tags),
                    conversation.mode,
                    1 if conversation.is_archived else 0,
                    conversation.parent_id,
                    dump_list(conversation.child_ids),
                ),
            )
            await db.commit()

    async def append_message(self, message: Message) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO messages (
                    id, conversation_id, sequence, sender_role, sender_id, model_used,
                    content, sent_at, intent, token_count, processing_duration_ms,
                    correlation_id, causation_id, is_side_conversation_synthesis
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    message.id,
                    message.conversation_id,
                    message.sequence,
                    message.sender_role.value,
                    message.sender_id,
                    message.model_used,
                    message.content,
                    message.sent_at.isoformat(),
                    message.intent,
                    message.token_count,
                    message.processing_duration_ms,
                    message.correlation_id,
                    message.causation_id,
                    1 if message.is_side_conversation_synthesis else 0,
                ),
            )
            await db.commit()

    async def store_attachment(self, content_hash: str, extension: str, data: bytes) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT OR IGNORE INTO blobs (content_hash, extension, data) VALUES (?, ?, ?)",
                (content_hash, normalize_extension(extension), data),
            )
            await db.commit()

    async def add_attachment(self, attachment: Attachment) -> str:
        """Attach a file to a conversation, storing its bytes once by content hash."""
        digest = content_hash(attachment.data)
        await self.store_attachment(digest, attachment.extension, attachment.data)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO attachments (
                    id, conversation_id, message_id, filename, content_type, content_hash
                ) VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    attachment.id,
                    attachment.conversation_id,
                    attachment.message_id,
                    attachment.filename,
                    attachment.content_type,
                    digest,
                ),
            )
            await db.commit()
        return digest

    async def get_blob(self, content_hash: str) -> bytes | None:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT data FROM blobs WHERE content_hash = ?", (content_hash,)
            )
            row = await cursor.fetchone()
        return bytes(row[0]) if row is not None else None


def _row_to_conversation(row: aiosqlite.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        title=row["title"],
        participants=load_list(row["participants_json"]),
        created_at=parse_dt(row["created_at"]),
        last_activity_at=parse_dt(row["last_activity_at"]),
        summary=row["summary"],
        tags=load_list(row["tags_json"]),
        mode=row["mode"],
        is_archived=bool(row["is_archived"]),
        parent_id=row["parent_id"],
        child_ids=load_list(row["child_ids_json"]),
    )


def _row_to_message(row: aiosqlite.Row) -> Message:
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        sequence=row["sequence"],
        sender_role=SenderRole(row["sender_role"]),
        sender_id=row["sender_id"],
        model_used=row["model_used"],
        content=row["content"],
        sent_at=parse_dt(row["sent_at"]),
        intent=row["intent"],
        token_count=row["token_count"],
        processing_duration_ms=row["processing_duration_ms"],
        correlation_id=row["correlation_id"],
        causation_id=row["causation_id"],
        is_side_conversation_synthesis=bool(row["is_side_conversation_synthesis"]),
    )


__all__ = ["SQLiteConversationStore"]
