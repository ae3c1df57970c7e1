from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from pathlib import PurePosixPath

from pydantic import BaseModel, Field, field_validator

from convarchive.models.format import normalize_extension


def utc_now() -> datetime:
    return datetime.now(UTC)


def _require_aware(value: datetime | None) -> datetime | None:
    if value is None:
        return value
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError("datetime fields must be timezone-aware")
    return value


class SenderRole(StrEnum):
    human = "human"
    counsel = "counsel"
    system = "system"


class Conversation(BaseModel):
    id: str
    title: str
    participants: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_activity_at: datetime = Field(default_factory=utc_now)
    summary: str | None = None
    tags: list[str] = Field(default_factory=list)
    mode: str = "interactive"
    is_archived: bool = False
    # Conversations form a forest: branches point at the conversation they were spawned from.
    parent_id: str | None = None
    child_ids: list[str] = Field(default_factory=list)

    @field_validator("created_at", "last_activity_at")
    @classmethod
    def _ensure_timezone_aware(cls, value: datetime) -> datetime:
        return _require_aware(value)


class Message(BaseModel):
    id: str
    conversation_id: str
    sequence: int = Field(default=0, ge=0)
    sender_role: SenderRole = SenderRole.human
    sender_id: str
    model_used: str | None = None
    content: str
    sent_at: datetime = Field(default_factory=utc_now)
    intent: str = "converse"
    token_count: int = 0
    processing_duration_ms: int = 0
    correlation_id: str | None = None
    causation_id: str | None = None
    is_side_conversation_synthesis: bool = False

    @field_validator("sent_at")
    @classmethod
    def _ensure_timezone_aware(cls, value: datetime) -> datetime:
        return _require_aware(value)


class Attachment(BaseModel):
    """Binary payload attached to a conversation, usually to one message."""

    id: str
    conversation_id: str
    message_id: str | None = None
    filename: str
    content_type: str = "application/octet-stream"
    data: bytes

    @property
    def extension(self) -> str:
        return normalize_extension(PurePosixPath(self.filename).suffix)

    @property
    def size(self) -> int:
        return len(self.data)


__all__ = ["Attachment", "Conversation", "Message", "SenderRole", "utc_now"]
