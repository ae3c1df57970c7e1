"""JSON-Lines record shapes written into a bundle.

Conversation files are a closed set of tagged variants: the first line is a
``conversation`` header, followed by ``message`` and ``artifact_mention``
lines. Decoding goes through a discriminated union so an unknown ``type`` or a
missing field surfaces as a validation error on that exact line.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import Field, TypeAdapter, field_validator

from convarchive.models.artifacts import ArtifactMention, ArtifactReference, ArtifactType
from convarchive.models.conversations import Conversation, Message, SenderRole, utc_now
from convarchive.models.format import WireModel


class ConversationHeaderLine(WireModel):
    type: Literal["conversation"] = "conversation"
    id: str
    title: str
    participants: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_activity_at: datetime = Field(default_factory=utc_now)
    summary: str | None = None
    tags: list[str] = Field(default_factory=list)
    mode: str = "interactive"
    is_archived: bool = False
    parent_id: str | None = None
    child_ids: list[str] = Field(default_factory=list)

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> ConversationHeaderLine:
        return cls.model_validate(conversation.model_dump())

    def to_conversation(self) -> Conversation:
        return Conversation.model_validate(self.model_dump(exclude={"type"}))


class MessageLine(WireModel):
    type: Literal["message"] = "message"
    id: str
    sequence: int = Field(default=0, ge=0)
    sender_role: SenderRole = SenderRole.human
    sender_id: str
    model_used: str | None = None
    content: str
    sent_at: datetime
    intent: str = "converse"
    token_count: int = 0
    processing_duration_ms: int = 0
    correlation_id: str | None = None
    causation_id: str | None = None
    is_side_conversation_synthesis: bool = False

    @classmethod
    def from_message(cls, message: Message) -> MessageLine:
        return cls.model_validate(message.model_dump())

    def to_message(self, conversation_id: str) -> Message:
        return Message.model_validate(
            {**self.model_dump(exclude={"type"}), "conversation_id": conversation_id}
        )


class ArtifactMentionLine(WireModel):
    type: Literal["artifact_mention"] = "artifact_mention"
    artifact_uri: str
    message_id: str
    mention_type: str = "inline"
    character_offset: int = 0
    character_length: int = 0
    context_snippet: str | None = None
    mentioned_by: str | None = None
    recorded_at: datetime = Field(default_factory=utc_now)
    is_first_mention: bool = False

    @classmethod
    def from_mention(cls, mention: ArtifactMention) -> ArtifactMentionLine:
        return cls.model_validate(mention.model_dump())

    def to_mention(self, conversation_id: str) -> ArtifactMention:
        return ArtifactMention.model_validate(
            {**self.model_dump(exclude={"type"}), "conversation_id": conversation_id}
        )


ConversationLine = Annotated[
    ConversationHeaderLine | MessageLine | ArtifactMentionLine,
    Field(discriminator="type"),
]

CONVERSATION_LINE_ADAPTER: TypeAdapter[ConversationLine] = TypeAdapter(ConversationLine)


class ArtifactReferenceLine(WireModel):
    uri: str
    type: ArtifactType = ArtifactType.unknown
    display_name: str
    version: str | None = None
    introduced_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    # Set only when cached content was copied into the bundle.
    snapshot_path: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _unknown_types_fall_back(cls, value: object) -> object:
        if isinstance(value, str) and value not in {t.value for t in ArtifactType}:
            return ArtifactType.unknown
        return value

    @classmethod
    def from_reference(
        cls, reference: ArtifactReference, snapshot_path: str | None = None
    ) -> ArtifactReferenceLine:
        return cls.model_validate({**reference.model_dump(), "snapshot_path": snapshot_path})


__all__ = [
    "CONVERSATION_LINE_ADAPTER",
    "ArtifactMentionLine",
    "ArtifactReferenceLine",
    "ConversationHeaderLine",
    "ConversationLine",
    "MessageLine",
]
