"""Provenance events: immutable, sequence-numbered facts about a conversation.

Events are used for audit and causal reconstruction, never for replaying
application logic. The payload is a closed set of tagged variants keyed by
``kind``; a payload kind this build does not know fails validation instead of
decoding into a half-filled map.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Literal

from pydantic import Field, field_validator

from convarchive.models.conversations import utc_now
from convarchive.models.format import WireModel


class ConversationCreated(WireModel):
    kind: Literal["conversation_created"] = "conversation_created"
    title: str
    participants: list[str] = Field(default_factory=list)


class ConversationBranched(WireModel):
    kind: Literal["conversation_branched"] = "conversation_branched"
    from_message_id: str
    reason: str
    branch_title: str


class ConversationArchived(WireModel):
    kind: Literal["conversation_archived"] = "conversation_archived"
    reason: str | None = None


class ConversationTitleUpdated(WireModel):
    kind: Literal["conversation_title_updated"] = "conversation_title_updated"
    old_title: str
    new_title: str


class ConversationSummarized(WireModel):
    kind: Literal["conversation_summarized"] = "conversation_summarized"
    summary: str


class MessageSent(WireModel):
    kind: Literal["message_sent"] = "message_sent"
    message_id: str
    role: str
    model_used: str | None = None
    content_hash: str


class MessageEdited(WireModel):
    kind: Literal["message_edited"] = "message_edited"
    message_id: str
    old_content_hash: str
    new_content_hash: str
    reason: str | None = None


class SideConversationSynthesized(WireModel):
    kind: Literal["side_conversation_synthesized"] = "side_conversation_synthesized"
    side_conversation_id: str
    synthesis_message_id: str
    summary: str


class ArtifactIntroduced(WireModel):
    kind: Literal["artifact_introduced"] = "artifact_introduced"
    artifact_uri: str
    artifact_type: str
    version: str | None = None
    display_name: str


class ArtifactReferenced(WireModel):
    kind: Literal["artifact_referenced"] = "artifact_referenced"
    artifact_uri: str
    message_id: str
    context_snippet: str = ""


class ArtifactResolved(WireModel):
    kind: Literal["artifact_resolved"] = "artifact_resolved"
    artifact_uri: str
    resolution_details: str = ""


class ArtifactLinked(WireModel):
    kind: Literal["artifact_linked"] = "artifact_linked"
    source_uri: str
    target_uri: str
    relationship: str


class InsightRecorded(WireModel):
    kind: Literal["insight_recorded"] = "insight_recorded"
    insight_id: str
    summary: str
    derived_from: list[str] = Field(default_factory=list)
    confidence: float | None = None


class DecisionMade(WireModel):
    kind: Literal["decision_made"] = "decision_made"
    decision_id: str
    description: str
    rationale: str
    alternatives_considered: list[str] = Field(default_factory=list)


class DecisionRevised(WireModel):
    kind: Literal["decision_revised"] = "decision_revised"
    decision_id: str
    old_description: str
    new_description: str
    revision_reason: str


class ConversationExported(WireModel):
    kind: Literal["conversation_exported"] = "conversation_exported"
    export_id: str
    format: str
    destination: str


class ConversationImported(WireModel):
    kind: Literal["conversation_imported"] = "conversation_imported"
    import_id: str
    source: str
    original_conversation_id: str | None = None


ProvenancePayload = Annotated[
    ConversationCreated
    | ConversationBranched
    | ConversationArchived
    | ConversationTitleUpdated
    | ConversationSummarized
    | MessageSent
    | MessageEdited
    | SideConversationSynthesized
    | ArtifactIntroduced
    | ArtifactReferenced
    | ArtifactResolved
    | ArtifactLinked
    | InsightRecorded
    | DecisionMade
    | DecisionRevised
    | ConversationExported
    | ConversationImported,
    Field(discriminator="kind"),
]


class ProvenanceEvent(WireModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    # Assigned by the provenance store; monotonic per conversation.
    sequence: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=utc_now)
    conversation_id: str
    actor_id: str
    payload: ProvenancePayload
    correlation_id: str | None = None
    causation_id: str | None = None

    @field_validator("timestamp")
    @classmethod
    def _ensure_timezone_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            raise ValueError("timestamp must be timezone-aware")
        return value


__all__ = [
    "ArtifactIntroduced",
    "ArtifactLinked",
    "ArtifactReferenced",
    "ArtifactResolved",
    "ConversationArchived",
    "ConversationBranched",
    "ConversationCreated",
    "ConversationExported",
    "ConversationImported",
    "ConversationSummarized",
    "ConversationTitleUpdated",
    "DecisionMade",
    "DecisionRevised",
    "InsightRecorded",
    "MessageEdited",
    "MessageSent",
    "ProvenanceEvent",
    "ProvenancePayload",
    "SideConversationSynthesized",
]
