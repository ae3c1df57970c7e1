from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from convarchive.models.conversations import utc_now


class ArtifactType(StrEnum):
    paper = "paper"
    document = "document"
    repository = "repository"
    dataset = "dataset"
    robot = "robot"
    stream = "stream"
    external_url = "externalUrl"
    unknown = "unknown"

    @property
    def has_snapshot_dir(self) -> bool:
        """Only papers and repositories carry cached content in a bundle."""
        return self in (ArtifactType.paper, ArtifactType.repository)


class ArtifactReference(BaseModel):
    """URI-addressed pointer to something a conversation discussed.

    Independent of whether a cached snapshot of the content exists.
    """

    uri: str
    type: ArtifactType = ArtifactType.unknown
    display_name: str
    version: str | None = None
    introduced_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("uri")
    @classmethod
    def _validate_uri(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError(f"artifact uri must include a scheme: {value!r}")
        return value


class ArtifactMention(BaseModel):
    artifact_uri: str
    conversation_id: str
    message_id: str
    mention_type: str = "inline"
    character_offset: int = 0
    character_length: int = 0
    context_snippet: str | None = None
    mentioned_by: str | None = None
    recorded_at: datetime = Field(default_factory=utc_now)
    is_first_mention: bool = False


class ArtifactSnapshot(BaseModel):
    """Cached content of a paper (PDF) or repository (git bundle)."""

    uri: str
    data: bytes
    extension: str = "bin"


__all__ = ["ArtifactMention", "ArtifactReference", "ArtifactSnapshot", "ArtifactType"]
