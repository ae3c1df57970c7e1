"""Manifest: the single root record of a bundle.

A bundle directory without a readable manifest is treated as absent, never
as partially valid, so the manifest is always the last file an export writes.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from convarchive.models.conversations import utc_now
from convarchive.models.format import (
    ARTIFACT_REFERENCES_FILE,
    ATTACHMENTS_DIR,
    CURRENT_FORMAT_VERSION,
    PAPER_SNAPSHOTS_DIR,
    PROVENANCE_EVENTS_FILE,
    REPO_SNAPSHOTS_DIR,
    FormatVersion,
    WireModel,
)


class ConversationEntry(WireModel):
    id: str
    title: str
    participants: list[str] = Field(default_factory=list)
    created_at: datetime
    last_activity_at: datetime
    message_count: int = Field(default=0, ge=0)
    file_path: str
    parent_id: str | None = None
    child_ids: list[str] = Field(default_factory=list)


class SnapshotsEntry(WireModel):
    paper_count: int = 0
    repo_count: int = 0
    papers_path: str = PAPER_SNAPSHOTS_DIR
    repos_path: str = REPO_SNAPSHOTS_DIR


class ArtifactsEntry(WireModel):
    count: int = 0
    references_path: str = ARTIFACT_REFERENCES_FILE
    snapshots: SnapshotsEntry = Field(default_factory=SnapshotsEntry)


class ProvenanceEntry(WireModel):
    event_count: int = 0
    events_path: str = PROVENANCE_EVENTS_FILE
    first_event_at: datetime | None = None
    last_event_at: datetime | None = None


class AttachmentsEntry(WireModel):
    count: int = 0
    total_size: int = 0
    path: str = ATTACHMENTS_DIR


class ArchiveManifest(WireModel):
    format_version: FormatVersion = CURRENT_FORMAT_VERSION
    created_at: datetime = Field(default_factory=utc_now)
    created_by: str
    app_version: str
    conversations: list[ConversationEntry] = Field(default_factory=list)
    artifacts: ArtifactsEntry = Field(default_factory=ArtifactsEntry)
    provenance: ProvenanceEntry = Field(default_factory=ProvenanceEntry)
    attachments: AttachmentsEntry = Field(default_factory=AttachmentsEntry)
    notes: str | None = None

    @property
    def message_count(self) -> int:
        return sum(entry.message_count for entry in self.conversations)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


__all__ = [
    "ArchiveManifest",
    "ArtifactsEntry",
    "AttachmentsEntry",
    "ConversationEntry",
    "ProvenanceEntry",
    "SnapshotsEntry",
]
