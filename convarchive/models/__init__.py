from __future__ import annotations

from convarchive.models.archive import (
    ArchiveProgress,
    ConversationFailurePolicy,
    ExportOptions,
    ExportPhase,
    ImportOptions,
    ImportPhase,
    ImportResult,
    NewerVersionPolicy,
    ProgressCallback,
)
from convarchive.models.artifacts import (
    ArtifactMention,
    ArtifactReference,
    ArtifactSnapshot,
    ArtifactType,
)
from convarchive.models.conversations import Attachment, Conversation, Message, SenderRole, utc_now
from convarchive.models.format import (
    CURRENT_FORMAT_VERSION,
    MINIMUM_READABLE_VERSION,
    FormatVersion,
)
from convarchive.models.manifest import (
    ArchiveManifest,
    ArtifactsEntry,
    AttachmentsEntry,
    ConversationEntry,
    ProvenanceEntry,
    SnapshotsEntry,
)
from convarchive.models.provenance import ProvenanceEvent, ProvenancePayload

__all__ = [
    "ArchiveManifest",
    "ArchiveProgress",
    "ArtifactMention",
    "ArtifactReference",
    "ArtifactSnapshot",
    "ArtifactType",
    "ArtifactsEntry",
    "Attachment",
    "AttachmentsEntry",
    "CURRENT_FORMAT_VERSION",
    "Conversation",
    "ConversationEntry",
    "ConversationFailurePolicy",
    "ExportOptions",
    "ExportPhase",
    "FormatVersion",
    "ImportOptions",
    "ImportPhase",
    "ImportResult",
    "MINIMUM_READABLE_VERSION",
    "Message",
    "NewerVersionPolicy",
    "ProgressCallback",
    "ProvenanceEntry",
    "ProvenanceEvent",
    "ProvenancePayload",
    "SenderRole",
    "SnapshotsEntry",
    "utc_now",
]
