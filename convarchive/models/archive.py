"""Options, progress and result records for export/import operations."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, Field


class ConversationFailurePolicy(StrEnum):
    """What to do when a single conversation cannot be exported or imported.

    ``fail_fast`` aborts the whole operation on the first failure.
    ``best_effort`` records the failure, leaves the conversation out and
    continues with the next one.
    """

    fail_fast = "fail_fast"
    best_effort = "best_effort"


class NewerVersionPolicy(StrEnum):
    """How the importer treats a bundle written by a newer format version."""

    warn = "warn"
    reject_major = "reject_major"
    reject = "reject"


class ExportPhase(StrEnum):
    preparing = "preparing"
    conversations = "conversations"
    artifacts = "artifacts"
    provenance = "provenance"
    attachments = "attachments"
    finalizing = "finalizing"


class ImportPhase(StrEnum):
    validating = "validating"
    conversations = "conversations"
    artifacts = "artifacts"
    provenance = "provenance"
    attachments = "attachments"
    finalizing = "finalizing"


@dataclass(frozen=True, slots=True)
class ArchiveProgress:
    phase: ExportPhase | ImportPhase
    current: int
    total: int
    message: str

    @property
    def fraction_complete(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.current / self.total


ProgressCallback = Callable[[ArchiveProgress], None]


class ExportOptions(BaseModel):
    include_snapshots: bool = True
    include_attachments: bool = True
    include_provenance: bool = True
    compress: bool = False
    notes: str | None = None
    on_conversation_failure: ConversationFailurePolicy = ConversationFailurePolicy.fail_fast

    @classmethod
    def full(cls) -> ExportOptions:
        """Everything, packed into a single file."""
        return cls(
            include_snapshots=True,
            include_attachments=True,
            include_provenance=True,
            compress=True,
        )

    @classmethod
    def lightweight(cls) -> ExportOptions:
        """No large binary content; keeps the provenance log."""
        return cls(
            include_snapshots=False,
            include_attachments=False,
            include_provenance=True,
            compress=False,
        )


class ImportOptions(BaseModel):
    import_attachments: bool = True
    import_provenance: bool = True
    # False imports a conversation whose id already exists as a new copy.
    merge_existing: bool = False
    title_prefix: str | None = None
    on_conversation_failure: ConversationFailurePolicy = ConversationFailurePolicy.best_effort
    newer_version_policy: NewerVersionPolicy = NewerVersionPolicy.warn


class ImportResult(BaseModel):
    conversations_imported: int = 0
    messages_imported: int = 0
    artifacts_imported: int = 0
    provenance_events_imported: int = 0
    attachments_imported: int = 0
    snapshots_imported: int = 0
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    imported_conversation_ids: list[str] = Field(default_factory=list)
    # Bundle id -> store id, for conversations imported as new copies.
    id_remapping: dict[str, str] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.errors


__all__ = [
    "ArchiveProgress",
    "ConversationFailurePolicy",
    "ExportOptions",
    "ExportPhase",
    "ImportOptions",
    "ImportPhase",
    "ImportResult",
    "NewerVersionPolicy",
    "ProgressCallback",
]
