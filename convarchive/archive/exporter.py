"""Archive exporter: writes conversations and their context into a bundle.

The manifest is written last. Any failure before that point leaves a
directory without a manifest, which every reader treats as not a bundle, so
no partial export can ever be mistaken for a complete one.
"""

from __future__ import annotations

import getpass
import logging
import shutil
import uuid
from collections.abc import Sequence
from pathlib import Path

from convarchive.archive.bundle import write_manifest
from convarchive.archive.cancellation import CancellationToken
from convarchive.archive.compression import pack_bundle
from convarchive.archive.errors import (
    ArchiveCancelledError,
    ArchiveError,
    ConversationExportError,
    DestinationError,
)
from convarchive.archive.jsonl import write_lines
from convarchive.core.logging import correlation_scope
from convarchive.core.telemetry import get_tracer, package_version
from convarchive.models.archive import (
    ArchiveProgress,
    ConversationFailurePolicy,
    ExportOptions,
    ExportPhase,
    ProgressCallback,
)
from convarchive.models.artifacts import ArtifactReference, ArtifactType
from convarchive.models.format import (
    ARTIFACT_REFERENCES_FILE,
    MANIFEST_FILE_NAME,
    PAPER_SNAPSHOTS_DIR,
    PROVENANCE_EVENTS_FILE,
    REPO_SNAPSHOTS_DIR,
    SKELETON_DIRS,
    attachment_path,
    bundle_dir_name,
    conversation_path,
    snapshot_path,
)
from convarchive.models.manifest import (
    ArchiveManifest,
    ArtifactsEntry,
    AttachmentsEntry,
    ConversationEntry,
    ProvenanceEntry,
    SnapshotsEntry,
)
from convarchive.models.provenance import ProvenanceEvent
from convarchive.models.records import (
    ArtifactMentionLine,
    ArtifactReferenceLine,
    ConversationHeaderLine,
    MessageLine,
)
from convarchive.protocols.artifacts import ArtifactService
from convarchive.protocols.conversations import ConversationStore
from convarchive.protocols.provenance import ProvenanceService

logger = logging.getLogger(__name__)


def default_creator() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def _check_identifier(conversation_id: str) -> None:
    # Ids become file names inside the bundle.
    if not conversation_id or "/" in conversation_id or "\\" in conversation_id:
        raise ConversationExportError(conversation_id, "id is not usable as a file name")
    if conversation_id in {".", ".."}:
        raise ConversationExportError(conversation_id, "id is not usable as a file name")


def _write_blob(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)


class ArchiveExporter:
    """Serialize conversations, artifacts, provenance and attachments into a bundle."""

    def __init__(
        self,
        conversations: ConversationStore,
        provenance: ProvenanceService,
        artifacts: ArtifactService,
        *,
        created_by: str | None = None,
        app_version: str | None = None,
    ) -> None:
        self._conversations = conversations
        self._provenance = provenance
        self._artifacts = artifacts
        self._created_by = created_by or default_creator()
        self._app_version = app_version or package_version()
        self._tracer = get_tracer(__name__)

    async def export(
        self,
        conversation_ids: Sequence[str],
        destination: Path | str,
        options: ExportOptions | None = None,
        progress: ProgressCallback | None = None,
        cancellation: CancellationToken | None = None,
    ) -> Path:
        """Export *conversation_ids* and return the bundle directory or zip file.

        *destination* names the bundle; ``.convarchive`` is appended unless
        already present.
        """
        ids = list(dict.fromkeys(conversation_ids))
        if not ids:
            raise ValueError("at least one conversation id is required")
        options = options or ExportOptions()
        destination = Path(destination)
        bundle_dir = destination.with_name(bundle_dir_name(destination.name))
        token = cancellation or CancellationToken()

        with (
            correlation_scope(operation="export", archive_id=uuid.uuid4().hex),
            self._tracer.start_as_current_span("archive.export") as span,
        ):
            span.set_attribute("archive.conversation_count", len(ids))
            logger.info("Starting archive export for %d conversations", len(ids))
            _report(progress, ExportPhase.preparing, 0, len(ids), "Preparing archive...")
            self._prepare_destination(bundle_dir)

            try:
                manifest = await self._write_contents(bundle_dir, ids, options, progress, token)
            except ArchiveCancelledError:
                logger.info("Export cancelled; removing incomplete bundle %s", bundle_dir)
                shutil.rmtree(bundle_dir, ignore_errors=True)
                raise
            except OSError as exc:
                raise DestinationError(f"failed writing bundle {bundle_dir}: {exc}") from exc

            _report(progress, ExportPhase.finalizing, 0, 1, "Writing manifest...")
            try:
                write_manifest(bundle_dir, manifest)
            except OSError as exc:
                raise DestinationError(f"failed writing manifest in {bundle_dir}: {exc}") from exc

            final_path = bundle_dir
            if options.compress:
                final_path = pack_bundle(bundle_dir)
                shutil.rmtree(bundle_dir, ignore_errors=True)

            logger.info("Archive export complete: %s", final_path)
            return final_path

    # -- Phases ----------------------------------------------------------------

    def _prepare_destination(self, bundle_dir: Path) -> None:
        try:
            bundle_dir.mkdir(parents=True, exist_ok=True)
            # A manifest left by an earlier run would make this bundle look complete.
            (bundle_dir / MANIFEST_FILE_NAME).unlink(missing_ok=True)
            for relative in SKELETON_DIRS:
                (bundle_dir / relative).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DestinationError(f"cannot prepare export destination {bundle_dir}: {exc}") from exc

    async def _write_contents(
        self,
        bundle_dir: Path,
        ids: list[str],
        options: ExportOptions,
        progress: ProgressCallback | None,
        token: CancellationToken,
    ) -> ArchiveManifest:
        token.raise_if_cancelled()
        entries = await self._export_conversations(bundle_dir, ids, options, progress)
        exported_ids = [entry.id for entry in entries]

        token.raise_if_cancelled()
        _report(progress, ExportPhase.artifacts, 0, 1, "Exporting artifact references...")
        with self._tracer.start_as_current_span("archive.export.artifacts"):
            artifacts_entry = await self._export_artifacts(
                bundle_dir, exported_ids, include_snapshots=options.include_snapshots
            )

        token.raise_if_cancelled()
        provenance_entry = ProvenanceEntry()
        if options.include_provenance:
            _report(progress, ExportPhase.provenance, 0, 1, "Exporting provenance events...")
            with self._tracer.start_as_current_span("archive.export.provenance"):
                provenance_entry = await self._export_provenance(bundle_dir, exported_ids)

        token.raise_if_cancelled()
        attachments_entry = AttachmentsEntry()
        if options.include_attachments:
            _report(progress, ExportPhase.attachments, 0, 1, "Exporting attachments...")
            with self._tracer.start_as_current_span("archive.export.attachments"):
                attachments_entry = await self._export_attachments(bundle_dir, exported_ids)

        token.raise_if_cancelled()
        return ArchiveManifest(
            created_by=self._created_by,
            app_version=self._app_version,
            conversations=entries,
            artifacts=artifacts_entry,
            provenance=provenance_entry,
            attachments=attachments_entry,
            notes=options.notes,
        )

    async def _export_conversations(
        self,
        bundle_dir: Path,
        ids: list[str],
        options: ExportOptions,
        progress: ProgressCallback | None,
    ) -> list[ConversationEntry]:
        entries: list[ConversationEntry] = []
        total = len(ids)
        for index, conversation_id in enumerate(ids):
            _report(
                progress,
                ExportPhase.conversations,
                index,
                total,
                f"Exporting conversation {index + 1} of {total}",
            )
            with (
                correlation_scope(conversation_id=conversation_id),
                self._tracer.start_as_current_span("archive.export.conversation"),
            ):
                try:
                    entries.append(await self._export_conversation(bundle_dir, conversation_id))
                except Exception as exc:
                    failure = (
                        exc
                        if isinstance(exc, ConversationExportError)
                        else ConversationExportError(conversation_id, str(exc))
                    )
                    if options.on_conversation_failure is ConversationFailurePolicy.fail_fast:
                        raise failure from exc
                    logger.warning("Skipping conversation: %s", failure)
                    self._discard_partial_file(bundle_dir, conversation_id)
        return entries

    async def _export_conversation(self, bundle_dir: Path, conversation_id: str) -> ConversationEntry:
        _check_identifier(conversation_id)
        conversation = await self._conversations.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationExportError(conversation_id, "not found in conversation store")

        messages = sorted(
            await self._conversations.list_messages(conversation_id),
            key=lambda message: message.sequence,
        )
        mentions = await self._artifacts.get_mentions(conversation_id)

        relative = conversation_path(conversation_id)
        write_lines(
            bundle_dir / relative,
            [
                ConversationHeaderLine.from_conversation(conversation),
                *(MessageLine.from_message(message) for message in messages),
                *(ArtifactMentionLine.from_mention(mention) for mention in mentions),
            ],
        )
        logger.debug("Wrote %d messages for %s", len(messages), conversation_id)

        return ConversationEntry(
            id=conversation.id,
            title=conversation.title,
            participants=conversation.participants,
            created_at=conversation.created_at,
            last_activity_at=conversation.last_activity_at,
            message_count=len(messages),
            file_path=relative,
            parent_id=conversation.parent_id,
            child_ids=conversation.child_ids,
        )

    def _discard_partial_file(self, bundle_dir: Path, conversation_id: str) -> None:
        try:
            _check_identifier(conversation_id)
        except ArchiveError:
            return
        (bundle_dir / conversation_path(conversation_id)).unlink(missing_ok=True)

    async def _export_artifacts(
        self,
        bundle_dir: Path,
        conversation_ids: list[str],
        *,
        include_snapshots: bool,
    ) -> ArtifactsEntry:
        # Same artifact discussed in several conversations is written once; first seen wins.
        references: dict[str, ArtifactReference] = {}
        for conversation_id in conversation_ids:
            for reference in await self._artifacts.get_artifacts(conversation_id):
                references.setdefault(reference.uri, reference)

        snapshots = SnapshotsEntry()
        lines: list[ArtifactReferenceLine] = []
        for reference in references.values():
            relative: str | None = None
            if include_snapshots and reference.type.has_snapshot_dir:
                relative = await self._copy_snapshot(bundle_dir, reference)
                if relative is not None:
                    if reference.type is ArtifactType.paper:
                        snapshots.paper_count += 1
                    else:
                        snapshots.repo_count += 1
            lines.append(ArtifactReferenceLine.from_reference(reference, snapshot_path=relative))

        count = write_lines(bundle_dir / ARTIFACT_REFERENCES_FILE, lines)
        return ArtifactsEntry(count=count, snapshots=snapshots)

    async def _copy_snapshot(self, bundle_dir: Path, reference: ArtifactReference) -> str | None:
        snapshot = await self._artifacts.get_snapshot(reference.uri)
        if snapshot is None:
            return None
        snapshot_dir = PAPER_SNAPSHOTS_DIR if reference.type is ArtifactType.paper else REPO_SNAPSHOTS_DIR
        relative = snapshot_path(snapshot_dir, snapshot.data, snapshot.extension)
        target = bundle_dir / relative
        if not target.exists():
            _write_blob(target, snapshot.data)
        return relative

    async def _export_provenance(
        self, bundle_dir: Path, conversation_ids: list[str]
    ) -> ProvenanceEntry:
        events: list[ProvenanceEvent] = []
        for conversation_id in conversation_ids:
            events.extend(await self._provenance.events_for_conversation(conversation_id))

        # File order follows each event's own sequence, not the conversation it came from.
        events.sort(key=lambda event: event.sequence)
        count = write_lines(bundle_dir / PROVENANCE_EVENTS_FILE, events)

        timestamps = [event.timestamp for event in events]
        return ProvenanceEntry(
            event_count=count,
            first_event_at=min(timestamps) if timestamps else None,
            last_event_at=max(timestamps) if timestamps else None,
        )

    async def _export_attachments(
        self, bundle_dir: Path, conversation_ids: list[str]
    ) -> AttachmentsEntry:
        stored: set[str] = set()
        total_size = 0
        for conversation_id in conversation_ids:
            for attachment in await self._conversations.list_attachments(conversation_id):
                relative = attachment_path(attachment.data, attachment.extension)
                if relative in stored:
                    continue
                stored.add(relative)
                total_size += attachment.size
                target = bundle_dir / relative
                if not target.exists():
                    _write_blob(target, attachment.data)

        logger.debug("Stored %d distinct attachments (%d bytes)", len(stored), total_size)
        return AttachmentsEntry(count=len(stored), total_size=total_size)


def _report(
    progress: ProgressCallback | None,
    phase: ExportPhase,
    current: int,
    total: int,
    message: str,
) -> None:
    if progress is not None:
        progress(ArchiveProgress(phase=phase, current=current, total=total, message=message))


__all__ = ["ArchiveExporter", "default_creator"]
