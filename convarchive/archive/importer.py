"""Archive importer: reconstructs a bundle through the live services.

Only a missing or undecodable manifest (and an unsupported format version)
stops an import outright. Everything after the manifest is item-scoped:
a conversation that cannot be read is recorded as an error, a malformed
artifact or provenance line as a warning, and the import moves on.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from convarchive.archive.bundle import (
    check_format_version,
    open_bundle,
    read_manifest,
    resolve_in_bundle,
)
from convarchive.archive.cancellation import CancellationToken
from convarchive.archive.errors import ConversationImportError, LineDecodeError
from convarchive.archive.jsonl import decode_line, iter_raw_lines, read_conversation_file
from convarchive.config import ArchiveSettings
from convarchive.core.logging import correlation_scope
from convarchive.core.telemetry import get_tracer
from convarchive.models.archive import (
    ArchiveProgress,
    ConversationFailurePolicy,
    ImportOptions,
    ImportPhase,
    ImportResult,
    ProgressCallback,
)
from convarchive.models.artifacts import ArtifactMention, ArtifactSnapshot
from convarchive.models.conversations import Conversation, Message
from convarchive.models.format import content_hash, normalize_extension
from convarchive.models.manifest import ArchiveManifest, ConversationEntry
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


@dataclass(slots=True)
class _ImportRun:
    """Mutable state for one ``import_archive`` call."""

    bundle_dir: Path
    manifest: ArchiveManifest
    options: ImportOptions
    result: ImportResult = field(default_factory=ImportResult)
    # Bundle conversation id -> id used in the store.
    id_map: dict[str, str] = field(default_factory=dict)
    failed_ids: set[str] = field(default_factory=set)
    pending_mentions: list[ArtifactMention] = field(default_factory=list)

    def map_id(self, conversation_id: str | None) -> str | None:
        if conversation_id is None:
            return None
        return self.id_map.get(conversation_id, conversation_id)

    def warn(self, message: str) -> None:
        self.result.warnings.append(message)
        logger.warning(message)

    def fail(self, message: str) -> None:
        self.result.errors.append(message)
        logger.warning(message)


class ArchiveImporter:
    """Import bundles produced by ``ArchiveExporter``."""

    def __init__(
        self,
        conversations: ConversationStore,
        provenance: ProvenanceService,
        artifacts: ArtifactService,
        *,
        settings: ArchiveSettings | None = None,
    ) -> None:
        self._conversations = conversations
        self._provenance = provenance
        self._artifacts = artifacts
        self._settings = settings or ArchiveSettings()
        self._temp_dir = self._settings.storage.temp_dir
        self._tracer = get_tracer(__name__)

    async def preview(self, source: Path | str) -> ArchiveManifest:
        """Return the manifest of *source* without touching any service."""
        with open_bundle(Path(source), self._temp_dir) as bundle_dir:
            return read_manifest(bundle_dir)

    async def import_archive(
        self,
        source: Path | str,
        options: ImportOptions | None = None,
        progress: ProgressCallback | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ImportResult:
        options = options or self._settings.import_
        token = cancellation or CancellationToken()
        source = Path(source)

        with (
            correlation_scope(operation="import", archive_id=uuid.uuid4().hex),
            self._tracer.start_as_current_span("archive.import"),
        ):
            logger.info("Starting archive import from %s", source)
            with open_bundle(source, self._temp_dir) as bundle_dir:
                _report(progress, ImportPhase.validating, 0, 1, "Reading manifest...")
                manifest = read_manifest(bundle_dir)
                run = _ImportRun(bundle_dir=bundle_dir, manifest=manifest, options=options)

                warning = check_format_version(manifest.format_version, options.newer_version_policy)
                if warning is not None:
                    run.warn(warning)

                token.raise_if_cancelled()
                with self._tracer.start_as_current_span("archive.import.conversations"):
                    await self._import_conversations(run, progress)

                token.raise_if_cancelled()
                _report(progress, ImportPhase.artifacts, 0, 1, "Importing artifacts...")
                with self._tracer.start_as_current_span("archive.import.artifacts"):
                    await self._import_artifacts(run)
                    await self._record_mentions(run)

                token.raise_if_cancelled()
                if options.import_provenance:
                    _report(progress, ImportPhase.provenance, 0, 1, "Importing provenance events...")
                    with self._tracer.start_as_current_span("archive.import.provenance"):
                        await self._import_provenance(run)

                token.raise_if_cancelled()
                if options.import_attachments:
                    _report(progress, ImportPhase.attachments, 0, 1, "Importing attachments...")
                    with self._tracer.start_as_current_span("archive.import.attachments"):
                        await self._import_attachments(run)

                _report(progress, ImportPhase.finalizing, 0, 1, "Finishing import...")

        result = run.result
        logger.info(
            "Archive import complete: %d of %d conversations, %d warnings, %d errors",
            result.conversations_imported,
            len(manifest.conversations),
            len(result.warnings),
            len(result.errors),
        )
        return result

    # -- Conversations -----------------------------------------------------------

    async def _import_conversations(self, run: _ImportRun, progress: ProgressCallback | None) -> None:
        entries = run.manifest.conversations
        await self._assign_store_ids(run, entries)

        total = len(entries)
        for index, entry in enumerate(entries):
            _report(
                progress,
                ImportPhase.conversations,
                index,
                total,
                f"Importing conversation {index + 1} of {total}",
            )
            if entry.id in run.failed_ids:
                continue
            with correlation_scope(conversation_id=entry.id):
                try:
                    message_count = await self._import_conversation(run, entry)
                except Exception as exc:
                    self._conversation_failed(run, entry.id, exc)
                    continue
            run.result.conversations_imported += 1
            run.result.messages_imported += message_count
            run.result.imported_conversation_ids.append(run.id_map[entry.id])

    async def _assign_store_ids(self, run: _ImportRun, entries: list[ConversationEntry]) -> None:
        """Decide every store id up front so parent/child links can be rewritten."""
        for entry in entries:
            run.id_map[entry.id] = entry.id
            if run.options.merge_existing:
                continue
            try:
                existing = await self._conversations.get_conversation(entry.id)
            except Exception as exc:
                self._conversation_failed(run, entry.id, exc)
                continue
            if existing is not None:
                run.id_map[entry.id] = str(uuid.uuid4())
                run.result.id_remapping[entry.id] = run.id_map[entry.id]

    def _conversation_failed(self, run: _ImportRun, conversation_id: str, exc: Exception) -> None:
        failure = (
            exc
            if isinstance(exc, ConversationImportError)
            else ConversationImportError(conversation_id, str(exc))
        )
        if run.options.on_conversation_failure is ConversationFailurePolicy.fail_fast:
            raise failure from exc
        run.failed_ids.add(conversation_id)
        run.fail(f"Failed to import conversation {conversation_id}: {failure.reason}")

    async def _import_conversation(self, run: _ImportRun, entry: ConversationEntry) -> int:
        path = resolve_in_bundle(run.bundle_dir, entry.file_path)
        if not path.is_file():
            raise ConversationImportError(entry.id, f"missing file {entry.file_path}")

        lines = read_conversation_file(path, entry.file_path)
        if not lines or not isinstance(lines[0], ConversationHeaderLine):
            raise ConversationImportError(entry.id, "first line is not a conversation header")
        header = lines[0]
        if header.id != entry.id:
            raise ConversationImportError(entry.id, f"header id {header.id} does not match manifest")
        body = lines[1:]
        if any(isinstance(line, ConversationHeaderLine) for line in body):
            raise ConversationImportError(entry.id, "more than one conversation header")

        store_id = run.id_map[entry.id]
        as_copy = store_id != entry.id
        conversation = self._reconstruct_header(run, header, store_id)

        known_message_ids: set[str] = set()
        if run.options.merge_existing:
            existing = await self._conversations.get_conversation(store_id)
            if existing is not None:
                conversation = _merge_headers(existing, conversation)
                known_message_ids = {
                    message.id for message in await self._conversations.list_messages(store_id)
                }

        # Every record is built and validated before the first write, so a bad
        # line leaves the store untouched.
        messages: list[Message] = []
        message_ids: dict[str, str] = {}
        for line in body:
            if not isinstance(line, MessageLine) or line.id in known_message_ids:
                continue
            message = line.to_message(store_id)
            if as_copy:
                message = message.model_copy(update={"id": str(uuid.uuid4())})
            message_ids[line.id] = message.id
            messages.append(message)

        mentions: list[ArtifactMention] = []
        for line in body:
            if isinstance(line, ArtifactMentionLine):
                mention = line.to_mention(store_id)
                if as_copy:
                    mention = mention.model_copy(
                        update={"message_id": message_ids.get(line.message_id, line.message_id)}
                    )
                mentions.append(mention)

        await self._conversations.save_conversation(conversation)
        for message in messages:
            await self._conversations.append_message(message)
        run.pending_mentions.extend(mentions)

        logger.debug("Imported %d messages into %s", len(messages), store_id)
        return len(messages)

    def _reconstruct_header(
        self, run: _ImportRun, header: ConversationHeaderLine, store_id: str
    ) -> Conversation:
        conversation = header.to_conversation()
        title = conversation.title
        if run.options.title_prefix:
            title = f"{run.options.title_prefix}{title}"
        return conversation.model_copy(
            update={
                "id": store_id,
                "title": title,
                "parent_id": run.map_id(conversation.parent_id),
                "child_ids": [run.map_id(child) or child for child in conversation.child_ids],
            }
        )

    # -- Artifacts ---------------------------------------------------------------

    async def _import_artifacts(self, run: _ImportRun) -> None:
        relative = run.manifest.artifacts.references_path
        path = resolve_in_bundle(run.bundle_dir, relative)
        if not path.is_file():
            return

        for number, raw in iter_raw_lines(path):
            try:
                line = decode_line(ArtifactReferenceLine, raw, relative, number)
            except LineDecodeError as exc:
                run.warn(f"Skipped malformed artifact reference: {exc}")
                continue
            try:
                await self._artifacts.get_or_create_artifact(
                    line.uri,
                    display_name=line.display_name,
                    introduced_by=line.introduced_by,
                    artifact_type=line.type,
                    version=line.version,
                )
            except Exception as exc:
                run.fail(f"Failed to import artifact {line.uri}: {exc}")
                continue
            run.result.artifacts_imported += 1

            if line.snapshot_path:
                try:
                    await self._import_snapshot(run, line)
                except Exception as exc:
                    run.fail(f"Failed to import snapshot of {line.uri}: {exc}")

    async def _import_snapshot(self, run: _ImportRun, line: ArtifactReferenceLine) -> None:
        path = resolve_in_bundle(run.bundle_dir, line.snapshot_path or "")
        if not path.is_file():
            run.warn(f"Snapshot for {line.uri} is missing from the bundle: {line.snapshot_path}")
            return
        snapshot = ArtifactSnapshot(
            uri=line.uri,
            data=path.read_bytes(),
            extension=normalize_extension(path.suffix),
        )
        await self._artifacts.save_snapshot(snapshot)
        run.result.snapshots_imported += 1

    async def _record_mentions(self, run: _ImportRun) -> None:
        for mention in run.pending_mentions:
            try:
                await self._artifacts.record_mention(mention)
            except Exception as exc:
                run.warn(f"Failed to record mention of {mention.artifact_uri}: {exc}")

    # -- Provenance --------------------------------------------------------------

    async def _import_provenance(self, run: _ImportRun) -> None:
        entry = run.manifest.provenance
        path = resolve_in_bundle(run.bundle_dir, entry.events_path)
        if not path.is_file():
            if entry.event_count:
                run.warn(f"Provenance events file {entry.events_path} is missing")
            return

        # Events of conversations imported as copies get fresh ids; causation links follow.
        event_ids: dict[str, str] = {}
        skipped = 0
        for number, raw in iter_raw_lines(path):
            try:
                event = decode_line(ProvenanceEvent, raw, entry.events_path, number)
            except LineDecodeError as exc:
                run.warn(f"Failed to decode provenance event: {exc}")
                continue
            if event.conversation_id in run.failed_ids:
                skipped += 1
                continue
            if event.conversation_id in run.result.id_remapping:
                event_ids[event.id] = str(uuid.uuid4())
                event = event.model_copy(
                    update={
                        "id": event_ids[event.id],
                        "conversation_id": run.result.id_remapping[event.conversation_id],
                    }
                )
            if event.causation_id in event_ids:
                event = event.model_copy(update={"causation_id": event_ids[event.causation_id]})
            try:
                await self._provenance.record(event)
            except Exception as exc:
                run.fail(f"Failed to record provenance event {event.id}: {exc}")
                continue
            run.result.provenance_events_imported += 1

        if skipped:
            run.warn(f"Skipped {skipped} provenance events of conversations that failed to import")

    # -- Attachments -------------------------------------------------------------

    async def _import_attachments(self, run: _ImportRun) -> None:
        directory = resolve_in_bundle(run.bundle_dir, run.manifest.attachments.path)
        if not directory.is_dir():
            return

        for blob in sorted(directory.iterdir()):
            if not blob.is_file():
                continue
            digest, _, extension = blob.name.partition(".")
            try:
                data = blob.read_bytes()
            except OSError as exc:
                run.fail(f"Failed to read attachment {blob.name}: {exc}")
                continue
            if content_hash(data) != digest:
                run.warn(f"Attachment {blob.name} does not match its content hash; skipped")
                continue
            try:
                await self._conversations.store_attachment(
                    digest, normalize_extension(extension), data
                )
            except Exception as exc:
                run.fail(f"Failed to store attachment {blob.name}: {exc}")
                continue
            run.result.attachments_imported += 1


def _merge_headers(existing: Conversation, incoming: Conversation) -> Conversation:
    """Fold an imported header into an existing conversation with the same id."""
    return incoming.model_copy(
        update={
            "participants": list(dict.fromkeys([*existing.participants, *incoming.participants])),
            "tags": list(dict.fromkeys([*existing.tags, *incoming.tags])),
            "child_ids": list(dict.fromkeys([*existing.child_ids, *incoming.child_ids])),
            "created_at": min(existing.created_at, incoming.created_at),
            "last_activity_at": max(existing.last_activity_at, incoming.last_activity_at),
        }
    )


def _report(
    progress: ProgressCallback | None,
    phase: ImportPhase,
    current: int,
    total: int,
    message: str,
) -> None:
    if progress is not None:
        progress(ArchiveProgress(phase=phase, current=current, total=total, message=message))


__all__ = ["ArchiveImporter"]
