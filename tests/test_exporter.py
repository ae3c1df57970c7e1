"""Tests for the archive exporter: layout, ordering, dedupe and failure handling."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from convarchive.archive.cancellation import CancellationToken
from convarchive.archive.errors import (
    ArchiveCancelledError,
    ConversationExportError,
    DestinationError,
    InvalidBundleError,
)
from convarchive.archive.exporter import ArchiveExporter
from convarchive.archive.importer import ArchiveImporter
from convarchive.models.archive import (
    ArchiveProgress,
    ConversationFailurePolicy,
    ExportOptions,
    ExportPhase,
)
from convarchive.models.artifacts import ArtifactReference, ArtifactSnapshot, ArtifactType
from convarchive.models.conversations import Attachment
from convarchive.models.format import content_hash
from convarchive.models.manifest import ArchiveManifest

from tests.fakes import (
    InMemoryArtifactService,
    InMemoryConversationStore,
    InMemoryProvenanceService,
    make_event,
    seed_conversation,
)


def _read_manifest(bundle: Path) -> ArchiveManifest:
    return ArchiveManifest.model_validate_json((bundle / "manifest.json").read_text())


def _lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


async def test_export_writes_canonical_layout(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1", message_count=3)

    bundle = await exporter.export(["c1"], tmp_path / "out")

    assert bundle == tmp_path / "out.convarchive"
    for relative in (
        "manifest.json",
        "conversations/c1.jsonl",
        "artifacts/references.jsonl",
        "artifacts/snapshots/papers",
        "artifacts/snapshots/repos",
        "provenance/events.jsonl",
        "attachments",
    ):
        assert (bundle / relative).exists(), relative

    manifest = _read_manifest(bundle)
    assert manifest.created_by == "tester"
    assert manifest.app_version == "9.9.9"
    assert [entry.id for entry in manifest.conversations] == ["c1"]
    assert manifest.conversations[0].message_count == 3
    assert manifest.conversations[0].file_path == "conversations/c1.jsonl"

    lines = _lines(bundle / "conversations/c1.jsonl")
    assert [line["type"] for line in lines] == ["conversation", "message", "message", "message"]


async def test_messages_are_written_in_sequence_order(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1", message_count=3)
    conversation_store.messages["c1"].reverse()

    bundle = await exporter.export(["c1"], tmp_path / "out")

    sequences = [line["sequence"] for line in _lines(bundle / "conversations/c1.jsonl")[1:]]
    assert sequences == [1, 2, 3]


async def test_duplicate_ids_are_exported_once(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")
    bundle = await exporter.export(["c1", "c1"], tmp_path / "out")
    assert len(_read_manifest(bundle).conversations) == 1


async def test_empty_id_list_is_rejected(exporter: ArchiveExporter, tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        await exporter.export([], tmp_path / "out")


async def test_shared_attachment_is_stored_once(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")
    seed_conversation(conversation_store, "c2")
    data = b"\x89PNG shared figure"
    for conversation_id in ("c1", "c2"):
        conversation_store.attachments[conversation_id] = [
            Attachment(
                id=f"{conversation_id}-a",
                conversation_id=conversation_id,
                filename="figure.png",
                content_type="image/png",
                data=data,
            )
        ]

    bundle = await exporter.export(["c1", "c2"], tmp_path / "out")

    stored = list((bundle / "attachments").iterdir())
    assert [p.name for p in stored] == [f"{content_hash(data)}.png"]
    manifest = _read_manifest(bundle)
    assert manifest.attachments.count == 1
    assert manifest.attachments.total_size == len(data)


async def test_reexport_to_same_destination_reuses_content_addressed_files(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")
    data = b"\x89PNG figure"
    conversation_store.attachments["c1"] = [
        Attachment(id="a", conversation_id="c1", filename="figure.png", data=data)
    ]

    first = await exporter.export(["c1"], tmp_path / "out")
    [first_blob] = list((first / "attachments").iterdir())
    second = await exporter.export(["c1"], tmp_path / "out")
    [second_blob] = list((second / "attachments").iterdir())

    assert second == first
    assert second_blob == first_blob
    assert second_blob.name == f"{content_hash(data)}.png"
    assert second_blob.read_bytes() == data
    assert _read_manifest(second).attachments.count == 1


async def test_artifacts_deduplicated_and_snapshots_copied(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    artifact_service: InMemoryArtifactService,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")
    seed_conversation(conversation_store, "c2")
    paper = ArtifactReference(uri="arxiv://2401.00001", type=ArtifactType.paper, display_name="P")
    repo = ArtifactReference(uri="git://ex/repo", type=ArtifactType.repository, display_name="R")
    doc = ArtifactReference(uri="file://notes.md", type=ArtifactType.document, display_name="D")
    artifact_service.link("c1", paper)
    artifact_service.link("c1", doc)
    artifact_service.link("c2", paper)
    artifact_service.link("c2", repo)
    for reference, data, extension in (
        (paper, b"%PDF-1.7", "pdf"),
        (repo, b"bundle", "bundle"),
        (doc, b"# notes", "md"),
    ):
        artifact_service.snapshots[reference.uri] = ArtifactSnapshot(
            uri=reference.uri, data=data, extension=extension
        )

    bundle = await exporter.export(["c1", "c2"], tmp_path / "out")

    references = _lines(bundle / "artifacts/references.jsonl")
    assert [r["uri"] for r in references] == [paper.uri, doc.uri, repo.uri]
    assert "snapshotPath" not in references[1]
    manifest = _read_manifest(bundle)
    assert manifest.artifacts.count == 3
    assert manifest.artifacts.snapshots.paper_count == 1
    assert manifest.artifacts.snapshots.repo_count == 1
    assert len(list((bundle / "artifacts/snapshots/papers").iterdir())) == 1
    assert len(list((bundle / "artifacts/snapshots/repos").iterdir())) == 1


async def test_lightweight_export_skips_binaries(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    artifact_service: InMemoryArtifactService,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")
    conversation_store.attachments["c1"] = [
        Attachment(id="a", conversation_id="c1", filename="x.bin", data=b"x")
    ]
    paper = ArtifactReference(uri="arxiv://1", type=ArtifactType.paper, display_name="P")
    artifact_service.link("c1", paper)
    artifact_service.snapshots[paper.uri] = ArtifactSnapshot(uri=paper.uri, data=b"%PDF")

    bundle = await exporter.export(["c1"], tmp_path / "out", ExportOptions.lightweight())

    manifest = _read_manifest(bundle)
    assert manifest.attachments.count == 0
    assert manifest.artifacts.count == 1
    assert manifest.artifacts.snapshots.paper_count == 0
    assert list((bundle / "attachments").iterdir()) == []
    assert artifact_service.calls["get_snapshot"] == 0
    assert conversation_store.calls["list_attachments"] == 0


async def test_provenance_sorted_by_event_sequence(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    provenance_service: InMemoryProvenanceService,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")
    seed_conversation(conversation_store, "c2")
    for event in (make_event("c1", 5), make_event("c1", 1), make_event("c2", 3)):
        provenance_service.events[event.id] = event

    bundle = await exporter.export(["c1", "c2"], tmp_path / "out")

    events = _lines(bundle / "provenance/events.jsonl")
    assert [e["sequence"] for e in events] == [1, 3, 5]
    manifest = _read_manifest(bundle)
    assert manifest.provenance.event_count == 3
    assert manifest.provenance.first_event_at < manifest.provenance.last_event_at


async def test_missing_conversation_fails_fast_without_manifest(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")

    with pytest.raises(ConversationExportError) as exc_info:
        await exporter.export(["c1", "ghost"], tmp_path / "out")

    assert exc_info.value.conversation_id == "ghost"
    assert not (tmp_path / "out.convarchive" / "manifest.json").exists()


async def test_provenance_failure_leaves_unreadable_bundle(
    exporter: ArchiveExporter,
    importer: ArchiveImporter,
    conversation_store: InMemoryConversationStore,
    artifact_service: InMemoryArtifactService,
    provenance_service: InMemoryProvenanceService,
    target_store: InMemoryConversationStore,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    seed_conversation(conversation_store, "c1")
    paper = ArtifactReference(uri="arxiv://1", type=ArtifactType.paper, display_name="P")
    artifact_service.link("c1", paper)

    async def unavailable(conversation_id: str) -> list:
        raise RuntimeError("provenance log unavailable")

    monkeypatch.setattr(provenance_service, "events_for_conversation", unavailable)

    with pytest.raises(RuntimeError, match="provenance log unavailable"):
        await exporter.export(["c1"], tmp_path / "out")

    bundle = tmp_path / "out.convarchive"
    assert (bundle / "conversations/c1.jsonl").exists()
    assert (bundle / "artifacts/references.jsonl").exists()
    assert not (bundle / "manifest.json").exists()
    with pytest.raises(InvalidBundleError):
        await importer.preview(bundle)
    with pytest.raises(InvalidBundleError):
        await importer.import_archive(bundle)
    assert target_store.total_calls == 0


async def test_best_effort_export_leaves_out_failed_conversation(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")
    seed_conversation(conversation_store, "c2")
    conversation_store.fail_on.add("c2")
    options = ExportOptions(on_conversation_failure=ConversationFailurePolicy.best_effort)

    bundle = await exporter.export(["c1", "c2"], tmp_path / "out", options)

    assert [entry.id for entry in _read_manifest(bundle).conversations] == ["c1"]
    assert not (bundle / "conversations/c2.jsonl").exists()


async def test_unsafe_conversation_id_is_refused(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "../escape")
    with pytest.raises(ConversationExportError, match="file name"):
        await exporter.export(["../escape"], tmp_path / "out")


async def test_reexport_removes_stale_manifest_before_writing(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")
    bundle = await exporter.export(["c1"], tmp_path / "out")
    assert (bundle / "manifest.json").exists()

    with pytest.raises(ConversationExportError):
        await exporter.export(["missing"], tmp_path / "out")
    assert not (bundle / "manifest.json").exists()


async def test_unwritable_destination_raises_destination_error(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(DestinationError):
        await exporter.export(["c1"], blocker / "out")


async def test_progress_reports_every_phase(
    exporter: ArchiveExporter,
    conversation_store: InMemoryConversationStore,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")
    seen: list[ArchiveProgress] = []

    await exporter.export(["c1"], tmp_path / "out", progress=seen.append)

    phases = [p.phase for p in seen]
    assert all(0.0 <= p.fraction_complete <= 1.0 for p in seen)
    assert phases[0] is ExportPhase.preparing
    assert phases[-1] is ExportPhase.finalizing
    assert {
        ExportPhase.conversations,
        ExportPhase.artifacts,
        ExportPhase.provenance,
        ExportPhase.attachments,
    } <= set(phases)


async def test_cancelled_export_removes_partial_bundle(
    conversation_store: InMemoryConversationStore,
    provenance_service: InMemoryProvenanceService,
    artifact_service: InMemoryArtifactService,
    tmp_path: Path,
) -> None:
    seed_conversation(conversation_store, "c1")
    token = CancellationToken()

    def cancel_after_conversations(progress: ArchiveProgress) -> None:
        if progress.phase is ExportPhase.artifacts:
            token.cancel("user pressed stop")

    exporter = ArchiveExporter(
        conversation_store, provenance_service, artifact_service, created_by="t", app_version="1"
    )
    with pytest.raises(ArchiveCancelledError, match="user pressed stop"):
        await exporter.export(
            ["c1"], tmp_path / "out", progress=cancel_after_conversations, cancellation=token
        )
    assert not (tmp_path / "out.convarchive").exists()
