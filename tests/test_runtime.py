"""End-to-end export/import through the SQLite-backed runtime."""

from __future__ import annotations

from pathlib import Path

from convarchive.config import ArchiveSettings, IdentityConfig, StorageConfig
from convarchive.models.archive import ExportOptions, ImportOptions
from convarchive.models.artifacts import ArtifactMention, ArtifactSnapshot, ArtifactType
from convarchive.models.conversations import Attachment
from convarchive.runtime import ArchiveRuntime, build_runtime

from tests.fakes import make_conversation, make_event, make_message


def _settings(tmp_path: Path, name: str, **overrides: object) -> ArchiveSettings:
    return ArchiveSettings(
        identity=IdentityConfig(created_by="runtime-test", app_version="2.0.0"),
        storage=StorageConfig(db_path=tmp_path / name / "archive.db", temp_dir=tmp_path / "tmp"),
        **overrides,
    )


async def _seed(runtime: ArchiveRuntime) -> None:
    await runtime.conversations.save_conversation(make_conversation("c1"))
    for sequence in (1, 2):
        await runtime.conversations.append_message(make_message("c1", sequence))
    await runtime.conversations.add_attachment(
        Attachment(id="att", conversation_id="c1", message_id="c1-m1", filename="fig.png", data=b"img")
    )
    await runtime.artifacts.get_or_create_artifact(
        "arxiv://2401.1", display_name="Paper", artifact_type=ArtifactType.paper
    )
    await runtime.artifacts.record_mention(
        ArtifactMention(artifact_uri="arxiv://2401.1", conversation_id="c1", message_id="c1-m1")
    )
    await runtime.artifacts.save_snapshot(
        ArtifactSnapshot(uri="arxiv://2401.1", data=b"%PDF", extension="pdf")
    )
    await runtime.provenance.record(make_event("c1", 1))


async def test_sqlite_round_trip_between_two_databases(tmp_path: Path) -> None:
    source = await build_runtime(_settings(tmp_path, "source", export=ExportOptions.full()))
    await _seed(source)

    archive = await source.export(["c1"], tmp_path / "exports" / "weekly")
    assert archive.name == "weekly.convarchive.zip"

    target = await build_runtime(
        _settings(tmp_path, "target", import_=ImportOptions(title_prefix="[Imported] "))
    )
    manifest = await target.importer.preview(archive)
    assert manifest.created_by == "runtime-test"
    assert manifest.app_version == "2.0.0"

    result = await target.import_archive(archive)

    assert result.succeeded, result.errors
    assert result.conversations_imported == 1
    assert result.messages_imported == 2
    assert result.artifacts_imported == 1
    assert result.snapshots_imported == 1
    assert result.provenance_events_imported == 1
    assert result.attachments_imported == 1

    conversation = await target.conversations.get_conversation("c1")
    assert conversation is not None
    assert conversation.title == "[Imported] Conversation c1"
    assert [m.id for m in await target.conversations.list_messages("c1")] == ["c1-m1", "c1-m2"]
    assert [a.uri for a in await target.artifacts.get_artifacts("c1")] == ["arxiv://2401.1"]
    snapshot = await target.artifacts.get_snapshot("arxiv://2401.1")
    assert snapshot is not None and snapshot.data == b"%PDF"
    assert len(await target.provenance.events_for_conversation("c1")) == 1

    source.close()
    target.close()


async def test_reimport_without_merge_creates_copy(tmp_path: Path) -> None:
    runtime = await build_runtime(_settings(tmp_path, "db"))
    await _seed(runtime)
    bundle = await runtime.export(["c1"], tmp_path / "self")

    result = await runtime.import_archive(bundle)

    copy_id = result.id_remapping["c1"]
    assert await runtime.conversations.get_conversation(copy_id) is not None
    copied = await runtime.conversations.list_messages(copy_id)
    assert len(copied) == 2
    assert {m.id for m in copied}.isdisjoint({"c1-m1", "c1-m2"})
    events = await runtime.provenance.events_for_conversation(copy_id)
    assert len(events) == 1
    assert events[0].id != "c1-e1"
