from __future__ import annotations

from pathlib import Path

import pytest
from convarchive.archive.exporter import ArchiveExporter
from convarchive.archive.importer import ArchiveImporter
from convarchive.config import ArchiveSettings, StorageConfig

from tests.fakes import (
    InMemoryArtifactService,
    InMemoryConversationStore,
    InMemoryProvenanceService,
)


@pytest.fixture
def conversation_store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def provenance_service() -> InMemoryProvenanceService:
    return InMemoryProvenanceService()


@pytest.fixture
def artifact_service() -> InMemoryArtifactService:
    return InMemoryArtifactService()


@pytest.fixture
def exporter(
    conversation_store: InMemoryConversationStore,
    provenance_service: InMemoryProvenanceService,
    artifact_service: InMemoryArtifactService,
) -> ArchiveExporter:
    return ArchiveExporter(
        conversation_store,
        provenance_service,
        artifact_service,
        created_by="tester",
        app_version="9.9.9",
    )


@pytest.fixture
def target_store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def target_provenance() -> InMemoryProvenanceService:
    return InMemoryProvenanceService()


@pytest.fixture
def target_artifacts() -> InMemoryArtifactService:
    return InMemoryArtifactService()


@pytest.fixture
def importer(
    target_store: InMemoryConversationStore,
    target_provenance: InMemoryProvenanceService,
    target_artifacts: InMemoryArtifactService,
    tmp_path: Path,
) -> ArchiveImporter:
    return ArchiveImporter(
        target_store,
        target_provenance,
        target_artifacts,
        settings=ArchiveSettings(storage=StorageConfig(temp_dir=tmp_path / "extract")),
    )
