"""Wire the SQLite stores, exporter and importer from settings."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from convarchive.archive.cancellation import CancellationToken
from convarchive.archive.exporter import ArchiveExporter
from convarchive.archive.importer import ArchiveImporter
from convarchive.config import ArchiveSettings
from convarchive.core.logging import setup_logging
from convarchive.core.telemetry import init_tracing, shutdown_tracing
from convarchive.models.archive import ImportResult, ProgressCallback
from convarchive.persistence import (
    SQLiteArtifactStore,
    SQLiteConversationStore,
    SQLiteProvenanceStore,
    run_migrations,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ArchiveRuntime:
    settings: ArchiveSettings
    conversations: SQLiteConversationStore
    provenance: SQLiteProvenanceStore
    artifacts: SQLiteArtifactStore
    exporter: ArchiveExporter
    importer: ArchiveImporter

    async def export(
        self,
        conversation_ids: Sequence[str],
        destination: Path | str,
        progress: ProgressCallback | None = None,
        cancellation: CancellationToken | None = None,
    ) -> Path:
        """Export with the configured default export options."""
        return await self.exporter.export(
            conversation_ids,
            destination,
            options=self.settings.export,
            progress=progress,
            cancellation=cancellation,
        )

    async def import_archive(
        self,
        source: Path | str,
        progress: ProgressCallback | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ImportResult:
        """Import with the configured default import options."""
        return await self.importer.import_archive(
            source,
            options=self.settings.import_,
            progress=progress,
            cancellation=cancellation,
        )

    def close(self) -> None:
        shutdown_tracing()


async def build_runtime(
    settings: ArchiveSettings | None = None,
    *,
    configure_logging: bool = False,
) -> ArchiveRuntime:
    settings = settings or ArchiveSettings()
    if configure_logging:
        setup_logging(settings.logging.level, json_output=settings.logging.json_output)
    if settings.telemetry.enabled:
        init_tracing(
            service_name=settings.telemetry.service_name,
            env=settings.telemetry.env,
            endpoint=settings.telemetry.endpoint,
        )

    db_path = str(settings.storage.db_path)
    await run_migrations(db_path)

    conversations = SQLiteConversationStore(db_path)
    provenance = SQLiteProvenanceStore(db_path)
    artifacts = SQLiteArtifactStore(db_path)
    exporter = ArchiveExporter(
        conversations,
        provenance,
        artifacts,
        created_by=settings.identity.created_by,
        app_version=settings.identity.app_version,
    )
    importer = ArchiveImporter(
        conversations,
        provenance,
        artifacts,
        settings=settings,
    )
    logger.info("Archive runtime ready (db=%s)", db_path)
    return ArchiveRuntime(
        settings=settings,
        conversations=conversations,
        provenance=provenance,
        artifacts=artifacts,
        exporter=exporter,
        importer=importer,
    )


__all__ = ["ArchiveRuntime", "build_runtime"]
