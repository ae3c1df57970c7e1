"""Artifact service protocol: references, mentions and cached snapshots."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from convarchive.models.artifacts import (
    ArtifactMention,
    ArtifactReference,
    ArtifactSnapshot,
    ArtifactType,
)


@runtime_checkable
class ArtifactService(Protocol):
    async def get_artifacts(self, conversation_id: str) -> list[ArtifactReference]: ...

    async def get_or_create_artifact(
        self,
        uri: str,
        display_name: str | None = None,
        introduced_by: str | None = None,
        artifact_type: ArtifactType | None = None,
        version: str | None = None,
    ) -> ArtifactReference: ...

    async def get_mentions(self, conversation_id: str) -> list[ArtifactMention]: ...

    async def record_mention(self, mention: ArtifactMention) -> None: ...

    async def get_snapshot(self, uri: str) -> ArtifactSnapshot | None: ...

    async def save_snapshot(self, snapshot: ArtifactSnapshot) -> None: ...


__all__ = ["ArtifactService"]
