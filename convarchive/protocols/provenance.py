"""Provenance service protocol for the append-only event log."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from convarchive.models.provenance import ProvenanceEvent


@runtime_checkable
class ProvenanceService(Protocol):
    async def events_for_conversation(self, conversation_id: str) -> list[ProvenanceEvent]: ...

    async def record(self, event: ProvenanceEvent) -> ProvenanceEvent: ...


__all__ = ["ProvenanceService"]
