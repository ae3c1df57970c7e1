"""Cooperative cancellation checked between export/import phases."""

from __future__ import annotations

import asyncio

from convarchive.archive.errors import ArchiveCancelledError


class CancellationToken:
    """Shared flag a caller flips to stop an operation at the next phase boundary.

    Phases are short relative to a whole operation, so nothing is interrupted
    mid-phase.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ArchiveCancelledError(self._reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()


__all__ = ["CancellationToken"]
