"""Exceptions raised by archive export and import.

Fatal conditions propagate to the caller as one of these types. Failures
scoped to a single record during import are collected into the
``ImportResult`` instead of being raised.
"""

from __future__ import annotations

from pathlib import Path


class ArchiveError(Exception):
    """Base class for every archive failure."""


class InvalidBundleError(ArchiveError):
    """The source does not exist or is not a complete bundle."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"not a valid bundle: {path} ({reason})")


class ManifestDecodeError(InvalidBundleError):
    """The manifest exists but cannot be decoded."""


class UnsupportedFormatVersionError(ArchiveError):
    """The bundle format version is outside what this build accepts."""


class CompressionError(ArchiveError):
    """Packing or unpacking the single-file form failed."""


class DestinationError(ArchiveError):
    """The export destination cannot be written."""


class ConversationExportError(ArchiveError):
    def __init__(self, conversation_id: str, reason: str) -> None:
        self.conversation_id = conversation_id
        self.reason = reason
        super().__init__(f"failed to export conversation {conversation_id}: {reason}")


class ConversationImportError(ArchiveError):
    def __init__(self, conversation_id: str, reason: str) -> None:
        self.conversation_id = conversation_id
        self.reason = reason
        super().__init__(f"failed to import conversation {conversation_id}: {reason}")


class ArchiveCancelledError(ArchiveError):
    """Cancellation was requested between two phases."""


class LineDecodeError(ArchiveError):
    """A single JSON-Lines record could not be decoded."""

    def __init__(self, path: str, line_number: int, reason: str) -> None:
        self.path = path
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"{path}:{line_number}: {reason}")


__all__ = [
    "ArchiveCancelledError",
    "ArchiveError",
    "CompressionError",
    "ConversationExportError",
    "ConversationImportError",
    "DestinationError",
    "InvalidBundleError",
    "LineDecodeError",
    "ManifestDecodeError",
    "UnsupportedFormatVersionError",
]
