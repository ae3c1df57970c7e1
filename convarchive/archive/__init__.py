"""Conversation archive export, import and preview."""

from convarchive.archive.cancellation import CancellationToken
from convarchive.archive.errors import (
    ArchiveCancelledError,
    ArchiveError,
    CompressionError,
    ConversationExportError,
    ConversationImportError,
    DestinationError,
    InvalidBundleError,
    LineDecodeError,
    ManifestDecodeError,
    UnsupportedFormatVersionError,
)
from convarchive.archive.exporter import ArchiveExporter
from convarchive.archive.importer import ArchiveImporter

__all__ = [
    "ArchiveCancelledError",
    "ArchiveError",
    "ArchiveExporter",
    "ArchiveImporter",
    "CancellationToken",
    "CompressionError",
    "ConversationExportError",
    "ConversationImportError",
    "DestinationError",
    "InvalidBundleError",
    "LineDecodeError",
    "ManifestDecodeError",
    "UnsupportedFormatVersionError",
]
