"""Bundle format version and canonical path layout.

Exporter and importer must agree on these values bit-for-bit: every relative
path written into a manifest is derived here, and the content-addressed
attachment path is a pure function of the bytes and their extension.
"""

from __future__ import annotations

import hashlib
from functools import total_ordering

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

BUNDLE_SUFFIX = ".convarchive"
COMPRESSED_SUFFIX = ".zip"

MANIFEST_FILE_NAME = "manifest.json"
CONVERSATIONS_DIR = "conversations"
ARTIFACTS_DIR = "artifacts"
ARTIFACT_REFERENCES_FILE = f"{ARTIFACTS_DIR}/references.jsonl"
SNAPSHOTS_DIR = f"{ARTIFACTS_DIR}/snapshots"
PAPER_SNAPSHOTS_DIR = f"{SNAPSHOTS_DIR}/papers"
REPO_SNAPSHOTS_DIR = f"{SNAPSHOTS_DIR}/repos"
PROVENANCE_DIR = "provenance"
PROVENANCE_EVENTS_FILE = f"{PROVENANCE_DIR}/events.jsonl"
ATTACHMENTS_DIR = "attachments"

# Created up front even when an export toggle leaves some of them empty.
SKELETON_DIRS: tuple[str, ...] = (
    CONVERSATIONS_DIR,
    ARTIFACTS_DIR,
    SNAPSHOTS_DIR,
    PAPER_SNAPSHOTS_DIR,
    REPO_SNAPSHOTS_DIR,
    PROVENANCE_DIR,
    ATTACHMENTS_DIR,
)

DEFAULT_EXTENSION = "bin"


class WireModel(BaseModel):
    """Base for records that are written into a bundle.

    Keys are camelCase on disk and snake_case in Python. Unknown keys are
    ignored so bundles written by a newer build still decode.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_line(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


@total_ordering
class FormatVersion(BaseModel):
    """Semantic version triple of the bundle schema."""

    model_config = ConfigDict(frozen=True)

    major: int = Field(ge=0)
    minor: int = Field(default=0, ge=0)
    patch: int = Field(default=0, ge=0)

    @classmethod
    def parse(cls, value: str) -> FormatVersion:
        parts = value.strip().split(".")
        if not 1 <= len(parts) <= 3 or not all(p.isdigit() for p in parts):
            raise ValueError(f"invalid format version: {value!r}")
        numbers = [int(p) for p in parts] + [0] * (3 - len(parts))
        return cls(major=numbers[0], minor=numbers[1], patch=numbers[2])

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, FormatVersion):
            return NotImplemented
        return self.as_tuple() < other.as_tuple()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FormatVersion):
            return NotImplemented
        return self.as_tuple() == other.as_tuple()

    def __hash__(self) -> int:
        return hash(self.as_tuple())

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


CURRENT_FORMAT_VERSION = FormatVersion(major=1, minor=0, patch=0)
MINIMUM_READABLE_VERSION = FormatVersion(major=1, minor=0, patch=0)


def conversation_path(conversation_id: str) -> str:
    return f"{CONVERSATIONS_DIR}/{conversation_id}.jsonl"


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def normalize_extension(extension: str | None) -> str:
    """Lower-case an extension and strip leading dots; empty becomes ``bin``."""
    cleaned = (extension or "").strip().lstrip(".").lower()
    return cleaned or DEFAULT_EXTENSION


def content_addressed_name(data: bytes, extension: str | None) -> str:
    return f"{content_hash(data)}.{normalize_extension(extension)}"


def attachment_path(data: bytes, extension: str | None) -> str:
    """Relative bundle path for an attachment blob.

    Identical bytes always land on the same path, so an existence check
    before writing is all the deduplication the bundle needs.
    """
    return f"{ATTACHMENTS_DIR}/{content_addressed_name(data, extension)}"


def snapshot_path(snapshot_dir: str, data: bytes, extension: str | None) -> str:
    return f"{snapshot_dir}/{content_addressed_name(data, extension)}"


def bundle_dir_name(name: str) -> str:
    return name if name.endswith(BUNDLE_SUFFIX) else f"{name}{BUNDLE_SUFFIX}"


__all__ = [
    "ARTIFACTS_DIR",
    "ARTIFACT_REFERENCES_FILE",
    "ATTACHMENTS_DIR",
    "BUNDLE_SUFFIX",
    "COMPRESSED_SUFFIX",
    "CONVERSATIONS_DIR",
    "CURRENT_FORMAT_VERSION",
    "DEFAULT_EXTENSION",
    "FormatVersion",
    "MANIFEST_FILE_NAME",
    "MINIMUM_READABLE_VERSION",
    "PAPER_SNAPSHOTS_DIR",
    "PROVENANCE_DIR",
    "PROVENANCE_EVENTS_FILE",
    "REPO_SNAPSHOTS_DIR",
    "SKELETON_DIRS",
    "SNAPSHOTS_DIR",
    "WireModel",
    "attachment_path",
    "bundle_dir_name",
    "content_addressed_name",
    "content_hash",
    "conversation_path",
    "normalize_extension",
    "snapshot_path",
]
