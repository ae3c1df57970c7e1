"""Opening bundles and reading/writing their manifest."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError

from convarchive.archive.compression import is_compressed_bundle, unpack_bundle
from convarchive.archive.errors import (
    InvalidBundleError,
    ManifestDecodeError,
    UnsupportedFormatVersionError,
)
from convarchive.models.archive import NewerVersionPolicy
from convarchive.models.format import (
    CURRENT_FORMAT_VERSION,
    MANIFEST_FILE_NAME,
    MINIMUM_READABLE_VERSION,
    FormatVersion,
)
from convarchive.models.manifest import ArchiveManifest

logger = logging.getLogger(__name__)


@contextmanager
def open_bundle(source: Path, temp_root: Path | None = None) -> Iterator[Path]:
    """Yield a directory holding the bundle at *source*.

    A compressed bundle is extracted into a private temporary directory that
    is removed on exit, whatever happens inside the block.
    """
    if not source.exists():
        raise InvalidBundleError(source, "source does not exist")

    if not is_compressed_bundle(source):
        if not source.is_dir():
            raise InvalidBundleError(source, "neither a bundle directory nor a zip file")
        yield source
        return

    if temp_root is not None:
        temp_root.mkdir(parents=True, exist_ok=True)
    extraction_dir = Path(tempfile.mkdtemp(prefix="convarchive-", dir=temp_root))
    logger.debug("Extracting %s into %s", source, extraction_dir)
    try:
        yield unpack_bundle(source, extraction_dir)
    finally:
        shutil.rmtree(extraction_dir, ignore_errors=True)


def resolve_in_bundle(bundle_dir: Path, relative: str) -> Path:
    """Resolve a manifest-relative path, refusing anything outside the bundle."""
    root = bundle_dir.resolve()
    candidate = (root / relative).resolve()
    if not candidate.is_relative_to(root):
        raise InvalidBundleError(bundle_dir, f"path escapes bundle: {relative}")
    return candidate


def read_manifest(bundle_dir: Path) -> ArchiveManifest:
    manifest_path = bundle_dir / MANIFEST_FILE_NAME
    if not manifest_path.is_file():
        raise InvalidBundleError(bundle_dir, f"{MANIFEST_FILE_NAME} is missing")
    try:
        raw = manifest_path.read_bytes()
    except OSError as exc:
        raise ManifestDecodeError(bundle_dir, f"cannot read manifest: {exc}") from exc
    try:
        return ArchiveManifest.model_validate_json(raw)
    except ValidationError as exc:
        raise ManifestDecodeError(bundle_dir, f"undecodable manifest: {exc}") from exc


def write_manifest(bundle_dir: Path, manifest: ArchiveManifest) -> Path:
    """Write the manifest via a temporary file and an atomic rename.

    Readers either see no manifest or a complete one.
    """
    manifest_path = bundle_dir / MANIFEST_FILE_NAME
    staging_path = bundle_dir / f".{MANIFEST_FILE_NAME}.tmp"
    with staging_path.open("w", encoding="utf-8") as handle:
        handle.write(manifest.to_json())
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(staging_path, manifest_path)
    return manifest_path


def check_format_version(
    version: FormatVersion,
    policy: NewerVersionPolicy = NewerVersionPolicy.warn,
) -> str | None:
    """Validate *version* against this build; return a warning or ``None``.

    Versions older than the minimum readable one are always rejected. Newer
    versions are handled according to *policy*.
    """
    if version < MINIMUM_READABLE_VERSION:
        raise UnsupportedFormatVersionError(
            f"bundle format {version} is older than the oldest readable {MINIMUM_READABLE_VERSION}"
        )
    if version <= CURRENT_FORMAT_VERSION:
        return None

    if policy is NewerVersionPolicy.reject or (
        policy is NewerVersionPolicy.reject_major and version.major > CURRENT_FORMAT_VERSION.major
    ):
        raise UnsupportedFormatVersionError(
            f"bundle format {version} is newer than supported {CURRENT_FORMAT_VERSION}"
        )
    return (
        f"Archive format version {version} is newer than supported "
        f"{CURRENT_FORMAT_VERSION}; importing on a best-effort basis"
    )


__all__ = [
    "check_format_version",
    "open_bundle",
    "read_manifest",
    "resolve_in_bundle",
    "write_manifest",
]
