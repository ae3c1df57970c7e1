"""In-process packing of a bundle directory into a single zip file."""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path

from convarchive.archive.errors import CompressionError
from convarchive.models.format import BUNDLE_SUFFIX, COMPRESSED_SUFFIX

logger = logging.getLogger(__name__)


def compressed_path_for(bundle_dir: Path) -> Path:
    return bundle_dir.with_name(f"{bundle_dir.name}{COMPRESSED_SUFFIX}")


def is_compressed_bundle(path: Path) -> bool:
    return path.is_file() and zipfile.is_zipfile(path)


def pack_bundle(bundle_dir: Path) -> Path:
    """Zip *bundle_dir* next to itself, keeping the directory as the top-level entry.

    Empty skeleton directories are written as explicit entries so an
    unpacked bundle has the same layout as the packed one.
    """
    target = compressed_path_for(bundle_dir)
    root_name = bundle_dir.name
    try:
        with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path in sorted(bundle_dir.rglob("*")):
                arcname = f"{root_name}/{path.relative_to(bundle_dir).as_posix()}"
                if path.is_dir():
                    archive.writestr(f"{arcname}/", b"")
                else:
                    archive.write(path, arcname)
    except OSError as exc:
        target.unlink(missing_ok=True)
        raise CompressionError(f"failed to pack {bundle_dir}: {exc}") from exc

    logger.debug("Packed %s into %s", bundle_dir, target)
    return target


def unpack_bundle(archive_path: Path, target_dir: Path) -> Path:
    """Extract *archive_path* into *target_dir* and return the bundle directory.

    The bundle directory is the single ``*.convarchive`` child when present,
    otherwise *target_dir* itself (a zip of the bundle's contents).
    """
    resolved_target = target_dir.resolve()
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for member in archive.namelist():
                destination = (resolved_target / member).resolve()
                if not destination.is_relative_to(resolved_target):
                    raise CompressionError(f"archive member escapes extraction dir: {member}")
            archive.extractall(resolved_target)
    except (OSError, zipfile.BadZipFile) as exc:
        raise CompressionError(f"failed to unpack {archive_path}: {exc}") from exc

    candidates = [
        child for child in resolved_target.iterdir()
        if child.is_dir() and child.name.endswith(BUNDLE_SUFFIX)
    ]
    if len(candidates) == 1:
        return candidates[0]
    return resolved_target


__all__ = ["compressed_path_for", "is_compressed_bundle", "pack_bundle", "unpack_bundle"]
