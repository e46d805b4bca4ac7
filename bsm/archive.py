"""Zip codec for world directory trees and server install bundles."""

from __future__ import annotations

import logging
import os
import shutil
import zipfile
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator

from bsm.errors import ArchiveError

logger = logging.getLogger("bsm.archive")

ARCHIVE_EXTENSION = ".zip"
PARTIAL_SUFFIX = ".partial"
# Written into the comment of every archive pack_directory produces.
PACKED_MARKER = b"bsm-world-archive"


def _walk_tree(source: Path) -> Iterator[tuple[Path, str]]:
    """Yield (path, archive name) pairs in a stable order, directories first."""
    for root, dirs, files in os.walk(source):
        dirs.sort()
        root_path = Path(root)
        rel_root = root_path.relative_to(source)
        if rel_root.parts:
            yield root_path, rel_root.as_posix()
        for name in sorted(files):
            yield root_path / name, (rel_root / name).as_posix()


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def pack_directory(source: Path, destination: Path) -> int:
    """Write a deflated zip of ``source`` to ``destination``; return its size.

    Entry names are relative to ``source``. Unix mode bits ride along in each
    entry's external attributes. The archive is assembled next to the
    destination under a ``.partial`` name and renamed into place, so a failed
    run never leaves a truncated archive behind.
    """
    source = Path(source)
    destination = Path(destination)
    if not source.is_dir():
        raise ArchiveError(f"cannot archive {source}: not a directory")
    partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
    entries = 0
    try:
        with zipfile.ZipFile(partial, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.comment = PACKED_MARKER
            for path, arcname in _walk_tree(source):
                archive.write(path, arcname)
                entries += 1
        os.replace(partial, destination)
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        _discard(partial)
        raise ArchiveError(f"failed to archive {source} into {destination}: {exc}") from exc
    size = destination.stat().st_size
    logger.debug("Packed %d entries from %s into %s (%d bytes)", entries, source, destination, size)
    return size


def _member_parts(name: str) -> tuple[str, ...]:
    return tuple(part for part in PurePosixPath(name).parts if part not in ("", "."))


def _wrapped_prefix(names: Iterable[str], expected: str) -> str | None:
    """Return the single wrapping directory name when every entry sits under it."""
    prefix: str | None = None
    for name in names:
        parts = _member_parts(name)
        if not parts:
            continue
        if len(parts) == 1 and not name.endswith("/"):
            return None
        if prefix is None:
            prefix = parts[0]
        elif parts[0] != prefix:
            return None
    return prefix if prefix == expected else None


def _resolve_member(target: Path, parts: tuple[str, ...], archive_path: Path, name: str) -> Path:
    if PurePosixPath(name).is_absolute() or ".." in parts:
        raise ArchiveError(f"unsafe entry {name!r} in archive {archive_path}")
    return target.joinpath(*parts)


def _extract(
    archive_path: Path,
    target: Path,
    *,
    strip_prefix: str | None = None,
    preserve: frozenset[str] = frozenset(),
) -> int:
    written = 0
    target.mkdir(parents=True, exist_ok=True)
    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = archive.infolist()
            if archive.comment == PACKED_MARKER:
                strip_prefix = None
            elif strip_prefix is not None:
                strip_prefix = _wrapped_prefix((m.filename for m in members), strip_prefix)
            for member in members:
                parts = _member_parts(member.filename)
                if strip_prefix is not None:
                    parts = parts[1:]
                if not parts:
                    continue
                if parts[0] in preserve and (target / parts[0]).exists():
                    continue
                dest = _resolve_member(target, parts, archive_path, member.filename)
                if member.is_dir():
                    dest.mkdir(parents=True, exist_ok=True)
                    continue
                dest.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member) as src, open(dest, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                mode = (member.external_attr >> 16) & 0o7777
                if mode:
                    os.chmod(dest, mode)
                written += 1
    except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        raise ArchiveError(f"failed to extract {archive_path} into {target}: {exc}") from exc
    return written


def extract_world(archive_path: Path, target: Path, world_name: str | None = None) -> int:
    """Extract a world archive into ``target``; return the number of files.

    Archives that wrap the whole world in a top-level folder named after the
    world (``world_name``, defaulting to the target's own name) are unwrapped
    so the files land directly in ``target``. Archives written by
    ``pack_directory`` are never unwrapped.
    """
    archive_path = Path(archive_path)
    target = Path(target)
    count = _extract(archive_path, target, strip_prefix=world_name or target.name)
    logger.debug("Extracted %d files from %s into %s", count, archive_path, target)
    return count


def extract_tree(archive_path: Path, target: Path, preserve: Iterable[str] = ()) -> int:
    """Extract every entry with its full path; keep existing top-level ``preserve`` names."""
    return _extract(Path(archive_path), Path(target), preserve=frozenset(preserve))
