"""Reader for the `Debpackfile` manifest

A manifest lists what goes into the package, one entry per line:

    <source>\t<destination>

The source is a path or glob relative to the working directory and the
destination is an absolute path in the installed system. Lines starting
with "#" (in the first column) and blank lines are ignored. The
manifest is read as UTF-8.
"""
import contextlib
import dataclasses
import glob
import os
import shutil
import sys
from typing import IO, Iterator, List, Optional, Tuple

from debpack.exceptions import (
    DebpackFormatError,
    DebpackMissingInputError,
    DebpackRuntimeError,
)
from debpack.util import _normalize_path, ensure_dir, has_glob_magic

STDIN_MANIFEST = "-"


@dataclasses.dataclass(slots=True, frozen=True)
class ManifestEntry:
    source: str
    destination: str
    line_no: int

    @property
    def destination_is_dir(self) -> bool:
        return self.destination.endswith("/")


@dataclasses.dataclass(slots=True, frozen=True)
class StagedEntry:
    entry: ManifestEntry
    matches: Tuple[str, ...]
    staged_path: str


def parse_manifest_line(line: str, line_no: int) -> Optional[ManifestEntry]:
    line = line.rstrip("\r\n")
    if not line.strip() or line.startswith("#"):
        return None
    source, sep, destination = line.partition("\t")
    if not sep:
        raise DebpackFormatError(
            f'Invalid manifest line {line_no} "{line}": Expected "<source><TAB><destination>"'
            " (no tab character found)"
        )
    source = source.strip()
    destination = destination.strip()
    if not source or not destination:
        side = "source" if not source else "destination"
        raise DebpackFormatError(
            f'Invalid manifest line {line_no} "{line}": The {side} must not be empty'
        )
    return ManifestEntry(source, destination, line_no)


def read_manifest(fd: IO[bytes]) -> Iterator[ManifestEntry]:
    for line_no, raw_line in enumerate(fd, start=1):
        try:
            line = raw_line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DebpackFormatError(
                f"Invalid manifest line {line_no} {raw_line!r}: The line is not valid UTF-8 ({e.reason})"
            ) from None
        entry = parse_manifest_line(line, line_no)
        if entry is not None:
            yield entry


@contextlib.contextmanager
def open_manifest(manifest_path: str) -> Iterator[IO[bytes]]:
    if manifest_path == STDIN_MANIFEST:
        yield sys.stdin.buffer
        return
    try:
        fd = open(manifest_path, "rb")
    except (FileNotFoundError, IsADirectoryError):
        raise DebpackMissingInputError(
            f'The manifest "{manifest_path}" does not exist. Refusing to build an empty package.'
        ) from None
    with fd:
        yield fd


def _staged_destination(entry: ManifestEntry, staging_root: str) -> str:
    try:
        rel_path = _normalize_path(entry.destination, with_prefix=False)
    except ValueError as e:
        raise DebpackFormatError(
            f"Invalid manifest line {entry.line_no}: {e.args[0]}"
        ) from e
    if rel_path == ".":
        return staging_root
    return os.path.join(staging_root, rel_path)


def _expand_source(entry: ManifestEntry) -> List[str]:
    matches = sorted(glob.glob(entry.source, recursive=True))
    if matches:
        return matches
    if os.path.lexists(entry.source):
        # The shell passes a pattern that matches nothing through as is
        return [entry.source]
    if has_glob_magic(entry.source):
        msg = f'The pattern "{entry.source}" did not match anything'
    else:
        msg = f'The path "{entry.source}" does not exist'
    raise DebpackMissingInputError(f"{msg} (manifest line {entry.line_no})")


def _copy_path(source: str, dest: str) -> None:
    if os.path.isdir(source) and not os.path.islink(source):
        shutil.copytree(source, dest, symlinks=True, dirs_exist_ok=True)
        return
    if os.path.islink(dest) or (os.path.lexists(dest) and not os.path.isdir(dest)):
        os.unlink(dest)
    shutil.copy2(source, dest, follow_symlinks=False)


def stage_manifest_entry(entry: ManifestEntry, staging_root: str) -> StagedEntry:
    """Copy the paths matched by a manifest entry into the staging tree

    Follows the semantics of `cp -r`: When the entry matches more than one
    path, the destination ends with "/" or the destination is an existing
    directory, then the matches are copied into that directory. Otherwise,
    the single match is copied to the destination path.
    """
    matches = _expand_source(entry)
    dest_path = _staged_destination(entry, staging_root)
    into_dir = (
        len(matches) > 1
        or entry.destination_is_dir
        or dest_path == staging_root
        or (os.path.isdir(dest_path) and not os.path.islink(dest_path))
    )
    try:
        if into_dir:
            ensure_dir(dest_path)
            for match in matches:
                basename = os.path.basename(match.rstrip("/"))
                _copy_path(match, os.path.join(dest_path, basename))
        else:
            ensure_dir(os.path.dirname(dest_path))
            _copy_path(matches[0], dest_path)
    except OSError as e:
        raise DebpackRuntimeError(
            f'Could not copy "{entry.source}" to "{entry.destination}"'
            f" (manifest line {entry.line_no}): {e}"
        ) from e
    return StagedEntry(entry, tuple(matches), dest_path)


def stage_manifest(manifest_path: str, staging_root: str) -> List[StagedEntry]:
    with open_manifest(manifest_path) as fd:
        return [stage_manifest_entry(entry, staging_root) for entry in read_manifest(fd)]
