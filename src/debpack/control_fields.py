import contextlib
import dataclasses
import os
import stat
import tempfile
from typing import BinaryIO, Iterable, Iterator

from debian.deb822 import Deb822

from debpack.exceptions import DebpackFormatError


@dataclasses.dataclass(slots=True, frozen=True)
class ControlFieldOverride:
    key: str
    value: str

    def __str__(self) -> str:
        return f"{self.key}: {self.value}"


def parse_control_override(raw: str) -> ControlFieldOverride:
    """Parse a `Key:Value` override as given on the command line

    The string is split on the first colon, so the value may contain colons
    of its own. Whitespace around both the key and the value is discarded.

    >>> parse_control_override("Version: 2:1.0-1")
    ControlFieldOverride(key='Version', value='2:1.0-1')
    """
    key, sep, value = raw.partition(":")
    if not sep:
        raise DebpackFormatError(
            f'Invalid control field "{raw}": Expected the format "Key:Value" (missing ":")'
        )
    key = key.strip()
    value = value.strip()
    if not key:
        raise DebpackFormatError(
            f'Invalid control field "{raw}": The field name must not be empty'
        )
    if not value:
        raise DebpackFormatError(
            f'Invalid control field "{raw}": The value of "{key}" must not be empty'
        )
    return ControlFieldOverride(key, value)


@contextlib.contextmanager
def atomic_replace(path: str) -> Iterator[BinaryIO]:
    """Write a replacement for `path` that becomes visible all at once

    The content is written to a temporary file next to `path`, which is
    renamed over `path` when the block completes. If the block raises, the
    temporary file is removed and `path` is left as it was.
    """
    dirname = os.path.dirname(path) or "."
    try:
        mode = stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        mode = 0o644
    with tempfile.NamedTemporaryFile(
        mode="wb",
        dir=dirname,
        prefix=f".{os.path.basename(path)}.",
        suffix=".tmp",
        delete=False,
    ) as fd:
        try:
            os.chmod(fd.fileno(), mode)
            yield fd
            fd.flush()
            os.fsync(fd.fileno())
        except BaseException:
            fd.close()
            os.unlink(fd.name)
            raise
    os.replace(fd.name, path)


def _read_control_file(control_path: str) -> Deb822:
    try:
        with open(control_path, "rb") as fd:
            return Deb822(fd)
    except FileNotFoundError:
        return Deb822()


def apply_control_override(
    control_path: str,
    override: ControlFieldOverride,
) -> None:
    # Replacing a field moves it to the end of the paragraph.
    paragraph = _read_control_file(control_path)
    if override.key in paragraph:
        del paragraph[override.key]
    paragraph[override.key] = override.value
    with atomic_replace(control_path) as fd:
        paragraph.dump(fd)


def apply_control_overrides(
    control_path: str,
    overrides: Iterable[ControlFieldOverride],
) -> int:
    count = 0
    for override in overrides:
        apply_control_override(control_path, override)
        count += 1
    return count
