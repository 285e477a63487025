import os
import stat

from debpack.exceptions import DebpackFilesystemAnomalyError

_STD_FILE_MODE = 0o644
_PATH_FILE_MODE = 0o755
_ANY_EXECUTE_BIT = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def normalized_mode(st_mode: int) -> int:
    if stat.S_ISDIR(st_mode) or st_mode & _ANY_EXECUTE_BIT:
        return _PATH_FILE_MODE
    return _STD_FILE_MODE


def _normalize_entry(path: str) -> None:
    try:
        st = os.stat(path)
    except FileNotFoundError:
        raise DebpackFilesystemAnomalyError(
            f'The path "{path}" is a dangling symlink. Only files and directories can be packaged.'
        ) from None
    if not stat.S_ISDIR(st.st_mode) and not stat.S_ISREG(st.st_mode):
        raise DebpackFilesystemAnomalyError(
            f'The path "{path}" is neither a file nor a directory.'
            " Only files and directories can be packaged."
        )
    if os.path.islink(path):
        # Leave the link target alone; it may not even be inside the staging tree.
        return
    mode = normalized_mode(st.st_mode)
    if stat.S_IMODE(st.st_mode) != mode:
        os.chmod(path, mode)


def normalize_permissions(staging_root: str) -> int:
    """Force every path in the staging tree to 0755 or 0644

    Directories and executables become 0755 and everything else 0644, so the
    resulting package does not depend on the umask or the modes of the files
    it was built from.

    :param staging_root: The root of the staging tree (including DEBIAN)
    :return: The number of paths that were checked
    """
    _normalize_entry(staging_root)
    count = 1
    for dirpath, dirnames, filenames in os.walk(staging_root):
        for name in sorted(dirnames) + sorted(filenames):
            _normalize_entry(os.path.join(dirpath, name))
            count += 1
    return count
