import argparse
import glob
import logging
import os
import re
import sys
from typing import (
    NoReturn,
    Optional,
    Tuple,
    Any,
)

from debian.deb822 import Deb822


SLASH_PRUNE = re.compile("//+")

_SPACE_RE = re.compile(r"\s")
_DOUBLE_ESCAPEES = re.compile(r'([\n`$"\\])')
_REGULAR_ESCAPEES = re.compile(r"""([\s!"'$()*+#;<>?@\[\]\\`|~])""")
_DEFAULT_LOGGER: Optional[logging.Logger] = None
_STDOUT_HANDLER: Optional[logging.StreamHandler] = None
_STDERR_HANDLER: Optional[logging.StreamHandler] = None


def _info(msg: str) -> None:
    global _DEFAULT_LOGGER
    logger = _DEFAULT_LOGGER
    if logger:
        logger.info(msg)
    # No fallback print for info


def _error(msg: str, *, prog: Optional[str] = None) -> "NoReturn":
    global _DEFAULT_LOGGER
    logger = _DEFAULT_LOGGER
    if logger:
        logger.error(msg)
    else:
        me = program_name() if prog is None else prog
        print(
            f"{me}: error: {msg}",
            file=sys.stderr,
        )
    sys.exit(1)


def _warn(msg: str, *, prog: Optional[str] = None) -> None:
    global _DEFAULT_LOGGER
    logger = _DEFAULT_LOGGER
    if logger:
        logger.warning(msg)
    else:
        me = program_name() if prog is None else prog

        print(
            f"{me}: warning: {msg}",
            file=sys.stderr,
        )


class ColorizedArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        _error(message, prog=self.prog)


def ensure_dir(path: str) -> None:
    if not os.path.isdir(path):
        os.makedirs(path, mode=0o755, exist_ok=True)


def _normalize_path(path: str, with_prefix: bool = True) -> str:
    """Normalize a package path into its "./usr/bin/foo" form

    Paths with a ".." segment are rejected.
    """
    orig_path = path
    path = SLASH_PRUNE.sub("/", path).strip("/")
    if path.startswith("./"):
        path = path[2:]
    segments = [s for s in path.split("/") if s not in ("", ".")]
    if ".." in segments:
        raise ValueError(
            'Please provide paths that are normalized (i.e., no "..").'
            f' Offending input "{orig_path}"'
        )
    if not segments:
        return "."
    path = "/".join(segments)
    return "./" + path if with_prefix else path


def _backslash_escape(m: re.Match[str]) -> str:
    return "\\" + m.group(0)


def _escape_shell_word(w: str) -> str:
    if _SPACE_RE.search(w):
        key, sep, value = w.partition("=")
        if sep and not _SPACE_RE.search(key):
            value = _DOUBLE_ESCAPEES.sub(_backslash_escape, value)
            return f'{_REGULAR_ESCAPEES.sub(_backslash_escape, key)}="{value}"'
        w = _DOUBLE_ESCAPEES.sub(_backslash_escape, w)
        return f'"{w}"'
    return _REGULAR_ESCAPEES.sub(_backslash_escape, w)


def escape_shell(*args: str) -> str:
    return " ".join(_escape_shell_word(w) for w in args)


def print_command(*args: str) -> None:
    print(f"   {escape_shell(*args)}")


def has_glob_magic(pattern: str) -> bool:
    return glob.has_magic(pattern)


def compute_output_filename(control_root_dir: str) -> Optional[str]:
    """Compute the name dpkg-name will give the deb built from this control dir

    :param control_root_dir: The DEBIAN directory of the package
    :return: The file name (such as `foo_1.0_all.deb`) or None if the control
      file is missing or lacks one of the fields needed to form the name.
    """
    try:
        with open(os.path.join(control_root_dir, "control"), "rb") as fd:
            control_file = Deb822(fd)
    except FileNotFoundError:
        return None

    package_name = control_file.get("Package")
    package_version = control_file.get("Version")
    package_architecture = control_file.get("Architecture")
    if not package_name or not package_version or not package_architecture:
        return None
    extension = control_file.get("Package-Type") or "deb"
    if ":" in package_version:
        package_version = package_version.split(":", 1)[1]

    return f"{package_name}_{package_version}_{package_architecture}.{extension}"


def _check_color() -> Tuple[bool, bool, Optional[str]]:
    dpkg_or_default = os.environ.get(
        "DPKG_COLORS", "never" if "NO_COLOR" in os.environ else "auto"
    )
    requested_color = os.environ.get("DEBPACK_COLORS", dpkg_or_default)
    bad_request = None
    if requested_color not in {"auto", "always", "never"}:
        bad_request = requested_color
        requested_color = "auto"

    if requested_color == "auto":
        stdout_color = sys.stdout.isatty()
        stderr_color = sys.stderr.isatty()
    else:
        enable = requested_color == "always"
        stdout_color = enable
        stderr_color = enable
    return stdout_color, stderr_color, bad_request


def program_name() -> str:
    name = os.path.basename(sys.argv[0])
    if name.endswith(".py"):
        name = name[:-3]
    if name in ("__main__", "debpack_cmd"):
        name = "debpack"
    return name


_LOGGING_SET_UP = False


def setup_logging() -> None:
    global _LOGGING_SET_UP, _DEFAULT_LOGGER, _STDOUT_HANDLER, _STDERR_HANDLER
    if _LOGGING_SET_UP:
        raise RuntimeError("Logging has already been configured.")
    stdout_color, stderr_color, bad_request = _check_color()

    if stdout_color or stderr_color:
        try:
            import colorlog
        except ImportError:
            stdout_color = False
            stderr_color = False

    class LogLevelFilter(logging.Filter):
        def __init__(self, threshold: int, above: bool):
            super().__init__()
            self.threshold = threshold
            self.above = above

        def filter(self, record: logging.LogRecord) -> bool:
            if self.above:
                return record.levelno >= self.threshold
            else:
                return record.levelno < self.threshold

    color_format = (
        "{bold}{name}{reset}: {bold}{log_color}{levelnamelower}{reset}: {message}"
    )
    colorless_format = "{name}: {levelnamelower}: {message}"

    logger = logging.getLogger()

    def _handler(stream: Any, use_color: bool) -> logging.StreamHandler:
        if use_color:
            handler = colorlog.StreamHandler(stream)
            handler.setFormatter(
                colorlog.ColoredFormatter(color_format, style="{", force_color=True)
            )
        else:
            handler = logging.StreamHandler(stream)
            handler.setFormatter(logging.Formatter(colorless_format, style="{"))
        return handler

    stdout_handler = _handler(sys.stdout, stdout_color)
    stderr_handler = _handler(sys.stderr, stderr_color)
    stdout_handler.addFilter(LogLevelFilter(logging.WARN, False))
    stderr_handler.addFilter(LogLevelFilter(logging.WARN, True))
    _STDOUT_HANDLER = stdout_handler
    _STDERR_HANDLER = stderr_handler
    logger.addHandler(stdout_handler)
    logger.addHandler(stderr_handler)

    name = program_name()

    old_factory = logging.getLogRecordFactory()

    def record_factory(
        *args: Any, **kwargs: Any
    ) -> logging.LogRecord:  # pragma: no cover
        record = old_factory(*args, **kwargs)
        record.levelnamelower = record.levelname.lower()
        return record

    logging.setLogRecordFactory(record_factory)

    logger.setLevel(logging.INFO)
    _DEFAULT_LOGGER = logging.getLogger(name)

    if bad_request:
        _DEFAULT_LOGGER.warning(
            f'Invalid color request for "{bad_request}" in either DEBPACK_COLORS or DPKG_COLORS.'
            ' Resetting to "auto".'
        )

    _LOGGING_SET_UP = True
