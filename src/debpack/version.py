import subprocess
from importlib.metadata import version, PackageNotFoundError
from typing import Optional, Callable


class LazyString:
    def __init__(self, initializer: Callable[[], str]) -> None:
        self._initializer = initializer
        self._value: Optional[str] = None

    def __str__(self) -> str:
        value = object.__getattribute__(self, "_value")
        if value is None:
            value = object.__getattribute__(self, "_initializer")()
            object.__setattr__(self, "_value", value)
        return value

    def __getattribute__(self, item):
        value = str(self)
        return getattr(value, item)


def _initialize_version() -> str:
    try:
        return version("debpack")
    except PackageNotFoundError:
        pass
    try:
        v = (
            subprocess.check_output(
                ["git", "describe", "--tags"],
                stderr=subprocess.DEVNULL,
            )
            .strip()
            .decode("utf-8")
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        v = "N/A"
    if v.startswith("v"):
        v = v[1:]
    return v


__version__ = LazyString(_initialize_version)
