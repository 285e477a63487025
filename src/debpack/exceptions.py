from typing import cast, Optional, Sequence


class DebpackRuntimeError(RuntimeError):
    @property
    def message(self) -> str:
        return cast("str", self.args[0])


class DebpackFormatError(DebpackRuntimeError):
    pass


class DebpackMissingInputError(DebpackRuntimeError):
    pass


class DebpackFilesystemAnomalyError(DebpackRuntimeError):
    pass


class DebpackExternalToolError(DebpackRuntimeError):
    def __init__(
        self,
        message: str,
        cmd: Sequence[str],
        returncode: Optional[int],
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode
