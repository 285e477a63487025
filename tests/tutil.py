from pathlib import Path
from typing import List, Optional, Sequence, Set

from debpack.external_tools import CompletedTool, ExternalToolRunner


class RecordingToolRunner(ExternalToolRunner):
    """Records the commands instead of running them"""

    def __init__(self, failing_tools: Optional[Set[str]] = None) -> None:
        self.commands: List[List[str]] = []
        self.failing_tools = failing_tools or set()

    def run(self, cmd: Sequence[str], *, capture_output: bool = False) -> CompletedTool:
        self.commands.append(list(cmd))
        joined = " ".join(cmd)
        if any(joined.startswith(t) for t in self.failing_tools):
            return CompletedTool(cmd, 2, stderr="boom" if capture_output else None)
        stdout = f"output of {joined}\n" if capture_output else None
        return CompletedTool(cmd, 0, stdout=stdout, stderr="" if capture_output else None)


def write_file(path: Path, content: str = "", mode: int = 0o644) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    path.chmod(mode)
    return path


def file_mode(path: Path) -> int:
    return path.lstat().st_mode & 0o7777
