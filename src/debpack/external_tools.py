import dataclasses
import subprocess
import sys
from typing import List, Optional, Sequence

from debpack.exceptions import DebpackExternalToolError
from debpack.util import escape_shell, print_command

MAX_GZIP_COMPRESSION_LEVEL = 9


@dataclasses.dataclass(slots=True, frozen=True)
class CompletedTool:
    cmd: Sequence[str]
    returncode: int
    stdout: Optional[str] = None
    stderr: Optional[str] = None


class ExternalToolRunner:
    """Runs the Debian tools that do the actual packaging work

    Subclasses only need to implement `run`.
    """

    def run(self, cmd: Sequence[str], *, capture_output: bool = False) -> CompletedTool:
        raise NotImplementedError

    def check_run(
        self,
        cmd: Sequence[str],
        *,
        capture_output: bool = False,
    ) -> CompletedTool:
        result = self.run(cmd, capture_output=capture_output)
        if result.returncode != 0:
            msg = f'The command "{escape_shell(*cmd)}" failed with exit code {result.returncode}'
            if result.stderr:
                msg += f": {result.stderr.strip()}"
            raise DebpackExternalToolError(
                msg,
                cmd,
                result.returncode,
            )
        return result


class SubprocessToolRunner(ExternalToolRunner):
    def run(self, cmd: Sequence[str], *, capture_output: bool = False) -> CompletedTool:
        print_command(*cmd)
        sys.stdout.flush()
        try:
            proc = subprocess.run(
                list(cmd),
                capture_output=capture_output,
                encoding="utf-8" if capture_output else None,
            )
        except FileNotFoundError:
            raise DebpackExternalToolError(
                f'Could not run "{cmd[0]}": Command not found. Is the dpkg package installed?',
                cmd,
                None,
            ) from None
        return CompletedTool(cmd, proc.returncode, proc.stdout, proc.stderr)


def dpkg_deb_build_cmd(
    staging_dir: str,
    output: str,
    *,
    compression_level: int = MAX_GZIP_COMPRESSION_LEVEL,
) -> List[str]:
    # --root-owner-group makes the payload owned by root:root without fakeroot
    return [
        "dpkg-deb",
        "--root-owner-group",
        "-Zgzip",
        f"-z{compression_level}",
        "--build",
        staging_dir,
        output,
    ]


def dpkg_deb_info_cmd(deb: str) -> List[str]:
    return ["dpkg-deb", "--info", deb]


def dpkg_deb_contents_cmd(deb: str) -> List[str]:
    return ["dpkg-deb", "--contents", deb]


def dpkg_name_cmd(deb: str) -> List[str]:
    return ["dpkg-name", "-o", deb]
