import dataclasses
import enum
import os
import shutil
from typing import Callable, List, Optional, Sequence, Tuple

from debpack import DEFAULT_CONTROL_DIR, DEFAULT_MANIFEST, DEFAULT_STAGING_DIR
from debpack.control_fields import ControlFieldOverride, apply_control_overrides
from debpack.exceptions import DebpackFormatError
from debpack.external_tools import (
    MAX_GZIP_COMPRESSION_LEVEL,
    ExternalToolRunner,
    dpkg_deb_build_cmd,
    dpkg_deb_contents_cmd,
    dpkg_deb_info_cmd,
    dpkg_name_cmd,
)
from debpack.manifest import STDIN_MANIFEST, StagedEntry, stage_manifest
from debpack.output import OutputStylingBase
from debpack.permissions import normalize_permissions
from debpack.util import _info, _warn, compute_output_filename, ensure_dir

UNNAMED_DEB = "debpack-unnamed.deb"


class BuildStage(enum.Enum):
    CLEAN = "clean"
    STAGE_METADATA = "stage-metadata"
    STAGE_PAYLOAD = "stage-payload"
    PATCH_CONTROL = "patch-control"
    NORMALIZE = "normalize"
    INVOKE_BUILDER = "invoke-builder"
    INSPECT_AND_RENAME = "inspect-and-rename"


@dataclasses.dataclass(slots=True, frozen=True)
class BuildConfig:
    control_dir: Optional[str] = DEFAULT_CONTROL_DIR
    manifest_path: str = DEFAULT_MANIFEST
    overrides: Tuple[ControlFieldOverride, ...] = ()
    staging_dir: str = DEFAULT_STAGING_DIR
    output_dir: str = "."
    compression_level: int = MAX_GZIP_COMPRESSION_LEVEL

    @property
    def control_output_dir(self) -> str:
        return os.path.join(self.staging_dir, "DEBIAN")

    @property
    def control_file(self) -> str:
        return os.path.join(self.control_output_dir, "control")

    @property
    def unnamed_deb(self) -> str:
        return os.path.join(self.output_dir, UNNAMED_DEB)


@dataclasses.dataclass(slots=True)
class BuildResult:
    deb_path: Optional[str] = None
    staged_entries: List[StagedEntry] = dataclasses.field(default_factory=list)
    completed_stages: List[BuildStage] = dataclasses.field(default_factory=list)


class DebBuilder:
    """Assembles a deb from a manifest

    The stages run strictly in the order of `BuildStage`. Any failure raises
    a `DebpackRuntimeError` and later stages are not run.
    """

    def __init__(
        self,
        config: BuildConfig,
        runner: ExternalToolRunner,
        fancy_output: OutputStylingBase,
    ) -> None:
        self.config = config
        self.runner = runner
        self.fancy_output = fancy_output
        self.result = BuildResult()

    def _stages(self) -> Sequence[Tuple[BuildStage, Callable[[], None]]]:
        return [
            (BuildStage.CLEAN, self.clean),
            (BuildStage.STAGE_METADATA, self.stage_metadata),
            (BuildStage.STAGE_PAYLOAD, self.stage_payload),
            (BuildStage.PATCH_CONTROL, self.patch_control),
            (BuildStage.NORMALIZE, self.normalize),
            (BuildStage.INVOKE_BUILDER, self.invoke_builder),
            (BuildStage.INSPECT_AND_RENAME, self.inspect_and_rename),
        ]

    def build(self) -> BuildResult:
        for stage, handler in self._stages():
            handler()
            self.result.completed_stages.append(stage)
        return self.result

    def _protected_paths(self) -> List[str]:
        protected = [os.sep, os.getcwd()]
        if self.config.control_dir is not None:
            protected.append(self.config.control_dir)
        if self.config.manifest_path != STDIN_MANIFEST:
            protected.append(self.config.manifest_path)
        return [os.path.realpath(p) for p in protected]

    def clean(self) -> None:
        staging_dir = self.config.staging_dir
        real_staging_dir = os.path.realpath(staging_dir)
        for protected in self._protected_paths():
            # The staging directory must neither be nor contain any of the inputs
            if os.path.commonpath([real_staging_dir, protected]) == real_staging_dir:
                raise DebpackFormatError(
                    f'Refusing to use "{staging_dir}" as staging directory as deleting it'
                    f' would also delete "{protected}".'
                )
        if os.path.islink(staging_dir) or os.path.isfile(staging_dir):
            os.unlink(staging_dir)
        elif os.path.isdir(staging_dir):
            shutil.rmtree(staging_dir)
            _info(f'Removed staging directory "{staging_dir}" from a previous build')

    def stage_metadata(self) -> None:
        control_dir = self.config.control_dir
        control_output_dir = self.config.control_output_dir
        ensure_dir(control_output_dir)
        if control_dir is not None and os.path.isdir(control_dir):
            shutil.copytree(
                control_dir,
                control_output_dir,
                symlinks=True,
                dirs_exist_ok=True,
            )
            _info(f'Copied control files from "{control_dir}"')
        if not os.path.isfile(self.config.control_file):
            _warn(
                f'No control file was found in "{control_dir}".'
                " All control fields must be provided on the command line."
            )

    def stage_payload(self) -> None:
        staged = stage_manifest(self.config.manifest_path, self.config.staging_dir)
        self.result.staged_entries = staged
        manifest_name = (
            "standard input"
            if self.config.manifest_path == STDIN_MANIFEST
            else f'"{self.config.manifest_path}"'
        )
        _info(f"Staged {len(staged)} manifest entries from {manifest_name}")

    def patch_control(self) -> None:
        overrides = self.config.overrides
        if not overrides:
            return
        count = apply_control_overrides(self.config.control_file, overrides)
        _info(
            f"Applied {count} control field override(s): "
            + ", ".join(o.key for o in overrides)
        )

    def normalize(self) -> None:
        count = normalize_permissions(self.config.staging_dir)
        _info(f"Normalized permissions of {count} paths")

    def invoke_builder(self) -> None:
        ensure_dir(self.config.output_dir)
        cmd = dpkg_deb_build_cmd(
            self.config.staging_dir,
            self.config.unnamed_deb,
            compression_level=self.config.compression_level,
        )
        self.runner.check_run(cmd)
        _info(f'Built "{self.config.unnamed_deb}"')

    def inspect_and_rename(self) -> None:
        fo = self.fancy_output
        unnamed_deb = self.config.unnamed_deb

        if self.result.staged_entries:
            fo.print_heading("Manifest")
            fo.print_list_table(
                ["Source", "Destination", ("Matches", ">")],
                [
                    (s.entry.source, s.entry.destination, str(len(s.matches)))
                    for s in self.result.staged_entries
                ],
            )

        info = self.runner.check_run(dpkg_deb_info_cmd(unnamed_deb), capture_output=True)
        fo.print_heading("Package metadata")
        fo.print(info.stdout or "", end="")

        contents = self.runner.check_run(
            dpkg_deb_contents_cmd(unnamed_deb), capture_output=True
        )
        fo.print_heading("Package contents")
        fo.print(contents.stdout or "", end="")
        fo.print()

        self.runner.check_run(dpkg_name_cmd(unnamed_deb))
        expected_name = compute_output_filename(self.config.control_output_dir)
        if expected_name is not None:
            deb_path = os.path.join(self.config.output_dir, expected_name)
            self.result.deb_path = deb_path
            fo.print(fo.colored(f"Package built: {deb_path}", fg="green", style="bold"))
        else:
            fo.print(fo.colored("Package built", fg="green", style="bold"))


def build_deb(
    config: BuildConfig,
    runner: ExternalToolRunner,
    fancy_output: OutputStylingBase,
) -> BuildResult:
    return DebBuilder(config, runner, fancy_output).build()
