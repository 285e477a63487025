import io
import os

import pytest

from debpack.build import UNNAMED_DEB, BuildConfig, BuildStage, DebBuilder, build_deb
from debpack.control_fields import parse_control_override
from debpack.exceptions import (
    DebpackExternalToolError,
    DebpackFilesystemAnomalyError,
    DebpackFormatError,
    DebpackMissingInputError,
)
from tutil import RecordingToolRunner, write_file, file_mode


@pytest.fixture()
def myapp_project(project_dir):
    write_file(project_dir / "myapp/bin/run", "#!/bin/sh\necho run\n", mode=0o775)
    write_file(project_dir / "debian/control", "Package: myapp\n")
    write_file(project_dir / "Debpackfile", "myapp/bin/run\t/usr/bin/run\n")
    return project_dir


def _config(**kwargs) -> BuildConfig:
    kwargs.setdefault("staging_dir", "staging")
    return BuildConfig(**kwargs)


def test_build_end_to_end(myapp_project, recording_runner, fancy_output):
    config = _config(
        overrides=(
            parse_control_override("Version:2.0"),
            parse_control_override("Architecture:all"),
        )
    )

    result = build_deb(config, recording_runner, fancy_output)

    staging = myapp_project / "staging"
    assert (staging / "usr/bin/run").read_text() == "#!/bin/sh\necho run\n"
    assert file_mode(staging / "usr/bin/run") == 0o755
    control_lines = (staging / "DEBIAN/control").read_text().splitlines()
    assert "Package: myapp" in control_lines
    assert "Version: 2.0" in control_lines
    assert len([line for line in control_lines if line.startswith("Version:")]) == 1

    assert result.completed_stages == list(BuildStage)
    assert result.deb_path == os.path.join(".", "myapp_2.0_all.deb")
    assert recording_runner.commands == [
        [
            "dpkg-deb",
            "--root-owner-group",
            "-Zgzip",
            "-z9",
            "--build",
            "staging",
            os.path.join(".", UNNAMED_DEB),
        ],
        ["dpkg-deb", "--info", os.path.join(".", UNNAMED_DEB)],
        ["dpkg-deb", "--contents", os.path.join(".", UNNAMED_DEB)],
        ["dpkg-name", "-o", os.path.join(".", UNNAMED_DEB)],
    ]

    out = fancy_output.stream.getvalue()
    assert "Package metadata" in out
    assert "output of dpkg-deb --info" in out
    assert "Package contents" in out
    assert "output of dpkg-deb --contents" in out
    assert "Package built: ./myapp_2.0_all.deb" in out


def test_build_removes_previous_staging_dir(myapp_project, recording_runner, fancy_output):
    write_file(myapp_project / "staging/usr/bin/stale", "stale")

    build_deb(_config(), recording_runner, fancy_output)

    assert not (myapp_project / "staging/usr/bin/stale").exists()
    assert (myapp_project / "staging/usr/bin/run").exists()


def test_build_is_idempotent(myapp_project, fancy_output):
    config = _config(overrides=(parse_control_override("Version:2.0"),))
    staging = myapp_project / "staging"

    build_deb(config, RecordingToolRunner(), fancy_output)
    first_modes = {p.relative_to(staging): file_mode(p) for p in staging.rglob("*")}
    first_control = (staging / "DEBIAN/control").read_bytes()

    build_deb(config, RecordingToolRunner(), fancy_output)
    second_modes = {p.relative_to(staging): file_mode(p) for p in staging.rglob("*")}
    second_control = (staging / "DEBIAN/control").read_bytes()

    assert first_modes == second_modes
    assert first_control == second_control


def test_build_copies_maintainer_scripts(myapp_project, recording_runner, fancy_output):
    write_file(myapp_project / "debian/postinst", "#!/bin/sh\nexit 0\n", mode=0o700)

    build_deb(_config(), recording_runner, fancy_output)

    assert file_mode(myapp_project / "staging/DEBIAN/postinst") == 0o755
    assert file_mode(myapp_project / "staging/DEBIAN/control") == 0o644


def test_build_without_control_file_warns(project_dir, recording_runner, fancy_output, capsys):
    write_file(project_dir / "Debpackfile", "")
    config = _config(
        overrides=tuple(
            parse_control_override(f)
            for f in ["Package:myapp", "Version:1.0", "Architecture:all"]
        )
    )

    result = build_deb(config, recording_runner, fancy_output)

    assert "warning: No control file was found" in capsys.readouterr().err
    assert result.deb_path == os.path.join(".", "myapp_1.0_all.deb")
    assert (project_dir / "staging/DEBIAN/control").read_text() == (
        "Package: myapp\nVersion: 1.0\nArchitecture: all\n"
    )


def test_build_reads_manifest_from_stdin(myapp_project, recording_runner, fancy_output, monkeypatch):
    monkeypatch.setattr(
        "sys.stdin", io.TextIOWrapper(io.BytesIO(b"myapp/bin/run\t/opt/myapp/run\n"))
    )

    build_deb(_config(manifest_path="-"), recording_runner, fancy_output)

    assert (myapp_project / "staging/opt/myapp/run").is_file()


def test_build_missing_manifest(myapp_project, recording_runner, fancy_output):
    os.unlink(myapp_project / "Debpackfile")
    builder = DebBuilder(_config(), recording_runner, fancy_output)

    with pytest.raises(DebpackMissingInputError):
        builder.build()

    assert builder.result.completed_stages == [
        BuildStage.CLEAN,
        BuildStage.STAGE_METADATA,
    ]
    assert recording_runner.commands == []
    assert not list(myapp_project.glob("*.deb"))


def test_build_malformed_manifest(myapp_project, recording_runner, fancy_output):
    write_file(myapp_project / "Debpackfile", "myapp/bin/run /usr/bin/run\n")

    with pytest.raises(DebpackFormatError):
        build_deb(_config(), recording_runner, fancy_output)

    assert recording_runner.commands == []


def test_build_dangling_symlink(myapp_project, recording_runner, fancy_output):
    os.symlink("nowhere", myapp_project / "myapp/bin/broken")
    write_file(
        myapp_project / "Debpackfile",
        "myapp/bin/run\t/usr/bin/run\nmyapp/bin/broken\t/usr/bin/broken\n",
    )
    builder = DebBuilder(_config(), recording_runner, fancy_output)

    with pytest.raises(DebpackFilesystemAnomalyError):
        builder.build()

    assert BuildStage.NORMALIZE not in builder.result.completed_stages
    assert recording_runner.commands == []


@pytest.mark.parametrize(
    "failing_tool,commands_run",
    [
        ("dpkg-deb --root-owner-group", 1),
        ("dpkg-deb --info", 2),
        ("dpkg-name", 4),
    ],
)
def test_build_external_tool_failure(myapp_project, fancy_output, failing_tool, commands_run):
    runner = RecordingToolRunner(failing_tools={failing_tool})

    with pytest.raises(DebpackExternalToolError) as e:
        build_deb(_config(), runner, fancy_output)

    assert e.value.returncode == 2
    assert " ".join(e.value.cmd).startswith(failing_tool)
    assert len(runner.commands) == commands_run


def test_build_refuses_to_delete_working_directory(myapp_project, recording_runner, fancy_output):
    with pytest.raises(DebpackFormatError):
        build_deb(_config(staging_dir="."), recording_runner, fancy_output)
    assert (myapp_project / "Debpackfile").exists()


@pytest.mark.parametrize("staging_dir", ["..", "/", "staging/../.."])
def test_build_refuses_to_delete_parent_directory(
    project_dir, recording_runner, fancy_output, monkeypatch, staging_dir
):
    work = project_dir / "outer/work"
    write_file(project_dir / "outer/precious.txt", "keep me")
    write_file(work / "Debpackfile", "")
    write_file(work / "debian/control", "Package: myapp\n")
    monkeypatch.chdir(work)

    with pytest.raises(DebpackFormatError) as e:
        build_deb(_config(staging_dir=staging_dir), recording_runner, fancy_output)

    assert "Refusing to use" in e.value.message
    assert (project_dir / "outer/precious.txt").read_text() == "keep me"
    assert (work / "Debpackfile").exists()


@pytest.mark.parametrize(
    "config_kwargs",
    [
        {"staging_dir": "debian"},
        {"staging_dir": "pkg", "control_dir": "pkg/debian"},
        {"staging_dir": "inputs", "manifest_path": "inputs/Debpackfile"},
    ],
)
def test_build_refuses_staging_dir_containing_inputs(
    myapp_project, recording_runner, fancy_output, config_kwargs
):
    write_file(myapp_project / "pkg/debian/control", "Package: myapp\n")
    write_file(myapp_project / "inputs/Debpackfile", "")

    with pytest.raises(DebpackFormatError):
        build_deb(_config(**config_kwargs), recording_runner, fancy_output)

    assert (myapp_project / "debian/control").exists()
    assert (myapp_project / "pkg/debian/control").exists()
    assert (myapp_project / "inputs/Debpackfile").exists()
