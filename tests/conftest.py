import io
import os
from pathlib import Path

import pytest

from debpack.output import OutputStylingBase, no_fancy_output
from tutil import RecordingToolRunner

# Disable dpkg's translation layer, so messages from the tools are stable.
os.environ["DPKG_NLS"] = "0"


@pytest.fixture()
def recording_runner() -> RecordingToolRunner:
    return RecordingToolRunner()


@pytest.fixture()
def fancy_output() -> OutputStylingBase:
    return no_fancy_output(io.StringIO())


@pytest.fixture()
def project_dir(tmp_path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path
