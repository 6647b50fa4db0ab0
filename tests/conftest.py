import shutil
import sys

import pytest

from judgecore.config import JudgeSettings

requires_gpp = pytest.mark.skipif(shutil.which("g++") is None, reason="g++ not installed")
posix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX shell scripts and signals")


@pytest.fixture
def settings(tmp_path):
    return JudgeSettings(
        temp_root=tmp_path / "work",
        python_interpreter=sys.executable,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'judge.db'}",
        sample_interval_ms=20,
    )


@pytest.fixture
def fake_compiler(tmp_path):
    """Write an executable shell script standing in for a compiler"""

    def make(body: str):
        script = tmp_path / "fake-cc"
        script.write_text("#!/bin/sh\n" + body + "\n")
        script.chmod(0o755)
        return str(script)

    return make
