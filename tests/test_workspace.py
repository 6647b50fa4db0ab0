import logging
import os

import pytest

from judgecore.models import Language
from judgecore.workspace import EXE_SUFFIX, WorkspaceManager, _log_removal_failure


def test_create_returns_paths_keyed_by_execution(tmp_path):
    manager = WorkspaceManager(tmp_path / "root")
    workspace = manager.create("abc123", Language.CPP)

    assert workspace.directory == tmp_path / "root" / "abc123"
    assert workspace.directory.is_dir()
    assert workspace.source_path.name == "main.cpp"
    assert workspace.artifact_path.name == "main" + EXE_SUFFIX
    assert workspace.input_path(0).name == "0.in"
    assert workspace.output_path(2).name == "2.out"
    assert workspace.error_path(2).name == "2.err"


def test_source_name_follows_language(tmp_path):
    manager = WorkspaceManager(tmp_path)
    assert manager.create("c1", Language.C).source_path.name == "main.c"
    assert manager.create("p1", Language.PYTHON).source_path.name == "main.py"


def test_create_is_idempotent(tmp_path):
    manager = WorkspaceManager(tmp_path)
    first = manager.create("same", Language.PYTHON)
    manager.write_source(first, "print(1)")
    second = manager.create("same", Language.PYTHON)
    assert first == second
    assert second.source_path.read_text(encoding="utf-8") == "print(1)"


def test_concurrent_executions_do_not_share_paths(tmp_path):
    manager = WorkspaceManager(tmp_path)
    a = manager.create("a", Language.PYTHON)
    b = manager.create("b", Language.PYTHON)
    assert a.source_path != b.source_path
    assert a.input_path(0) != b.input_path(0)


def test_teardown_removes_everything(tmp_path):
    manager = WorkspaceManager(tmp_path)
    workspace = manager.create("run", Language.C)
    manager.write_source(workspace, "int main(){}")
    workspace.input_path(0).write_text("1")
    workspace.output_path(0).write_text("2")
    (workspace.directory / "nested").mkdir()
    (workspace.directory / "nested" / "tmp").write_text("x")

    manager.teardown("run")

    assert not workspace.directory.exists()
    assert tmp_path.exists()


def test_teardown_tolerates_absent_artifacts(tmp_path):
    manager = WorkspaceManager(tmp_path)
    manager.teardown("never-created")
    manager.create("twice", Language.PYTHON)
    manager.teardown("twice")
    manager.teardown("twice")


def test_teardown_failures_are_logged_not_raised(tmp_path, monkeypatch, caplog):
    manager = WorkspaceManager(tmp_path)
    workspace = manager.create("locked", Language.PYTHON)
    manager.write_source(workspace, "pass")

    def refuse(*args, **kwargs):
        raise PermissionError("read-only")

    monkeypatch.setattr(os, "unlink", refuse)
    with caplog.at_level(logging.WARNING, logger="judgecore.workspace"):
        manager.teardown("locked")

    assert "Failed to remove" in caplog.text


def test_acquire_tears_down_on_error(tmp_path):
    manager = WorkspaceManager(tmp_path)
    with pytest.raises(RuntimeError):
        with manager.acquire("boom", Language.PYTHON) as workspace:
            manager.write_source(workspace, "pass")
            raise RuntimeError("fail inside")
    assert not (tmp_path / "boom").exists()


@pytest.mark.parametrize("bad_id", ["", "..", "a/b", "../escape"])
def test_rejects_unsafe_execution_ids(tmp_path, bad_id):
    with pytest.raises(ValueError):
        WorkspaceManager(tmp_path).create(bad_id, Language.PYTHON)


def test_vanished_entries_are_not_reported(caplog):
    with caplog.at_level(logging.WARNING, logger="judgecore.workspace"):
        _log_removal_failure(os.unlink, "gone", FileNotFoundError("gone"))
        _log_removal_failure(os.unlink, "gone", (FileNotFoundError, FileNotFoundError("gone"), None))
        _log_removal_failure(os.rmdir, "busy", (OSError, OSError("busy"), None))

    assert "gone" not in caplog.text
    assert "Failed to remove busy: busy" in caplog.text
