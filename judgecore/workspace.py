import logging
import os
import shutil
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from judgecore.config import TOOLCHAINS
from judgecore.models import Language

logger = logging.getLogger(__name__)

EXE_SUFFIX = ".exe" if os.name == "nt" else ""


@dataclass(frozen=True)
class Workspace:
    execution_id: str
    directory: Path
    source_path: Path
    artifact_path: Path

    def input_path(self, index: int) -> Path:
        return self.directory / f"{index}.in"

    def output_path(self, index: int) -> Path:
        return self.directory / f"{index}.out"

    def error_path(self, index: int) -> Path:
        return self.directory / f"{index}.err"


class WorkspaceManager:
    """Owns the temp root. Every execution gets its own directory below it."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _directory(self, execution_id: str) -> Path:
        if not execution_id or execution_id in (".", "..") or any(
            sep in execution_id for sep in ("/", "\\", os.sep)
        ):
            raise ValueError(f"Invalid execution id: {execution_id!r}")
        return self.root / execution_id

    def create(self, execution_id: str, language: Language) -> Workspace:
        directory = self._directory(execution_id)
        self.root.mkdir(parents=True, exist_ok=True)
        directory.mkdir(exist_ok=True)

        source_path = directory / TOOLCHAINS[language]["source"]
        return Workspace(
            execution_id=execution_id,
            directory=directory,
            source_path=source_path,
            artifact_path=source_path.with_suffix(EXE_SUFFIX),
        )

    def write_source(self, workspace: Workspace, code: str) -> Path:
        workspace.source_path.write_text(code, encoding="utf-8")
        return workspace.source_path

    def teardown(self, execution_id: str):
        """Delete every artifact of an execution. Filesystem errors are only logged."""
        directory = self._directory(execution_id)
        if not directory.exists():
            return

        if sys.version_info >= (3, 12):
            shutil.rmtree(directory, onexc=_log_removal_failure)
        else:
            shutil.rmtree(directory, onerror=_log_removal_failure)

    @contextmanager
    def acquire(self, execution_id: str, language: Language) -> Iterator[Workspace]:
        try:
            yield self.create(execution_id, language)
        finally:
            self.teardown(execution_id)


def _log_removal_failure(func, path, exc):
    # onerror passes an exc_info tuple, onexc the exception itself
    if isinstance(exc, tuple):
        exc = exc[1]
    if isinstance(exc, FileNotFoundError):
        return
    logger.warning("Failed to remove %s: %s", path, exc)
