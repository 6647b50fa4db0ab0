import asyncio
import logging
import os
from pathlib import Path
from typing import List

from judgecore.config import TOOLCHAINS, JudgeSettings
from judgecore.errors import CompilationError
from judgecore.models import Language
from judgecore.runner import kill_process_tree
from judgecore.workspace import EXE_SUFFIX

logger = logging.getLogger(__name__)


class Compiler:
    def __init__(self, settings: JudgeSettings):
        self.settings = settings

    def command(self, source_path: Path, language: Language, artifact_path: Path) -> List[str]:
        toolchain = TOOLCHAINS[language]
        return ([self.settings.compiler_for(language)] + toolchain["args"]
                + [str(source_path), "-o", str(artifact_path)] + toolchain["libs"])

    async def compile(self, source_path: Path, language: Language) -> Path:
        """Build the runnable artifact. Interpreted sources are returned as is."""
        if not language.compiled:
            return source_path

        artifact_path = source_path.with_suffix(EXE_SUFFIX)
        cmd = self.command(source_path, language, artifact_path)
        logger.debug("Compile command: %s", " ".join(cmd))

        # Set PATH to include compiler's bin directory
        env = os.environ.copy()
        compiler_bin_dir = os.path.dirname(cmd[0])
        if compiler_bin_dir:
            env["PATH"] = compiler_bin_dir + os.pathsep + env.get("PATH", "")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(source_path.parent),
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            raise CompilationError(f"Compiler unavailable ({cmd[0]}): {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.settings.compile_timeout_s)
        except asyncio.TimeoutError:
            await kill_process_tree(process)
            raise CompilationError(
                f"Compilation timed out after {self.settings.compile_timeout_s:g}s") from None
        finally:
            if process.returncode is None:
                await kill_process_tree(process)

        if process.returncode != 0:
            diagnostics = stderr.decode("utf-8", errors="replace")
            if not diagnostics.strip():
                diagnostics = stdout.decode("utf-8", errors="replace")
            if not diagnostics.strip():
                diagnostics = f"Compiler exited with code {process.returncode}"
            raise CompilationError(diagnostics)

        return artifact_path
