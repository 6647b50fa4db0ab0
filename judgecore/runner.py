import asyncio
import enum
import logging
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import psutil

from judgecore.config import JudgeSettings
from judgecore.models import Language

logger = logging.getLogger(__name__)


class RunStatus(str, enum.Enum):
    OK = "Ok"
    TIMEOUT = "Timeout"
    NON_ZERO_EXIT = "NonZeroExit"
    SPAWN_ERROR = "SpawnError"


@dataclass
class RunOutcome:
    status: RunStatus
    elapsed_ms: int = 0
    peak_memory_mb: float = 0.0
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None

    @property
    def diagnostic(self) -> str:
        """Human readable reason for a failed run"""
        if self.status == RunStatus.SPAWN_ERROR:
            return f"Failed to start process: {self.stderr}"
        stderr = self.stderr.strip()
        if self.exit_code is None:
            # Killed by the judge for exceeding a limit
            return stderr
        if self.exit_code < 0:
            try:
                reason = f"Killed by signal {signal.Signals(-self.exit_code).name}"
            except ValueError:
                reason = f"Killed by signal {-self.exit_code}"
        else:
            reason = f"Exit code: {self.exit_code}"
        return f"{reason}\n{stderr}" if stderr else reason


def run_command(language: Language, target: Path, settings: JudgeSettings) -> List[str]:
    if language.compiled:
        return [str(target)]
    return [settings.python_interpreter, str(target)]


async def kill_process_tree(process: asyncio.subprocess.Process):
    """Kill the process and everything in its session, then reap it"""
    if process.returncode is None:
        try:
            if hasattr(os, "killpg"):
                os.killpg(process.pid, signal.SIGKILL)
            else:
                for child in psutil.Process(process.pid).children(recursive=True):
                    child.kill()
                process.kill()
        except (ProcessLookupError, psutil.NoSuchProcess):
            pass  # already exited
        except PermissionError as e:
            logger.warning("Failed to kill process group %s: %s", process.pid, e)
            process.kill()
    await process.wait()


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return 0


def _read_head(path: Path, limit: int) -> str:
    """First `limit` bytes of a capture file"""
    try:
        with open(path, "rb") as f:
            return f.read(limit).decode("utf-8", errors="replace")
    except FileNotFoundError:
        return ""


class ResourceMonitor:
    """Samples the child's resident memory and watches the capture file sizes.

    Samples are taken at a fixed interval, so the peak is an estimate and
    short spikes can be missed. A sample over a limit kills the process.
    """

    def __init__(self, process: asyncio.subprocess.Process, capture_paths: Sequence[Path],
                 interval_ms: int, memory_limit_mb: Optional[int], output_limit: int):
        self.process = process
        self.capture_paths = tuple(capture_paths)
        self.interval = interval_ms / 1000.0
        self.memory_limit_mb = memory_limit_mb
        self.output_limit = output_limit
        self.peak_memory_mb = 0.0
        self.violation: Optional[str] = None

    def sample(self) -> float:
        try:
            proc = psutil.Process(self.process.pid)
            rss = proc.memory_info().rss
            for child in proc.children(recursive=True):
                try:
                    rss += child.memory_info().rss
                except psutil.Error:
                    pass
        except psutil.Error:
            return 0.0
        return rss / 1024 / 1024

    async def watch(self):
        while self.process.returncode is None:
            memory_mb = self.sample()
            self.peak_memory_mb = max(self.peak_memory_mb, memory_mb)

            if self.memory_limit_mb is not None and memory_mb > self.memory_limit_mb:
                self.violation = f"Memory limit exceeded: {memory_mb:.1f} MB > {self.memory_limit_mb} MB"
            else:
                output_size = max(_file_size(path) for path in self.capture_paths)
                if output_size > self.output_limit:
                    self.violation = f"Output limit exceeded: {output_size} bytes (limit: {self.output_limit})"

            if self.violation:
                await kill_process_tree(self.process)
                return
            await asyncio.sleep(self.interval)


class ProcessRunner:
    def __init__(self, settings: JudgeSettings):
        self.settings = settings

    async def run(self, target: Path, language: Language, input_text: str, time_limit_ms: int,
                  input_path: Path, output_path: Path,
                  memory_limit_mb: Optional[int] = None,
                  error_path: Optional[Path] = None) -> RunOutcome:
        """Run one fresh process against one test input.

        stdout and stderr both go to files next to the input, so nothing the
        child or its descendants hold open can keep the run from finishing.
        """
        command = run_command(language, target, self.settings)
        if error_path is None:
            error_path = output_path.with_suffix(".err")
        input_path.write_bytes(input_text.encode("utf-8"))

        with open(input_path, "rb") as fin, open(output_path, "wb") as fout, \
                open(error_path, "wb") as ferr:
            start_time = time.perf_counter()
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=fin,
                    stdout=fout,
                    stderr=ferr,
                    cwd=str(target.parent),
                    start_new_session=True,
                )
            except OSError as e:
                return RunOutcome(RunStatus.SPAWN_ERROR, stderr=f"{type(e).__name__}: {e}")

            monitor = ResourceMonitor(process, (output_path, error_path),
                                      self.settings.sample_interval_ms, memory_limit_mb,
                                      self.settings.max_output_bytes)
            watcher = asyncio.create_task(monitor.watch())

            try:
                try:
                    await asyncio.wait_for(process.wait(), timeout=time_limit_ms / 1000.0)
                except asyncio.TimeoutError:
                    pass
                elapsed_ms = int((time.perf_counter() - start_time) * 1000)

                # A process that exited as the deadline fired is judged by elapsed time
                timed_out = process.returncode is None
                if timed_out:
                    await kill_process_tree(process)
                else:
                    # Descendants left in the session die with the leader
                    _kill_session(process.pid)
            finally:
                watcher.cancel()
                await asyncio.gather(watcher, return_exceptions=True)
                if process.returncode is None:
                    await kill_process_tree(process)

        stderr = _read_head(error_path, self.settings.max_stderr_bytes)
        peak_memory_mb = round(monitor.peak_memory_mb, 2)

        if timed_out or elapsed_ms > time_limit_ms:
            return RunOutcome(RunStatus.TIMEOUT, elapsed_ms=elapsed_ms,
                              peak_memory_mb=peak_memory_mb, stderr=stderr,
                              exit_code=process.returncode)

        if monitor.violation:
            return RunOutcome(RunStatus.NON_ZERO_EXIT, elapsed_ms=elapsed_ms,
                              peak_memory_mb=peak_memory_mb, stderr=monitor.violation,
                              exit_code=None)

        if process.returncode != 0:
            return RunOutcome(RunStatus.NON_ZERO_EXIT, elapsed_ms=elapsed_ms,
                              peak_memory_mb=peak_memory_mb, stderr=stderr,
                              exit_code=process.returncode)

        # Check output size
        output_size = output_path.stat().st_size
        if output_size > self.settings.max_output_bytes:
            return RunOutcome(RunStatus.NON_ZERO_EXIT, elapsed_ms=elapsed_ms,
                              peak_memory_mb=peak_memory_mb,
                              stderr=f"Output limit exceeded: {output_size} bytes "
                                     f"(limit: {self.settings.max_output_bytes})",
                              exit_code=None)

        stdout = output_path.read_bytes().decode("utf-8", errors="replace")
        return RunOutcome(RunStatus.OK, elapsed_ms=elapsed_ms, peak_memory_mb=peak_memory_mb,
                          stdout=stdout, stderr=stderr, exit_code=0)


def _kill_session(pid: int):
    """Kill descendants left behind after the session leader exited"""
    if not hasattr(os, "killpg"):
        return
    try:
        os.killpg(pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass
