import asyncio
import enum
import logging
import uuid
from typing import Awaitable, Callable, Optional, Set

from judgecore.compiler import Compiler
from judgecore.config import JudgeSettings
from judgecore.errors import CompilationError
from judgecore.models import ExecutionRequest, FailedTestCase, TestCase, Verdict, VerdictStatus
from judgecore.runner import ProcessRunner, RunOutcome, RunStatus
from judgecore.verifier import normalize_output, verify
from judgecore.workspace import Workspace, WorkspaceManager

logger = logging.getLogger(__name__)

TIMEOUT_MARKER = "Time Limit Exceeded"
INTERNAL_ERROR_MESSAGE = "Internal error while judging"

VerdictCallback = Callable[[str, Verdict], Awaitable[None]]


class ExecutionState(str, enum.Enum):
    CREATED = "Created"
    COMPILING = "Compiling"
    RUNNING = "Running"
    FINALIZING = "Finalizing"
    TERMINATED = "Terminated"


class Execution:
    """One run of a request and the running aggregates of its evaluated cases"""

    def __init__(self, request: ExecutionRequest, execution_id: str):
        self.request = request
        self.execution_id = execution_id
        self.state = ExecutionState.CREATED
        self.passed = 0
        self.max_time_ms = 0
        self.max_memory_mb = 0.0

    def transition(self, state: ExecutionState):
        logger.debug("[Judge %s] %s -> %s", self.execution_id, self.state.value, state.value)
        self.state = state

    def record(self, outcome: RunOutcome):
        self.max_time_ms = max(self.max_time_ms, outcome.elapsed_ms)
        self.max_memory_mb = max(self.max_memory_mb, outcome.peak_memory_mb)

    def verdict(self, status: VerdictStatus, failed_test_case: Optional[FailedTestCase] = None,
                error_message: Optional[str] = None) -> Verdict:
        return Verdict(
            status=status,
            execution_time_ms=self.max_time_ms,
            memory_used_mb=self.max_memory_mb,
            test_cases_passed=self.passed,
            total_test_cases=len(self.request.test_cases),
            failed_test_case=failed_test_case,
            error_message=error_message,
        )


class Judge:
    """Compiles, runs and verifies one request at a time per call to `run`.

    Test cases run in request order and judging stops at the first case that
    does not pass. Whatever happens, the caller gets a Verdict and the
    workspace is torn down exactly once.
    """

    def __init__(self, settings: JudgeSettings):
        self.settings = settings
        self.workspaces = WorkspaceManager(settings.temp_root)
        self.compiler = Compiler(settings)
        self.runner = ProcessRunner(settings)

    async def run(self, request: ExecutionRequest, execution_id: Optional[str] = None) -> Verdict:
        execution = Execution(request, execution_id or uuid.uuid4().hex)
        logger.info("[Judge %s] Language: %s, Test cases: %d",
                    execution.execution_id, request.language.value, len(request.test_cases))

        try:
            with self.workspaces.acquire(execution.execution_id, request.language) as workspace:
                verdict = await self._execute(execution, workspace)
                execution.transition(ExecutionState.FINALIZING)
        except Exception:
            logger.exception("[Judge %s] Internal error in state %s",
                             execution.execution_id, execution.state.value)
            verdict = execution.verdict(VerdictStatus.RUNTIME_ERROR, error_message=INTERNAL_ERROR_MESSAGE)

        execution.transition(ExecutionState.TERMINATED)
        logger.info("[Judge %s] Result: %s, Time: %dms, Memory: %.1fMB, Passed: %d/%d",
                    execution.execution_id, verdict.status.value, verdict.execution_time_ms,
                    verdict.memory_used_mb, verdict.test_cases_passed, verdict.total_test_cases)
        return verdict

    async def _execute(self, execution: Execution, workspace: Workspace) -> Verdict:
        request = execution.request
        target = self.workspaces.write_source(workspace, request.source_code)

        if request.language.compiled:
            execution.transition(ExecutionState.COMPILING)
            logger.info("[Judge %s] Compiling...", execution.execution_id)
            try:
                target = await self.compiler.compile(workspace.source_path, request.language)
            except CompilationError as e:
                logger.info("[Judge %s] Compile Error: %s", execution.execution_id, e.diagnostics[:200])
                return execution.verdict(VerdictStatus.COMPILE_ERROR, error_message=e.diagnostics)

        execution.transition(ExecutionState.RUNNING)
        for idx, test_case in enumerate(request.test_cases):
            outcome = await self.runner.run(
                target,
                request.language,
                test_case.input,
                request.time_limit_ms,
                workspace.input_path(idx),
                workspace.output_path(idx),
                memory_limit_mb=request.memory_limit_mb,
                error_path=workspace.error_path(idx),
            )
            execution.record(outcome)

            failure = self._check(execution, test_case, outcome)
            if failure is not None:
                logger.info("[Judge %s] Test %d: %s (%s)", execution.execution_id, idx + 1,
                            failure.status.value, outcome.status.value)
                return failure
            execution.passed += 1

        return execution.verdict(VerdictStatus.ACCEPTED)

    def _check(self, execution: Execution, test_case: TestCase, outcome: RunOutcome) -> Optional[Verdict]:
        """Verdict for a failing case, None when the case passed"""
        if outcome.status == RunStatus.TIMEOUT:
            return execution.verdict(
                VerdictStatus.TIME_LIMIT,
                failed_test_case=FailedTestCase(input=test_case.input,
                                                expected_output=test_case.output,
                                                actual_output=TIMEOUT_MARKER),
            )

        if outcome.status in (RunStatus.NON_ZERO_EXIT, RunStatus.SPAWN_ERROR):
            diagnostic = outcome.diagnostic
            return execution.verdict(
                VerdictStatus.RUNTIME_ERROR,
                failed_test_case=FailedTestCase(input=test_case.input,
                                                expected_output=test_case.output,
                                                actual_output=diagnostic),
                error_message=diagnostic,
            )

        if not verify(outcome.stdout, test_case.output):
            return execution.verdict(
                VerdictStatus.WRONG_ANSWER,
                failed_test_case=FailedTestCase(input=test_case.input,
                                                expected_output=test_case.output,
                                                actual_output=normalize_output(outcome.stdout)),
            )
        return None


class JudgePool:
    """Runs executions as independent background tasks, a bounded number at a time"""

    def __init__(self, judge: Judge, max_concurrent: int):
        self.engine = judge
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def judge(self, request: ExecutionRequest, execution_id: Optional[str] = None) -> Verdict:
        async with self._semaphore:
            return await self.engine.run(request, execution_id)

    def submit(self, request: ExecutionRequest, on_verdict: Optional[VerdictCallback] = None,
               execution_id: Optional[str] = None) -> str:
        """Start judging in the background and return the execution id at once"""
        execution_id = execution_id or uuid.uuid4().hex
        task = asyncio.get_running_loop().create_task(
            self._judge_and_report(request, execution_id, on_verdict))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return execution_id

    async def _judge_and_report(self, request: ExecutionRequest, execution_id: str,
                                on_verdict: Optional[VerdictCallback]):
        verdict = await self.judge(request, execution_id)
        if on_verdict is None:
            return
        try:
            await on_verdict(execution_id, verdict)
        except Exception:
            logger.exception("[Judge %s] Failed to report verdict", execution_id)

    async def join(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
