import enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Language(str, enum.Enum):
    C = "c"
    CPP = "cpp"
    PYTHON = "python"

    @property
    def compiled(self) -> bool:
        return self in (Language.C, Language.CPP)


class VerdictStatus(str, enum.Enum):
    ACCEPTED = "Accepted"
    WRONG_ANSWER = "WrongAnswer"
    TIME_LIMIT = "TimeLimitExceeded"
    RUNTIME_ERROR = "RuntimeError"
    COMPILE_ERROR = "CompilationError"


class TestCase(BaseModel):
    model_config = ConfigDict(frozen=True)

    input: str = ""
    output: str = ""


class ExecutionRequest(BaseModel):
    """Judging request handed to the core. Immutable once built."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    language: Language
    source_code: str = Field(alias="sourceCode")
    test_cases: Tuple[TestCase, ...] = Field(alias="testCases")
    time_limit_ms: int = Field(1000, alias="timeLimitMs", ge=100, le=10000)
    memory_limit_mb: int = Field(256, alias="memoryLimitMb", ge=16, le=512)


class FailedTestCase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    input: str
    expected_output: str = Field(alias="expectedOutput")
    actual_output: Optional[str] = Field(None, alias="actualOutput")


class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: VerdictStatus
    execution_time_ms: int = Field(0, alias="executionTimeMs")
    memory_used_mb: float = Field(0.0, alias="memoryUsedMb")
    test_cases_passed: int = Field(0, alias="testCasesPassed")
    total_test_cases: int = Field(0, alias="totalTestCases")
    failed_test_case: Optional[FailedTestCase] = Field(None, alias="failedTestCase")
    error_message: Optional[str] = Field(None, alias="errorMessage")

    def to_response(self) -> dict:
        """Wire shape returned to the submission collaborator"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
