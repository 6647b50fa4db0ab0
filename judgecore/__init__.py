from judgecore.config import JudgeSettings
from judgecore.errors import CompilationError, JudgeError
from judgecore.judge import Judge, JudgePool
from judgecore.models import ExecutionRequest, Language, TestCase, Verdict, VerdictStatus
from judgecore.verifier import normalize_output, verify

__version__ = "0.1.0"

__all__ = [
    "CompilationError",
    "ExecutionRequest",
    "Judge",
    "JudgeError",
    "JudgePool",
    "JudgeSettings",
    "Language",
    "TestCase",
    "Verdict",
    "VerdictStatus",
    "normalize_output",
    "verify",
]
