import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from judgecore.models import Language

# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"

# Toolchain templates. Only the compiler executable comes from settings.
TOOLCHAINS = {
    Language.C: {
        "source": "main.c",
        "args": ["-O2", "-std=c11", "-DONLINE_JUDGE"],
        "libs": ["-lm"],
    },
    Language.CPP: {
        "source": "main.cpp",
        "args": ["-O2", "-std=c++17", "-DONLINE_JUDGE"],
        "libs": [],
    },
    Language.PYTHON: {
        "source": "main.py",
        "args": [],
        "libs": [],
    },
}


class JudgeSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="JUDGE_", env_file=".env", extra="ignore")

    # Workspace root, one directory per execution below it
    temp_root: Path = Path(tempfile.gettempdir()) / "judgecore"

    # Judge settings
    compile_timeout_s: float = 30.0
    sample_interval_ms: int = 100
    max_output_bytes: int = 10 * 1024 * 1024  # 10MB
    max_stderr_bytes: int = 64 * 1024
    max_concurrent_judges: int = 4

    # Toolchain binaries
    c_compiler: str = "gcc"
    cpp_compiler: str = "g++"
    python_interpreter: str = "python3"

    # Submission service
    database_url: str = f"sqlite+aiosqlite:///{DATA_DIR}/judge.db"
    log_level: str = "INFO"
    log_json: bool = False

    def compiler_for(self, language: Language) -> str:
        if language == Language.C:
            return self.c_compiler
        if language == Language.CPP:
            return self.cpp_compiler
        raise ValueError(f"Language is not compiled: {language.value}")


@lru_cache
def get_settings() -> JudgeSettings:
    return JudgeSettings()
