class JudgeError(Exception):
    """Base class for failures raised inside the judging core"""


class CompilationError(JudgeError):
    def __init__(self, diagnostics: str):
        super().__init__(diagnostics)
        self.diagnostics = diagnostics
