from .matrix import matrix, matrix_json
from .model import BuildStepResult, RunResult, StepsResult
from .runner import RunCommand, ci_run, run

__all__ = [
    "matrix",
    "matrix_json",
    "BuildStepResult",
    "RunResult",
    "StepsResult",
    "RunCommand",
    "ci_run",
    "run",
]
