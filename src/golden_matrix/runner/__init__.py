from .case_runner import CaseRunner
from .parallel import run_matrix
from .session import run_definition

__all__ = ["CaseRunner", "run_definition", "run_matrix"]
