from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .schemas import MatchOutcome


class GoldenMatrixError(Exception):
    def __init__(self, failure_atom: str, message: str = "") -> None:
        super().__init__(message or failure_atom)
        self.failure_atom = failure_atom
        self.message = message or failure_atom


class ConfigurationError(GoldenMatrixError):
    """The matrix cannot be built; nothing in the run may execute."""


class InvocationError(GoldenMatrixError):
    """The program under test could not produce usable output for one case."""


class CaseCancelled(GoldenMatrixError):
    def __init__(self, message: str = "run cancelled") -> None:
        super().__init__("CANCELLED", message)


class MismatchError(AssertionError):
    def __init__(self, outcome: "MatchOutcome", resource_key: str = "") -> None:
        text = outcome.describe(resource_key)
        super().__init__(text)
        self.outcome = outcome
        self.resource_key = resource_key
        self.failure_atom = outcome.reason


class InconclusiveResult(Exception):
    def __init__(self, message: str, resource_key: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.resource_key = resource_key
