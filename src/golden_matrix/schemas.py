from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import CaseCancelled, InconclusiveResult, InvocationError, MismatchError

MatchStatus = Literal["MATCHED", "MISMATCHED", "INCONCLUSIVE"]
CaseStatus = Literal["MATCHED", "MISMATCHED", "INCONCLUSIVE", "ERROR", "CANCELLED"]
CASE_STATUSES: Tuple[str, ...] = ("MATCHED", "MISMATCHED", "INCONCLUSIVE", "ERROR", "CANCELLED")


class ScenarioDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    qualified_name: str
    display_label: str = ""
    reference: str = ""
    group: Optional[str] = None

    @model_validator(mode="after")
    def _check_names(self) -> "ScenarioDescriptor":
        if not self.qualified_name.strip():
            raise ValueError("qualified_name must not be empty")
        return self

    @property
    def group_name(self) -> str:
        if self.group:
            return self.group
        head, _, _ = self.qualified_name.rpartition(".")
        return head

    @property
    def scenario_name(self) -> str:
        return self.qualified_name.rpartition(".")[2]

    @property
    def label(self) -> str:
        return self.display_label or self.scenario_name


class DimensionValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    args: Tuple[str, ...] = ()


class ConfigurationDimension(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    values: Tuple[DimensionValue, ...] = ()


class InvocationDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    scenario: ScenarioDescriptor
    values: Tuple[Tuple[str, str], ...]
    argv: Tuple[str, ...]
    label: str
    resource_key: str
    primary_value: str

    @property
    def group_path(self) -> str:
        return self.resource_key.rpartition("/")[0]

    @property
    def file_stem(self) -> str:
        return self.resource_key.rpartition("/")[2]


class InvocationResult(BaseModel):
    stdout: str
    stderr: str = ""
    exit_status: int = 0
    duration_ns: int = 0


class MatchOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: MatchStatus
    reason: str = ""
    message: str = ""
    expected_index: Optional[int] = None
    actual_index: Optional[int] = None
    expected_text: Optional[str] = None
    actual_text: Optional[str] = None
    baseline_path: Optional[str] = None

    @classmethod
    def matched(cls) -> "MatchOutcome":
        return cls(status="MATCHED", reason="MATCHED")

    @classmethod
    def mismatched(
        cls,
        reason: str,
        message: str,
        *,
        expected_index: Optional[int] = None,
        actual_index: Optional[int] = None,
        expected_text: Optional[str] = None,
        actual_text: Optional[str] = None,
    ) -> "MatchOutcome":
        return cls(
            status="MISMATCHED",
            reason=reason,
            message=message,
            expected_index=expected_index,
            actual_index=actual_index,
            expected_text=expected_text,
            actual_text=actual_text,
        )

    @classmethod
    def inconclusive(
        cls, reason: str, message: str, baseline_path: Optional[str] = None
    ) -> "MatchOutcome":
        return cls(
            status="INCONCLUSIVE", reason=reason, message=message, baseline_path=baseline_path
        )

    @property
    def ok(self) -> bool:
        return self.status == "MATCHED"

    def describe(self, resource_key: str = "") -> str:
        parts: List[str] = []
        head = self.message or self.reason
        parts.append(f"[{resource_key}] {head}" if resource_key else head)
        if self.expected_index is not None:
            parts.append(f"  expected line #{self.expected_index}: `{self.expected_text or ''}`")
        if self.actual_index is not None:
            if self.actual_text is None:
                parts.append(f"  actual line #{self.actual_index}: <end of output>")
            else:
                parts.append(f"  actual line #{self.actual_index}: `{self.actual_text}`")
        return "\n".join(parts)


class CaseReport(BaseModel):
    resource_key: str
    label: str
    qualified_name: str
    primary_value: str
    argv: List[str] = Field(default_factory=list)
    status: CaseStatus
    reason: str = ""
    message: str = ""
    exit_status: Optional[int] = None
    duration_ns: int = 0
    baseline_path: Optional[str] = None
    detail: Optional[MatchOutcome] = None

    @classmethod
    def for_descriptor(
        cls,
        descriptor: InvocationDescriptor,
        status: CaseStatus,
        reason: str,
        message: str,
        **extra: Any,
    ) -> "CaseReport":
        return cls(
            resource_key=descriptor.resource_key,
            label=descriptor.label,
            qualified_name=descriptor.scenario.qualified_name,
            primary_value=descriptor.primary_value,
            argv=list(descriptor.argv),
            status=status,
            reason=reason,
            message=message,
            **extra,
        )

    @property
    def failed(self) -> bool:
        return self.status in {"MISMATCHED", "ERROR", "CANCELLED"}

    def raise_for_status(self) -> None:
        if self.status == "MATCHED":
            return
        if self.status == "INCONCLUSIVE":
            raise InconclusiveResult(self.message, self.resource_key)
        if self.status == "CANCELLED":
            raise CaseCancelled(f"[{self.resource_key}] {self.message}")
        if self.status == "ERROR":
            raise InvocationError(self.reason, f"[{self.resource_key}] {self.message}")
        outcome = self.detail or MatchOutcome.mismatched(self.reason, self.message)
        raise MismatchError(outcome, self.resource_key)


class RunReport(BaseModel):
    run_id: str
    cases: List[CaseReport] = Field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        totals = {status: 0 for status in CASE_STATUSES}
        for case in self.cases:
            totals[case.status] += 1
        return totals

    @property
    def ok(self) -> bool:
        return not any(case.failed for case in self.cases)

    def to_payload(self) -> Dict[str, object]:
        return {
            "run_id": self.run_id,
            "ok": self.ok,
            "counts": self.counts,
            "cases": [case.model_dump() for case in self.cases],
        }
