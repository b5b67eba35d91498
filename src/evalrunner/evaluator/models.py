"""Common data models for test specs, provider calls and recorded results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from evalrunner.errors import SpecParseError

GROUP_KEY_FIELDS = ("groupKey", "group_key", "clusterStateId")

SPEC_PASSED = "passed"
SPEC_FAILED = "failed"
SPEC_ERROR = "error"


@dataclass(frozen=True)
class TestSpec:
    """One test case, bound to the external state identified by ``group_key``."""

    __test__ = False  # not a pytest test class

    id: str
    group_key: str
    fields: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "TestSpec":
        spec_id = payload.get("id")
        if spec_id is None or spec_id == "":
            raise SpecParseError("test spec is missing an 'id'")
        group_key = next((payload[key] for key in GROUP_KEY_FIELDS if payload.get(key) is not None), None)
        if group_key is None:
            raise SpecParseError(f"test spec {spec_id} is missing a group key ({', '.join(GROUP_KEY_FIELDS)})")
        return cls(id=str(spec_id), group_key=str(group_key), fields=dict(payload))

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


@dataclass
class ProviderInput:
    prompt: str
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderResponse:
    output: Optional[Any] = None
    error: Optional[str] = None


@dataclass
class ComparisonResult:
    passed: bool
    score: float
    message: str = ""
    extras: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ResultRecord:
    id: str
    score: float
    passed: bool
    output: Any
    error: Optional[str]
    extras: Optional[Dict[str, Any]]
    executed_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "score": self.score,
            "pass": self.passed,
            "output": self.output,
            "error": self.error,
            "extras": self.extras,
            "executed_at": self.executed_at,
        }


@dataclass
class SessionSummary:
    total: int
    average: float
    minimum: float
    maximum: float
    pass_rate: float

    def format(self) -> str:
        percentage = round(self.pass_rate, 4) * 100
        return (
            f"Summary: {self.total} tests, average score: {self.average:.2f}, "
            f"range: {self.minimum:.2f} - {self.maximum:.2f}. Pass rate: {percentage:.2f}%"
        )


@dataclass
class SpecOutcome:
    spec_id: str
    status: str
    message: str = ""
    record: Optional[ResultRecord] = None


@dataclass
class GroupReport:
    group_key: str
    outcomes: List[SpecOutcome] = field(default_factory=list)
    summary: Optional[str] = None
    teardown_error: Optional[str] = None

    def count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)


@dataclass
class RunReport:
    runner_name: str
    groups: List[GroupReport] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(len(group.outcomes) for group in self.groups)

    @property
    def passed(self) -> int:
        return sum(group.count(SPEC_PASSED) for group in self.groups)

    @property
    def failed(self) -> int:
        return sum(group.count(SPEC_FAILED) for group in self.groups)

    @property
    def errored(self) -> int:
        return sum(group.count(SPEC_ERROR) for group in self.groups)

    @property
    def exit_code(self) -> int:
        if any(group.teardown_error for group in self.groups):
            return 1
        return 0 if self.passed == self.total else 1
