"""Test orchestration, result recording and runners."""

from .models import (
    ComparisonResult,
    GroupReport,
    ProviderInput,
    ProviderResponse,
    ResultRecord,
    RunReport,
    SessionSummary,
    SpecOutcome,
    TestSpec,
)
from .recorder import ResultRecorder
from .runner import TestRunner, group_specs, parse_test_specs
from .similarity_runner import SimilarityRunner

__all__ = [
    "ComparisonResult",
    "GroupReport",
    "ProviderInput",
    "ProviderResponse",
    "ResultRecord",
    "ResultRecorder",
    "RunReport",
    "SessionSummary",
    "SimilarityRunner",
    "SpecOutcome",
    "TestRunner",
    "TestSpec",
    "group_specs",
    "parse_test_specs",
]
