"""Grouped test orchestration against an API provider."""

from __future__ import annotations

import abc
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Sequence, Union

from evalrunner.errors import SpecExecutionError, SpecParseError
from evalrunner.evaluator.models import (
    SPEC_ERROR,
    SPEC_FAILED,
    SPEC_PASSED,
    ComparisonResult,
    GroupReport,
    ProviderInput,
    ProviderResponse,
    RunReport,
    SpecOutcome,
    TestSpec,
)
from evalrunner.evaluator.recorder import ResultRecorder

if TYPE_CHECKING:  # pragma: no cover - typing only
    from evalrunner.providers import ApiProvider

logger = logging.getLogger(__name__)


def group_specs(specs: Iterable[TestSpec]) -> Dict[str, List[TestSpec]]:
    """Partition specs by group key, keeping first-seen group order and spec order."""
    groups: Dict[str, List[TestSpec]] = {}
    for spec in specs:
        groups.setdefault(spec.group_key, []).append(spec)
    return groups


def parse_test_specs(path: Union[Path, str]) -> List[TestSpec]:
    """Parse a JSONL file where every non-blank line is one test spec object."""
    path = Path(path)
    specs: List[TestSpec] = []
    with path.open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as exc:
                raise SpecParseError(f"{path}:{line_number}: invalid JSON ({exc.msg})") from exc
            if not isinstance(payload, dict):
                raise SpecParseError(f"{path}:{line_number}: expected a JSON object")
            try:
                specs.append(TestSpec.from_dict(payload))
            except SpecParseError as exc:
                raise SpecParseError(f"{path}:{line_number}: {exc}") from exc
    return specs


class TestRunner(abc.ABC):
    """Run test specs group by group and record every comparison result.

    Subclasses decide how a spec becomes a provider request
    (:meth:`build_input`) and how the response is judged
    (:meth:`compare_results`). Lifecycle hooks receive the group key so they
    can prepare and clean up the external state shared by a group.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, provider: "ApiProvider", recorder: ResultRecorder) -> None:
        self.provider = provider
        self.recorder = recorder

    @property
    def name(self) -> str:
        return self.recorder.runner_name

    async def before_all(self, group_key: str) -> None:
        return None

    async def after_all(self, group_key: str) -> None:
        return None

    async def before_each(self, group_key: str) -> None:
        return None

    async def after_each(self, group_key: str) -> None:
        return None

    @abc.abstractmethod
    def build_input(self, spec: TestSpec) -> ProviderInput:
        """Build the prompt and context sent to the provider for ``spec``."""

    @abc.abstractmethod
    async def compare_results(self, received: ProviderResponse, spec: TestSpec) -> ComparisonResult:
        """Compare the provider response against the expectations of ``spec``."""

    async def run_spec(self, spec: TestSpec) -> ProviderResponse:
        """Call the provider once for ``spec``; errors and empty outputs are fatal."""
        provider_input = self.build_input(spec)
        received = await self.provider.call_api(provider_input.prompt, provider_input.context)
        if received.error:
            raise SpecExecutionError(received.error)
        if not received.output:
            raise SpecExecutionError("result is empty")
        return received

    async def run(self, spec_files: Sequence[Union[Path, str]]) -> RunReport:
        parsed = [(Path(path), parse_test_specs(path)) for path in spec_files]
        self._check_unique_ids(spec for _, specs in parsed for spec in specs)

        report = RunReport(runner_name=self.name)
        for path, specs in parsed:
            logger.info("Running %s spec(s) from %s", len(specs), path)
            for group_key, group in group_specs(specs).items():
                report.groups.append(await self.run_group(group_key, group))
        return report

    async def run_group(self, group_key: str, specs: Sequence[TestSpec]) -> GroupReport:
        logger.info("Group %s: %s spec(s)", group_key, len(specs))
        report = GroupReport(group_key=group_key)
        self.recorder.reset()
        try:
            try:
                await self.before_all(group_key)
            except Exception as exc:
                logger.exception("Setup failed for group %s", group_key)
                report.outcomes = [
                    SpecOutcome(spec_id=spec.id, status=SPEC_ERROR, message=f"setup failed: {exc}")
                    for spec in specs
                ]
            else:
                for spec in specs:
                    report.outcomes.append(await self._execute(spec, group_key))
        finally:
            if self.recorder.records:
                report.summary = self.recorder.summarize()
            self.recorder.reset()
            try:
                await self.after_all(group_key)
            except Exception as exc:
                logger.exception("Teardown failed for group %s", group_key)
                report.teardown_error = str(exc)
        return report

    async def _execute(self, spec: TestSpec, group_key: str) -> SpecOutcome:
        try:
            await self.before_each(group_key)
            logger.info("Running test: %s", spec.id)
            received = await self.run_spec(spec)
            result = await self.compare_results(received, spec)
            record = await self.recorder.record(spec, received, result)
            outcome = SpecOutcome(
                spec_id=spec.id,
                status=SPEC_PASSED if result.passed else SPEC_FAILED,
                message=result.message,
                record=record,
            )
        except Exception as exc:
            logger.error("Test %s failed: %s", spec.id, exc)
            outcome = SpecOutcome(spec_id=spec.id, status=SPEC_ERROR, message=str(exc))

        try:
            await self.after_each(group_key)
        except Exception as exc:
            logger.exception("after_each failed for test %s", spec.id)
            if outcome.status != SPEC_ERROR:
                outcome = SpecOutcome(
                    spec_id=spec.id,
                    status=SPEC_ERROR,
                    message=f"after_each failed: {exc}",
                    record=outcome.record,
                )
        return outcome

    @staticmethod
    def _check_unique_ids(specs: Iterable[TestSpec]) -> None:
        seen: set[str] = set()
        for spec in specs:
            if spec.id in seen:
                raise SpecParseError(f"duplicate test id {spec.id!r}")
            seen.add(spec.id)
