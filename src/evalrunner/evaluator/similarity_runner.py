"""Runner that scores free-text answers by similarity to reference answers."""

from __future__ import annotations

import logging
from difflib import SequenceMatcher
from typing import TYPE_CHECKING, List, Optional, Sequence

from evalrunner.config import settings
from evalrunner.evaluator.models import ComparisonResult, ProviderInput, ProviderResponse, TestSpec
from evalrunner.evaluator.recorder import ResultRecorder
from evalrunner.evaluator.runner import TestRunner

if TYPE_CHECKING:  # pragma: no cover - typing only
    from evalrunner.providers import ApiProvider

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a precise assistant. Answer the question in at most two sentences."
    " If you do not know the answer, say you do not know."
)


class SimilarityRunner(TestRunner):
    """Ask each spec's ``question`` and compare the reply with its ``answer`` field(s)."""

    def __init__(
        self,
        provider: "ApiProvider",
        recorder: ResultRecorder,
        *,
        threshold: Optional[float] = None,
    ) -> None:
        super().__init__(provider, recorder)
        self.threshold = settings.similarity_pass_threshold if threshold is None else threshold

    def build_input(self, spec: TestSpec) -> ProviderInput:
        question = str(spec.get("question", "")).strip()
        return ProviderInput(prompt=question, context={"system": SYSTEM_PROMPT, "spec_id": spec.id})

    async def compare_results(self, received: ProviderResponse, spec: TestSpec) -> ComparisonResult:
        expected = self._expected_answers(spec)
        if not expected:
            return ComparisonResult(
                passed=False,
                score=0.0,
                message=f"test {spec.id} has no reference answer",
                extras={"expected": [], "threshold": self.threshold},
            )

        score = self._best_similarity(str(received.output), expected)
        passed = score >= self.threshold
        message = f"similarity {score:.3f} {'>=' if passed else '<'} threshold {self.threshold:.2f}"
        return ComparisonResult(
            passed=passed,
            score=score,
            message=message,
            extras={"expected": expected, "threshold": self.threshold},
        )

    def _expected_answers(self, spec: TestSpec) -> List[str]:
        raw = spec.get("answer")
        if raw is None:
            return []
        if isinstance(raw, (list, tuple)):
            return [str(item) for item in raw if item]
        return [str(raw)] if raw else []

    def _best_similarity(self, candidate: str, references: Sequence[str]) -> float:
        normalized = self._normalize_text(candidate)
        best = 0.0
        for reference in references:
            best = max(best, SequenceMatcher(None, normalized, self._normalize_text(reference)).ratio())
        return best

    @staticmethod
    def _normalize_text(text: str) -> str:
        return " ".join(text.lower().split())
