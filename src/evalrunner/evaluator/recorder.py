"""Per-session result recording to memory and to rotating JSONL files."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from pathlib import Path
from typing import List, Optional, Tuple

from evalrunner.errors import EmptySessionError
from evalrunner.evaluator.models import (
    ComparisonResult,
    ProviderResponse,
    ResultRecord,
    SessionSummary,
    TestSpec,
)

logger = logging.getLogger(__name__)

RESULTS_FILE_PATTERN = re.compile(r"results_\d+\.jsonl")


class ResultRecorder:
    """Accumulate result records for one session and append them to disk.

    Files live under ``<results_root>/<runner_name>/`` and are named
    ``results_<n>.jsonl``. The file for a session is chosen on its first
    record and every later record of that session is appended to it.
    """

    def __init__(self, results_root: Path, runner_name: str) -> None:
        if not runner_name:
            raise ValueError("runner_name must be a non-empty string")
        self.runner_name = runner_name
        self.results_dir = (Path(results_root) / runner_name).resolve()
        self._records: List[ResultRecord] = []
        self._results_file: Optional[Path] = None
        self._write_lock = asyncio.Lock()

    @property
    def records(self) -> Tuple[ResultRecord, ...]:
        return tuple(self._records)

    @property
    def results_file(self) -> Optional[Path]:
        return self._results_file

    async def record(
        self,
        spec: TestSpec,
        received: ProviderResponse,
        result: ComparisonResult,
    ) -> ResultRecord:
        """Build a record for ``spec`` and persist it in memory and on disk."""
        record = ResultRecord(
            id=spec.id,
            score=result.score,
            passed=result.passed,
            output=received.output,
            error=received.error,
            extras=result.extras,
            executed_at=int(time.time() * 1000),
        )
        line = json.dumps(record.to_dict(), default=str) + "\n"
        async with self._write_lock:
            results_file = await self._ensure_results_file()
            await asyncio.to_thread(self._append_line, results_file, line)
            self._records.append(record)
        return record

    def build_summary(self) -> SessionSummary:
        if not self._records:
            raise EmptySessionError("cannot summarize a session without recorded results")
        scores = [record.score for record in self._records]
        total = len(scores)
        return SessionSummary(
            total=total,
            average=sum(scores) / total,
            minimum=min(scores),
            maximum=max(scores),
            pass_rate=sum(1 for record in self._records if record.passed) / total,
        )

    def summarize(self) -> str:
        summary = self.build_summary().format()
        logger.info(summary)
        return summary

    def reset(self) -> None:
        """Forget the session so the next record starts a new results file."""
        self._records.clear()
        self._results_file = None

    async def _ensure_results_file(self) -> Path:
        if self._results_file is None:
            self._results_file = await asyncio.to_thread(self._next_results_file)
            logger.debug("Recording results to %s", self._results_file)
        return self._results_file

    def _next_results_file(self) -> Path:
        self.results_dir.mkdir(parents=True, exist_ok=True)
        existing = [
            entry
            for entry in self.results_dir.iterdir()
            if entry.is_file() and RESULTS_FILE_PATTERN.fullmatch(entry.name)
        ]
        path = self.results_dir / f"results_{len(existing) + 1}.jsonl"
        if path.exists():
            logger.warning("%s already exists; new results will be appended to it", path)
        return path

    @staticmethod
    def _append_line(path: Path, line: str) -> None:
        with path.open("a", encoding="utf-8") as handle:
            handle.write(line)
