"""Exception types shared across the evaluation runner."""

from __future__ import annotations

from typing import List, Optional, Sequence


class EvalRunnerError(RuntimeError):
    """Base class for errors raised by evalrunner."""


class SpecParseError(EvalRunnerError):
    """Raised when a spec file cannot be turned into test specs."""


class SpecExecutionError(EvalRunnerError):
    """Raised when the API provider returns an error or an empty output for a spec."""


class EmptySessionError(EvalRunnerError):
    """Raised when summarizing a session that recorded no results."""


class SearchClientError(EvalRunnerError):
    """Raised when OpenSearch answers with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class IndexDeletionError(EvalRunnerError):
    """Raised after bulk deletion when at least one chunk could not be deleted."""

    def __init__(self, failures: Sequence[BaseException], chunks_total: int) -> None:
        self.failures: List[BaseException] = list(failures)
        self.chunks_total = chunks_total
        super().__init__(
            f"failed to delete {len(self.failures)} of {chunks_total} index chunk(s): "
            + "; ".join(str(exc) for exc in self.failures)
        )
