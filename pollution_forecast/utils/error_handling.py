"""Error taxonomy and failure capture for the back-testing harness."""

import logging
import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class BacktestError(Exception):
    """Base class for all harness errors."""


class MalformedInputError(BacktestError):
    """Timestamp invariant violated (non-monotonic, duplicated or gapped index).

    Fatal: raised before any modeling begins.
    """


class MissingFeatureError(BacktestError):
    """An adapter's declared required features are absent from the frame."""

    def __init__(self, model_id: str, missing: list):
        self.model_id = model_id
        self.missing = list(missing)
        super().__init__(
            f"Model '{model_id}' requires features not present in frame: {self.missing}"
        )


class FitError(BacktestError):
    """Underlying numerical fit failed, did not converge or timed out."""

    def __init__(self, message: str, model_id: Optional[str] = None, split_id: Optional[int] = None):
        self.model_id = model_id
        self.split_id = split_id
        super().__init__(message)


class PredictionAlignmentError(BacktestError):
    """Adapter returned forecasts not aligned 1:1 with the requested horizon."""

    def __init__(self, model_id: str, expected: int, received: int, reason: str = "length mismatch"):
        self.model_id = model_id
        self.expected = expected
        self.received = received
        super().__init__(
            f"Model '{model_id}' forecast {reason}: expected {expected} values, got {received}"
        )


class LeakageViolationError(BacktestError):
    """Statistics were fitted over a range that overlaps the test range."""


class PairCancelledError(BacktestError):
    """A (model, split) pair was not started because the run was cancelled."""


@dataclass
class PairFailure:
    """Captures why a (model, split) pair produced no forecasts."""
    model_id: str
    split_id: int
    exception_type: str
    exception_message: str
    stack_trace: str = ""
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_exception(cls, model_id: str, split_id: int, exc: BaseException) -> "PairFailure":
        """
        Create a failure record from an exception.

        The chained cause (e.g. the numerical error wrapped by a FitError) is
        included in the stack trace.
        """
        stack_trace = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        return cls(
            model_id=model_id,
            split_id=split_id,
            exception_type=type(exc).__name__,
            exception_message=str(exc),
            stack_trace=stack_trace,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "model_id": self.model_id,
            "split_id": self.split_id,
            "exception_type": self.exception_type,
            "exception_message": self.exception_message,
            "stack_trace": self.stack_trace,
            "timestamp": self.timestamp,
        }
