"""Per-fold accuracy and cross-fold reduction into ranked model summaries."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging
import math

import pandas as pd

from .engine import PairResult
from .metrics import METRIC_NAMES, MetricsCalculator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccuracyRecord:
    """Accuracy of one model on one fold."""
    model_id: str
    split_id: int
    metrics: Mapping[str, Optional[float]]

    def to_dict(self) -> Dict[str, Any]:
        return {"model_id": self.model_id, "split_id": self.split_id, **dict(self.metrics)}


@dataclass(frozen=True)
class ModelSummary:
    """
    Cross-fold mean accuracy of one model.

    ``mean_metrics`` averages each metric over the folds in which the model
    produced records; failed folds are left out rather than counted as zero.
    """
    model_id: str
    mean_metrics: Mapping[str, Optional[float]] = field(default_factory=dict)
    n_folds: int = 0
    n_failed: int = 0
    rank: Optional[int] = None

    @property
    def has_data(self) -> bool:
        return self.n_folds > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "rank": self.rank,
            "has_data": self.has_data,
            "n_folds": self.n_folds,
            "n_failed": self.n_failed,
            **dict(self.mean_metrics),
        }


def _ranking_key(summary: ModelSummary) -> Tuple[bool, float, float, str]:
    def value(name: str) -> float:
        v = summary.mean_metrics.get(name)
        return math.inf if v is None or math.isnan(v) else v

    return (not summary.has_data, value("rmse"), value("mape"), summary.model_id)


class AccuracyAggregator:
    """Compute fold accuracy and reduce it across folds."""

    def __init__(self, metrics_calculator: Optional[MetricsCalculator] = None):
        self.metrics_calculator = metrics_calculator or MetricsCalculator()

    def fold_accuracy(self, results: Iterable[PairResult]) -> List[AccuracyRecord]:
        """
        One AccuracyRecord per successful pair that emitted records.

        Args:
            results: Pair results of a run

        Returns:
            Records sorted by (model_id, split_id)
        """
        records = [
            AccuracyRecord(
                model_id=r.model_id,
                split_id=r.split_id,
                metrics=self.metrics_calculator.calculate_record_metrics(r.records),
            )
            for r in results
            if r.succeeded and r.records
        ]
        return sorted(records, key=lambda a: (a.model_id, a.split_id))

    def summarize(
        self,
        accuracy: Sequence[AccuracyRecord],
        model_ids: Sequence[str] = (),
        failures: Optional[Mapping[str, int]] = None,
    ) -> List[ModelSummary]:
        """
        Reduce fold accuracy to one ranked summary per model.

        Args:
            accuracy: Fold accuracy records
            model_ids: Every model in the run, so models without any
                successful fold still get a (no data) summary
            failures: Failed pair count per model

        Returns:
            Summaries ordered by mean RMSE, then mean MAPE, then model id;
            models without data come last
        """
        failures = dict(failures or {})
        all_ids = sorted(set(model_ids) | {a.model_id for a in accuracy} | set(failures))

        means: Dict[str, Dict[str, Optional[float]]] = {}
        counts: Dict[str, int] = {}
        if accuracy:
            df = pd.DataFrame(
                [{"model_id": a.model_id, **{m: a.metrics.get(m) for m in METRIC_NAMES}} for a in accuracy]
            )
            df[list(METRIC_NAMES)] = df[list(METRIC_NAMES)].astype(float)
            grouped = df.groupby("model_id")
            counts = grouped.size().to_dict()
            for model_id, row in grouped[list(METRIC_NAMES)].mean().iterrows():
                means[model_id] = {m: (None if pd.isna(row[m]) else float(row[m])) for m in METRIC_NAMES}

        summaries = [
            ModelSummary(
                model_id=model_id,
                mean_metrics=means.get(model_id, {m: None for m in METRIC_NAMES}),
                n_folds=int(counts.get(model_id, 0)),
                n_failed=int(failures.get(model_id, 0)),
            )
            for model_id in all_ids
        ]
        summaries.sort(key=_ranking_key)
        ranked = [
            ModelSummary(s.model_id, s.mean_metrics, s.n_folds, s.n_failed, rank=i + 1)
            for i, s in enumerate(summaries)
        ]

        for s in ranked:
            if not s.has_data:
                logger.warning(f"Model '{s.model_id}' produced no forecasts in any fold")
        return ranked

    def aggregate(
        self,
        results: Iterable[PairResult],
        model_ids: Sequence[str] = (),
    ) -> Tuple[List[AccuracyRecord], List[ModelSummary]]:
        """Fold accuracy and ranked summaries of a run's pair results."""
        results = list(results)
        failures: Dict[str, int] = {}
        for r in results:
            if not r.succeeded:
                failures[r.model_id] = failures.get(r.model_id, 0) + 1
        accuracy = self.fold_accuracy(results)
        return accuracy, self.summarize(accuracy, model_ids or [r.model_id for r in results], failures)
