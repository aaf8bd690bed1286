"""Queryable assembly of a back-test run's forecasts, accuracy and failures."""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging

import pandas as pd

from ..data.splitters import Split
from ..utils.error_handling import PairFailure
from ..utils.serialization import save_json, save_parquet
from .aggregation import AccuracyRecord, ModelSummary
from .engine import ForecastRecord, PairResult
from .metrics import METRIC_NAMES

logger = logging.getLogger(__name__)

RECORD_COLUMNS = [
    "model_id", "split_id", "timestamp", "point_forecast",
    "lower_bound", "upper_bound", "actual",
]


class ForecastReport:
    """
    Read-only view over the results of a cross-validation run.

    Query by model, by fold, or as flattened frames for export.
    """

    def __init__(
        self,
        results: Mapping[Tuple[str, int], PairResult],
        accuracy: Sequence[AccuracyRecord],
        summaries: Sequence[ModelSummary],
        splits: Sequence[Split] = (),
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self._results = dict(results)
        self._accuracy = tuple(accuracy)
        self._summaries = tuple(summaries)
        self._splits = tuple(splits)
        self.metadata = dict(metadata or {})

    @property
    def model_ids(self) -> List[str]:
        return [s.model_id for s in self._summaries]

    @property
    def splits(self) -> List[Split]:
        return list(self._splits)

    def pair_result(self, model_id: str, split_id: int) -> Optional[PairResult]:
        return self._results.get((model_id, split_id))

    def records(self, model_id: Optional[str] = None, split_id: Optional[int] = None) -> List[ForecastRecord]:
        """
        Forecast records, optionally filtered by model and/or fold.

        Returns:
            Records ordered by model id, split id and timestamp
        """
        selected = []
        for (m, s), result in sorted(self._results.items()):
            if model_id is not None and m != model_id:
                continue
            if split_id is not None and s != split_id:
                continue
            selected.extend(result.records)
        return selected

    def fold_accuracy(self, model_id: Optional[str] = None) -> List[AccuracyRecord]:
        return [a for a in self._accuracy if model_id is None or a.model_id == model_id]

    def summaries(self) -> List[ModelSummary]:
        """Model summaries in rank order."""
        return list(self._summaries)

    def best_model(self) -> Optional[ModelSummary]:
        """Top-ranked model with data, or None if every model failed."""
        for summary in self._summaries:
            if summary.has_data:
                return summary
        return None

    def best_model_forecasts(self) -> pd.DataFrame:
        """Point forecasts and interval band of the best model across all folds."""
        best = self.best_model()
        if best is None:
            return pd.DataFrame(columns=RECORD_COLUMNS)
        return self.to_frame(model_id=best.model_id)

    def failures(self, model_id: Optional[str] = None) -> List[PairFailure]:
        return [
            r.error for (m, _), r in sorted(self._results.items())
            if r.error is not None and (model_id is None or m == model_id)
        ]

    def to_frame(self, model_id: Optional[str] = None, split_id: Optional[int] = None) -> pd.DataFrame:
        """Flattened forecast records."""
        rows = [r.to_dict() for r in self.records(model_id, split_id)]
        df = pd.DataFrame(rows, columns=RECORD_COLUMNS)
        df["actual"] = df["actual"].astype(float)
        return df

    def accuracy_frame(self) -> pd.DataFrame:
        """Per-fold accuracy, one row per (model, split)."""
        columns = ["model_id", "split_id", *METRIC_NAMES, "n_observations"]
        return pd.DataFrame([a.to_dict() for a in self._accuracy], columns=columns)

    def summary_frame(self) -> pd.DataFrame:
        """Ranked cross-fold summaries."""
        return pd.DataFrame([s.to_dict() for s in self._summaries])

    def to_dict(self) -> Dict[str, Any]:
        best = self.best_model()
        return {
            "best_model": best.model_id if best else None,
            "summaries": [s.to_dict() for s in self._summaries],
            "fold_accuracy": [a.to_dict() for a in self._accuracy],
            "failures": [f.to_dict() for f in self.failures()],
            "splits": [s.to_dict() for s in self._splits],
            "calibration": [
                {"model_id": m, "split_id": s, **r.calibration.to_dict()}
                for (m, s), r in sorted(self._results.items())
                if r.calibration is not None
            ],
            "metadata": self.metadata,
        }

    def save(self, output_dir: Union[str, Path]) -> Dict[str, Path]:
        """
        Write forecasts and accuracy as Parquet and the run summary as JSON.

        Returns:
            Mapping of artifact name to written path
        """
        output_dir = Path(output_dir)
        paths = {
            "forecasts": output_dir / "forecasts.parquet",
            "accuracy": output_dir / "accuracy.parquet",
            "summary": output_dir / "summary.json",
        }
        save_parquet(self.to_frame(), paths["forecasts"], index=False)
        save_parquet(self.accuracy_frame(), paths["accuracy"], index=False)
        save_json(self.to_dict(), paths["summary"])
        logger.info(f"Saved report to {output_dir}")
        return paths

    def __repr__(self) -> str:
        best = self.best_model()
        return (
            f"{self.__class__.__name__}(models={len(self._summaries)}, "
            f"splits={len(self._splits)}, failures={len(self.failures())}, "
            f"best={best.model_id if best else None!r})"
        )
