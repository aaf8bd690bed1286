"""Rolling-origin cross-validation of several models over one series."""

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union
import logging
import threading
import time

import pandas as pd

from ..data.splitters import RollingOriginSplitter, Split
from ..data.structs import Observation, TimeSeriesFrame
from ..data.validators import TimestampValidator
from ..models.base_model import ModelAdapter
from ..models.registry import build_adapters
from ..utils.config_manager import BacktestConfig
from ..utils.error_handling import FitError, MissingFeatureError, PairCancelledError
from ..utils.logging_config import pair_context
from .aggregation import AccuracyAggregator
from .engine import ForecastEngine, PairResult
from .report import ForecastReport

logger = logging.getLogger(__name__)

PairKey = Tuple[str, int]
Pending = Dict[Future, Tuple[PairKey, tuple]]


class CrossValidationRunner:
    """
    Runs every (adapter, split) pair and assembles a ForecastReport.

    Pairs are independent tasks on a thread pool; each gets its own clone of
    the adapter and a feature frame scaled on that split's training range.
    Results are collected into a mapping keyed by (model_id, split_id) and
    aggregated only after every pair has finished.
    """

    def __init__(
        self,
        adapters: Sequence[ModelAdapter],
        config: Optional[BacktestConfig] = None,
        splitter: Optional[RollingOriginSplitter] = None,
        engine: Optional[ForecastEngine] = None,
        aggregator: Optional[AccuracyAggregator] = None,
    ):
        """
        Initialize the runner.

        Args:
            adapters: Models to evaluate (unique model ids)
            config: Back-test configuration
            splitter: Split generator
            engine: Per-pair forecast engine
            aggregator: Fold accuracy aggregator
        """
        ids = [a.model_id for a in adapters]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate model ids: {duplicates}")

        self.adapters = list(adapters)
        self.config = config or BacktestConfig()
        self.splitter = splitter or RollingOriginSplitter()
        self.engine = engine or ForecastEngine(self.config)
        self.aggregator = aggregator or AccuracyAggregator()
        self._cancel_event = threading.Event()

    def cancel(self) -> None:
        """Stop scheduling pairs that have not started yet."""
        logger.info("Cancellation requested")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def prepare_frame(
        self, data: Union[TimeSeriesFrame, pd.DataFrame, Sequence[Observation]]
    ) -> TimeSeriesFrame:
        """
        Build or re-validate the input frame.

        Raises:
            MalformedInputError: If the timestamp invariants do not hold
        """
        if isinstance(data, TimeSeriesFrame):
            report = TimestampValidator(
                max_gap_tolerance=self.config.max_gap_tolerance,
                frequency=self.config.frequency,
            ).validate(data.data)
            if report.largest_gap_periods <= 1:
                return data
            raw = data.to_dataframe([data.target_column, *data.covariate_columns])
            config = replace(
                self.config, target_column=data.target_column, covariates=data.covariate_columns
            )
            return TimeSeriesFrame.build(raw, config)
        return TimeSeriesFrame.build(data, self.config)

    def run(self, data: Union[TimeSeriesFrame, pd.DataFrame, Sequence[Observation]]) -> ForecastReport:
        """
        Cross-validate all adapters.

        Args:
            data: Raw series (frame, DataFrame or observations)

        Returns:
            ForecastReport over every (model, split) pair

        Raises:
            MalformedInputError: Before any modeling, if the input is invalid
            LeakageViolationError: If a fold's scaling statistics overlap its test window
        """
        started = datetime.now()
        frame = self.prepare_frame(data)
        cfg = self.config

        splits = list(self.splitter.generate(
            frame, cfg.initial_window, cfg.assess_window, cfg.step, cfg.max_splits
        ))
        model_ids = [a.model_id for a in self.adapters]
        if not splits:
            return self._report({}, splits, model_ids, started)

        fold_frames = {s.split_id: frame.derive_features(cfg, fit_range=s.train_range) for s in splits}

        results: Dict[PairKey, PairResult] = {}
        active = self._check_adapters(fold_frames[splits[0].split_id], splits, results)

        pools = [self._new_pool()]
        pending: Pending = {}
        started_at: Dict[PairKey, float] = {}
        abandoned = aborted = False
        try:
            for split in splits:
                for adapter in active:
                    key = (adapter.model_id, split.split_id)
                    args = (adapter.clone(), fold_frames[split.split_id], split, started_at)
                    pending[pools[-1].submit(self._run_pair, *args)] = (key, args)

            while pending:
                done, _ = wait(
                    pending,
                    timeout=self._poll_timeout(pending, started_at),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    key, _ = pending.pop(future)
                    results[key] = future.result()

                expired = self._expired(pending, started_at)
                if not expired:
                    continue
                abandoned = True
                for future in expired:
                    key, _ = pending.pop(future)
                    results[key] = self._timed_out(key)

                # An abandoned pair keeps its worker busy; queued pairs move to a fresh pool
                requeued = [(f, entry) for f, entry in pending.items() if f.cancel()]
                if requeued:
                    pools[-1].shutdown(wait=False)
                    pools.append(self._new_pool())
                    for future, (key, args) in requeued:
                        del pending[future]
                        pending[pools[-1].submit(self._run_pair, *args)] = (key, args)
        except BaseException:
            aborted = True
            raise
        finally:
            # Threads cannot be interrupted; abandoned pairs are left to finish on their own
            for pool in pools:
                pool.shutdown(wait=not abandoned, cancel_futures=aborted)

        return self._report(results, splits, model_ids, started)

    def _new_pool(self) -> ThreadPoolExecutor:
        # max(1, ...) keeps the pool valid when every adapter was disabled
        return ThreadPoolExecutor(max_workers=max(1, self.config.n_jobs), thread_name_prefix="backtest")

    def _poll_timeout(self, pending: Pending, started_at: Dict[PairKey, float]) -> Optional[float]:
        """Seconds until the oldest running pair exceeds the timeout (None without a timeout)."""
        limit = self.config.pair_timeout
        if limit is None:
            return None
        now = time.monotonic()
        remaining = [
            started_at[key] + limit - now
            for future, (key, _) in pending.items()
            if key in started_at and not future.done()
        ]
        return max(0.0, min(remaining)) if remaining else limit

    def _expired(self, pending: Pending, started_at: Dict[PairKey, float]) -> List[Future]:
        """Futures of pairs that have been running for at least ``pair_timeout``."""
        limit = self.config.pair_timeout
        if limit is None:
            return []
        now = time.monotonic()
        return [
            future for future, (key, _) in pending.items()
            if key in started_at and not future.done() and now - started_at[key] >= limit
        ]

    def _timed_out(self, key: PairKey) -> PairResult:
        model_id, split_id = key
        error = FitError(
            f"Pair did not finish within {self.config.pair_timeout}s", model_id, split_id
        )
        logger.warning(
            f"Pair ({model_id}, split {split_id}) timed out",
            extra=pair_context(model_id, split_id, error_type="FitError"),
        )
        return PairResult.failed(model_id, split_id, error)

    def _check_adapters(
        self,
        frame: TimeSeriesFrame,
        splits: List[Split],
        results: Dict[PairKey, PairResult],
    ) -> List[ModelAdapter]:
        """Disable adapters whose declared features are absent from the frame."""
        active = []
        for adapter in self.adapters:
            try:
                self.engine.check_features(adapter, frame)
            except MissingFeatureError as e:
                logger.warning(
                    f"Disabling model '{adapter.model_id}': {e}",
                    extra=pair_context(adapter.model_id, missing=e.missing),
                )
                for split in splits:
                    results[(adapter.model_id, split.split_id)] = PairResult.failed(
                        adapter.model_id, split.split_id, e
                    )
            else:
                active.append(adapter)
        return active

    def _run_pair(
        self,
        adapter: ModelAdapter,
        frame: TimeSeriesFrame,
        split: Split,
        started_at: Dict[PairKey, float],
    ) -> PairResult:
        started_at[(adapter.model_id, split.split_id)] = time.monotonic()
        if self._cancel_event.is_set():
            return PairResult.failed(
                adapter.model_id,
                split.split_id,
                PairCancelledError(f"Run cancelled before ({adapter.model_id}, split {split.split_id}) started"),
            )
        result = self.engine.run(adapter, frame, split)
        logger.info(
            f"Finished ({adapter.model_id}, split {split.split_id}) "
            f"in {result.duration:.2f}s: {'ok' if result.succeeded else result.error.exception_type}"
        )
        return result

    def _report(
        self,
        results: Dict[PairKey, PairResult],
        splits: List[Split],
        model_ids: List[str],
        started: datetime,
    ) -> ForecastReport:
        accuracy, summaries = self.aggregator.aggregate(results.values(), model_ids)
        duration = (datetime.now() - started).total_seconds()
        best = next((s.model_id for s in summaries if s.has_data), None)
        logger.info(
            f"Back-test finished in {duration:.1f}s: {len(splits)} splits, "
            f"{len(model_ids)} models, best model {best}"
        )
        return ForecastReport(
            results=results,
            accuracy=accuracy,
            summaries=summaries,
            splits=splits,
            metadata={
                "config": self.config.to_dict(),
                "duration": duration,
                "cancelled": self.cancelled,
                "run_at": started.isoformat(),
            },
        )


def run_backtest(
    data: Union[TimeSeriesFrame, pd.DataFrame, Sequence[Observation]],
    config: Optional[BacktestConfig] = None,
    adapters: Optional[Sequence[ModelAdapter]] = None,
) -> ForecastReport:
    """
    Cross-validate the configured models on a series.

    Args:
        data: Raw series
        config: Back-test configuration (models are built from ``config.models``
            unless ``adapters`` is given)
        adapters: Explicit adapters

    Returns:
        ForecastReport
    """
    config = config or BacktestConfig()
    runner = CrossValidationRunner([], config)
    frame = runner.prepare_frame(data)
    if adapters is None:
        adapters = build_adapters(config, covariates=frame.covariate_columns)
    return CrossValidationRunner(adapters, config).run(frame)
