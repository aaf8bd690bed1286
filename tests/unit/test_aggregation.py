"""
Unit tests for fold accuracy and cross-fold aggregation.
"""

import pandas as pd
import pytest

from pollution_forecast.evaluation.aggregation import AccuracyAggregator, AccuracyRecord, ModelSummary
from pollution_forecast.evaluation.engine import ForecastRecord, PairResult
from pollution_forecast.utils.error_handling import FitError


def make_result(model_id, split_id, points, actuals, half_width=1.0):
    ts = pd.date_range("2014-01-01", periods=len(points), freq="h")
    records = [
        ForecastRecord(model_id, split_id, t, p, p - half_width, p + half_width, actual=a)
        for t, p, a in zip(ts, points, actuals)
    ]
    return PairResult(model_id, split_id, records=records)


def accuracy(model_id, split_id, rmse, mape=1.0):
    return AccuracyRecord(model_id, split_id, {
        "rmse": rmse, "mape": mape, "mae": rmse, "coverage": 1.0, "mean_interval_width": 2.0,
    })


@pytest.fixture
def aggregator():
    return AccuracyAggregator()


def test_fold_accuracy_skips_failures(aggregator):
    results = [
        make_result("b", 1, [1.0, 2.0], [1.0, 4.0]),
        make_result("a", 0, [1.0, 2.0], [1.0, 2.0]),
        PairResult.failed("a", 1, FitError("boom")),
    ]
    records = aggregator.fold_accuracy(results)

    assert [(r.model_id, r.split_id) for r in records] == [("a", 0), ("b", 1)]
    assert records[0].metrics["rmse"] == 0.0
    assert records[1].metrics["mae"] == pytest.approx(1.0)


def test_summary_averages_successful_folds_only(aggregator):
    acc = [accuracy("m", 0, 2.0), accuracy("m", 2, 4.0)]
    (summary,) = aggregator.summarize(acc, ["m"], failures={"m": 1})

    assert summary.mean_metrics["rmse"] == pytest.approx(3.0)
    assert summary.n_folds == 2
    assert summary.n_failed == 1
    assert summary.rank == 1


def test_ranking_by_rmse_then_mape_then_id(aggregator):
    acc = [
        accuracy("slow", 0, 5.0),
        accuracy("tie_b", 0, 1.0, mape=2.0),
        accuracy("tie_a", 0, 1.0, mape=2.0),
        accuracy("best_mape", 0, 1.0, mape=0.5),
    ]
    summaries = aggregator.summarize(acc, ["slow", "tie_b", "tie_a", "best_mape"])
    assert [s.model_id for s in summaries] == ["best_mape", "tie_a", "tie_b", "slow"]
    assert [s.rank for s in summaries] == [1, 2, 3, 4]


def test_no_data_models_last(aggregator, caplog):
    summaries = aggregator.summarize([accuracy("ok", 0, 100.0)], ["ok", "broken"], failures={"broken": 3})

    assert [s.model_id for s in summaries] == ["ok", "broken"]
    broken = summaries[1]
    assert not broken.has_data
    assert broken.n_failed == 3
    assert broken.mean_metrics["rmse"] is None
    assert "broken" in caplog.text


def test_undefined_metric_stays_none(aggregator):
    acc = [
        AccuracyRecord("m", 0, {"rmse": 1.0, "mape": None, "mae": 1.0,
                                "coverage": None, "mean_interval_width": None}),
    ]
    (summary,) = aggregator.summarize(acc, ["m"])
    assert summary.mean_metrics["mape"] is None
    assert summary.mean_metrics["rmse"] == 1.0


def test_aggregate_counts_failures(aggregator):
    results = [
        make_result("m", 0, [1.0], [2.0]),
        PairResult.failed("m", 1, FitError("boom")),
        PairResult.failed("other", 0, FitError("boom")),
    ]
    accuracy_records, summaries = aggregator.aggregate(results, ["m", "other"])

    assert len(accuracy_records) == 1
    by_id = {s.model_id: s for s in summaries}
    assert by_id["m"].n_folds == 1
    assert by_id["m"].n_failed == 1
    assert by_id["other"].n_failed == 1
    assert not by_id["other"].has_data


def test_summary_to_dict():
    summary = ModelSummary("m", {"rmse": 1.0}, n_folds=2, rank=1)
    data = summary.to_dict()
    assert data["has_data"] is True
    assert data["rmse"] == 1.0
