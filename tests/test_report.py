from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from queue_eta.baseline import baseline_eta_hours
from queue_eta.features import N_FEATURES, make_inputs
from queue_eta.network import NeuralNet
from queue_eta.queue_run import Observation, QueueRun
from queue_eta.report import (
    BASELINE_NAME,
    COMPARISON_COLUMNS,
    ReportPoint,
    assemble_text_report,
    build_comparison_frame,
    build_report_points,
    summarize_errors,
)

HOUR_MS = 3_600_000


def _runs():
    short = QueueRun(Observation(100, 5, 10), [Observation(200, 0, 10)])
    long = QueueRun(
        Observation(1_651_400_000_000, 400, 600),
        [
            Observation(1_651_400_000_000 + HOUR_MS, 200, 580),
            Observation(1_651_400_000_000 + 3 * HOUR_MS, 0, 550),
        ],
    )
    return [(short, Path("short.csv")), (long, Path("long.csv"))]


def test_report_point_from_run():
    run, path = _runs()[1]
    point = ReportPoint.from_run(run, path)
    assert point.file_path == path.resolve().as_posix()
    assert (point.position, point.length) == (400, 600)
    assert point.inputs.shape == (N_FEATURES,)
    np.testing.assert_array_equal(point.inputs, make_inputs(run.start_training_example()))
    assert point.expected_time_h == pytest.approx(3.0)
    assert point.baseline_pred_h == pytest.approx(baseline_eta_hours(400, 600))
    assert point.baseline_pred_h > 0


def test_short_queue_baseline_is_zero():
    run, path = _runs()[0]
    point = ReportPoint.from_run(run, path)
    assert point.baseline_pred_h == 0.0
    assert point.expected_time_h == pytest.approx(100 / HOUR_MS)


def test_build_report_points_skips_broken_runs():
    broken = QueueRun(Observation(100, 5, 10), [Observation(500, 1, 10), Observation(50, 0, 10)])
    points = build_report_points([*_runs(), (broken, Path("broken.csv"))])
    assert len(points) == 2


def test_comparison_frame_rows_per_point_and_model():
    points = build_report_points(_runs())
    nets = [
        ("a", NeuralNet.new([10, 4, 1], random_state=1)),
        ("b", NeuralNet.new([10, 1], random_state=2)),
    ]
    df = build_comparison_frame(points, nets)
    assert list(df.columns) == COMPARISON_COLUMNS
    assert len(df) == len(points) * (len(nets) + 1)
    assert list(df[df["point"] == 0]["model"]) == ["a", "b", BASELINE_NAME]

    old = df[df["model"] == BASELINE_NAME].reset_index(drop=True)
    assert old.loc[1, "predicted_hours"] == pytest.approx(points[1].baseline_pred_h)
    assert old.loc[1, "diff_minutes"] == pytest.approx(
        (points[1].baseline_pred_h - 3.0) * 60.0
    )


def test_comparison_frame_without_models_has_baseline_only():
    points = build_report_points(_runs())
    df = build_comparison_frame(points)
    assert set(df["model"]) == {BASELINE_NAME}
    assert build_comparison_frame([]).empty


def test_summarize_errors():
    df = pd.DataFrame(
        {
            "point": [0, 0, 1, 1],
            "model": ["new", "old", "new", "old"],
            "diff_minutes": [10.0, -30.0, -20.0, 10.0],
        }
    )
    summary = summarize_errors(df)
    assert list(summary.index) == ["new", "old"]
    assert summary.loc["new", "abs_minutes"] == pytest.approx(15.0)
    assert summary.loc["new", "avg_minutes"] == pytest.approx(-5.0)
    assert summary.loc["old", "abs_minutes"] == pytest.approx(20.0)
    assert summary.loc["old", "avg_minutes"] == pytest.approx(-10.0)


def test_text_report_layout():
    points = build_report_points(_runs())
    df = build_comparison_frame(points, [("new", NeuralNet.new([10, 1], random_state=0))])
    text = assemble_text_report(points, df)
    lines = text.splitlines()
    assert lines[0].startswith("#0 5/10 ")
    assert lines[1] == "pred\tdiff\tmodel"
    assert lines[2].endswith("\tnew")
    assert lines[3].startswith("0.00h\t") and lines[3].endswith("\told")
    assert lines[4] == "0.00h\t   \treal"
    assert "abs\tavg\tmodel" in lines
    assert lines[-1].endswith("\told")
