"""
Comparison of model predictions against the baseline and the real wait.

Each run contributes one ReportPoint taken at its start observation. The
comparison frame holds one row per (point, model), with the baseline listed
under the name BASELINE_NAME.
"""

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .baseline import baseline_eta_hours
from .features import MS_PER_HOUR, decode_hours, make_inputs
from .network import NeuralNet
from .queue_run import QueueRun
from .utils import normalize_abs_posix

logger = logging.getLogger(__name__)

BASELINE_NAME = "old"

COMPARISON_COLUMNS = [
    "point",
    "file_path",
    "position",
    "length",
    "model",
    "predicted_hours",
    "expected_hours",
    "diff_minutes",
]


@dataclass(frozen=True)
class ReportPoint:
    file_path: str
    position: int
    length: int
    inputs: np.ndarray = field(compare=False, repr=False)
    expected_time_h: float
    baseline_pred_h: float

    @classmethod
    def from_run(cls, run: QueueRun, file_path: Union[str, Path]) -> "ReportPoint":
        """Window the run's start against its end and attach the baseline estimate."""
        example = run.start_training_example()
        return cls(
            file_path=normalize_abs_posix(file_path),
            position=run.start.position,
            length=run.start.length,
            inputs=make_inputs(example),
            expected_time_h=example.label_ms / MS_PER_HOUR,
            baseline_pred_h=baseline_eta_hours(run.start.position, run.start.length),
        )


def build_report_points(runs: Iterable[Tuple[QueueRun, Path]]) -> List[ReportPoint]:
    points: List[ReportPoint] = []
    for run, path in runs:
        try:
            points.append(ReportPoint.from_run(run, path))
        except ValueError as e:
            logger.warning("No report point for %s: %s", str(path), e)
    return points


def build_comparison_frame(
    points: Sequence[ReportPoint], models: Sequence[Tuple[str, NeuralNet]] = ()
) -> pd.DataFrame:
    """
    One row per point and model, models in the given order followed by the
    baseline. diff_minutes is predicted minus expected, in minutes.
    """
    if not points:
        return pd.DataFrame(columns=COMPARISON_COLUMNS)

    inputs = np.vstack([p.inputs for p in points])
    predictions = {
        name: decode_hours(net.predict(inputs)[:, 0]) for name, net in models
    }
    predictions[BASELINE_NAME] = np.array([p.baseline_pred_h for p in points])

    rows = []
    for i, point in enumerate(points):
        for name, predicted in predictions.items():
            rows.append(
                {
                    "point": i,
                    "file_path": point.file_path,
                    "position": point.position,
                    "length": point.length,
                    "model": name,
                    "predicted_hours": float(predicted[i]),
                    "expected_hours": point.expected_time_h,
                }
            )
    df = pd.DataFrame(rows)
    df["diff_minutes"] = (df["predicted_hours"] - df["expected_hours"]) * 60.0
    return df[COMPARISON_COLUMNS]


def summarize_errors(df_comparison: pd.DataFrame) -> pd.DataFrame:
    """Mean absolute and mean signed error in minutes, per model, in frame order."""
    grouped = df_comparison.groupby("model", sort=False)["diff_minutes"]
    return pd.DataFrame(
        {
            "abs_minutes": grouped.apply(lambda s: s.abs().mean()),
            "avg_minutes": grouped.mean(),
        }
    )


def assemble_text_report(
    points: Sequence[ReportPoint], df_comparison: pd.DataFrame
) -> str:
    """
    Console text: one block per point (prediction, error and model per line,
    then the real wait), followed by the per-model error summary.
    """
    lines: List[str] = []
    for i, point in enumerate(points):
        lines.append(f"#{i} {point.position}/{point.length} {point.file_path}")
        lines.append("pred\tdiff\tmodel")
        rows = df_comparison[df_comparison["point"] == i]
        for row in rows.itertuples(index=False):
            lines.append(
                f"{row.predicted_hours:.2f}h\t{math.floor(row.diff_minutes)}m\t{row.model}"
            )
        lines.append(f"{point.expected_time_h:.2f}h\t   \treal")
        lines.append("")

    lines.append("abs\tavg\tmodel")
    if not df_comparison.empty:
        summary = summarize_errors(df_comparison)
        for name, row in summary.iterrows():
            lines.append(f"{row['abs_minutes']:.1f}m\t{row['avg_minutes']:.1f}m\t{name}")
    return "\n".join(lines) + "\n"
