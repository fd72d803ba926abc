"""
Feature encoding for the wait-time model.

Every training example becomes ten values in [0, 1]: hour of day, day of week,
minute of hour, squashed position and squashed length, once for the start of
the run and once for the current observation. Labels are the remaining wait
squashed through a logistic function after scaling by an assumed maximum wait.
"""

import logging
from typing import Iterable, List, Tuple

import numpy as np
import pandas as pd
from scipy.special import expit, logit

from .queue_run import QueueRun, TrainingExample

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000
MS_PER_WEEK = 7 * 24 * MS_PER_HOUR
# Assumed maximum plausible wait, in hours.
MAX_WAIT_HOURS = 14.0
# Queue positions and lengths are divided by this before squashing.
POSITION_SCALE = 512.0
# Keeps model outputs inside the open interval the inverse logistic accepts.
OUTPUT_EPS = 1e-9

FEATURE_COLUMNS = [
    "start_hour",
    "start_weekday",
    "start_minute",
    "start_position",
    "start_length",
    "current_hour",
    "current_weekday",
    "current_minute",
    "current_position",
    "current_length",
]
N_FEATURES = len(FEATURE_COLUMNS)

EXAMPLE_COLUMNS = [
    "start_time",
    "start_position",
    "start_length",
    "current_time",
    "current_position",
    "current_length",
    "label_ms",
]


def squash_count(value) -> np.ndarray:
    """Map a queue position or length into [0.5, 1]; large counts saturate at 1."""
    return expit(np.asarray(value, dtype=float) / POSITION_SCALE)


def _calendar_features(times_ms: pd.Series) -> pd.DataFrame:
    # Naive conversion, no timezone applied. Folding into the first week keeps
    # hour, weekday and minute while staying inside the datetime64 range.
    instants = pd.to_datetime(times_ms.astype("int64") % MS_PER_WEEK, unit="ms")
    return pd.DataFrame(
        {
            "hour": instants.dt.hour / 23.0,
            "weekday": instants.dt.dayofweek / 6.0,
            "minute": instants.dt.minute / 59.0,
        }
    )


def examples_frame(examples: Iterable[TrainingExample]) -> pd.DataFrame:
    """Collect training examples into a DataFrame with EXAMPLE_COLUMNS."""
    rows = [
        (
            ex.start_time,
            ex.start_position,
            ex.start_length,
            ex.current_time,
            ex.current_position,
            ex.current_length,
            ex.label_ms,
        )
        for ex in examples
    ]
    return pd.DataFrame(rows, columns=EXAMPLE_COLUMNS, dtype="int64")


def encode_features(df_examples: pd.DataFrame) -> np.ndarray:
    """
    Encode a frame of raw examples into an (n, 10) float array.

    Column order follows FEATURE_COLUMNS.
    """
    if df_examples.empty:
        return np.empty((0, N_FEATURES), dtype=float)

    start = _calendar_features(df_examples["start_time"])
    current = _calendar_features(df_examples["current_time"])
    encoded = pd.DataFrame(
        {
            "start_hour": start["hour"].to_numpy(),
            "start_weekday": start["weekday"].to_numpy(),
            "start_minute": start["minute"].to_numpy(),
            "start_position": squash_count(df_examples["start_position"]),
            "start_length": squash_count(df_examples["start_length"]),
            "current_hour": current["hour"].to_numpy(),
            "current_weekday": current["weekday"].to_numpy(),
            "current_minute": current["minute"].to_numpy(),
            "current_position": squash_count(df_examples["current_position"]),
            "current_length": squash_count(df_examples["current_length"]),
        },
        columns=FEATURE_COLUMNS,
    )
    return encoded.to_numpy(dtype=float)


def encode_label(label_ms) -> np.ndarray:
    """Squash a remaining wait in milliseconds into (0, 1)."""
    hours = np.asarray(label_ms, dtype=float) / MS_PER_HOUR
    return expit(hours / MAX_WAIT_HOURS)


def decode_hours(output) -> np.ndarray:
    """Inverse of encode_label, in hours. Outputs are clipped into (0, 1) first."""
    clipped = np.clip(np.asarray(output, dtype=float), OUTPUT_EPS, 1.0 - OUTPUT_EPS)
    return logit(clipped) * MAX_WAIT_HOURS


def make_inputs(example: TrainingExample) -> np.ndarray:
    """Ten-element feature vector for a single example."""
    return encode_features(examples_frame([example]))[0]


def make_expected_result(example: TrainingExample) -> np.ndarray:
    """One-element target vector for a single example."""
    return np.atleast_1d(encode_label(example.label_ms))


def build_training_set(runs: Iterable[QueueRun]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Window every run and encode the result.

    Runs whose observations go back in time cannot be labeled and are skipped
    with a warning.

    Returns:
        (inputs, targets) with shapes (n, 10) and (n, 1)
    """
    examples: List[TrainingExample] = []
    skipped = 0
    for run in runs:
        try:
            examples.extend(list(run))
        except ValueError as e:
            skipped += 1
            logger.warning("Skipping run starting at %s: %s", run.start.time, e)

    df_examples = examples_frame(examples)
    inputs = encode_features(df_examples)
    targets = encode_label(df_examples["label_ms"].to_numpy()).reshape(-1, 1)
    logger.info(
        "Built training set: %d examples (%d runs skipped)", len(df_examples), skipped
    )
    return inputs, targets
