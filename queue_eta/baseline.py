"""
Non-learned baseline estimate of remaining queue time.

The estimate models the probability that the queue has not yet advanced past
a position as a function of queue length, using an empirical survival table,
and converts that into a log-odds position curve. It only needs the current
position and queue length.
"""

import numpy as np

# Empirical (queue length, survival probability) pairs, ascending by length.
SURVIVAL_TABLE: tuple[tuple[float, float], ...] = (
    (93.0, 0.9998618838664679),
    (207.0, 0.9999220416881794),
    (231.0, 0.9999234240704379),
    (257.0, 0.9999291667668093),
    (412.0, 0.9999410569845172),
    (418.0, 0.9999168965649361),
    (486.0, 0.9999440195022513),
    (506.0, 0.9999262577896301),
    (550.0, 0.9999462301738332),
    (586.0, 0.999938895110192),
    (666.0, 0.9999219189483673),
    (758.0, 0.9999473463335498),
    (789.0, 0.9999337457796981),
    (826.0, 0.9999279556964097),
)

_LENGTHS = np.array([length for length, _ in SURVIVAL_TABLE])
_PROBABILITIES = np.array([p for _, p in SURVIVAL_TABLE])

# Assumed additional queue size smoothing the position curve.
QUEUE_OFFSET = 150.0

SECONDS_PER_HOUR = 3600.0


def survival_probability(queue_length: float) -> float:
    """
    Interpolate the survival probability for a queue length.

    Lengths below the smallest tabulated length have no data and return 0.0.
    Lengths above the largest one return the largest entry's probability.
    Between entries the bracket is the first entry longer than the query and
    its predecessor, so a tabulated length returns its own probability.
    """
    if queue_length < _LENGTHS[0]:
        return 0.0
    return float(
        np.interp(queue_length, _LENGTHS, _PROBABILITIES, right=_PROBABILITIES[-1])
    )


def baseline_eta(current_position: int, queue_length: int) -> float:
    """
    Estimated seconds until a player at current_position leaves the queue.

    Returns 0.0 when the survival probability is 0, where the log-odds curve
    degenerates to zero at every position.
    """
    survival = survival_probability(queue_length)
    if survival <= 0.0:
        return 0.0
    b = np.log(survival)

    def a(position: float) -> float:
        return np.log((position + QUEUE_OFFSET) / (queue_length + QUEUE_OFFSET)) / b

    return float(a(0.0) - a(float(current_position)))


def baseline_eta_hours(current_position: int, queue_length: int) -> float:
    return baseline_eta(current_position, queue_length) / SECONDS_PER_HOUR
