import pytest

from queue_eta.queue_run import (
    IncompleteRunError,
    NonMonotonicTimeError,
    Observation,
    QueueRun,
    TrainingExample,
)


def make_run(n_subsequent: int) -> QueueRun:
    start = Observation(1_000, 50, 400)
    subsequent = [
        Observation(1_000 + 60_000 * (i + 1), max(50 - 5 * (i + 1), 0), 400 + i)
        for i in range(n_subsequent)
    ]
    return QueueRun(start, subsequent)


@pytest.mark.parametrize("n", [1, 2, 5, 17])
def test_run_expands_into_n_plus_one_examples(n):
    run = make_run(n)
    examples = list(run)
    assert len(examples) == n + 1 == len(run)

    currents = [run.start, *run.subsequent]
    for example, current in zip(examples, currents):
        assert example.current_time == current.time
        assert example.current_position == current.position
        assert example.current_length == current.length
        assert example.label_ms == run.subsequent[-1].time - current.time


def test_every_example_carries_the_start_observation():
    run = make_run(3)
    for example in run:
        assert (example.start_time, example.start_position, example.start_length) == (
            1_000,
            50,
            400,
        )


def test_end_to_end_example_labels():
    run = QueueRun(Observation(100, 5, 10), [Observation(200, 0, 10)])
    examples = list(run)
    assert [e.label_ms for e in examples] == [100, 0]
    assert examples[0] == TrainingExample(100, 5, 10, 100, 5, 10, 100)
    assert examples[1] == TrainingExample(100, 5, 10, 200, 0, 10, 0)


def test_start_training_example_windows_start_against_end():
    run = make_run(4)
    example = run.start_training_example()
    assert example == next(iter(run))
    assert example.label_ms == run.duration_ms == 4 * 60_000


def test_iteration_is_restartable():
    run = make_run(3)
    assert list(run) == list(run)


def test_end_anchor_is_last_subsequent_observation():
    run = make_run(3)
    assert run.end == run.subsequent[-1]


def test_empty_subsequent_is_rejected():
    with pytest.raises(IncompleteRunError):
        QueueRun(Observation(100, 5, 10), [])


def test_time_going_backwards_raises_data_integrity_error():
    run = QueueRun(
        Observation(100, 5, 10), [Observation(500, 3, 10), Observation(300, 0, 10)]
    )
    with pytest.raises(NonMonotonicTimeError):
        list(run)
    assert run.start_training_example().label_ms == 200


def test_sentinel_detection():
    assert Observation().is_sentinel()
    assert not Observation(0, 0, 1).is_sentinel()
