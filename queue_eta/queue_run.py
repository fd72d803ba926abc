"""
Queue observations, runs and the training examples windowed out of them.

A run is one continuous session in the queue: a start observation followed by
every later observation in arrival order. The last observation is the moment
the tracked player left the queue, so every training example of a run is
labeled with the time remaining until that observation.
"""

from dataclasses import dataclass, field
from typing import Iterator, Sequence, Tuple


class IncompleteRunError(ValueError):
    """Raised when a run has a start observation but nothing after it."""

    pass


class NonMonotonicTimeError(ValueError):
    """Raised when an observation is later than the end of its run."""

    pass


@dataclass(frozen=True)
class Observation:
    """One (time, position, length) snapshot of the queue.

    Attributes:
        time: milliseconds since the Unix epoch.
        position: rank within the queue.
        length: total queue size at that time.
    """

    time: int = 0
    position: int = 0
    length: int = 0

    def is_sentinel(self) -> bool:
        """True for the all-zero observation reserved for unparsed rows."""
        return self.time == 0 and self.position == 0 and self.length == 0

    def with_start_and_end(
        self, start: "Observation", end: "Observation"
    ) -> "TrainingExample":
        if end.time < self.time:
            raise NonMonotonicTimeError(
                f"Observation at {self.time}ms is later than run end at {end.time}ms"
            )
        return TrainingExample(
            start_time=start.time,
            start_position=start.position,
            start_length=start.length,
            current_time=self.time,
            current_position=self.position,
            current_length=self.length,
            label_ms=end.time - self.time,
        )


SENTINEL = Observation()


@dataclass(frozen=True)
class TrainingExample:
    # time at start in ms
    start_time: int
    start_position: int
    start_length: int
    # time at snapshot in ms
    current_time: int
    current_position: int
    current_length: int
    # time left until the run ended, in ms
    label_ms: int


@dataclass(frozen=True)
class QueueRun:
    """
    One run: a start observation and the non-empty ordered tuple of later ones.

    Iterating a run yields len(subsequent) + 1 training examples. Step 0 uses
    the start observation as the current one, steps 1..N walk `subsequent`.
    All examples share the same end anchor, the last subsequent observation.
    """

    start: Observation
    subsequent: Tuple[Observation, ...]
    end: Observation = field(init=False, repr=False, compare=False)

    def __init__(self, start: Observation, subsequent: Sequence[Observation]):
        subsequent = tuple(subsequent)
        if not subsequent:
            raise IncompleteRunError(
                "A run needs at least one observation after its start"
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "subsequent", subsequent)
        object.__setattr__(self, "end", subsequent[-1])

    def __len__(self) -> int:
        """Number of training examples the run expands into."""
        return len(self.subsequent) + 1

    def __iter__(self) -> Iterator[TrainingExample]:
        yield self.start.with_start_and_end(self.start, self.end)
        for current in self.subsequent:
            yield current.with_start_and_end(self.start, self.end)

    def start_training_example(self) -> TrainingExample:
        """The example windowing the start observation against the run's end."""
        return self.start.with_start_and_end(self.start, self.end)

    @property
    def duration_ms(self) -> int:
        return self.end.time - self.start.time
