#!/usr/bin/env python3
"""
Queue CSV Processor
Resolves loosely formatted queue log headers, parses queue logs into runs and
loads whole directories of logs while tolerating individual bad files.
"""

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from .queue_run import IncompleteRunError, Observation, QueueRun

logger = logging.getLogger(__name__)


class CSVProcessingError(Exception):
    """Base exception for queue CSV processing errors."""

    pass


class HeaderNotFoundError(CSVProcessingError):
    """Raised when no line of a source resolves to a usable header."""

    pass


class EmptySourceError(CSVProcessingError):
    """Raised when a header is found but no valid observation follows it."""

    pass


class FileAccessError(CSVProcessingError):
    """Raised when a file or directory cannot be accessed or read."""

    pass


class HeaderField(Enum):
    TIME = auto()
    POSITION = auto()
    LENGTH = auto()


# Case-insensitive exact aliases for each semantic column.
HEADER_ALIASES: dict[str, HeaderField] = {
    "time": HeaderField.TIME,
    "position": HeaderField.POSITION,
    "length": HeaderField.LENGTH,
    "currentqueuelength": HeaderField.LENGTH,
    "current_queue_length": HeaderField.LENGTH,
}

# Largest accepted value per field. Times stay within signed 64-bit millis so
# every accepted run fits the int64 example frames; position and length are u16.
FIELD_MAX: dict[HeaderField, int] = {
    HeaderField.TIME: 2**63 - 1,
    HeaderField.POSITION: 2**16 - 1,
    HeaderField.LENGTH: 2**16 - 1,
}

_FIELD_ATTR: dict[HeaderField, str] = {
    HeaderField.TIME: "time",
    HeaderField.POSITION: "position",
    HeaderField.LENGTH: "length",
}

_UNSIGNED_RE = re.compile(r"\+?[0-9]+")


def _strip_line_end(line: str) -> str:
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith("\n"):
        return line[:-1]
    return line


def resolve_header(line: str) -> Optional[Tuple[HeaderField, ...]]:
    """
    Map a comma separated header line onto semantic fields.

    Returns None when any column is unknown or when two columns resolve to the
    same field, since such a header is ambiguous.
    """
    resolved: List[HeaderField] = []
    for column in _strip_line_end(line).split(","):
        item = HEADER_ALIASES.get(column.lower())
        if item is None or item in resolved:
            return None
        resolved.append(item)
    return tuple(resolved)


def parse_unsigned(value: str, field: HeaderField) -> Optional[int]:
    """Parse a field value as an unsigned integer in range, or return None."""
    if not _UNSIGNED_RE.fullmatch(value):
        return None
    number = int(value)
    if number > FIELD_MAX[field]:
        return None
    return number


def parse_observation(line: str, header: Tuple[HeaderField, ...]) -> Observation:
    """
    Build an observation from one data line.

    Values pair positionally with the header; surplus values and surplus
    header columns are ignored. A value that does not parse leaves its field
    at zero, so garbage lines come back as the sentinel.
    """
    values = {"time": 0, "position": 0, "length": 0}
    for raw, item in zip(_strip_line_end(line).split(","), header):
        parsed = parse_unsigned(raw, item)
        if parsed is not None:
            values[_FIELD_ATTR[item]] = parsed
    return Observation(**values)


def _observations(
    lines: Iterator[str], header: Tuple[HeaderField, ...]
) -> Iterator[Observation]:
    for line in lines:
        observation = parse_observation(line, header)
        if not observation.is_sentinel():
            yield observation


def parse_run(lines: Iterable[str]) -> QueueRun:
    """
    Parse a source of text lines into a QueueRun.

    Lines before the first resolvable header are skipped. The first valid
    observation after it becomes the start of the run.

    Raises:
        HeaderNotFoundError: if the source ends before a header resolves
        EmptySourceError: if no valid observation follows the header
        IncompleteRunError: if only the start observation is present
    """
    it = iter(lines)
    header = None
    for line in it:
        header = resolve_header(line)
        if header is not None:
            break
    if header is None:
        raise HeaderNotFoundError("No line resolved to a time/position/length header")

    observations = _observations(it, header)
    start = next(observations, None)
    if start is None:
        raise EmptySourceError("Header found but no valid observations follow it")
    return QueueRun(start, list(observations))


def _decoded_lines(raw_lines: Iterable[bytes]) -> Iterator[str]:
    """Decode UTF-8 lines, dropping any line that is not valid UTF-8."""
    for number, raw in enumerate(raw_lines, start=1):
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Skipping undecodable line %d", number)
            continue
        yield from text.splitlines(keepends=True)


def read_run(file_path: Union[str, Path]) -> QueueRun:
    """Open a file and parse it into a run. Raises on any failure."""
    with open(file_path, "rb") as f:
        return parse_run(_decoded_lines(f))


def load_file(file_path: Union[str, Path]) -> Optional[QueueRun]:
    """
    Parse one queue log, folding every failure into None.

    Failures are logged at debug level only; callers decide whether an absent
    run matters.
    """
    try:
        return read_run(file_path)
    except (OSError, CSVProcessingError, IncompleteRunError) as e:
        logger.debug("No run loaded from %s: %s", str(file_path), e)
        return None


@dataclass(frozen=True)
class LoadResult:
    """Outcome of loading one directory entry. `run` is None on failure."""

    path: Path
    run: Optional[QueueRun] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.run is not None


def load_csv_dir(dir_path: Union[str, Path]) -> Iterator[LoadResult]:
    """
    Yield one LoadResult per directory entry, in directory listing order.

    Entry-level problems (unreadable files, subdirectories, unparseable
    content) become failed results and never stop the traversal.

    Raises:
        FileAccessError: if the directory itself cannot be listed
    """
    dir_path = Path(dir_path)
    try:
        entries = list(os.scandir(dir_path))
    except OSError as e:
        raise FileAccessError(f"Cannot list data directory {dir_path}: {e}") from e

    for entry in entries:
        path = Path(entry.path)
        try:
            run = read_run(path)
        except (OSError, CSVProcessingError, IncompleteRunError) as e:
            logger.debug("Skipping %s: %s", str(path), e)
            yield LoadResult(path=path, error=f"{type(e).__name__}: {e}")
            continue
        yield LoadResult(path=path, run=run)


def successful_runs(results: Iterable[LoadResult]) -> Iterator[Tuple[QueueRun, Path]]:
    """Keep only the loaded (run, path) pairs."""
    for result in results:
        if result.ok:
            yield result.run, result.path
