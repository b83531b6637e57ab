"""
Encapsulation strategies for executing train and predict stages.

Every strategy runs ``fn(*args)`` and returns an ``EncapsulationResult``
with the result (``None`` on failure), the captured conditions and the
elapsed time in seconds.

- ``none``: direct call, errors propagate, no timeout
- ``try``: errors are caught and logged
- ``evaluate``: errors, warnings and printed output are captured, the time
  budget is checked once the call returned
- ``subprocess``: runs in a separate process which is terminated when the
  time budget is exceeded
"""

import io
import math
import multiprocessing as mp
import threading
import time
import warnings
from abc import ABC, abstractmethod
from contextlib import redirect_stdout
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

import pandas as pd

LOG_COLUMNS = ["stage", "class", "msg"]

LogEntry = Tuple[str, str]

# sys.stdout and the warnings filters are process-wide, so captured calls
# from concurrent threads must not overlap
_CAPTURE_LOCK = threading.RLock()


class EncapsulationResult(NamedTuple):
    result: Any
    log: List[LogEntry]
    elapsed: float


def _timeout_message(timeout: float) -> str:
    return f"reached elapsed time limit of {timeout} seconds"


def _run_captured(fn: Callable, args: Sequence) -> Tuple[Any, List[LogEntry]]:
    """Run ``fn`` while recording warnings, printed output and errors."""
    entries: List[LogEntry] = []
    result = None
    buffer = io.StringIO()
    with _CAPTURE_LOCK, warnings.catch_warnings(record=True) as caught, redirect_stdout(buffer):
        warnings.simplefilter("always")
        try:
            result = fn(*args)
        except Exception as e:
            entries.append(("error", str(e) or type(e).__name__))

    output = [line for line in buffer.getvalue().splitlines() if line.strip()]
    log = [("output", line) for line in output]
    log += [("warning", str(w.message)) for w in caught]
    return result, log + entries


class Encapsulation(ABC):
    """Strategy interface for executing a stage."""

    name: str = ""

    @abstractmethod
    def execute(self, fn: Callable, args: Sequence = (), timeout: float = math.inf) -> EncapsulationResult:
        pass


class NoEncapsulation(Encapsulation):
    name = "none"

    def execute(self, fn: Callable, args: Sequence = (), timeout: float = math.inf) -> EncapsulationResult:
        start = time.perf_counter()
        result = fn(*args)
        return EncapsulationResult(result, [], time.perf_counter() - start)


class TryEncapsulation(Encapsulation):
    name = "try"

    def execute(self, fn: Callable, args: Sequence = (), timeout: float = math.inf) -> EncapsulationResult:
        start = time.perf_counter()
        log: List[LogEntry] = []
        try:
            result = fn(*args)
        except Exception as e:
            result = None
            log.append(("error", str(e) or type(e).__name__))
        return EncapsulationResult(result, log, time.perf_counter() - start)


class EvaluateEncapsulation(Encapsulation):
    """
    In-process capture of errors, warnings and output.

    The call cannot be interrupted; a result arriving after the time budget
    is discarded and an error is logged instead. Captured calls running in
    different threads are serialized.
    """

    name = "evaluate"

    def execute(self, fn: Callable, args: Sequence = (), timeout: float = math.inf) -> EncapsulationResult:
        start = time.perf_counter()
        result, log = _run_captured(fn, args)
        elapsed = time.perf_counter() - start
        if elapsed > timeout:
            result = None
            log.append(("error", _timeout_message(timeout)))
        return EncapsulationResult(result, log, elapsed)


class SubprocessEncapsulation(Encapsulation):
    """
    Executes the stage in a single worker process.

    ``fn`` and ``args`` must be picklable. The worker is terminated when the
    time budget is exceeded.
    """

    name = "subprocess"

    def execute(self, fn: Callable, args: Sequence = (), timeout: float = math.inf) -> EncapsulationResult:
        start = time.perf_counter()
        pool = mp.get_context().Pool(processes=1)
        try:
            pending = pool.apply_async(_run_captured, (fn, tuple(args)))
            try:
                result, log = pending.get(timeout=None if math.isinf(timeout) else timeout)
            except mp.TimeoutError:
                result, log = None, [("error", _timeout_message(timeout))]
            except Exception as e:
                # the worker died or its result could not be transferred
                result, log = None, [("error", str(e) or type(e).__name__)]
        finally:
            pool.terminate()
            pool.join()
        return EncapsulationResult(result, log, time.perf_counter() - start)


ENCAPSULATIONS: Dict[str, Encapsulation] = {
    strategy.name: strategy
    for strategy in (NoEncapsulation(), TryEncapsulation(), EvaluateEncapsulation(), SubprocessEncapsulation())
}


def get_encapsulation(method: str) -> Encapsulation:
    if method not in ENCAPSULATIONS:
        raise ValueError(f"Unknown encapsulation method: {method}. Available: {list(ENCAPSULATIONS)}")
    return ENCAPSULATIONS[method]


def encapsulate(method: str, fn: Callable, args: Sequence = (), timeout: float = math.inf) -> EncapsulationResult:
    """Execute ``fn(*args)`` with the given encapsulation method."""
    if timeout is None or timeout <= 0:
        raise ValueError(f"timeout must be a positive number, got {timeout}")
    return get_encapsulation(method).execute(fn, args, timeout)


def empty_log() -> pd.DataFrame:
    return pd.DataFrame({col: pd.Series(dtype=object) for col in LOG_COLUMNS})


def append_log(log: Optional[pd.DataFrame], stage: str, entries: Sequence[LogEntry]) -> pd.DataFrame:
    """Append ``(class, msg)`` entries for ``stage`` to a log table."""
    log = empty_log() if log is None else log
    if not entries:
        return log
    rows = pd.DataFrame([(stage, cls, msg) for cls, msg in entries], columns=LOG_COLUMNS)
    if not len(log):
        return rows
    return pd.concat([log, rows], ignore_index=True)
