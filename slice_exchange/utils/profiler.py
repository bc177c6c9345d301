"""Lightweight wall-clock timing.

Provides:
    - timer(): Context manager for wall-clock timing with optional sink

Used to measure:
    - CLI decode (per file)
    - CLI encode (per file)

No heavy dependencies (no line_profiler, cProfile overhead).
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None) -> Iterator[None]:
    """Context manager for wall-clock timing.

    Parameters
    ----------
    name : str
        Timer name (for logging/display)
    sink : Optional[Callable[[str, float], None]]
        Optional callback(name, elapsed_seconds)
        If None, prints to stdout

    Examples
    --------
    >>> with timer("decode", sink=lambda n, s: logger.debug("%s took %.3f s", n, s)):
    ...     result = read_cli_file("part.cli")
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if sink is not None:
            sink(name, elapsed)
        else:
            print(f"{name}: {elapsed:.3f} s")


def log_sink(logger: logging.Logger, level: int = logging.DEBUG) -> Callable[[str, float], None]:
    """Build a timer sink that writes to *logger* (DEBUG by default)."""
    def _sink(name: str, elapsed: float) -> None:
        logger.log(level, "%s took %.3f s", name, elapsed)
    return _sink
