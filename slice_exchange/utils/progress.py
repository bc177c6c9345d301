"""Progress reporting for long slice-file reads and writes.

Provides:
    - ProgressCallback: plain ``callable(fraction)`` with fraction in [0, 1]
    - ThrottledProgress: forwards at most one report per interval
    - LogProgress: callback that writes "[name] 42.0% complete" to a logger

Progress is a UX affordance only. Nothing in the codec depends on whether
or how often a callback fires.

Usage:
    from slice_exchange.utils.progress import LogProgress
    with LogProgress("Read part.cli") as progress:
        result = read_cli_file("part.cli", progress=progress)
"""

import logging
import time
from typing import Callable, Optional

ProgressCallback = Callable[[float], None]

_logger = logging.getLogger(__name__)


def _clamp(fraction: float) -> float:
    return min(max(fraction, 0.0), 1.0)


class ThrottledProgress:
    """Forward progress reports to a callback, at most once per interval.

    Parameters
    ----------
    callback : Optional[ProgressCallback]
        Target callback; None turns every report into a no-op
    interval_s : float
        Minimum time between two forwarded reports (seconds). ``0`` forwards
        every report.
    clock : Callable[[], float]
        Monotonic clock, injectable for tests

    Notes
    -----
    The interval starts at construction, so the first report is forwarded
    only once ``interval_s`` has elapsed.
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback],
        interval_s: float = 1.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.callback = callback
        self.interval_s = interval_s
        self._clock = clock
        self._last = clock()

    @property
    def enabled(self) -> bool:
        return self.callback is not None

    def report(self, fraction: float) -> bool:
        """Forward *fraction* if the interval has elapsed.

        Returns
        -------
        bool
            True if the callback was invoked
        """
        if self.callback is None:
            return False
        now = self._clock()
        if now - self._last < self.interval_s:
            return False
        self._last = now
        self.callback(_clamp(fraction))
        return True


class LogProgress:
    """Progress callback that logs percentages.

    Parameters
    ----------
    name : str
        Label shown in brackets in every entry
    logger : Optional[logging.Logger]
        Target logger, default this module's logger
    level : int
        Log level, default INFO

    Notes
    -----
    Does no throttling of its own; wrap it in ThrottledProgress or hand it
    to a codec entry point, which throttles already. Used as a context
    manager it logs "(finished)" on exit.
    """

    def __init__(
        self,
        name: str = "Progress",
        logger: Optional[logging.Logger] = None,
        level: int = logging.INFO
    ):
        self.name = name
        self.logger = logger or _logger
        self.level = level
        self.last_fraction: Optional[float] = None

    def __call__(self, fraction: float) -> None:
        fraction = _clamp(fraction)
        self.last_fraction = fraction
        self.logger.log(self.level, "[%s] %.1f%% complete", self.name, fraction * 100.0)

    def __enter__(self) -> "LogProgress":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.logger.log(self.level, "[%s] (finished)", self.name)
