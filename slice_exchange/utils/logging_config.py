"""Logging setup for tools that read and write slice files.

The codec modules only ever call ``logging.getLogger(__name__)``; they
never install handlers.  An application calls ``setup_logging`` once
(usually as ``configure_logging(cfg)`` from ``configs.loader``) and every
record then goes through ``SliceLogFormatter``.

Records carry contextual fields.  ``read_cli_file`` and ``write_cli_file``
wrap their work in ``log_context(file=...)``, so a warning raised while
decoding shows which file it came from::

    2025-10-28T13:45:12.345Z | INFO     | app=convert file=part.cli | Decoded part.cli: ...
    {"t": "2025-10-28T13:45:12.345000+00:00", "lvl": "INFO", "app": "convert", "file": "part.cli", ...}

Context lives in a ``contextvars.ContextVar``; threads decoding different
files each see their own fields.
"""

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

_fields: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "slice_log_fields", default={}
)

# Handlers owned by setup_logging; replaced on every call.
_handlers: List[logging.Handler] = []

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
_RESET = "\033[0m"


class SliceLogFormatter(logging.Formatter):
    """One line per record, human-readable or JSON.

    Parameters
    ----------
    json_lines : bool
        Emit one JSON object per record instead of the ``|`` layout.
    color : bool
        Colour the level name.  Ignored unless stderr is a terminal.
    tz : str
        ``"UTC"`` or ``"local"`` timestamps.
    """

    def __init__(self, json_lines: bool = False, color: bool = False, tz: str = "UTC"):
        super().__init__()
        self.json_lines = json_lines
        self.color = color and sys.stderr.isatty()
        self.utc = tz == "UTC"

    def format(self, record: logging.LogRecord) -> str:
        if self.utc:
            ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        else:
            ts = datetime.fromtimestamp(record.created)
        fields = _fields.get()

        if self.json_lines:
            payload = {"t": ts.isoformat(), "lvl": record.levelname, "name": record.name}
            payload.update(fields)
            payload["msg"] = record.getMessage()
            if record.exc_info:
                payload["exc"] = self.formatException(record.exc_info)
            return json.dumps(payload)

        level = f"{record.levelname:8s}"
        if self.color:
            level = f"{_LEVEL_COLORS.get(record.levelname, '')}{level}{_RESET}"
        parts = [ts.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z", level]
        if fields:
            parts.append(" ".join(f"{k}={v}" for k, v in fields.items()))
        parts.append(record.getMessage())
        line = " | ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    tz: str = "UTC",
    context: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Install console and file handlers on the root logger.

    Keyword names match ``LoggingConfig.as_setup_kwargs()``.  Calling it
    again replaces the handlers from the previous call and leaves any
    other handlers alone.

    Parameters
    ----------
    log_level : str
        Root level name, case-insensitive.
    log_file : str, optional
        Append records to this file (parent directories are created).
    json : bool
        JSON lines in the file handler.  The console stays human-readable.
    color : bool
        Coloured level names on the console.
    to_stderr : bool
        Install the console handler.
    tz : str
        ``"UTC"`` or ``"local"``.
    context : dict, optional
        Fields added to every record, e.g. ``{"app": "convert"}``.

    Returns
    -------
    dict
        ``{"handlers": [...]}`` as installed.
    """
    root = logging.getLogger()
    for handler in _handlers:
        root.removeHandler(handler)
        handler.close()
    _handlers.clear()

    root.setLevel(log_level.upper())

    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(SliceLogFormatter(color=color, tz=tz))
        _handlers.append(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(SliceLogFormatter(json_lines=json, tz=tz))
        _handlers.append(file_handler)

    for handler in _handlers:
        root.addHandler(handler)

    if context:
        push_context(**context)

    return {"handlers": list(_handlers)}


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


# ---------------------------------------------------------------------------
# Contextual fields
# ---------------------------------------------------------------------------


def push_context(**fields: Any) -> None:
    """Add *fields* to every later record in this context."""
    _fields.set({**_fields.get(), **fields})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Drop *keys*, or every field when *keys* is None."""
    if keys is None:
        _fields.set({})
        return
    _fields.set({k: v for k, v in _fields.get().items() if k not in keys})


def get_context() -> Dict[str, Any]:
    return dict(_fields.get())


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Add *fields* for the duration of a ``with`` block.

    Examples
    --------
    >>> with log_context(file="part.cli"):
    ...     logger.warning("Discarding POLYLINE")  # "... | file=part.cli | Discarding POLYLINE"
    """
    token = _fields.set({**_fields.get(), **fields})
    try:
        yield
    finally:
        _fields.reset(token)
