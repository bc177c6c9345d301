"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Atomic I/O and YAML loading (fs)
    - Logging handlers and per-file contextual fields (logging_config)
    - Wall-clock timing (profiler)
    - Throttled progress reporting (progress)

No module in utils/ may import from upper layers (geometry, cli_format, export).

Convenience imports:
    from slice_exchange.utils import fs, progress
    from slice_exchange.utils.logging_config import setup_logging, log_context
"""

from . import fs
from . import logging_config
from . import profiler
from . import progress

from .logging_config import get_logger, log_context, push_context, setup_logging

__all__ = [
    # Modules
    'fs',
    'logging_config',
    'profiler',
    'progress',
    # Direct exports
    'setup_logging',
    'get_logger',
    'log_context',
    'push_context',
]
