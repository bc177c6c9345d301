"""CLI encoder -- SliceStack to ASCII Common Layer Interface text.

Output layout (one directive per line, ``\\n`` terminated, ASCII)::

    $$HEADERSTART
    $$ASCII
    $$UNITS/00000001.00000
    $$VERSION/200
    $$LABEL/1,default
    $$DATE/2024-05-01
    $$DIMENSION/<xmin>,<ymin>,<zmin>,<xmax>,<ymax>,<zmax>
    $$LAYERS/00002
    $$HEADEREND
    $$GEOMETRYSTART
    $$LAYER/0.00000                      (EMPTY_FIRST_LAYER only)
    $$LAYER/5.00000
    $$POLYLINE/1,1,4,0.00000,0.00000,...
    $$GEOMETRYEND

Units convention:
    Geometry is held in working units (mm).  Every Z, vertex and
    dimension value is divided by ``units_per_file_unit`` on the way out,
    and ``$$UNITS`` carries the factor so a reader multiplies it back::

        file_value = working_value / units_per_file_unit

Contour order:
    Per layer, contours are written in three stable passes: all
    counter-clockwise (outer) contours, then all clockwise (holes), then
    the unknown ones.  Within a pass the slice order is kept.

Validation happens before the output is opened.  Once writing has
started, an ``OSError`` ends the write with ``WRITE_FAILED`` and the
partial file is left in place unless ``atomic=True`` was requested.
"""

from __future__ import annotations

import datetime as _dt
import logging
import math
import numbers
from enum import Enum
from io import StringIO
from pathlib import Path
from typing import Optional, TextIO, Union

import numpy as np

from slice_exchange.cli_format.results import Err, EncodeError, EncodeErrorKind, Ok, Result
from slice_exchange.configs.loader import CodecConfigV1, default_config
from slice_exchange.geometry.slices import (
    Contour,
    Point,
    Slice,
    SliceStack,
    Winding,
    detect_winding,
)
from slice_exchange.utils import fs
from slice_exchange.utils.logging_config import log_context
from slice_exchange.utils.profiler import log_sink, timer
from slice_exchange.utils.progress import ProgressCallback, ThrottledProgress

logger = logging.getLogger(__name__)

DateLike = Union[str, _dt.date, None]


class LayoutMode(Enum):
    """How the geometry block starts."""

    EMPTY_FIRST_LAYER = "empty_first_layer"
    """Emit a synthetic ``$$LAYER`` at Z=0 with no contours first."""

    FIRST_LAYER_HAS_CONTENT = "first_layer_has_content"
    """Start directly with the first slice."""


WINDING_CODES: dict[Winding, int] = {
    Winding.CLOCKWISE: 0,
    Winding.COUNTERCLOCKWISE: 1,
    Winding.UNKNOWN: 2,
}
"""``$$POLYLINE`` direction codes: 0 internal, 1 external, 2 open/unknown."""

_PASS_ORDER = (Winding.COUNTERCLOCKWISE, Winding.CLOCKWISE, Winding.UNKNOWN)

_FIXED_WIDTH = "014.5f"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fixed(value: float) -> str:
    """Fixed-width header number, e.g. ``00000010.50000``."""
    return f"{value:{_FIXED_WIDTH}}"


def units_text(units: float) -> str:
    """``$$UNITS`` value: zero-padded like ``_fixed`` but never rounded.

    ``0.5`` gives ``00000000.50000`` and ``0.000123456`` gives
    ``00000000.000123456``.  Parsing the text returns *units* exactly.
    """
    text = np.format_float_positional(units, unique=True, trim="k", min_digits=5)
    whole, _, frac = text.partition(".")
    return f"{whole.zfill(8)}.{frac}"


def emitted_contour(
    contour: Contour, units: float, decimals: int,
) -> tuple[list[str], tuple[Point, ...]]:
    """Vertex texts as written, and the working-unit points a reader gets back."""
    texts: list[str] = []
    points: list[Point] = []
    for x, y in contour:
        tx = f"{x / units:.{decimals}f}"
        ty = f"{y / units:.{decimals}f}"
        texts.append(tx)
        texts.append(ty)
        points.append((float(tx) * units, float(ty) * units))
    return texts, tuple(points)


def resolve_date(date: DateLike) -> str:
    """``yyyy-MM-dd`` for dates, the string itself for strings, today for None."""
    if date is None:
        return _dt.date.today().isoformat()
    if isinstance(date, _dt.date):
        return date.strftime("%Y-%m-%d")
    return str(date)


def _invalid(message: str) -> EncodeError:
    return EncodeError(EncodeErrorKind.INVALID_PARAMETER, message)


def validate_request(
    stack: SliceStack,
    layout_mode: LayoutMode,
    date_text: str,
    units_per_file_unit: float,
    decimals: int,
    epsilon: float = 1e-10,
) -> Optional[EncodeError]:
    """Check everything that can be checked before opening the output.

    Returns
    -------
    Optional[EncodeError]
        First problem found, ``None`` if the stack can be written.
    """
    if stack.slice_count() < 1:
        return EncodeError(EncodeErrorKind.EMPTY_GEOMETRY, "No slices to write (empty stack)")
    if stack.bounding_box().is_degenerate():
        return EncodeError(
            EncodeErrorKind.EMPTY_GEOMETRY,
            f"No valid geometry to write (bounding box {stack.bounding_box().as_tuple()})",
        )

    if (
        isinstance(units_per_file_unit, bool)
        or not isinstance(units_per_file_unit, numbers.Real)
        or not math.isfinite(units_per_file_unit)
        or units_per_file_unit <= 0.0
    ):
        return EncodeError(
            EncodeErrorKind.INVALID_UNITS,
            f"units_per_file_unit must be a finite number > 0, got {units_per_file_unit!r}",
        )
    units = float(units_per_file_unit)

    if not date_text.isascii():
        return _invalid(f"Date must be ASCII, got {date_text!r}")
    for forbidden in ("$", "//", "\n", "\r"):
        if forbidden in date_text:
            return _invalid(f"Date must not contain {forbidden!r}, got {date_text!r}")

    # Z as the file will carry it.  A reader turns any layer at Z=0 into
    # the base layer, so no slice may land there.
    prev_z: Optional[float] = 0.0 if layout_mode is LayoutMode.EMPTY_FIRST_LAYER else None
    for index, s in enumerate(stack):
        z_file = float(f"{s.z / units:.{decimals}f}")
        if not math.isfinite(z_file):
            return _invalid(f"Slice {index} has non-finite Z {s.z!r}")
        if prev_z is not None and z_file < prev_z:
            return _invalid(
                f"Slice {index} at Z={s.z} is below the previous slice; "
                "slices must be in non-decreasing Z order"
            )
        if z_file == 0.0:
            return _invalid(
                f"Slice {index} is at Z=0 in the file, which the format reserves "
                "for the empty base layer"
            )
        prev_z = z_file

        for c_index, contour in enumerate(s):
            wanted = contour.winding(epsilon)
            _, points = emitted_contour(contour, units, decimals)
            written = detect_winding(points, epsilon)
            if written is not wanted:
                return _invalid(
                    f"Slice {index} contour {c_index} is {wanted.describe()} but "
                    f"{written.describe()} once rounded to {decimals} decimals; "
                    "raise encoder.decimals or lower units_per_file_unit"
                )

    return None


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


class CliWriter:
    """Serialize a SliceStack to a text stream.

    Parameters
    ----------
    config : CodecConfigV1
        Validated codec configuration (``encoder`` and ``geometry``
        sections are used).
    units_per_file_unit : float
        Working units per file unit, already validated.

    Notes
    -----
    The writer does no validation of its own; run ``validate_request``
    first.  Each contour's winding is computed once, on the rounded
    vertices actually written, and determines both its pass and its
    direction code.
    """

    def __init__(self, config: CodecConfigV1, units_per_file_unit: float = 1.0) -> None:
        self._cfg = config
        self._units = float(units_per_file_unit)
        self._decimals = config.encoder.decimals
        self._epsilon = config.geometry.winding_epsilon

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def write(
        self,
        stack: SliceStack,
        out: TextIO,
        layout_mode: LayoutMode,
        date_text: str,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Write the complete file to *out*."""
        tracker = ThrottledProgress(progress, self._cfg.encoder.progress_interval_s)
        total = stack.slice_count()

        self._write_header(out, stack, layout_mode, date_text)
        out.write("$$GEOMETRYSTART\n")

        if layout_mode is LayoutMode.EMPTY_FIRST_LAYER:
            out.write(f"$$LAYER/{self._num(0.0)}\n")

        for index, s in enumerate(stack):
            self._write_layer(out, s)
            tracker.report((index + 1) / total)

        out.write("$$GEOMETRYEND\n")

    # ------------------------------------------------------------------
    # Header
    # ------------------------------------------------------------------

    def _write_header(
        self,
        out: TextIO,
        stack: SliceStack,
        layout_mode: LayoutMode,
        date_text: str,
    ) -> None:
        enc = self._cfg.encoder
        bbox = stack.bounding_box().scaled(1.0 / self._units)
        layer_count = stack.slice_count()
        if layout_mode is LayoutMode.EMPTY_FIRST_LAYER:
            layer_count += 1

        out.write("$$HEADERSTART\n")
        out.write("$$ASCII\n")
        out.write(f"$$UNITS/{units_text(self._units)}\n")
        out.write(f"$$VERSION/{enc.version_tag}\n")
        out.write(f"$$LABEL/{enc.object_id},{enc.object_name}\n")
        out.write(f"$$DATE/{date_text}\n")
        out.write("$$DIMENSION/" + ",".join(_fixed(v) for v in bbox.as_tuple()) + "\n")
        out.write(f"$$LAYERS/{layer_count:05d}\n")
        out.write("$$HEADEREND\n")

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def _num(self, value: float) -> str:
        return f"{value:.{self._decimals}f}"

    def _write_layer(self, out: TextIO, s: Slice) -> None:
        out.write(f"$$LAYER/{self._num(s.z / self._units)}\n")

        classified = []
        for contour in s:
            texts, points = emitted_contour(contour, self._units, self._decimals)
            classified.append((texts, detect_winding(points, self._epsilon)))
        for winding in _PASS_ORDER:
            for texts, w in classified:
                if w is winding:
                    out.write(self._polyline(texts, w))

    def _polyline(self, texts: list[str], winding: Winding) -> str:
        parts = [
            f"$$POLYLINE/{self._cfg.encoder.object_id}",
            str(WINDING_CODES[winding]),
            str(len(texts) // 2),
        ]
        parts.extend(texts)
        return ",".join(parts) + "\n"


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def encode_cli(
    stack: SliceStack,
    layout_mode: LayoutMode = LayoutMode.FIRST_LAYER_HAS_CONTENT,
    date: DateLike = None,
    units_per_file_unit: float = 1.0,
    *,
    config: Optional[CodecConfigV1] = None,
    progress: Optional[ProgressCallback] = None,
) -> Result[str, EncodeError]:
    """Encode *stack* to CLI text in memory.

    Same validation and output as ``write_cli_file``.
    """
    cfg = config if config is not None else default_config()
    date_text = resolve_date(date)
    error = validate_request(
        stack, layout_mode, date_text, units_per_file_unit,
        cfg.encoder.decimals, cfg.geometry.winding_epsilon,
    )
    if error is not None:
        return Err(error)

    buf = StringIO()
    CliWriter(cfg, units_per_file_unit).write(stack, buf, layout_mode, date_text, progress)
    if progress is not None:
        progress(1.0)
    return Ok(buf.getvalue())


def write_cli_file(
    stack: SliceStack,
    path: Union[str, Path],
    layout_mode: LayoutMode = LayoutMode.FIRST_LAYER_HAS_CONTENT,
    date: DateLike = None,
    units_per_file_unit: float = 1.0,
    *,
    config: Optional[CodecConfigV1] = None,
    progress: Optional[ProgressCallback] = None,
    atomic: bool = False,
) -> Result[None, EncodeError]:
    """Write *stack* to *path* as an ASCII CLI file.

    Parameters
    ----------
    stack : SliceStack
        Slices in non-decreasing Z order, working units.
    path : str | Path
        Target file; created or overwritten.
    layout_mode : LayoutMode
        Whether to emit the synthetic empty base layer.
    date : str | datetime.date | None
        Value for ``$$DATE``; ``None`` writes today's date.
    units_per_file_unit : float
        Working units per file unit (``$$UNITS``), finite and > 0.
    config : CodecConfigV1 | None
        Formatting options; ``None`` uses the shipped ``codec.yaml``.
    progress : ProgressCallback | None
        Called with the fraction of layers written, throttled by
        ``encoder.progress_interval_s``.
    atomic : bool
        Write through a temporary file and rename on success, so a failed
        write leaves any previous file untouched.

    Returns
    -------
    Result[None, EncodeError]
        ``Err`` with ``EMPTY_GEOMETRY``, ``INVALID_UNITS`` or
        ``INVALID_PARAMETER`` before any I/O; ``UNWRITABLE_OUTPUT`` if
        the target cannot be opened; ``WRITE_FAILED`` (original
        ``OSError`` as ``cause``) if writing fails midway.
    """
    cfg = config if config is not None else default_config()
    path = Path(path)
    date_text = resolve_date(date)

    error = validate_request(
        stack, layout_mode, date_text, units_per_file_unit,
        cfg.encoder.decimals, cfg.geometry.winding_epsilon,
    )
    if error is not None:
        logger.debug("Refusing to write %s: %s", path, error)
        return Err(error)

    writer = CliWriter(cfg, units_per_file_unit)
    opened = False
    try:
        with log_context(file=path.name), timer(f"encode {path.name}", sink=log_sink(logger)):
            if atomic:
                stream = fs.atomic_open_text(path, encoding="ascii")
            else:
                stream = open(path, "w", encoding="ascii", newline="\n")
            with stream as out:
                opened = True
                writer.write(stack, out, layout_mode, date_text, progress)
    except OSError as exc:
        kind = EncodeErrorKind.WRITE_FAILED if opened else EncodeErrorKind.UNWRITABLE_OUTPUT
        logger.error("Failed to write %s: %s", path, exc)
        return Err(EncodeError(kind, f"Cannot write {path}: {exc}", cause=exc))

    if progress is not None:
        progress(1.0)
    logger.info(
        "Wrote %s (%d layers, %d contours, units %g)",
        path, stack.slice_count(), stack.contour_count(), units_per_file_unit,
    )
    return Ok(None)
