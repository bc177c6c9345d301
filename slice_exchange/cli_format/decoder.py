"""CLI decoder -- ASCII Common Layer Interface text to SliceStack.

The reader is an explicit state machine over a ``TokenStream``::

    SEEK_HEADER_START -> IN_HEADER -> HEADER_ENDED
        -> SEEK_GEOMETRY_START -> IN_GEOMETRY -> GEOMETRY_ENDED

``GEOMETRY_ENDED`` is the only successful end state.  Running out of input
before ``$$HEADEREND`` is ``UNTERMINATED_HEADER``; running out later is
``UNTERMINATED_FILE``.  Content after ``$$GEOMETRYEND`` is never read.

Units:
    ``$$UNITS`` gives working units per file unit.  Every ``$$LAYER`` Z
    and every ``$$POLYLINE`` vertex is multiplied by it.  Without
    ``$$UNITS`` the factor is 1.0.  ``$$DIMENSION`` is kept as written
    (file units); ``CliDocument.declared_bbox_working()`` scales it.

Base layer:
    A ``$$LAYER`` at exactly Z=0 is the machine's base and opens no slice.
    Contours before the first real layer are fatal.

Contours:
    The declared direction code is advisory.  Winding is recomputed from
    the vertices; contours with fewer than 3 vertices or near-zero area
    are dropped with a warning, and a declared/computed mismatch keeps the
    contour with a warning.

All parse state lives in a ``_ParseContext`` created per call, so
independent files can be decoded from several threads at once.
"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Callable, Iterable, NoReturn, Optional, Union

from slice_exchange.cli_format.results import (
    DecodeError,
    DecodeErrorKind,
    DecodeWarning,
    Err,
    Ok,
    Result,
    WarningKind,
)
from slice_exchange.cli_format.tokens import Directive, Text, TokenStream
from slice_exchange.configs.loader import CodecConfigV1, default_config
from slice_exchange.geometry.bbox import BBox3
from slice_exchange.geometry.slices import (
    Contour,
    Point,
    Slice,
    SliceStack,
    Winding,
    detect_winding,
)
from slice_exchange.utils.logging_config import log_context
from slice_exchange.utils.profiler import log_sink, timer
from slice_exchange.utils.progress import ProgressCallback, ThrottledProgress

logger = logging.getLogger(__name__)

CancelCheck = Callable[[], bool]

WINDING_FROM_CODE: dict[int, Winding] = {
    0: Winding.CLOCKWISE,
    1: Winding.COUNTERCLOCKWISE,
    2: Winding.UNKNOWN,
}


class ParseState(Enum):
    SEEK_HEADER_START = auto()
    IN_HEADER = auto()
    HEADER_ENDED = auto()
    SEEK_GEOMETRY_START = auto()
    IN_GEOMETRY = auto()
    GEOMETRY_ENDED = auto()


_HEADER_STATES = (ParseState.SEEK_HEADER_START, ParseState.IN_HEADER)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CliHeader:
    """Header metadata as declared by the file.

    Attributes
    ----------
    binary : bool
        ``$$BINARY`` seen (and not reset by a later ``$$ASCII``).
    align : bool
        ``$$ALIGN`` seen.  Recorded only.
    units : float
        Working units per file unit; 1.0 when ``$$UNITS`` is absent.
    units_declared : bool
        Whether ``$$UNITS`` was present.
    version : Optional[str]
        ``$$VERSION`` value as written.  Not validated.
    label_id : Optional[int]
        Object id from ``$$LABEL``, or the first ``$$POLYLINE`` id when
        the file has no label.
    label_name : Optional[str]
        Object name from ``$$LABEL``.
    date : Optional[str]
        ``$$DATE`` text, verbatim.
    declared_layer_count : Optional[int]
        ``$$LAYERS`` value.  Never compared with the parsed layers.
    """

    binary: bool = False
    align: bool = False
    units: float = 1.0
    units_declared: bool = False
    version: Optional[str] = None
    label_id: Optional[int] = None
    label_name: Optional[str] = None
    date: Optional[str] = None
    declared_layer_count: Optional[int] = None

    @property
    def version_number(self) -> Optional[int]:
        """``version`` as an integer, ``None`` if absent or not numeric."""
        if self.version is None:
            return None
        return _to_int(self.version)


@dataclass(frozen=True)
class CliDocument:
    """Successful decode result.

    Attributes
    ----------
    stack : SliceStack
        Parsed slices, working units.
    declared_bbox : Optional[BBox3]
        ``$$DIMENSION`` as written (file units), independent of the
        geometry.  ``None`` when the header has none.
    header : CliHeader
        Remaining header metadata.
    warnings : list[DecodeWarning]
        Recoverable issues, in file order.
    """

    stack: SliceStack
    declared_bbox: Optional[BBox3]
    header: CliHeader
    warnings: list[DecodeWarning] = field(default_factory=list)

    def declared_bbox_working(self) -> Optional[BBox3]:
        """``declared_bbox`` multiplied by the units factor."""
        if self.declared_bbox is None:
            return None
        return self.declared_bbox.scaled(self.header.units)


# ---------------------------------------------------------------------------
# Parameter helpers
# ---------------------------------------------------------------------------


def _param(d: Directive, index: int, what: str) -> str:
    if index >= len(d.params) or d.params[index] == "":
        raise DecodeError(
            DecodeErrorKind.MISSING_PARAMETER,
            f"Missing {what} after $${d.name}",
            line=d.line,
        )
    return d.params[index]


def _to_float(raw: str) -> float:
    """Strict decimal number; NaN for anything else."""
    # float() also takes Python digit separators such as "1_0.5".
    if "_" in raw:
        return math.nan
    try:
        return float(raw)
    except ValueError:
        return math.nan


def _to_int(raw: str) -> Optional[int]:
    if "_" in raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _float_param(d: Directive, index: int, what: str) -> float:
    raw = _param(d, index, what)
    value = _to_float(raw)
    if not math.isfinite(value):
        raise DecodeError(
            DecodeErrorKind.INVALID_PARAMETER,
            f"Invalid {what} for $${d.name}: {raw!r}",
            line=d.line,
        )
    return value


def _int_param(d: Directive, index: int, what: str, minimum: int = 0) -> int:
    raw = _param(d, index, what)
    value = _to_int(raw)
    if value is None or value < minimum:
        raise DecodeError(
            DecodeErrorKind.INVALID_PARAMETER,
            f"Invalid {what} for $${d.name}: {raw!r}",
            line=d.line,
        )
    return value


# ---------------------------------------------------------------------------
# Parse context
# ---------------------------------------------------------------------------


@dataclass
class _ParseContext:
    """Mutable state of one decode call."""

    stream: TokenStream
    progress: ThrottledProgress
    total_chars: int
    state: ParseState = ParseState.SEEK_HEADER_START

    binary: bool = False
    align: bool = False
    units: float = 1.0
    units_declared: bool = False
    version: Optional[str] = None
    label_seen: bool = False
    label_id: Optional[int] = None
    label_name: Optional[str] = None
    date: Optional[str] = None
    declared_layer_count: Optional[int] = None
    declared_bbox: Optional[BBox3] = None

    slices: list[Slice] = field(default_factory=list)
    current: Optional[Slice] = None
    prev_z: Optional[float] = None
    warnings: list[DecodeWarning] = field(default_factory=list)

    def fraction(self) -> float:
        if self.total_chars <= 0:
            return 0.0
        return self.stream.chars_consumed / self.total_chars

    def header(self) -> CliHeader:
        return CliHeader(
            binary=self.binary,
            align=self.align,
            units=self.units,
            units_declared=self.units_declared,
            version=self.version,
            label_id=self.label_id,
            label_name=self.label_name,
            date=self.date,
            declared_layer_count=self.declared_layer_count,
        )


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------


class CliReader:
    """Decode ASCII CLI text into a ``CliDocument``.

    Parameters
    ----------
    config : CodecConfigV1 | None
        Codec configuration (``decoder`` and ``geometry`` sections).
        ``None`` uses the shipped ``codec.yaml``.
    progress : ProgressCallback | None
        Receives the fraction of input consumed, throttled by
        ``decoder.progress_interval_s``.
    should_cancel : CancelCheck | None
        Polled once per physical line; returning True aborts with
        ``CANCELLED``.

    Notes
    -----
    The reader holds configuration only.  ``read_lines`` may be called
    repeatedly and from several threads.
    """

    def __init__(
        self,
        config: Optional[CodecConfigV1] = None,
        progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck] = None,
    ) -> None:
        self._cfg = config if config is not None else default_config()
        self._progress = progress
        self._should_cancel = should_cancel
        self._epsilon = self._cfg.geometry.winding_epsilon
        self._header_handlers: dict[str, Callable[[_ParseContext, Directive], None]] = {
            "BINARY": self._on_binary,
            "ASCII": self._on_ascii,
            "ALIGN": self._on_align,
            "UNITS": self._on_units,
            "VERSION": self._on_version,
            "LABEL": self._on_label,
            "DATE": self._on_date,
            "DIMENSION": self._on_dimension,
            "LAYERS": self._on_layers,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def read_lines(
        self,
        lines: Iterable[str],
        total_chars: int = 0,
        source: str = "<text>",
    ) -> CliDocument:
        """Decode physical *lines*.

        Parameters
        ----------
        lines : Iterable[str]
            Physical lines, terminators included.
        total_chars : int
            Input size used for progress fractions; 0 disables them.
        source : str
            Name used in log messages.

        Raises
        ------
        DecodeError
            On any fatal condition.  Nothing partial is returned.
        """
        tracker = ThrottledProgress(self._progress, self._cfg.decoder.progress_interval_s)

        def on_line(line_no: int, consumed: int) -> None:
            if self._should_cancel is not None and self._should_cancel():
                raise DecodeError(
                    DecodeErrorKind.CANCELLED, "Decoding cancelled by caller", line=line_no
                )
            if total_chars > 0:
                tracker.report(consumed / total_chars)

        ctx = _ParseContext(
            stream=TokenStream(lines, on_line=on_line),
            progress=tracker,
            total_chars=total_chars,
        )

        with timer(f"decode {source}", sink=log_sink(logger)):
            while ctx.state is not ParseState.GEOMETRY_ENDED:
                self._step(ctx)

        stack = SliceStack(ctx.slices)
        logger.info(
            "Decoded %s: %d layers, %d contours, %d warnings",
            source, stack.slice_count(), stack.contour_count(), len(ctx.warnings),
        )
        return CliDocument(
            stack=stack,
            declared_bbox=ctx.declared_bbox,
            header=ctx.header(),
            warnings=ctx.warnings,
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _step(self, ctx: _ParseContext) -> None:
        state = ctx.state

        if state is ParseState.SEEK_HEADER_START:
            if ctx.stream.seek_marker("HEADERSTART") is None:
                self._unterminated(ctx)
            ctx.state = ParseState.IN_HEADER

        elif state is ParseState.IN_HEADER:
            token = ctx.stream.next_token()
            if token is None:
                self._unterminated(ctx)
            if isinstance(token, Directive):
                if token.name == "HEADEREND":
                    ctx.state = ParseState.HEADER_ENDED
                else:
                    self._header_directive(ctx, token)
            else:
                logger.debug("Line %d: ignoring header text %r", token.line, token.text)

        elif state is ParseState.HEADER_ENDED:
            if ctx.binary:
                raise DecodeError(
                    DecodeErrorKind.BINARY_UNSUPPORTED,
                    "Binary CLI files are not supported",
                    line=ctx.stream.line_number,
                )
            ctx.state = ParseState.SEEK_GEOMETRY_START

        elif state is ParseState.SEEK_GEOMETRY_START:
            if ctx.stream.seek_marker("GEOMETRYSTART") is None:
                self._unterminated(ctx)
            ctx.state = ParseState.IN_GEOMETRY

        elif state is ParseState.IN_GEOMETRY:
            token = ctx.stream.next_token()
            if token is None:
                self._unterminated(ctx)
            if isinstance(token, Text):
                logger.debug("Line %d: unknown text %r", token.line, token.text)
            else:
                self._geometry_directive(ctx, token)

    def _unterminated(self, ctx: _ParseContext) -> NoReturn:
        if ctx.state in _HEADER_STATES:
            raise DecodeError(
                DecodeErrorKind.UNTERMINATED_HEADER,
                "End of file while searching for a valid header",
                line=ctx.stream.line_number,
            )
        raise DecodeError(
            DecodeErrorKind.UNTERMINATED_FILE,
            "End of file before $$GEOMETRYEND",
            line=ctx.stream.line_number,
        )

    def _warn(
        self,
        ctx: _ParseContext,
        kind: WarningKind,
        d: Directive,
        message: str,
    ) -> None:
        text = d.text[: self._cfg.decoder.warning_text_max_chars]
        warning = DecodeWarning(kind=kind, line=d.line, message=message, text=text)
        logger.debug("%s", warning)
        ctx.warnings.append(warning)

    # ------------------------------------------------------------------
    # Header directives
    # ------------------------------------------------------------------

    def _header_directive(self, ctx: _ParseContext, d: Directive) -> None:
        handler = self._header_handlers.get(d.name)
        if handler is None:
            logger.debug("Line %d: ignoring header directive %r", d.line, d.text)
            return
        handler(ctx, d)

    def _on_binary(self, ctx: _ParseContext, d: Directive) -> None:
        ctx.binary = True

    def _on_ascii(self, ctx: _ParseContext, d: Directive) -> None:
        ctx.binary = False

    def _on_align(self, ctx: _ParseContext, d: Directive) -> None:
        ctx.align = True

    def _on_units(self, ctx: _ParseContext, d: Directive) -> None:
        raw = d.params[0] if d.params else ""
        units = _to_float(raw)
        if not math.isfinite(units) or units <= 0.0:
            raise DecodeError(
                DecodeErrorKind.INVALID_UNITS,
                f"Invalid parameter for $$UNITS: {raw!r} (expected a number > 0)",
                line=d.line,
            )
        ctx.units = units
        ctx.units_declared = True

    def _on_version(self, ctx: _ParseContext, d: Directive) -> None:
        ctx.version = _param(d, 0, "version")

    def _on_label(self, ctx: _ParseContext, d: Directive) -> None:
        if ctx.label_seen:
            raise DecodeError(
                DecodeErrorKind.MULTIPLE_OBJECTS_UNSUPPORTED,
                "Multiple $$LABEL directives (objects) in one file are not supported",
                line=d.line,
            )
        ctx.label_seen = True
        ctx.label_id = _int_param(d, 0, "object id")
        _param(d, 1, "object name")
        # The name may itself contain separators; keep it verbatim.
        args = d.argument_text()
        cut = min(i for i in (args.find("/"), args.find(",")) if i >= 0)
        ctx.label_name = args[cut + 1:].strip()

    def _on_date(self, ctx: _ParseContext, d: Directive) -> None:
        text = d.argument_text()
        if not text:
            raise DecodeError(
                DecodeErrorKind.MISSING_PARAMETER, "Missing date after $$DATE", line=d.line
            )
        ctx.date = text

    def _on_dimension(self, ctx: _ParseContext, d: Directive) -> None:
        names = ("x min", "y min", "z min", "x max", "y max", "z max")
        values = [_float_param(d, i, name) for i, name in enumerate(names)]
        ctx.declared_bbox = BBox3(*values)

    def _on_layers(self, ctx: _ParseContext, d: Directive) -> None:
        ctx.declared_layer_count = _int_param(d, 0, "layer count")

    # ------------------------------------------------------------------
    # Geometry directives
    # ------------------------------------------------------------------

    def _geometry_directive(self, ctx: _ParseContext, d: Directive) -> None:
        if d.name == "LAYER":
            self._on_layer(ctx, d)
        elif d.name == "POLYLINE":
            self._on_polyline(ctx, d)
        elif d.name == "GEOMETRYEND":
            if ctx.current is not None:
                ctx.slices.append(ctx.current)
                ctx.current = None
            ctx.state = ParseState.GEOMETRY_ENDED
        else:
            self._warn(
                ctx, WarningKind.UNSUPPORTED_DIRECTIVE, d,
                f"Unsupported command {d.text[: self._cfg.decoder.warning_text_max_chars]}",
            )

    def _on_layer(self, ctx: _ParseContext, d: Directive) -> None:
        z = _float_param(d, 0, "layer height") * ctx.units
        if ctx.prev_z is not None and z < ctx.prev_z:
            raise DecodeError(
                DecodeErrorKind.NON_MONOTONIC_LAYER,
                f"Layer Z {z} is below the previous layer's {ctx.prev_z}",
                line=d.line,
            )
        ctx.prev_z = z

        if ctx.current is not None:
            ctx.slices.append(ctx.current)
        # Z == 0 is the base layer and holds no contours.
        ctx.current = None if z == 0.0 else Slice(z)

    def _on_polyline(self, ctx: _ParseContext, d: Directive) -> None:
        if ctx.current is None:
            raise DecodeError(
                DecodeErrorKind.CONTOUR_BEFORE_FIRST_LAYER,
                "$$POLYLINE before the first layer above Z=0",
                line=d.line,
            )
        current = ctx.current

        object_id = _int_param(d, 0, "object id")
        if ctx.label_id is None:
            logger.debug("Line %d: no $$LABEL, adopting object id %d", d.line, object_id)
            ctx.label_id = object_id
        if object_id != ctx.label_id:
            raise DecodeError(
                DecodeErrorKind.OBJECT_ID_MISMATCH,
                f"$$POLYLINE object id {object_id} does not match label id {ctx.label_id}",
                line=d.line,
            )

        raw_code = _param(d, 1, "winding code")
        code = _to_int(raw_code)
        declared = None if code is None else WINDING_FROM_CODE.get(code)
        if declared is None:
            raise DecodeError(
                DecodeErrorKind.INVALID_WINDING_CODE,
                f"Invalid winding code for $$POLYLINE: {raw_code!r} (expected 0, 1 or 2)",
                line=d.line,
            )

        count = _int_param(d, 2, "vertex count")
        points = self._read_vertices(ctx, d, count)

        unused = len(d.params) - (3 + 2 * count)
        if unused > 0:
            self._warn(
                ctx, WarningKind.TRAILING_PARAMETERS, d,
                f"POLYLINE has {unused} parameters after its {count} vertices (ignored)",
            )

        if len(points) < 3:
            self._warn(
                ctx, WarningKind.TOO_FEW_VERTICES, d,
                f"Discarding POLYLINE with {len(points)} vertices which is degenerate",
            )
            return

        actual = detect_winding(points, self._epsilon)
        if actual is Winding.UNKNOWN:
            self._warn(
                ctx, WarningKind.ZERO_AREA, d,
                "Discarding POLYLINE with area 0 (degenerate) - defined with winding "
                f"{declared.describe()}",
            )
            return

        if actual is not declared:
            self._warn(
                ctx, WarningKind.WINDING_MISMATCH, d,
                f"POLYLINE defined with winding {declared.describe()} actual winding is "
                f"{actual.describe()} (using actual)",
            )

        current.add_contour(Contour(points))

    def _read_vertices(self, ctx: _ParseContext, d: Directive, count: int) -> tuple[Point, ...]:
        step = self._cfg.decoder.vertex_progress_step
        units = ctx.units
        points: list[Point] = []
        for i in range(count):
            x = _float_param(d, 3 + 2 * i, f"X of vertex {i}")
            y = _float_param(d, 4 + 2 * i, f"Y of vertex {i}")
            points.append((x * units, y * units))
            if (i + 1) % step == 0:
                ctx.progress.report(ctx.fraction())
        return tuple(points)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def read_cli_file(
    path: Union[str, Path],
    *,
    config: Optional[CodecConfigV1] = None,
    progress: Optional[ProgressCallback] = None,
    should_cancel: Optional[CancelCheck] = None,
) -> Result[CliDocument, DecodeError]:
    """Read an ASCII CLI file.

    Parameters
    ----------
    path : str | Path
        File to read.  Decoded as ASCII; undecodable bytes become
        replacement characters and only matter if they sit inside a
        directive.
    config : CodecConfigV1 | None
        ``None`` uses the shipped ``codec.yaml``.
    progress : ProgressCallback | None
        Receives bytes consumed / file size, throttled.
    should_cancel : CancelCheck | None
        Polled once per physical line.

    Returns
    -------
    Result[CliDocument, DecodeError]
        The complete document, or the first fatal error (with its line
        number).  ``UNREADABLE_INPUT`` wraps I/O failures.
    """
    path = Path(path)
    reader = CliReader(config, progress=progress, should_cancel=should_cancel)
    try:
        total = path.stat().st_size
        with log_context(file=path.name), \
                open(path, "r", encoding="ascii", errors="replace", newline="") as f:
            document = reader.read_lines(f, total, source=path.name)
    except DecodeError as err:
        logger.error("Failed to decode %s: %s", path, err)
        return Err(err)
    except OSError as exc:
        logger.error("Cannot read %s: %s", path, exc)
        return Err(
            DecodeError(DecodeErrorKind.UNREADABLE_INPUT, f"Cannot read {path}: {exc}", cause=exc)
        )

    if progress is not None:
        progress(1.0)
    return Ok(document)


def decode_cli(
    text: str,
    *,
    config: Optional[CodecConfigV1] = None,
    progress: Optional[ProgressCallback] = None,
    should_cancel: Optional[CancelCheck] = None,
) -> Result[CliDocument, DecodeError]:
    """Decode CLI *text* held in memory.  Same contract as ``read_cli_file``."""
    reader = CliReader(config, progress=progress, should_cancel=should_cancel)
    try:
        document = reader.read_lines(io.StringIO(text, newline=""), len(text))
    except DecodeError as err:
        logger.debug("Failed to decode text: %s", err)
        return Err(err)

    if progress is not None:
        progress(1.0)
    return Ok(document)
