"""Result values, error kinds and warnings for the CLI codec.

The codec entry points never raise for conditions caused by the file or
the geometry.  They return either ``Ok(value)`` or ``Err(error)``, which
callers can pattern-match::

    match read_cli_file(path):
        case Ok(document):
            show(document.stack)
        case Err(DecodeError(kind=DecodeErrorKind.NON_MONOTONIC_LAYER) as err):
            print(f"layers out of order at line {err.line}")
        case Err(err):
            raise err

Errors are also exceptions, so ``result.unwrap()`` gives the value or
raises the error for callers that prefer ``try``/``except``.

Warnings are recoverable: the decoder collects them and returns them with
the successful value.  Fatal errors abort decoding; no partial stack is
ever returned.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, NoReturn, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying ``value``."""

    value: T

    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed outcome carrying ``error``."""

    error: E

    def is_ok(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        raise self.error


Result = Union[Ok[T], Err[E]]


# ---------------------------------------------------------------------------
# Error kinds
# ---------------------------------------------------------------------------


class DecodeErrorKind(Enum):
    """Fatal conditions while reading a CLI file."""

    MISSING_PARAMETER = "missing parameter"
    INVALID_PARAMETER = "invalid parameter"
    INVALID_UNITS = "invalid units"
    NON_MONOTONIC_LAYER = "non-monotonic layer"
    CONTOUR_BEFORE_FIRST_LAYER = "contour before first layer"
    BINARY_UNSUPPORTED = "binary CLI unsupported"
    MULTIPLE_OBJECTS_UNSUPPORTED = "multiple objects unsupported"
    OBJECT_ID_MISMATCH = "object id mismatch"
    INVALID_WINDING_CODE = "invalid winding code"
    UNTERMINATED_HEADER = "unterminated header"
    UNTERMINATED_FILE = "unterminated file"
    UNREADABLE_INPUT = "unreadable input"
    CANCELLED = "cancelled"


class EncodeErrorKind(Enum):
    """Fatal conditions while writing a CLI file."""

    EMPTY_GEOMETRY = "empty geometry"
    INVALID_UNITS = "invalid units"
    INVALID_PARAMETER = "invalid parameter"
    UNWRITABLE_OUTPUT = "unwritable output"
    WRITE_FAILED = "write failed"


class WarningKind(Enum):
    """Recoverable conditions collected while reading a CLI file."""

    TOO_FEW_VERTICES = "too few vertices"
    ZERO_AREA = "zero area"
    WINDING_MISMATCH = "winding mismatch"
    UNSUPPORTED_DIRECTIVE = "unsupported directive"
    TRAILING_PARAMETERS = "trailing parameters"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class CliError(Exception):
    """Base class for codec errors.

    Parameters
    ----------
    kind : Enum
        Error kind (``DecodeErrorKind`` or ``EncodeErrorKind``).
    message : str
        Human-readable description.
    line : int | None
        1-based physical line of the offending input, where applicable.
    cause : BaseException | None
        Underlying exception (e.g. the ``OSError`` of a failed write),
        kept unchanged.
    """

    def __init__(
        self,
        kind: Enum,
        message: str,
        line: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.line = line
        self.cause = cause
        super().__init__(self._format())
        if cause is not None:
            self.__cause__ = cause

    def _format(self) -> str:
        if self.line is not None:
            return f"Line {self.line}: {self.message}"
        return self.message

    def __str__(self) -> str:
        return self._format()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind}, line={self.line}, "
            f"message={self.message!r})"
        )


class DecodeError(CliError):
    """Fatal error while reading a CLI file."""

    kind: DecodeErrorKind


class EncodeError(CliError):
    """Fatal error while writing a CLI file."""

    kind: EncodeErrorKind


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DecodeWarning:
    """Recoverable issue found while decoding.

    Parameters
    ----------
    kind : WarningKind
        What went wrong.
    line : int
        1-based physical line.
    message : str
        Human-readable description.
    text : str
        Offending input text (shortened), if any.
    """

    kind: WarningKind
    line: int
    message: str
    text: str = ""

    def __str__(self) -> str:
        return f"Line: {self.line} {self.message}"
