"""Line scanner and peekable token stream for ASCII CLI files.

The scanner turns physical lines into two kinds of tokens:

``Directive``
    A ``$$NAME`` command with its parameters.  Parameters follow the name
    as a leading separator (``/`` or ``,``) and a value that runs until
    the next ``$``, ``/`` or ``,``.  A ``//`` never separates parameters;
    it opens a comment.
``Text``
    Anything else outside comments (free text, stray numbers).

Comments
--------
A ``//`` opens a comment that lasts until the next ``//``, possibly on a
later physical line.  The comment flag is carried by the stream instance,
so an unterminated ``//`` swallows the rest of the file.  Whether comments
may really span lines is unclear in the format description; treating
everything up to the next marker as comment is the conservative reading.

A directive and its parameters always live on one physical line.

The stream never raises on malformed text.  Interpretation (and all
errors) belong to the decoder.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Iterable, Iterator, Optional, Union

COMMENT_MARKER = "//"
DIRECTIVE_PREFIX = "$$"

_PARAM_TERMINATORS = "$/,"
_PARAM_SEPARATORS = "/,"
_NAME_RE = re.compile(r"[A-Za-z0-9_]*")

LineHook = Callable[[int, int], None]
"""``hook(line_number, chars_consumed)`` called after each physical line is read."""


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Directive:
    """A ``$$NAME`` command.

    Parameters
    ----------
    name : str
        Directive name without the ``$$`` prefix (case preserved).
    params : tuple[str, ...]
        Parameter values, whitespace-stripped, possibly empty strings.
    text : str
        Source text from ``$$`` through the last parameter.
    line : int
        1-based physical line.
    """

    name: str
    params: tuple[str, ...]
    text: str
    line: int

    def argument_text(self) -> str:
        """Everything after the first separator, verbatim.

        ``$$DATE/2024/05/01`` gives ``"2024/05/01"`` even though the
        scanner splits it into three parameters.
        """
        start = len(DIRECTIVE_PREFIX) + len(self.name)
        if len(self.text) <= start:
            return ""
        return self.text[start + 1:].strip()


@dataclass(frozen=True, slots=True)
class Text:
    """Free text outside directives and comments."""

    text: str
    line: int


Token = Union[Directive, Text]


# ---------------------------------------------------------------------------
# Scanning helpers
# ---------------------------------------------------------------------------


def split_params(s: str) -> tuple[list[str], int]:
    """Parse leading parameters from *s*.

    Returns
    -------
    tuple[list[str], int]
        Stripped values and the number of characters consumed.
    """
    params: list[str] = []
    pos = 0
    n = len(s)
    while pos < n and s[pos] in _PARAM_SEPARATORS and not s.startswith(COMMENT_MARKER, pos):
        pos += 1
        end = pos
        while end < n and s[end] not in _PARAM_TERMINATORS:
            end += 1
        params.append(s[pos:end].strip())
        pos = end
    return params, pos


def _next_boundary(s: str) -> int:
    """Index where the free text at the start of *s* ends."""
    hits = [i for i in (s.find(DIRECTIVE_PREFIX), s.find(COMMENT_MARKER)) if i > 0]
    return min(hits) if hits else len(s)


# ---------------------------------------------------------------------------
# Token stream
# ---------------------------------------------------------------------------


class TokenStream:
    """Peekable stream of tokens over physical lines.

    Parameters
    ----------
    lines : Iterable[str]
        Physical lines, line terminators included or not.  Lines are
        pulled lazily, one at a time.
    on_line : Optional[LineHook]
        Called after each physical line is read, before it is scanned.
        Exceptions raised by the hook propagate to the caller of
        ``peek``/``next``, which is how cooperative cancellation works.

    Attributes
    ----------
    line_number : int
        Physical lines read so far.
    chars_consumed : int
        Characters read so far, terminators included.  Equals bytes
        consumed for ASCII input read with ``newline=""``.
    """

    def __init__(self, lines: Iterable[str], on_line: Optional[LineHook] = None) -> None:
        self._lines = iter(lines)
        self._on_line = on_line
        self._pending: Deque[Token] = deque()
        self._in_comment = False
        self.line_number = 0
        self.chars_consumed = 0

    @property
    def in_comment(self) -> bool:
        return self._in_comment

    def __iter__(self) -> Iterator[Token]:
        return self

    def __next__(self) -> Token:
        token = self.next_token()
        if token is None:
            raise StopIteration
        return token

    def peek(self) -> Optional[Token]:
        """Next token without consuming it, ``None`` at end of input."""
        if not self._fill():
            return None
        return self._pending[0]

    def next_token(self) -> Optional[Token]:
        """Consume and return the next token, ``None`` at end of input."""
        if not self._fill():
            return None
        return self._pending.popleft()

    def seek_marker(self, name: str) -> Optional[Directive]:
        """Skip tokens up to and including directive *name*.

        Directives that appear before the marker are discarded, as is any
        text.  A marker glued to preceding text (``junk$$HEADERSTART``) is
        still found.  Markers inside comments are not.

        Returns
        -------
        Optional[Directive]
            The marker directive, or ``None`` if input ran out first.
        """
        for token in self:
            if isinstance(token, Directive) and token.name == name:
                return token
        return None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fill(self) -> bool:
        while not self._pending:
            line = next(self._lines, None)
            if line is None:
                return False
            self.line_number += 1
            self.chars_consumed += len(line)
            if self._on_line is not None:
                self._on_line(self.line_number, self.chars_consumed)
            self._pending.extend(self._scan_line(line, self.line_number))
        return True

    def _scan_line(self, line: str, line_no: int) -> list[Token]:
        tokens: list[Token] = []
        rest = line.strip()
        while rest:
            if self._in_comment:
                end = rest.find(COMMENT_MARKER)
                if end == -1:
                    break
                self._in_comment = False
                rest = rest[end + len(COMMENT_MARKER):].lstrip()
                continue

            if rest.startswith(COMMENT_MARKER):
                self._in_comment = True
                rest = rest[len(COMMENT_MARKER):]
                continue

            if rest.startswith(DIRECTIVE_PREFIX):
                name = _NAME_RE.match(rest, len(DIRECTIVE_PREFIX)).group(0)
                head = len(DIRECTIVE_PREFIX) + len(name)
                params, used = split_params(rest[head:])
                end = head + used
                tokens.append(Directive(name, tuple(params), rest[:end].rstrip(), line_no))
                rest = rest[end:].lstrip()
                continue

            end = _next_boundary(rest)
            text = rest[:end].strip()
            if text:
                tokens.append(Text(text, line_no))
            rest = rest[end:].lstrip()
        return tokens
