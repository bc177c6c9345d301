"""Tests for the CLI line scanner and token stream.

Covers directive/parameter splitting, comment handling across physical
lines, marker seeking and the per-line hook.
"""

from __future__ import annotations

import pytest

from slice_exchange.cli_format.tokens import Directive, Text, TokenStream, split_params


def _tokens(*lines: str) -> list:
    return list(TokenStream(lines))


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


class TestSplitParams:
    def test_slash_then_commas(self) -> None:
        params, used = split_params("/1,0,3")
        assert params == ["1", "0", "3"]
        assert used == 6

    def test_values_are_stripped(self) -> None:
        params, _ = split_params("/ 1 , 2 ")
        assert params == ["1", "2"]

    def test_dollar_ends_value(self) -> None:
        params, used = split_params("/5.0$$LAYER")
        assert params == ["5.0"]
        assert used == 4

    def test_double_slash_is_not_a_separator(self) -> None:
        params, used = split_params("/5.0// note")
        assert params == ["5.0"]
        assert used == 4

    def test_no_params(self) -> None:
        assert split_params("") == ([], 0)
        assert split_params(" /1") == ([], 0)

    def test_empty_value(self) -> None:
        params, _ = split_params("/")
        assert params == [""]


# ---------------------------------------------------------------------------
# Directives and text
# ---------------------------------------------------------------------------


class TestScanning:
    def test_single_directive(self) -> None:
        (tok,) = _tokens("$$LAYER/5.00000\n")
        assert tok == Directive("LAYER", ("5.00000",), "$$LAYER/5.00000", 1)

    def test_bare_directive(self) -> None:
        (tok,) = _tokens("$$HEADERSTART\r\n")
        assert isinstance(tok, Directive)
        assert tok.name == "HEADERSTART"
        assert tok.params == ()

    def test_several_directives_on_one_line(self) -> None:
        toks = _tokens("$$HEADERSTART$$ASCII $$UNITS/1.0")
        assert [t.name for t in toks] == ["HEADERSTART", "ASCII", "UNITS"]
        assert toks[2].params == ("1.0",)

    def test_free_text(self) -> None:
        toks = _tokens("hello world $$ASCII trailing")
        assert toks[0] == Text("hello world", 1)
        assert toks[1].name == "ASCII"
        assert toks[2] == Text("trailing", 1)

    def test_line_numbers(self) -> None:
        toks = _tokens("$$A\n", "\n", "$$B\n")
        assert [t.line for t in toks] == [1, 3]

    def test_argument_text(self) -> None:
        (tok,) = _tokens("$$DATE/2024/05/01")
        assert tok.params == ("2024", "05", "01")
        assert tok.argument_text() == "2024/05/01"
        (bare,) = _tokens("$$DATE")
        assert bare.argument_text() == ""


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


class TestComments:
    def test_inline_comment(self) -> None:
        toks = _tokens("// a comment // $$ASCII")
        assert len(toks) == 1
        assert toks[0].name == "ASCII"

    def test_comment_hides_directive(self) -> None:
        assert _tokens("// $$BINARY //") == []

    def test_comment_spans_lines(self) -> None:
        stream = TokenStream(["// start\n", "$$BINARY\n", "end // $$ASCII\n"])
        toks = list(stream)
        assert [t.name for t in toks] == ["ASCII"]
        assert toks[0].line == 3
        assert not stream.in_comment

    def test_trailing_comment_after_directive(self) -> None:
        stream = TokenStream(["$$LAYER/5.0 // note\n", "$$POLYLINE/1\n"])
        toks = list(stream)
        assert [t.name for t in toks] == ["LAYER"]
        assert toks[0].params == ("5.0",)
        assert stream.in_comment

    def test_unterminated_comment_swallows_rest(self) -> None:
        assert _tokens("//\n", "$$HEADERSTART\n", "$$HEADEREND\n") == []


# ---------------------------------------------------------------------------
# Stream behaviour
# ---------------------------------------------------------------------------


class TestTokenStream:
    def test_peek_does_not_consume(self) -> None:
        stream = TokenStream(["$$A\n", "$$B\n"])
        assert stream.peek().name == "A"
        assert stream.peek().name == "A"
        assert stream.next_token().name == "A"
        assert stream.next_token().name == "B"
        assert stream.peek() is None
        assert stream.next_token() is None

    def test_seek_marker(self) -> None:
        stream = TokenStream(["junk $$LABEL/1,x\n", "garbage$$HEADERSTART$$ASCII\n"])
        marker = stream.seek_marker("HEADERSTART")
        assert marker is not None
        assert marker.line == 2
        assert stream.next_token().name == "ASCII"

    def test_seek_marker_missing(self) -> None:
        stream = TokenStream(["$$ASCII\n"])
        assert stream.seek_marker("HEADERSTART") is None

    def test_seek_marker_ignores_commented_marker(self) -> None:
        stream = TokenStream(["// $$HEADERSTART //\n"])
        assert stream.seek_marker("HEADERSTART") is None

    def test_line_hook_and_counters(self) -> None:
        seen: list[tuple[int, int]] = []
        stream = TokenStream(["$$A\n", "\n", "$$B\r\n"], on_line=lambda n, c: seen.append((n, c)))
        list(stream)
        assert seen == [(1, 4), (2, 5), (3, 10)]
        assert stream.line_number == 3
        assert stream.chars_consumed == 10

    def test_lines_are_read_lazily(self) -> None:
        seen: list[int] = []
        stream = TokenStream(["$$A\n", "$$B\n", "$$C\n"], on_line=lambda n, c: seen.append(n))
        stream.next_token()
        assert seen == [1]

    def test_hook_exception_propagates(self) -> None:
        def hook(n: int, c: int) -> None:
            if n == 2:
                raise RuntimeError("stop")

        stream = TokenStream(["$$A\n", "$$B\n"], on_line=hook)
        assert stream.next_token().name == "A"
        with pytest.raises(RuntimeError, match="stop"):
            stream.next_token()
