"""Tests for the CLI decoder.

Exercises the header/geometry state machine, every fatal error kind,
the degenerate-contour warning policy, units scaling, progress reporting
and cooperative cancellation.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from slice_exchange.cli_format import (
    CliDocument,
    DecodeError,
    DecodeErrorKind,
    Err,
    Ok,
    WarningKind,
    decode_cli,
    read_cli_file,
)
from slice_exchange.configs.loader import CodecConfigV1
from slice_exchange.geometry import BBox3, Winding

HEADER = """\
$$HEADERSTART
$$ASCII
$$UNITS/00000001.00000
$$VERSION/200
$$LABEL/1,default
$$DATE/2024-05-01
$$DIMENSION/00000000.00000,00000000.00000,00000005.00000,00000010.00000,00000010.00000,00000005.00000
$$LAYERS/00001
$$HEADEREND
"""

SQUARE_CCW = "$$POLYLINE/1,1,4,0,0,10,0,10,10,0,10"
SQUARE_CW = "$$POLYLINE/1,0,4,2,2,2,8,8,8,8,2"


def _cli(*geometry: str, header: str = HEADER) -> str:
    body = "\n".join(geometry)
    return f"{header}$$GEOMETRYSTART\n{body}\n$$GEOMETRYEND\n"


def _ok(text: str, **kwargs) -> CliDocument:
    result = decode_cli(text, **kwargs)
    assert isinstance(result, Ok), result
    return result.value


def _err(text: str, **kwargs) -> DecodeError:
    result = decode_cli(text, **kwargs)
    assert isinstance(result, Err), result
    return result.error


# ---------------------------------------------------------------------------
# Successful decoding
# ---------------------------------------------------------------------------


class TestDecode:
    def test_worked_example(self) -> None:
        doc = _ok(_cli("$$LAYER/5.00000", SQUARE_CCW, SQUARE_CW))
        assert doc.warnings == []
        assert doc.stack.slice_count() == 1
        s = doc.stack.slice_at(0)
        assert s.z == 5.0
        assert s.contour_count() == 2
        assert s.contour_at(0).points == ((0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0))
        assert s.contour_at(0).winding() is Winding.COUNTERCLOCKWISE
        assert s.contour_at(1).points == ((2.0, 2.0), (2.0, 8.0), (8.0, 8.0), (8.0, 2.0))
        assert s.contour_at(1).winding() is Winding.CLOCKWISE

    def test_header_metadata(self) -> None:
        doc = _ok(_cli("$$LAYER/5.0", SQUARE_CCW))
        h = doc.header
        assert h.binary is False
        assert h.units == 1.0
        assert h.units_declared is True
        assert h.version == "200"
        assert h.version_number == 200
        assert h.label_id == 1
        assert h.label_name == "default"
        assert h.date == "2024-05-01"
        assert h.declared_layer_count == 1
        assert doc.declared_bbox == BBox3(0.0, 0.0, 5.0, 10.0, 10.0, 5.0)

    def test_layer_count_is_not_checked(self) -> None:
        doc = _ok(_cli("$$LAYER/1", SQUARE_CCW, "$$LAYER/2", SQUARE_CCW, "$$LAYER/3"))
        assert doc.header.declared_layer_count == 1
        assert doc.stack.slice_count() == 3

    def test_last_layer_is_kept(self) -> None:
        doc = _ok(_cli("$$LAYER/1", SQUARE_CCW, "$$LAYER/2", SQUARE_CW))
        assert [s.z for s in doc.stack] == [1.0, 2.0]
        assert doc.stack.slice_at(1).contour_count() == 1

    def test_base_layer_opens_no_slice(self) -> None:
        doc = _ok(_cli("$$LAYER/0.0", "$$LAYER/0.0", "$$LAYER/5.0", SQUARE_CCW))
        assert [s.z for s in doc.stack] == [5.0]

    def test_equal_z_is_allowed(self) -> None:
        doc = _ok(_cli("$$LAYER/5", SQUARE_CCW, "$$LAYER/5", SQUARE_CCW))
        assert [s.z for s in doc.stack] == [5.0, 5.0]

    def test_minimal_header(self) -> None:
        text = "$$HEADERSTART\n$$HEADEREND\n$$GEOMETRYSTART\n$$LAYER/1\n" + SQUARE_CCW + "\n$$GEOMETRYEND\n"
        doc = _ok(text)
        assert doc.header.units_declared is False
        assert doc.header.units == 1.0
        assert doc.declared_bbox is None
        assert doc.declared_bbox_working() is None
        assert doc.stack.contour_count() == 1

    def test_missing_label_adopts_first_polyline_id(self) -> None:
        header = "$$HEADERSTART\n$$HEADEREND\n"
        doc = _ok(_cli("$$LAYER/1", "$$POLYLINE/7,1,3,0,0,1,0,0,1", header=header))
        assert doc.header.label_id == 7

    def test_everything_before_header_start_is_ignored(self) -> None:
        text = "garbage $$LABEL/9,x $$BINARY\n" + _cli("$$LAYER/1", SQUARE_CCW)
        doc = _ok(text)
        assert doc.header.label_id == 1

    def test_trailing_content_is_ignored(self) -> None:
        text = _cli("$$LAYER/1", SQUARE_CCW) + "$$LAYER/0\n$$POLYLINE/2,9\n"
        assert _ok(text).stack.slice_count() == 1

    def test_unknown_header_directive_is_ignored(self) -> None:
        header = HEADER.replace("$$ASCII", "$$ASCII\n$$USERDATA/42,foo")
        doc = _ok(_cli("$$LAYER/1", SQUARE_CCW, header=header))
        assert doc.warnings == []

    def test_ascii_resets_binary(self) -> None:
        header = HEADER.replace("$$ASCII", "$$BINARY\n$$ASCII\n$$ALIGN")
        doc = _ok(_cli("$$LAYER/1", SQUARE_CCW, header=header))
        assert doc.header.binary is False
        assert doc.header.align is True

    def test_comments_and_crlf(self) -> None:
        text = _cli(
            "// layer one //",
            "$$LAYER/1 // z=1",
            "   still comment //" + SQUARE_CCW,
        ).replace("\n", "\r\n")
        doc = _ok(text)
        assert doc.stack.contour_count() == 1

    def test_date_with_separators(self) -> None:
        header = HEADER.replace("$$DATE/2024-05-01", "$$DATE/01/05/2024")
        assert _ok(_cli("$$LAYER/1", SQUARE_CCW, header=header)).header.date == "01/05/2024"

    @pytest.mark.parametrize("label, name", [
        ("$$LABEL/1,part/a", "part/a"),
        ("$$LABEL/1,left,bracket", "left,bracket"),
        ("$$LABEL/1/plain", "plain"),
    ])
    def test_label_name_kept_verbatim(self, label: str, name: str) -> None:
        header = HEADER.replace("$$LABEL/1,default", label)
        doc = _ok(_cli("$$LAYER/1", SQUARE_CCW, header=header))
        assert doc.header.label_id == 1
        assert doc.header.label_name == name


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


class TestUnits:
    def test_scaling(self) -> None:
        header = HEADER.replace("$$UNITS/00000001.00000", "$$UNITS/0.5")
        doc = _ok(_cli("$$LAYER/10", SQUARE_CCW, header=header))
        s = doc.stack.slice_at(0)
        assert s.z == 5.0
        assert s.contour_at(0).points[2] == (5.0, 5.0)
        assert doc.header.units == 0.5
        assert doc.declared_bbox_working() == BBox3(0.0, 0.0, 2.5, 5.0, 5.0, 2.5)

    @pytest.mark.parametrize("value", ["0", "-1", "abc", "nan", "inf", "", "2_5"])
    def test_invalid(self, value: str) -> None:
        header = HEADER.replace("$$UNITS/00000001.00000", f"$$UNITS/{value}")
        err = _err(_cli("$$LAYER/1", SQUARE_CCW, header=header))
        assert err.kind is DecodeErrorKind.INVALID_UNITS
        assert err.line == 3

    def test_missing_value(self) -> None:
        header = HEADER.replace("$$UNITS/00000001.00000", "$$UNITS")
        assert _err(_cli(header=header)).kind is DecodeErrorKind.INVALID_UNITS


# ---------------------------------------------------------------------------
# Fatal errors
# ---------------------------------------------------------------------------


class TestFatal:
    def test_non_monotonic_layer(self) -> None:
        err = _err(_cli("$$LAYER/5.0", SQUARE_CCW, "$$LAYER/3.0", SQUARE_CCW))
        assert err.kind is DecodeErrorKind.NON_MONOTONIC_LAYER
        assert err.line == 13

    def test_polyline_before_any_layer(self) -> None:
        err = _err(_cli(SQUARE_CCW))
        assert err.kind is DecodeErrorKind.CONTOUR_BEFORE_FIRST_LAYER

    def test_polyline_on_base_layer(self) -> None:
        err = _err(_cli("$$LAYER/0.00000", SQUARE_CCW))
        assert err.kind is DecodeErrorKind.CONTOUR_BEFORE_FIRST_LAYER
        assert err.line == 12

    def test_two_labels(self) -> None:
        header = HEADER.replace("$$LABEL/1,default", "$$LABEL/1,default\n$$LABEL/1,default")
        err = _err(_cli("$$LAYER/1", SQUARE_CCW, header=header))
        assert err.kind is DecodeErrorKind.MULTIPLE_OBJECTS_UNSUPPORTED
        assert err.line == 6

    def test_second_label_without_params(self) -> None:
        header = HEADER.replace("$$LABEL/1,default", "$$LABEL/1,default\n$$LABEL")
        err = _err(_cli(header=header))
        assert err.kind is DecodeErrorKind.MULTIPLE_OBJECTS_UNSUPPORTED

    def test_object_id_mismatch(self) -> None:
        err = _err(_cli("$$LAYER/1", "$$POLYLINE/2,1,3,0,0,1,0,0,1"))
        assert err.kind is DecodeErrorKind.OBJECT_ID_MISMATCH

    @pytest.mark.parametrize("code", ["3", "-1", "x", "1.0", "0_1"])
    def test_invalid_winding_code(self, code: str) -> None:
        err = _err(_cli("$$LAYER/1", f"$$POLYLINE/1,{code},3,0,0,1,0,0,1"))
        assert err.kind is DecodeErrorKind.INVALID_WINDING_CODE

    def test_binary(self) -> None:
        header = HEADER.replace("$$ASCII", "$$BINARY")
        err = _err(_cli("$$LAYER/1", SQUARE_CCW, header=header))
        assert err.kind is DecodeErrorKind.BINARY_UNSUPPORTED

    def test_unterminated_header(self) -> None:
        assert _err("$$HEADERSTART\n$$ASCII\n").kind is DecodeErrorKind.UNTERMINATED_HEADER
        assert _err("no header here\n").kind is DecodeErrorKind.UNTERMINATED_HEADER
        assert _err("").kind is DecodeErrorKind.UNTERMINATED_HEADER

    def test_unterminated_file(self) -> None:
        assert _err(HEADER).kind is DecodeErrorKind.UNTERMINATED_FILE
        err = _err(HEADER + "$$GEOMETRYSTART\n$$LAYER/1\n" + SQUARE_CCW + "\n")
        assert err.kind is DecodeErrorKind.UNTERMINATED_FILE
        assert err.line == 12

    @pytest.mark.parametrize("line", ["$$LAYER", "$$LAYER/", "$$POLYLINE/1,1"])
    def test_missing_parameter(self, line: str) -> None:
        err = _err(_cli("$$LAYER/1", line))
        assert err.kind is DecodeErrorKind.MISSING_PARAMETER
        assert err.line == 12

    def test_missing_vertices(self) -> None:
        err = _err(_cli("$$LAYER/1", "$$POLYLINE/1,1,4,0,0,10,0,10,10"))
        assert err.kind is DecodeErrorKind.MISSING_PARAMETER

    @pytest.mark.parametrize("line", [
        "$$LAYER/abc",
        "$$POLYLINE/x,1,3,0,0,1,0,0,1",
        "$$POLYLINE/1,1,-3,0,0",
        "$$POLYLINE/1,1,3,0,0,1,zero,0,1",
        "$$POLYLINE/1,1,3,0,0,1,nan,0,1",
        "$$LAYER/1_0.5",
        "$$POLYLINE/1,1,1_0,0,0,1,0,0,1",
        "$$POLYLINE/1,1,3,0,0,1_000,0,0,1",
    ])
    def test_invalid_parameter(self, line: str) -> None:
        err = _err(_cli("$$LAYER/1", line))
        assert err.kind is DecodeErrorKind.INVALID_PARAMETER

    def test_invalid_dimension(self) -> None:
        header = HEADER.replace("00000010.00000,00000005.00000\n", "x,00000005.00000\n")
        err = _err(_cli(header=header))
        assert err.kind is DecodeErrorKind.INVALID_PARAMETER
        assert err.line == 7

    def test_no_partial_stack(self) -> None:
        result = decode_cli(_cli("$$LAYER/1", SQUARE_CCW, "$$LAYER/2", "$$POLYLINE/1,7"))
        assert isinstance(result, Err)
        with pytest.raises(DecodeError):
            result.unwrap()

    def test_error_message_has_line(self) -> None:
        err = _err(_cli("$$LAYER/5.0", "$$LAYER/3.0"))
        assert str(err).startswith("Line 12:")


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


class TestWarnings:
    def test_two_vertices_dropped(self) -> None:
        doc = _ok(_cli("$$LAYER/1", "$$POLYLINE/1,1,2,0,0,5,5"))
        assert doc.stack.slice_count() == 1
        assert doc.stack.slice_at(0).contour_count() == 0
        assert len(doc.warnings) == 1
        w = doc.warnings[0]
        assert w.kind is WarningKind.TOO_FEW_VERTICES
        assert w.line == 12
        assert str(w) == "Line: 12 Discarding POLYLINE with 2 vertices which is degenerate"

    def test_zero_vertices_dropped(self) -> None:
        doc = _ok(_cli("$$LAYER/1", "$$POLYLINE/1,2,0"))
        assert [w.kind for w in doc.warnings] == [WarningKind.TOO_FEW_VERTICES]

    def test_zero_area_dropped(self) -> None:
        doc = _ok(_cli("$$LAYER/1", "$$POLYLINE/1,0,3,0,0,1,1,2,2"))
        assert doc.stack.contour_count() == 0
        assert [w.kind for w in doc.warnings] == [WarningKind.ZERO_AREA]
        assert "[clockwise]" in doc.warnings[0].message

    def test_winding_mismatch_kept_with_actual(self) -> None:
        doc = _ok(_cli("$$LAYER/1", "$$POLYLINE/1,0,4,0,0,10,0,10,10,0,10"))
        assert doc.stack.contour_count() == 1
        assert doc.stack.slice_at(0).contour_at(0).winding() is Winding.COUNTERCLOCKWISE
        (w,) = doc.warnings
        assert w.kind is WarningKind.WINDING_MISMATCH
        assert w.message == (
            "POLYLINE defined with winding [clockwise] actual winding is "
            "[counter-clockwise] (using actual)"
        )

    def test_declared_unknown_is_mismatch(self) -> None:
        doc = _ok(_cli("$$LAYER/1", "$$POLYLINE/1,2,4,0,0,10,0,10,10,0,10"))
        assert [w.kind for w in doc.warnings] == [WarningKind.WINDING_MISMATCH]

    def test_unsupported_directive(self) -> None:
        doc = _ok(_cli("$$LAYER/1", "$$HATCHES/1,2,0,0,1,1,2,2,3,3", SQUARE_CCW))
        assert doc.stack.contour_count() == 1
        (w,) = doc.warnings
        assert w.kind is WarningKind.UNSUPPORTED_DIRECTIVE
        assert w.text == "$$HATCHES/1,2,0,0,1,"
        assert len(w.text) == 20

    def test_trailing_parameters(self) -> None:
        doc = _ok(_cli("$$LAYER/1", SQUARE_CCW + ",99,99"))
        assert doc.stack.contour_count() == 1
        assert [w.kind for w in doc.warnings] == [WarningKind.TRAILING_PARAMETERS]

    def test_warning_text_length_from_config(self) -> None:
        cfg = CodecConfigV1(decoder={"warning_text_max_chars": 6})
        doc = _ok(_cli("$$LAYER/1", "$$HATCHES/1,2"), config=cfg)
        assert doc.warnings[0].text == "$$HATC"

    def test_epsilon_from_config(self) -> None:
        # Area 0.5
        tri = "$$POLYLINE/1,1,3,0,0,1,0,0,1"
        cfg = CodecConfigV1(geometry={"winding_epsilon": 1.0})
        doc = _ok(_cli("$$LAYER/1", tri), config=cfg)
        assert [w.kind for w in doc.warnings] == [WarningKind.ZERO_AREA]
        assert _ok(_cli("$$LAYER/1", tri)).warnings == []


# ---------------------------------------------------------------------------
# Progress and cancellation
# ---------------------------------------------------------------------------


class TestProgress:
    def test_fractions_are_monotonic(self) -> None:
        cfg = CodecConfigV1(decoder={"progress_interval_s": 0.0})
        seen: list[float] = []
        _ok(_cli("$$LAYER/1", SQUARE_CCW, "$$LAYER/2", SQUARE_CCW), config=cfg, progress=seen.append)
        assert len(seen) > 5
        assert seen == sorted(seen)
        assert all(0.0 <= f <= 1.0 for f in seen)
        assert seen[-1] == 1.0

    def test_vertex_step_reports(self) -> None:
        cfg = CodecConfigV1(decoder={"progress_interval_s": 0.0, "vertex_progress_step": 1})
        base = CodecConfigV1(decoder={"progress_interval_s": 0.0})
        with_steps: list[float] = []
        without: list[float] = []
        text = _cli("$$LAYER/1", SQUARE_CCW)
        _ok(text, config=cfg, progress=with_steps.append)
        _ok(text, config=base, progress=without.append)
        assert len(with_steps) == len(without) + 4

    def test_cancel(self) -> None:
        calls = {"n": 0}

        def should_cancel() -> bool:
            calls["n"] += 1
            return calls["n"] >= 3

        err = _err(_cli("$$LAYER/1", SQUARE_CCW), should_cancel=should_cancel)
        assert err.kind is DecodeErrorKind.CANCELLED
        assert err.line == 3


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


class TestReadFile:
    def test_read(self, tmp_path: Path) -> None:
        path = tmp_path / "part.cli"
        path.write_bytes(_cli("$$LAYER/5.00000", SQUARE_CCW, SQUARE_CW).encode("ascii"))
        result = read_cli_file(path)
        assert isinstance(result, Ok)
        assert result.value.stack.contour_count() == 2

    def test_missing_file(self, tmp_path: Path) -> None:
        result = read_cli_file(tmp_path / "nope.cli")
        assert isinstance(result, Err)
        assert result.error.kind is DecodeErrorKind.UNREADABLE_INPUT
        assert isinstance(result.error.cause, FileNotFoundError)

    def test_non_ascii_bytes_outside_directives(self, tmp_path: Path) -> None:
        path = tmp_path / "part.cli"
        data = "\ufeff".encode("utf-8") + _cli("$$LAYER/1", SQUARE_CCW).encode("ascii")
        path.write_bytes(data)
        assert read_cli_file(path).unwrap().stack.contour_count() == 1

    def test_byte_progress(self, tmp_path: Path) -> None:
        path = tmp_path / "part.cli"
        path.write_bytes(_cli("$$LAYER/1", SQUARE_CCW).replace("\n", "\r\n").encode("ascii"))
        cfg = CodecConfigV1(decoder={"progress_interval_s": 0.0})
        seen: list[float] = []
        read_cli_file(path, config=cfg, progress=seen.append).unwrap()
        # Reading the $$GEOMETRYEND line consumes the whole file.
        assert seen[-2] == pytest.approx(1.0)
