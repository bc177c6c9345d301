"""Per-slice SVG export for inspecting decoded or generated stacks.

Two renderings:

outline
    One ``<polyline>`` per contour, coloured by winding: counter-clockwise
    (outer) black, clockwise (holes) blue, unknown red.  Stroke width 0.1.
solid
    A single filled ``<path>``: outer contours first, then the rest, so
    holes punch through with the default non-zero fill rule.

Coordinates are written in working units with ``width``/``height`` in mm.
Y is flipped inside the view box so the picture is upright (slice
geometry is +Y up, SVG is +Y down).

Usage::

    from slice_exchange.export.svg import export_stack_svgs
    paths = export_stack_svgs(document.stack, "out/", "part")
    # out/part_SVGs/part_00000.svg, part_00001.svg, ...
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from slice_exchange.geometry.bbox import BBox2
from slice_exchange.geometry.slices import Contour, Point, Slice, SliceStack, Winding
from slice_exchange.utils import fs

logger = logging.getLogger(__name__)

STROKE_COLORS = {
    Winding.COUNTERCLOCKWISE: "black",
    Winding.CLOCKWISE: "blue",
    Winding.UNKNOWN: "red",
}

STROKE_WIDTH = 0.1


def fmt(v: float) -> str:
    """Compact number: up to 5 decimals, no trailing zeros."""
    s = f"{v:.5f}".rstrip("0").rstrip(".")
    return "0" if s in ("", "-0") else s


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


class _Frame:
    """View box and Y flip for one image."""

    def __init__(self, box: BBox2) -> None:
        self.box = box
        self.width, self.height = box.size()

    def point(self, p: Point) -> tuple[float, float]:
        x, y = p
        return x, self.box.y_min + self.box.y_max - y

    def header(self) -> str:
        b = self.box
        return (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            '<!DOCTYPE svg PUBLIC "-//W3C//DTD SVG 1.1//EN" '
            '"http://www.w3.org/Graphics/SVG/1.1/DTD/svg11.dtd">\n'
            f'<svg xmlns="http://www.w3.org/2000/svg" version="1.1" '
            f'viewBox="{fmt(b.x_min)} {fmt(b.y_min)} {fmt(self.width)} {fmt(self.height)}" '
            f'width="{fmt(self.width)}mm" height="{fmt(self.height)}mm">\n'
        )


def contour_to_path(contour: Contour, frame: _Frame) -> str:
    """``M x y L x y ... Z`` for one closed contour."""
    if not contour.points:
        return ""
    pts = [frame.point(p) for p in contour]
    d = [f"M {fmt(pts[0][0])} {fmt(pts[0][1])}"]
    for x, y in pts[1:]:
        d.append(f"L {fmt(x)} {fmt(y)}")
    d.append("Z")
    return " ".join(d)


def contour_to_polyline(contour: Contour, frame: _Frame, winding: Winding) -> str:
    # Repeat the first vertex; <polyline> does not close itself.
    pts = [frame.point(p) for p in contour]
    if pts:
        pts.append(pts[0])
    coords = " ".join(f"{fmt(x)},{fmt(y)}" for x, y in pts)
    return (
        f'<polyline points="{coords}" stroke="{STROKE_COLORS[winding]}" '
        f'fill="none" stroke-width="{fmt(STROKE_WIDTH)}"/>'
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def slice_to_svg(
    s: Slice,
    solid: bool = False,
    bbox: Optional[BBox2] = None,
    winding_epsilon: Optional[float] = None,
) -> str:
    """Render one slice as an SVG document.

    Parameters
    ----------
    s : Slice
        Slice to draw.
    solid : bool
        Filled path instead of coloured outlines.
    bbox : Optional[BBox2]
        View box; defaults to the slice's own bounding box.  Pass the
        stack's box to keep a series of images aligned.
    winding_epsilon : Optional[float]
        Near-zero area threshold for classification.

    Returns
    -------
    str
        Complete SVG text.

    Raises
    ------
    ValueError
        If the view box is empty or has zero width or height.
    """
    box = bbox if bbox is not None else s.bounding_box()
    if box.is_degenerate():
        raise ValueError(f"Cannot render slice at Z={s.z}: degenerate view box {box.as_tuple()}")

    frame = _Frame(box)
    classified = [(c, c.winding(winding_epsilon)) for c in s]

    out = [frame.header(), "<g>\n"]
    if solid:
        outer = [c for c, w in classified if w is Winding.COUNTERCLOCKWISE]
        rest = [c for c, w in classified if w is not Winding.COUNTERCLOCKWISE]
        d = " ".join(p for p in (contour_to_path(c, frame) for c in outer + rest) if p)
        out.append(f'<path d="{d}" fill="black"/>\n')
    else:
        for contour, winding in classified:
            out.append(contour_to_polyline(contour, frame, winding) + "\n")
    out.append("</g>\n</svg>\n")
    return "".join(out)


def save_slice_svg(
    s: Slice,
    path: Union[str, Path],
    solid: bool = False,
    bbox: Optional[BBox2] = None,
    winding_epsilon: Optional[float] = None,
) -> Path:
    """Render *s* and write it atomically to *path*."""
    path = Path(path)
    fs.atomic_write_text(slice_to_svg(s, solid, bbox, winding_epsilon), path)
    return path


def export_stack_svgs(
    stack: SliceStack,
    out_dir: Union[str, Path],
    stem: str,
    solid: bool = True,
    winding_epsilon: Optional[float] = None,
) -> List[Path]:
    """Write one SVG per slice into ``<out_dir>/<stem>_SVGs/``.

    Files are named ``<stem>_00000.svg``, ``<stem>_00001.svg``, ... in
    stack order, all sharing the stack's XY bounding box.

    Returns
    -------
    List[Path]
        Written files, in stack order.

    Raises
    ------
    ValueError
        If the stack has no drawable geometry.
    """
    box = stack.bounding_box().xy()
    if box.is_degenerate():
        raise ValueError(f"Stack has no drawable geometry: {box.as_tuple()}")

    target = fs.ensure_dir(Path(out_dir) / f"{stem}_SVGs")
    written: List[Path] = []
    for n, s in enumerate(stack):
        written.append(
            save_slice_svg(s, target / f"{stem}_{n:05d}.svg", solid, box, winding_epsilon)
        )
    logger.info("Wrote %d slice images to %s", len(written), target)
    return written
