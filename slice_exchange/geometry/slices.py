"""Slice geometry -- contours, slices and slice stacks.

The vocabulary shared by the geometry kernel that produces cross-sections,
the CLI encoder/decoder and downstream visualization.

Conventions
-----------
All coordinates are in the *working* unit (usually millimetres), with +Y
up.  A ``Contour`` is implicitly closed: the last vertex connects back to
the first, and the first vertex is never repeated at the end.

Winding
-------
Winding is derived from the signed polygon area (shoelace formula) and is
a pure function of vertex order.  Counter-clockwise contours are solid
outer boundaries, clockwise contours are holes.  Contours whose absolute
signed area is within ``epsilon`` of zero are ``UNKNOWN``.

Lifecycle
---------
Slices and stacks are filled once (by the geometry kernel or by the
decoder) and then treated as read-only values.  ``SliceStack`` caches its
bounding box; mutating a ``Slice`` after handing it to a stack is not
supported.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Sequence

import numpy as np

from slice_exchange.geometry.bbox import BBox2, BBox3

DEFAULT_WINDING_EPSILON: float = 1e-10
"""Default near-zero area threshold, in squared working units.

Compared against the absolute signed area (not the doubled shoelace sum),
measured after unit scaling.  Overridden by ``geometry.winding_epsilon``
in ``codec.yaml``.
"""

Point = tuple[float, float]


# ---------------------------------------------------------------------------
# Winding
# ---------------------------------------------------------------------------


class Winding(Enum):
    """Rotational orientation of a closed contour."""

    CLOCKWISE = "clockwise"
    COUNTERCLOCKWISE = "counter-clockwise"
    UNKNOWN = "unknown/degenerate"

    def describe(self) -> str:
        """Bracketed label used in diagnostics, e.g. ``[clockwise]``."""
        return f"[{self.value}]"

    def flipped(self) -> Winding:
        if self is Winding.CLOCKWISE:
            return Winding.COUNTERCLOCKWISE
        if self is Winding.COUNTERCLOCKWISE:
            return Winding.CLOCKWISE
        return Winding.UNKNOWN


def signed_area(points: Sequence[Point]) -> float:
    """Signed polygon area via the shoelace formula.

    Positive for counter-clockwise vertex order (+Y up), negative for
    clockwise, ``0.0`` for fewer than 3 points.
    """
    if len(points) < 3:
        return 0.0
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    x = pts[:, 0]
    y = pts[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def detect_winding(
    points: Sequence[Point],
    epsilon: float = DEFAULT_WINDING_EPSILON,
) -> Winding:
    """Classify *points* as clockwise, counter-clockwise or unknown.

    Parameters
    ----------
    points : Sequence[Point]
        Closed polygon vertices (working units).
    epsilon : float
        Absolute signed areas ``<= epsilon`` are treated as degenerate.

    Returns
    -------
    Winding
        ``UNKNOWN`` for fewer than 3 points or near-zero area.
    """
    if len(points) < 3:
        return Winding.UNKNOWN
    area = signed_area(points)
    if abs(area) <= epsilon:
        return Winding.UNKNOWN
    return Winding.COUNTERCLOCKWISE if area > 0.0 else Winding.CLOCKWISE


# ---------------------------------------------------------------------------
# Contour
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Contour:
    """Closed 2D polygon.

    Parameters
    ----------
    points : tuple[tuple[float, float], ...]
        Ordered vertices in working units.  Stored as given; no copy and
        no validation.
    """

    points: tuple[Point, ...]

    def vertex_count(self) -> int:
        return len(self.points)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[Point]:
        return iter(self.points)

    def signed_area(self) -> float:
        return signed_area(self.points)

    def winding(self, epsilon: float | None = None) -> Winding:
        """Winding derived from vertex order.

        Parameters
        ----------
        epsilon : float | None
            Near-zero area threshold; ``None`` uses
            ``DEFAULT_WINDING_EPSILON``.
        """
        if epsilon is None:
            epsilon = DEFAULT_WINDING_EPSILON
        return detect_winding(self.points, epsilon)

    def reversed(self) -> Contour:
        """Same polygon with the opposite vertex order."""
        return Contour(tuple(reversed(self.points)))

    def bounding_box(self) -> BBox2:
        return BBox2.from_points(self.points)


# ---------------------------------------------------------------------------
# Slice
# ---------------------------------------------------------------------------


class Slice:
    """One Z-height cross-section holding zero or more contours.

    Parameters
    ----------
    z : float
        Slice height in working units.
    contours : Iterable[Contour]
        Initial contours.  Order is preserved for diagnostics but carries
        no meaning.
    """

    def __init__(self, z: float, contours: Iterable[Contour] = ()) -> None:
        self._z = float(z)
        self._contours: list[Contour] = list(contours)

    def __repr__(self) -> str:
        return f"Slice(z={self._z!r}, contours={len(self._contours)})"

    @property
    def z(self) -> float:
        return self._z

    @property
    def contours(self) -> tuple[Contour, ...]:
        return tuple(self._contours)

    def add_contour(self, contour: Contour) -> None:
        self._contours.append(contour)

    def is_empty(self) -> bool:
        return not self._contours

    def contour_count(self) -> int:
        return len(self._contours)

    def contour_at(self, index: int) -> Contour:
        return self._contours[index]

    def __len__(self) -> int:
        return len(self._contours)

    def __iter__(self) -> Iterator[Contour]:
        return iter(self._contours)

    def bounding_box(self) -> BBox2:
        box = BBox2.empty()
        for contour in self._contours:
            box = box.union(contour.bounding_box())
        return box


# ---------------------------------------------------------------------------
# Slice stack
# ---------------------------------------------------------------------------


class SliceStack:
    """Ordered collection of slices with an aggregate bounding box.

    Parameters
    ----------
    slices : Iterable[Slice]
        Initial slices, see ``add_slices``.

    Notes
    -----
    Slices must be supplied in non-decreasing Z order.  This is the
    caller's responsibility and is not checked here; the CLI decoder
    enforces it while parsing.
    """

    def __init__(self, slices: Iterable[Slice] = ()) -> None:
        self._slices: list[Slice] = []
        self._bbox: BBox3 | None = None
        self.add_slices(slices)

    def __repr__(self) -> str:
        return f"SliceStack(slices={len(self._slices)})"

    def add_slices(self, slices: Iterable[Slice]) -> None:
        """Append *slices* in the given order."""
        self._slices.extend(slices)
        self._bbox = None

    def slice_count(self) -> int:
        return len(self._slices)

    def slice_at(self, index: int) -> Slice:
        return self._slices[index]

    @property
    def slices(self) -> tuple[Slice, ...]:
        return tuple(self._slices)

    def __len__(self) -> int:
        return len(self._slices)

    def __iter__(self) -> Iterator[Slice]:
        return iter(self._slices)

    def contour_count(self) -> int:
        return sum(s.contour_count() for s in self._slices)

    def bounding_box(self) -> BBox3:
        """Union of all contour vertices (XY) and non-empty slice heights (Z).

        Returns
        -------
        BBox3
            ``BBox3.empty()`` when the stack holds no vertices.
        """
        if self._bbox is None:
            self._bbox = self._compute_bounding_box()
        return self._bbox

    def _compute_bounding_box(self) -> BBox3:
        arrays: list[np.ndarray] = []
        z_values: list[float] = []

        for s in self._slices:
            if s.is_empty():
                continue
            z_values.append(s.z)
            for contour in s:
                if len(contour.points):
                    arrays.append(
                        np.asarray(contour.points, dtype=np.float64).reshape(-1, 2)
                    )

        if not arrays:
            return BBox3.empty()

        pts = np.concatenate(arrays)
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)
        return BBox3(
            float(lo[0]), float(lo[1]), min(z_values),
            float(hi[0]), float(hi[1]), max(z_values),
        )
