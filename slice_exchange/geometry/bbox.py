"""Axis-aligned bounding boxes for contours, slices and slice stacks.

Boxes are immutable.  ``include_point`` and ``union`` return new boxes.
An *empty* box uses ``+inf`` minima and ``-inf`` maxima so that the first
``include_point`` always wins; test it with ``is_empty()``, never by
comparing against a literal.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np

_INF = math.inf


@dataclass(frozen=True, slots=True)
class BBox2:
    """2D bounding box in working units (XY plane of one slice)."""

    x_min: float
    y_min: float
    x_max: float
    y_max: float

    @classmethod
    def empty(cls) -> BBox2:
        return cls(_INF, _INF, -_INF, -_INF)

    @classmethod
    def from_points(cls, points: Iterable[tuple[float, float]]) -> BBox2:
        """Tight box around *points*; empty when there are none."""
        pts = np.asarray(list(points), dtype=np.float64).reshape(-1, 2)
        if pts.shape[0] == 0:
            return cls.empty()
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)
        return cls(float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1]))

    def is_empty(self) -> bool:
        return self.x_min > self.x_max or self.y_min > self.y_max

    def is_degenerate(self) -> bool:
        """Empty, non-finite, or zero extent along X or Y."""
        if self.is_empty():
            return True
        if not all(math.isfinite(v) for v in self.as_tuple()):
            return True
        sx, sy = self.size()
        return sx <= 0.0 or sy <= 0.0

    def size(self) -> tuple[float, float]:
        if self.is_empty():
            return (0.0, 0.0)
        return (self.x_max - self.x_min, self.y_max - self.y_min)

    def center(self) -> tuple[float, float]:
        return ((self.x_min + self.x_max) / 2.0, (self.y_min + self.y_max) / 2.0)

    def include_point(self, x: float, y: float) -> BBox2:
        return BBox2(
            min(self.x_min, x), min(self.y_min, y),
            max(self.x_max, x), max(self.y_max, y),
        )

    def union(self, other: BBox2) -> BBox2:
        if other.is_empty():
            return self
        if self.is_empty():
            return other
        return BBox2(
            min(self.x_min, other.x_min), min(self.y_min, other.y_min),
            max(self.x_max, other.x_max), max(self.y_max, other.y_max),
        )

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.x_min, self.y_min, self.x_max, self.y_max)


@dataclass(frozen=True, slots=True)
class BBox3:
    """3D bounding box in working units.

    Field order matches the CLI ``$$DIMENSION`` directive:
    ``x_min, y_min, z_min, x_max, y_max, z_max``.
    """

    x_min: float
    y_min: float
    z_min: float
    x_max: float
    y_max: float
    z_max: float

    @classmethod
    def empty(cls) -> BBox3:
        return cls(_INF, _INF, _INF, -_INF, -_INF, -_INF)

    @classmethod
    def from_xy(cls, xy: BBox2, z_min: float, z_max: float) -> BBox3:
        if xy.is_empty():
            return cls.empty()
        return cls(xy.x_min, xy.y_min, z_min, xy.x_max, xy.y_max, z_max)

    def is_empty(self) -> bool:
        return (
            self.x_min > self.x_max
            or self.y_min > self.y_max
            or self.z_min > self.z_max
        )

    def is_degenerate(self) -> bool:
        """Empty, non-finite, or zero extent along X or Y.

        A zero Z extent is fine: a stack with a single slice is writable.
        """
        if self.is_empty():
            return True
        if not all(math.isfinite(v) for v in self.as_tuple()):
            return True
        sx, sy, _ = self.size()
        return sx <= 0.0 or sy <= 0.0

    def size(self) -> tuple[float, float, float]:
        if self.is_empty():
            return (0.0, 0.0, 0.0)
        return (
            self.x_max - self.x_min,
            self.y_max - self.y_min,
            self.z_max - self.z_min,
        )

    def center(self) -> tuple[float, float, float]:
        return (
            (self.x_min + self.x_max) / 2.0,
            (self.y_min + self.y_max) / 2.0,
            (self.z_min + self.z_max) / 2.0,
        )

    def union(self, other: BBox3) -> BBox3:
        if other.is_empty():
            return self
        if self.is_empty():
            return other
        return BBox3(
            min(self.x_min, other.x_min), min(self.y_min, other.y_min),
            min(self.z_min, other.z_min),
            max(self.x_max, other.x_max), max(self.y_max, other.y_max),
            max(self.z_max, other.z_max),
        )

    def xy(self) -> BBox2:
        if self.is_empty():
            return BBox2.empty()
        return BBox2(self.x_min, self.y_min, self.x_max, self.y_max)

    def scaled(self, factor: float) -> BBox3:
        """Every coordinate multiplied by *factor* (> 0)."""
        if self.is_empty():
            return self
        return BBox3(*(v * factor for v in self.as_tuple()))

    def as_tuple(self) -> tuple[float, float, float, float, float, float]:
        return (
            self.x_min, self.y_min, self.z_min,
            self.x_max, self.y_max, self.z_max,
        )
