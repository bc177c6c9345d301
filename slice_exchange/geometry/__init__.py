"""
Slice geometry module.

Contours, slices and slice stacks as exchanged with the geometry kernel
and the CLI codec.  All coordinates are in working units (usually mm).
"""

from slice_exchange.geometry.bbox import BBox2, BBox3
from slice_exchange.geometry.slices import (
    DEFAULT_WINDING_EPSILON,
    Contour,
    Slice,
    SliceStack,
    Winding,
    detect_winding,
    signed_area,
)

__all__ = [
    "BBox2",
    "BBox3",
    "DEFAULT_WINDING_EPSILON",
    "Contour",
    "Slice",
    "SliceStack",
    "Winding",
    "detect_winding",
    "signed_area",
]
