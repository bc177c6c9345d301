"""Visual export of slices (SVG)."""

from slice_exchange.export.svg import export_stack_svgs, save_slice_svg, slice_to_svg

__all__ = ["export_stack_svgs", "save_slice_svg", "slice_to_svg"]
