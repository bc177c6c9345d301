"""
Slice Exchange Package.

Layer-by-layer polygon geometry for additive manufacturing machines, and
its exchange through the ASCII Common Layer Interface (CLI) format.

Subpackages:
    geometry: Contours, slices, slice stacks and bounding boxes
    cli_format: CLI encoder/decoder with typed results and warnings
    configs: Codec configuration loading and validation
    export: SVG rendering of slices for inspection
    utils: Atomic file I/O, logging, timing, progress reporting
"""

__all__ = ["geometry", "cli_format", "configs", "export", "utils"]
