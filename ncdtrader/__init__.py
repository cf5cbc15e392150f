"""Compression-distance market window model.

Market records are cut into labelled windows, each window is measured by the
zlib-compressed size of its text encoding, and windows are compared by
normalized compression distance. The nearest stored windows vote on the
direction of a fresh observation.
"""

__all__ = [
    "config",
    "core",
    "data",
    "errors",
    "web",
    "utils",
]
