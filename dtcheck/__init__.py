"""Device tree model, format guessing and the checks run over a device tree."""

__version__ = "0.1.0"

__all__ = [
    "checkbase",
    "data",
    "formats",
    "providers",
    "registry",
    "semantic",
    "structural",
    "tree",
]