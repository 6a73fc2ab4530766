# src/housing/__init__.py
"""
housing: deterministic feature pipeline and model comparison for
real-estate sale prices.

Keep this file minimal to avoid circular imports during test discovery.
Do NOT import submodules here.
"""

__all__ = [
    "errors",
    "config",
    "io",
    "features",
    "clustering",
    "amenities",
    "schema",
    "pipeline",
    "split",
    "targets",
    "baselines",
    "modeling",
    "repro",
    "train",
]
__version__ = "0.1.0"
