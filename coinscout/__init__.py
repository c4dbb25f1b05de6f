"""coinscout: score recently listed crypto assets from market and social data."""

from .config import Settings, load_settings
from .pipeline import ScanLimits, ScanPipeline
from .scoring import classify, compute_score
from .variants import build_pipeline, run_scan, scan

__version__ = "0.1.0"

__all__ = [
    "ScanLimits",
    "ScanPipeline",
    "Settings",
    "build_pipeline",
    "classify",
    "compute_score",
    "load_settings",
    "run_scan",
    "scan",
]
