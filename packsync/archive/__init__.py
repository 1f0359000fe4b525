"""
Archive Layer.

This package unpacks content archives through a private staging area and
reconciles the result into an instance directory, protecting user settings
and whitelisted add-ons.
"""

from .extractors import (
    ExtractionBackend,
    InProcessExtractor,
    ProcessExtractor,
    default_extractors,
)
from .reconciler import ArchiveReconciler, ReconcileResult

__all__ = [
    "ArchiveReconciler",
    "ExtractionBackend",
    "InProcessExtractor",
    "ProcessExtractor",
    "ReconcileResult",
    "default_extractors",
]
