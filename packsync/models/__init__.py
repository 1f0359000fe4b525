"""
Data Models Layer.

This package contains the models that define the core data structures used
throughout the application, such as configuration, bundles and statistics.
"""

from .bundle import ManagedBundle, PreloadItem, TransferTarget
from .config import SyncConfig
from .stats import PatchSummary, ProvisionStats

__all__ = [
    "ManagedBundle",
    "PatchSummary",
    "PreloadItem",
    "ProvisionStats",
    "SyncConfig",
    "TransferTarget",
]
