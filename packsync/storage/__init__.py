"""
Storage Layer.

This package handles all data persistence: the configuration file and the
record of which bundle versions are installed.
"""

from .config_manager import ConfigManager, default_config_dir
from .version_store import VersionStore

__all__ = ["ConfigManager", "VersionStore", "default_config_dir"]
