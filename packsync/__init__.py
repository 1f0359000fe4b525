"""
packsync: provisions game instance directories from remote content bundles.
"""

__version__ = "0.3.0"
