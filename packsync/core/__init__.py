"""
Core provisioning engine.

This package contains the primary logic. The `BundleProvisioner` acts as the
per-request coordinator, delegating archive reconciliation, item
synchronization, cleanup and runtime installation to the stage modules.
"""
