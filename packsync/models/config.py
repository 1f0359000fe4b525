"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MIB = 1024 * 1024


class SyncConfig(BaseModel):
    """A validated configuration model for the provisioning engine."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Transfer Settings
    max_workers: int = 5
    item_workers: int = 5
    max_retries: int = 3
    chunk_size_mb: int = 10
    retry_base_delay: float = 1.0
    progress_interval: float = 0.1
    connect_timeout: float = 15.0
    read_timeout: float = 90.0

    # Storage Locations
    instances_dir: str = ""
    runtime_dir: str = ""

    # Internal fields not loaded from INI file
    config_path: str = Field(..., repr=False)

    @property
    def chunk_size(self) -> int:
        """Chunk size in bytes used by the chunked downloader."""
        return self.chunk_size_mb * MIB

    @field_validator("max_workers", "item_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 32:
            raise ValueError("Worker counts must be between 1 and 32.")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0 or v > 20:
            raise ValueError("Max retries must be between 0 and 20.")
        return v

    @field_validator("chunk_size_mb")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v < 1 or v > 512:
            raise ValueError("Chunk size must be between 1 and 512 MB.")
        return v

    @field_validator(
        "retry_base_delay", "progress_interval", "connect_timeout", "read_timeout"
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delays, intervals and timeouts cannot be negative.")
        return v

    @model_validator(mode="before")
    @classmethod
    def fill_default_directories(cls, data: Any) -> Any:
        """Places instances and runtimes under the config directory by default."""
        if not isinstance(data, dict) or not data.get("config_path"):
            return data
        data = dict(data)
        base = str(data["config_path"])
        if not data.get("instances_dir"):
            data["instances_dir"] = os.path.join(base, "instances")
        if not data.get("runtime_dir"):
            data["runtime_dir"] = os.path.join(base, "runtime")
        return data

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
