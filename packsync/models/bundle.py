"""
Models describing what a provisioning request installs and where it downloads to.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pathvalidate import sanitize_filename
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from packsync.exceptions import BundleError
from packsync.utils.path import filename_from_url


@dataclass(frozen=True)
class TransferTarget:
    """A single download: where from, where to and, if known, how big."""

    url: str
    destination: Path
    expected_size: int | None = None


class PreloadItem(BaseModel):
    """A file that must be present before launch, optionally with a display name."""

    model_config = ConfigDict(frozen=True)

    url: str
    name: str | None = None

    @property
    def filename(self) -> str:
        if self.name:
            return sanitize_filename(self.name, platform="auto")
        return filename_from_url(self.url)


class ManagedBundle(BaseModel):
    """
    Read-only description of one installable content set.

    Accepts both snake_case keys and the camelCase keys used by the remote
    instance catalog (``modpackUrl``, ``preloadMods`` ...).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    version: str = ""
    modpack_version: str = Field("", alias="modpackVersion")
    modpack_url: str | None = Field(None, alias="modpackUrl")
    mods: list[str] = Field(default_factory=list)
    preload_mods: list[PreloadItem] = Field(default_factory=list, alias="preloadMods")
    ignore_files: list[str] = Field(default_factory=list, alias="ignoreFiles")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Bundle ids name a directory, so they must be a single path segment."""
        v = v.strip()
        if not v or v in (".", "..") or "/" in v or "\\" in v:
            raise ValueError(f"Invalid bundle id: {v!r}")
        return v

    @field_validator("mods", mode="before")
    @classmethod
    def drop_empty_mods(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [m for m in v if isinstance(m, str) and m.strip()]
        return v

    @field_validator("preload_mods", mode="before")
    @classmethod
    def coerce_preload_items(cls, v: Any) -> Any:
        """Bare URL strings are shorthand for an item without a display name."""
        if not isinstance(v, list):
            return v
        items = []
        for item in v:
            if isinstance(item, str):
                if item.strip():
                    items.append({"url": item})
            elif isinstance(item, dict) and item.get("url"):
                items.append(item)
        return items

    @property
    def target_version(self) -> str:
        """The version recorded once this bundle has been provisioned."""
        return self.modpack_version or self.version

    @property
    def has_archive(self) -> bool:
        return bool(self.modpack_url)

    def expected_mod_names(self) -> set[str]:
        """Filenames the mods folder should hold from explicit and preload items."""
        names = {filename_from_url(url) for url in self.mods}
        names.update(item.filename for item in self.preload_mods)
        names.discard("")
        return names

    @classmethod
    def from_file(cls, path: Path) -> "ManagedBundle":
        """Loads and validates a bundle descriptor from a JSON file."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise BundleError(f"Could not read bundle descriptor '{path}': {e}") from e
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise BundleError(f"Bundle descriptor validation failed:\n{e}") from e
