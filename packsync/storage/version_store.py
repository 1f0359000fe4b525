"""
A small JSON file recording which version of each bundle is installed.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

log = logging.getLogger(__name__)


class VersionStore:
    """
    Maps bundle ids to the version last provisioned successfully.

    The whole file is rewritten atomically on every change. A missing or
    unreadable file behaves like an empty store.
    """

    FILE_NAME = "installed_versions.json"

    def __init__(self, config_dir_path: Path):
        self.path = config_dir_path / self.FILE_NAME

    def _load(self) -> dict[str, str]:
        if not self.path.is_file():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            log.warning(f"[yellow]Could not read installed versions, ignoring them: {e}[/yellow]")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=".versions-", suffix=".json", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(temp_name, self.path)
        except BaseException:
            if os.path.exists(temp_name):
                os.remove(temp_name)
            raise

    def get(self, bundle_id: str) -> str | None:
        return self._load().get(bundle_id)

    def set(self, bundle_id: str, version: str) -> None:
        data = self._load()
        data[bundle_id] = version
        try:
            self._save(data)
        except OSError as e:
            log.warning(f"[yellow]Could not record installed version: {e}[/yellow]")

