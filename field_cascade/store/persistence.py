"""
JSON file I/O for the persisted stores.

Writes go through a temp file and an atomic replace. A write failure is
logged once at ERROR and the file switches to memory-only mode for the
rest of the run; classification of later fields carries on.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from ..errors import StoreWriteError

logger = logging.getLogger(__name__)


class JsonFile:
    """
    One store file.

    Usage:
        f = JsonFile("cache/learned-patterns.json", name="Cache")
        data = f.read() or {}
        f.write(data)  # False once degraded to memory-only
    """

    def __init__(self, path: Optional[str | Path], name: str):
        self.path = Path(path) if path else None
        self.name = name
        self.memory_only = self.path is None

    def read(self) -> Optional[Any]:
        """Parsed file contents, or None if missing or unreadable."""
        if self.path is None or not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self._set_aside_corrupt(e)
            return None
        except OSError as e:
            logger.warning(f"[{self.name}] Could not read {self.path}: {e}")
            return None

    def _set_aside_corrupt(self, error: Exception):
        corrupt_path = self.path.with_name(f"{self.path.stem}.corrupt{self.path.suffix}")
        logger.warning(
            f"[{self.name}] {self.path} is not valid JSON ({error}); "
            f"moved to {corrupt_path.name}, starting empty"
        )
        try:
            self.path.replace(corrupt_path)
        except OSError as e:
            logger.error(f"[{self.name}] Could not set aside {self.path}: {e}")
            self.memory_only = True

    def write(self, data: Any) -> bool:
        """
        Persist data.

        Returns:
            True if written, False in memory-only mode
        """
        if self.memory_only:
            return False
        try:
            self._write(self.path, data)
        except StoreWriteError as e:
            logger.error(f"[{self.name}] {e}; continuing in memory-only mode")
            self.memory_only = True
            return False
        return True

    @staticmethod
    def _write(path: Path, data: Any):
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            tmp_path.replace(path)
        except OSError as e:
            raise StoreWriteError(f"Cannot write {path}: {e}") from e

    def write_quarantine(self, records: list[dict]):
        """Append malformed records to a sidecar file for inspection."""
        if not records or self.path is None:
            return
        quarantine_path = self.path.with_name(f"{self.path.stem}.quarantine.json")
        existing = JsonFile(quarantine_path, self.name).read()
        if existing is None:
            existing = []
        elif not isinstance(existing, list):
            logger.warning(f"[{self.name}] Expected a list in {quarantine_path}, keeping it as one record")
            existing = [existing]
        try:
            self._write(quarantine_path, existing + records)
        except StoreWriteError as e:
            logger.error(f"[{self.name}] {e}")
