# marketlens/storage/result_cache.py

"""File-backed result cache with per-entry TTL.

Each entry is one JSON file ``<key>.json`` holding
``{"key", "created_at", "data"}``.  Entries are written through a temp
file and ``os.replace`` so a concurrent reader never sees a partial
document.  Every I/O or decode error degrades to a miss.
"""

import hashlib
import json
import logging
import os
import re
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from marketlens.config.settings import Settings

logger = logging.getLogger("marketlens.cache")

_UNSAFE_CHARS_RE = re.compile(r"[^\w.]+")


@dataclass
class CacheStats:
    """Snapshot of the cache directory."""

    enabled: bool
    count: int
    size_bytes: int
    human_size: str


def format_bytes(size: int, decimals: int = 2) -> str:
    """Render a byte count as ``'1.5 KB'``."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    rendered = f"{value:.{decimals}f}".rstrip("0").rstrip(".")
    return f"{rendered} {units[index]}"


class ResultCache:
    """Disk cache keyed by ``(source, action, params)``."""

    def __init__(
        self,
        cache_dir: Path | None = None,
        ttl: float | None = None,
        enabled: bool | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.cache_dir = Path(cache_dir or self.settings.CACHE_DIR)
        self.default_ttl: float = (
            self.settings.SEARCH_CACHE_TTL if ttl is None else ttl
        )
        self.enabled: bool = (
            self.settings.CACHE_ENABLED if enabled is None else enabled
        )
        if self.enabled:
            try:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                logger.error(
                    "Cannot create cache dir %s: %s; caching disabled",
                    self.cache_dir,
                    exc,
                )
                self.enabled = False

    # ── Keys ─────────────────────────────────────────────

    @staticmethod
    def key(
        source: str, action: str, params: dict[str, Any] | None = None,
    ) -> str:
        """Return a stable key for *(source, action, params)*.

        The digest is an MD5 over the canonical (sorted-key) JSON, so
        the order of *params* fields does not matter.  The readable
        ``<source>-<action>-`` prefix makes :meth:`clear` by source
        possible.
        """
        canonical = json.dumps(
            {"source": source, "action": action, "params": params or {}},
            sort_keys=True,
            ensure_ascii=False,
            default=str,
        )
        digest = hashlib.md5(canonical.encode("utf-8")).hexdigest()
        prefix = "-".join(
            _UNSAFE_CHARS_RE.sub("_", part) for part in (source, action)
        )
        return f"{prefix}-{digest}"

    def path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    # ── Entries ──────────────────────────────────────────

    def get(self, key: str, ttl: float | None = None) -> Any | None:
        """Return the payload for *key* if present and fresh."""
        if not self.enabled:
            return None
        entry = self._read(self.path_for(key))
        if entry is None:
            return None
        max_age = self.default_ttl if ttl is None else ttl
        if not self._is_fresh(entry, max_age):
            logger.debug("Cache entry %s expired", key)
            return None
        return entry.get("data")

    def set(self, key: str, payload: Any) -> bool:
        """Store *payload* under *key*; last write wins."""
        if not self.enabled:
            return False
        entry = {"key": key, "created_at": time.time(), "data": payload}
        tmp_path: str | None = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{key}.", suffix=".tmp", dir=self.cache_dir,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entry, f, ensure_ascii=False)
            os.replace(tmp_path, self.path_for(key))
            tmp_path = None
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Cache write failed for %s: %s", key, exc)
            return False
        finally:
            if tmp_path is not None:
                self._unlink(Path(tmp_path))
        logger.debug("Cached entry %s", key)
        return True

    def delete(self, key: str) -> bool:
        """Remove one entry; a missing entry counts as success."""
        if not self.enabled:
            return False
        return self._unlink(self.path_for(key))

    def clear(self, prefix: str | None = None) -> int:
        """Remove all entries, or those whose key starts with *prefix*.

        Returns the number of entries removed.
        """
        if not self.enabled:
            return 0
        removed = 0
        for path in self._entry_files():
            if prefix and not path.stem.startswith(prefix):
                continue
            if self._unlink(path):
                removed += 1
        logger.info(
            "Cleared %d cache entries (prefix=%s)", removed, prefix or "*",
        )
        return removed

    def sweep(self) -> int:
        """Remove entries older than the default TTL."""
        if not self.enabled:
            return 0
        removed = 0
        for path in self._entry_files():
            entry = self._read(path)
            if entry is not None and self._is_fresh(
                entry, self.default_ttl
            ):
                continue
            if self._unlink(path):
                removed += 1
        if removed:
            logger.info("Swept %d expired cache entries", removed)
        return removed

    def stats(self) -> CacheStats:
        """Count entries and total size on disk."""
        if not self.enabled:
            return CacheStats(False, 0, 0, format_bytes(0))
        count = 0
        size = 0
        for path in self._entry_files():
            try:
                size += path.stat().st_size
            except OSError:
                continue
            count += 1
        return CacheStats(True, count, size, format_bytes(size))

    # ── Private helpers ──────────────────────────────────

    def _entry_files(self) -> list[Path]:
        try:
            return sorted(self.cache_dir.glob("*.json"))
        except OSError as exc:
            logger.error(
                "Cannot list cache dir %s: %s", self.cache_dir, exc,
            )
            return []

    @staticmethod
    def _is_fresh(entry: dict[str, Any], max_age: float) -> bool:
        try:
            created_at = float(entry["created_at"])
        except (KeyError, TypeError, ValueError):
            return False
        return time.time() - created_at <= max_age

    @staticmethod
    def _read(path: Path) -> dict[str, Any] | None:
        try:
            with open(path, encoding="utf-8") as f:
                entry = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable cache entry %s: %s", path.name, exc)
            return None
        return entry if isinstance(entry, dict) else None

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Cache delete failed for %s: %s", path.name, exc)
            return False
        return True
