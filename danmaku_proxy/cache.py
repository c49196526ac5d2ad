"""Cache module for storing converted XML documents on disk with TTL-based eviction."""

import abc
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from danmaku_proxy.config import Settings
from danmaku_proxy.exceptions import CacheMissError, StorageError
from danmaku_proxy.logging_manager import get_logger
from danmaku_proxy.models import CacheLookup, EvictionReport

XML_SUFFIX = ".xml"
TEMP_PREFIX = ".tmp-"


class CacheStore(abc.ABC):
    """
    Key to document storage with write-time freshness.

    An entry is valid while ``now - last_written_at < ttl`` and becomes an
    eviction candidate once ``now - last_written_at > ttl``. Reads never
    extend an entry's life. The coordinator only talks to this interface, so
    a different backing can replace the directory without touching it.
    """

    def __init__(self, ttl: int = 86400, max_entries: int = 100,
                 clock: Callable[[], float] = time.time) -> None:
        """
        Initialize the CacheStore.

        Args:
            ttl (int): Time-to-live in seconds (default: 86400 (24 hours))
            max_entries (int): Soft entry-count threshold that triggers a sweep (default: 100)
            clock (Callable[[], float]): Source of the current time in epoch seconds
        """
        self.ttl = ttl
        self.max_entries = max_entries
        self.clock = clock

    @abc.abstractmethod
    def lookup(self, key: str) -> CacheLookup:
        """
        Report whether an entry exists for ``key`` and whether it is still fresh.

        A missing entry is ``found=False``, not an error.

        Raises:
            StorageError: If the backing store cannot be read
        """

    @abc.abstractmethod
    def write(self, key: str, payload: bytes) -> CacheLookup:
        """
        Store ``payload`` under ``key``, replacing any previous entry atomically.

        Raises:
            StorageError: If the payload cannot be persisted
        """

    @abc.abstractmethod
    def evict_expired(self) -> EvictionReport:
        """
        Delete every entry older than the TTL.

        Per-entry failures are recorded in the report and do not stop the sweep.

        Raises:
            StorageError: If the store cannot be listed at all
        """

    @abc.abstractmethod
    def count(self) -> int:
        """
        Number of entries currently stored; 0 when the store does not exist yet.

        Raises:
            StorageError: If the store exists but cannot be listed
        """

    @abc.abstractmethod
    def location_for(self, key: str) -> str:
        """Public URL path at which the entry for ``key`` is served."""

    def is_fresh(self, last_written_at: float, now: Optional[float] = None) -> bool:
        """Whether an entry written at ``last_written_at`` can be served without re-fetching."""
        now = self.clock() if now is None else now
        return now - last_written_at < self.ttl

    def is_expired(self, last_written_at: float, now: Optional[float] = None) -> bool:
        """Whether an entry written at ``last_written_at`` should be removed by a sweep."""
        now = self.clock() if now is None else now
        return now - last_written_at > self.ttl

    def over_threshold(self) -> bool:
        """True when the store holds more entries than the soft threshold."""
        return self.count() > self.max_entries


class XmlCacheStore(CacheStore):
    """
    Flat directory of ``<key>.xml`` files.

    The directory listing is the only catalog and file modification time is
    the only freshness signal. Writes go to a hidden temporary file in the
    same directory and are renamed into place, so a concurrent lookup sees
    either the old document or the new one.
    """

    def __init__(self, root: str, ttl: int = 86400, max_entries: int = 100,
                 url_prefix: str = "/xml", clock: Callable[[], float] = time.time) -> None:
        """
        Initialize the XmlCacheStore.

        Args:
            root (str): Directory holding the cached files; created on first write
            ttl (int): Time-to-live in seconds (default: 86400 (24 hours))
            max_entries (int): Soft entry-count threshold (default: 100)
            url_prefix (str): Path prefix under which the files are served (default: "/xml")
            clock (Callable[[], float]): Source of the current time in epoch seconds
        """
        super().__init__(ttl=ttl, max_entries=max_entries, clock=clock)
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        self.logging_manager = get_logger(__name__)

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.time) -> "XmlCacheStore":
        """Build a store from application settings."""
        return cls(
            root=settings.XML_DIR,
            ttl=settings.ttl_seconds,
            max_entries=settings.MAX_FILE_COUNT,
            clock=clock,
        )

    @staticmethod
    def filename_for(key: str) -> str:
        return f"{key}{XML_SUFFIX}"

    def path_for(self, key: str) -> Path:
        """
        Filesystem path of the entry for ``key``.

        Raises:
            ValueError: If ``key`` is empty or cannot be used as a single path segment
        """
        if not key or key in (".", "..") or "/" in key or "\\" in key or "\x00" in key:
            raise ValueError(f"Invalid cache key: {key!r}")
        return self.root / self.filename_for(key)

    def location_for(self, key: str) -> str:
        return f"{self.url_prefix}/{self.filename_for(key)}"

    def resolve(self, filename: str) -> Path:
        """
        Path of a cached file requested by name, for static serving.

        Freshness is not checked here: a stale file stays servable until a
        sweep removes it.

        Raises:
            CacheMissError: If the name is not a cached document or the file does not exist
        """
        if not filename.endswith(XML_SUFFIX):
            raise CacheMissError(f"Not a cached document: {filename!r}")
        try:
            path = self.path_for(filename[:-len(XML_SUFFIX)])
        except ValueError as e:
            raise CacheMissError(str(e)) from e
        if filename.startswith(".") or not path.is_file():
            raise CacheMissError(f"No cached document named {filename!r}")
        return path

    def lookup(self, key: str) -> CacheLookup:
        path = self.path_for(key)
        try:
            stats = path.stat()
        except FileNotFoundError:
            return CacheLookup(key=key, location=self.location_for(key))
        except OSError as e:
            raise StorageError(f"Failed to stat cache entry {path}: {e}") from e

        age = self.clock() - stats.st_mtime
        return CacheLookup(
            key=key,
            found=True,
            valid=self.is_fresh(stats.st_mtime),
            location=self.location_for(key),
            age_seconds=age,
        )

    def write(self, key: str, payload: bytes) -> CacheLookup:
        path = self.path_for(key)
        tmp_name: Optional[str] = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=self.root, prefix=TEMP_PREFIX, delete=False) as handle:
                tmp_name = handle.name
                handle.write(payload)
            # mkstemp creates 0600; cached files are world-readable like any static file
            os.chmod(tmp_name, 0o644)
            # Renamed files keep the temp file's mtime; stamp it with our clock
            now = self.clock()
            os.utime(tmp_name, (now, now))
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                self._discard(Path(tmp_name))
            raise StorageError(f"Failed to write cache entry {path}: {e}") from e

        self.logging_manager.debug(f"Wrote {len(payload)} bytes to {path}", ":floppy_disk:")
        return CacheLookup(key=key, found=True, valid=True, location=self.location_for(key), age_seconds=0.0)

    def evict_expired(self) -> EvictionReport:
        report = EvictionReport()
        try:
            entries, temp_files = self._scan()
        except FileNotFoundError:
            return report
        except OSError as e:
            raise StorageError(f"Failed to list cache directory {self.root}: {e}") from e

        now = self.clock()
        for path in entries:
            report.scanned += 1
            try:
                if self.is_expired(path.stat().st_mtime, now):
                    path.unlink()
                    report.removed.append(path.name)
            except FileNotFoundError:
                # Already gone, e.g. removed by a concurrent sweep
                continue
            except OSError as e:
                self.logging_manager.error(f"Failed to delete cache entry {path}: {e}")
                report.failed.append(path.name)

        # Leftovers of writes interrupted before the rename
        for path in temp_files:
            try:
                if self.is_expired(path.stat().st_mtime, now):
                    path.unlink()
                    self.logging_manager.warning(f"Removed abandoned temporary file {path}")
            except FileNotFoundError:
                continue
            except OSError as e:
                self.logging_manager.error(f"Failed to delete temporary file {path}: {e}")

        if report.removed or report.failed:
            self.logging_manager.info(
                f"Eviction sweep scanned {report.scanned}, removed {len(report.removed)}, "
                f"failed {len(report.failed)}",
                ":broom:"
            )
        return report

    def count(self) -> int:
        try:
            return len(self._scan()[0])
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise StorageError(f"Failed to list cache directory {self.root}: {e}") from e

    def _scan(self) -> Tuple[List[Path], List[Path]]:
        """Split the directory into cached documents and temp files of in-flight or abandoned writes."""
        entries: List[Path] = []
        temp_files: List[Path] = []
        with os.scandir(self.root) as it:
            for entry in it:
                if entry.name.startswith(TEMP_PREFIX):
                    temp_files.append(Path(entry.path))
                elif entry.name.endswith(XML_SUFFIX):
                    entries.append(Path(entry.path))
        return entries, temp_files

    def _discard(self, path: Path) -> None:
        try:
            path.unlink()
        except OSError as e:
            self.logging_manager.warning(f"Could not remove temporary file {path}: {e}")
