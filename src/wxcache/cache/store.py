"""Path-keyed artifact store.

Artifacts are addressed by a CacheKey, an ordered sequence of path segments
laid out as ``prefix/resourceId/versionToken/leaf``. That layout is the only
on-disk contract other tooling may rely on.

The store is byte-oriented: it does no network I/O and does not interpret
payloads, apart from the ``read_json``/``write_json`` convenience helpers.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from wxcache.upstream.errors import WxCacheError

logger = logging.getLogger(__name__)


class StorageError(WxCacheError):
    """A cache read or write failed."""


class ArtifactNotFound(StorageError):
    """No artifact is stored under the requested key."""


@dataclass(frozen=True)
class CacheKey:
    """Ordered sequence of path segments identifying one artifact.

    Example:
        >>> key = CacheKey.of("layer", "wxfcs", "Precipitation_Rate", "2016-03-10T09:00:00", "3.png")
        >>> key.path
        'layer/wxfcs/Precipitation_Rate/2016-03-10T09:00:00/3.png'
    """

    segments: tuple[str, ...]

    def __post_init__(self):
        segments = tuple(str(s) for s in self.segments)
        if not segments:
            raise ValueError("CacheKey needs at least one segment")
        for segment in segments:
            if not segment or segment in (".", "..") or "/" in segment or "\\" in segment:
                raise ValueError(f"Invalid cache key segment: {segment!r}")
        object.__setattr__(self, "segments", segments)

    @classmethod
    def of(cls, *segments: Any) -> "CacheKey":
        return cls(tuple(str(s) for s in segments))

    @classmethod
    def from_path(cls, path: str) -> "CacheKey":
        """Parse a storage-relative path such as 'a/b/c'."""
        return cls(tuple(p for p in path.strip("/").split("/")))

    @property
    def path(self) -> str:
        return "/".join(self.segments)

    @property
    def leaf(self) -> str:
        return self.segments[-1]

    def __str__(self) -> str:
        return self.path


class CacheStore(ABC):
    """Byte store addressed by CacheKey."""

    @abstractmethod
    def exists(self, key: CacheKey) -> bool:
        """Whether an artifact is stored under key. No side effects."""

    @abstractmethod
    def read(self, key: CacheKey) -> bytes:
        """Return the artifact bytes.

        Raises:
            ArtifactNotFound: Nothing is stored under key
            StorageError: The medium failed
        """

    @abstractmethod
    def write(self, key: CacheKey, data: bytes) -> None:
        """Store data under key, replacing any previous artifact atomically.

        Raises:
            StorageError: The medium failed
        """

    def relative_path(self, key: CacheKey) -> str:
        """Storage-relative path of key."""
        return key.path

    def read_json(self, key: CacheKey) -> Any:
        """Read and decode a JSON artifact.

        Raises:
            ArtifactNotFound: Nothing is stored under key
            StorageError: The artifact is not valid JSON
        """
        data = self.read(key)
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageError(f"Corrupt JSON artifact {key}: {e}") from e

    def write_json(self, key: CacheKey, value: Any) -> None:
        """Encode value as JSON and store it."""
        self.write(key, json.dumps(value).encode("utf-8"))


class LocalCacheStore(CacheStore):
    """Store artifacts as files below a root directory.

    Writes go to a temporary file in the target directory which is then
    renamed over the destination, so a concurrent reader sees either the
    old or the new content.
    """

    def __init__(self, root: Path):
        """Initialize the store.

        Args:
            root: Cache root directory (created if missing)
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: CacheKey) -> Path:
        """Absolute filesystem path of key."""
        return self.root.joinpath(*key.segments)

    def exists(self, key: CacheKey) -> bool:
        return self.path_for(key).is_file()

    def read(self, key: CacheKey) -> bytes:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise ArtifactNotFound(f"No artifact at {key}") from e
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def write(self, key: CacheKey, data: bytes) -> None:
        path = self.path_for(key)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to persist {path}: {e}") from e

        logger.debug(f"Stored {len(data)} bytes at {key}")


class MemoryCacheStore(CacheStore):
    """In-process store, mainly for tests and ephemeral deployments."""

    def __init__(self):
        self._data: dict[CacheKey, bytes] = {}
        self._lock = threading.Lock()

    def exists(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._data

    def read(self, key: CacheKey) -> bytes:
        with self._lock:
            try:
                return self._data[key]
            except KeyError:
                raise ArtifactNotFound(f"No artifact at {key}") from None

    def write(self, key: CacheKey, data: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(data)

    def keys(self) -> Iterable[CacheKey]:
        """Snapshot of the stored keys."""
        with self._lock:
            return list(self._data)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
