"""Directory-backed certificate cache."""

import os
import tempfile
from pathlib import Path


class CacheMiss(KeyError):
    """Raised when a cache key has no stored value."""


class DirCache:
    """Stores opaque byte blobs as files under a single private directory."""

    def __init__(self, directory: str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def ensure(self) -> None:
        """Create the cache directory (mode 0700) if it does not exist."""
        self._directory.mkdir(mode=0o700, parents=True, exist_ok=True)

    def path(self, key: str) -> Path:
        """Return the file backing ``key``."""
        if not key or "/" in key or "\\" in key or key in {".", ".."}:
            raise ValueError(f"invalid cache key: {key!r}")
        return self._directory / key

    def get(self, key: str) -> bytes:
        try:
            return self.path(key).read_bytes()
        except FileNotFoundError as exc:
            raise CacheMiss(key) from exc

    def put(self, key: str, data: bytes) -> None:
        """Write ``data`` atomically so readers never observe a partial file."""
        target = self.path(key)
        self.ensure()
        descriptor, temp_name = tempfile.mkstemp(dir=self._directory, prefix=".tmp-")
        try:
            with os.fdopen(descriptor, "wb") as handle:
                handle.write(data)
            os.replace(temp_name, target)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self.path(key).unlink(missing_ok=True)
