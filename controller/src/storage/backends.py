"""
Blob backends for the artifact store.
"""

import os
import tempfile
import threading
from pathlib import Path
from typing import Dict

from controller.src.errors import NotFound, StoreUnavailable

class MemoryBackend:
    """Keeps encrypted blobs in a dict. Used for local runs and tests."""

    def __init__(self, writable: bool = True):
        self.writable = writable
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def write(self, key: str, data: bytes):
        if not self.writable:
            raise StoreUnavailable(f"Backend is read-only, cannot write {key}")
        with self._lock:
            self._blobs[key] = bytes(data)

    def read(self, key: str) -> bytes:
        try:
            return self._blobs[key]
        except KeyError:
            raise NotFound(f"No object at {key}")

    def delete(self, key: str):
        with self._lock:
            self._blobs.pop(key, None)

    def raw(self, key: str) -> bytes:
        """Ciphertext as stored, for inspection."""
        return self.read(key)

class FileSystemBackend:
    """Stores blobs under a root directory, one file per key."""

    def __init__(self, root: str):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StoreUnavailable(f"Key {key} escapes the store root")
        return path

    def write(self, key: str, data: bytes):
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Readers never see a partial blob
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except OSError as e:
            raise StoreUnavailable(f"Cannot write {key}: {e}")

    def read(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            raise NotFound(f"No object at {key}")
        except OSError as e:
            raise StoreUnavailable(f"Cannot read {key}: {e}")

    def delete(self, key: str):
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def raw(self, key: str) -> bytes:
        return self.read(key)
