"""
Encrypted artifact store.

Artifacts are encrypted with a managed key before they reach the backend and
are published only once every blob of a write has landed. Reads require a
decrypt grant on the artifact's key; the grant is checked before existence.
"""

import hashlib
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from controller.src.errors import NotFound, PipelineError, StoreUnavailable
from controller.src.models.pipeline import KeyOperation
from controller.src.security.keys import EncryptionKeyManager

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")

@dataclass(frozen=True)
class ArtifactRef:
    name: str
    key: str
    key_id: str

@dataclass(frozen=True)
class ArtifactLocation:
    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def field(self, name: str) -> str:
        if name == "bucket":
            return self.bucket
        if name == "key":
            return self.key
        if name == "uri":
            return self.uri
        raise ValueError(f"Unknown location field '{name}'")

@dataclass(frozen=True)
class ArtifactRecord:
    ref: ArtifactRef
    size: int
    sha256: str
    committed_at: datetime

class ArtifactStore:
    def __init__(
        self,
        bucket: str,
        keys: EncryptionKeyManager,
        key_id: str,
        backend,
        prefix: str = "",
    ):
        self.bucket = bucket
        self.keys = keys
        self.key_id = key_id
        self.backend = backend
        self.prefix = _UNSAFE.sub("-", prefix).strip("-")
        self._committed: Dict[str, ArtifactRecord] = {}
        self._write_lock = threading.Lock()

    def reference(self, run_id: str, name: str, key_id: Optional[str] = None) -> ArtifactRef:
        """Derive the reference an artifact will have once written. No I/O."""
        parts = [p for p in (self.prefix, _UNSAFE.sub("-", run_id), _UNSAFE.sub("-", name)) if p]
        return ArtifactRef(name=name, key="/".join(parts), key_id=key_id or self.key_id)

    def run_prefix(self, run_id: str) -> str:
        """Key prefix shared by every artifact of a run."""
        return "/".join(p for p in (self.prefix, _UNSAFE.sub("-", run_id)) if p) + "/"

    def location_of(self, ref: ArtifactRef) -> ArtifactLocation:
        return ArtifactLocation(bucket=self.bucket, key=ref.key)

    def exists(self, ref: ArtifactRef) -> bool:
        record = self._committed.get(ref.key)
        return record is not None and record.ref == ref

    def records(self, prefix: str = "") -> List[ArtifactRecord]:
        with self._write_lock:
            committed = list(self._committed.items())
        return sorted(
            (r for k, r in committed if k.startswith(prefix)),
            key=lambda r: r.ref.key,
        )

    def put(self, ref: ArtifactRef, data: bytes, principal: str) -> ArtifactRef:
        return self.put_many([(ref, data)], principal)[0]

    def put_many(self, items: Sequence[Tuple[ArtifactRef, bytes]], principal: str) -> List[ArtifactRef]:
        """Write a set of artifacts; either all of them are published or none."""
        items = list(items)
        if not items:
            return []

        # A missing grant fails before any write
        blobs = [(ref, data, self.keys.encrypt(ref.key_id, principal, data)) for ref, data in items]

        with self._write_lock:
            for ref, _, _ in blobs:
                if ref.key in self._committed:
                    raise StoreUnavailable(f"Artifact {ref.key} is already committed")

            written: List[str] = []
            try:
                for ref, _, blob in blobs:
                    self.backend.write(ref.key, blob)
                    written.append(ref.key)
            except PipelineError:
                for key in written:
                    self.backend.delete(key)
                raise
            except OSError as e:
                for key in written:
                    self.backend.delete(key)
                raise StoreUnavailable(f"Artifact backend rejected write: {e}")

            now = datetime.utcnow()
            for ref, data, _ in blobs:
                self._committed[ref.key] = ArtifactRecord(
                    ref=ref,
                    size=len(data),
                    sha256=hashlib.sha256(data).hexdigest(),
                    committed_at=now,
                )

        for ref, data, _ in blobs:
            logger.info(f"Stored artifact {ref.name} at {self.location_of(ref).uri} ({len(data)} bytes)")
        return [ref for ref, _, _ in blobs]

    def get(self, ref: ArtifactRef, principal: str) -> bytes:
        self.keys.check(ref.key_id, principal, KeyOperation.DECRYPT)

        record = self._committed.get(ref.key)
        if record is None or record.ref != ref:
            raise NotFound(f"Artifact {ref.key} does not exist")

        blob = self.backend.read(ref.key)
        return self.keys.decrypt(ref.key_id, principal, blob)

