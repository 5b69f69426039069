from controller.src.storage.artifact_store import (
    ArtifactStore,
    ArtifactRef,
    ArtifactLocation,
    ArtifactRecord,
)
from controller.src.storage.backends import MemoryBackend, FileSystemBackend

__all__ = [
    "ArtifactStore",
    "ArtifactRef",
    "ArtifactLocation",
    "ArtifactRecord",
    "MemoryBackend",
    "FileSystemBackend",
]
