"""Artifact workspace: store, deduplication, payload building and the session."""

from .dedup import (
    DedupKey,
    InvocationDeduplicator,
    dedup_key,
    is_completed_result,
    resolve_artifact_id,
    stable_artifact_id,
)
from .models import Artifact, ArtifactMetadata, ArtifactStats, CreateResult
from .payload import PayloadError, build_artifact, extract_payload
from .scheduler import DebouncedTask
from .session import ArtifactSession
from .store import ArtifactStore

__all__ = [
    "DedupKey",
    "InvocationDeduplicator",
    "dedup_key",
    "is_completed_result",
    "resolve_artifact_id",
    "stable_artifact_id",
    "Artifact",
    "ArtifactMetadata",
    "ArtifactStats",
    "CreateResult",
    "PayloadError",
    "build_artifact",
    "extract_payload",
    "DebouncedTask",
    "ArtifactSession",
    "ArtifactStore",
]
