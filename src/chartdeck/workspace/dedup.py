"""At-most-once artifact creation per logical tool completion.

Tool implementations report success in three historically different
envelopes; :func:`is_completed_result` recognizes all of them identically.
Keys recorded by :class:`InvocationDeduplicator` live until the session is
reset and are never dropped when a single artifact is removed.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterator, Mapping

__all__ = [
    "DedupKey",
    "InvocationDeduplicator",
    "dedup_key",
    "is_completed_result",
    "resolve_artifact_id",
    "stable_artifact_id",
    "structured_result",
]

LOGGER = logging.getLogger(__name__)


def structured_result(output: Any) -> Mapping[str, Any] | None:
    """Return ``output.structuredContent.result[0]`` when it is a mapping."""

    if not isinstance(output, Mapping):
        return None
    content = output.get("structuredContent")
    if not isinstance(content, Mapping):
        return None
    results = content.get("result")
    if not isinstance(results, (list, tuple)) or not results:
        return None
    first = results[0]
    return first if isinstance(first, Mapping) else None


def is_completed_result(output: Any) -> bool:
    """True when a tool output signals an artifact-worthy completion."""

    if not isinstance(output, Mapping):
        return False
    if output.get("shouldCreateArtifact") is True and output.get("status") == "success":
        return True
    if output.get("success") is True:
        return True
    nested = structured_result(output)
    return bool(nested is not None and nested.get("success") is True and output.get("isError") is False)


def stable_artifact_id(output: Any) -> str | None:
    """First defined id among ``chartId``, ``artifactId`` and the nested ``artifactId``."""

    if not isinstance(output, Mapping):
        return None
    for key in ("chartId", "artifactId"):
        value = output.get(key)
        if value:
            return str(value)
    nested = structured_result(output)
    if nested is not None and nested.get("artifactId"):
        return str(nested["artifactId"])
    return None


def resolve_artifact_id(output: Any, *, tool_name: str | None = None) -> str:
    """Return the artifact id for ``output``, minting a random one if it has none.

    A minted id differs on every call, so such results cannot be deduplicated
    across history replays.
    """

    artifact_id = stable_artifact_id(output)
    if artifact_id is not None:
        return artifact_id
    minted = str(uuid.uuid4())
    LOGGER.warning(
        "Tool result from %s has no stable artifact id; generated %s (replays will not deduplicate)",
        tool_name or "unknown tool",
        minted,
    )
    return minted


DedupKey = tuple[str, str]


def dedup_key(message_id: str, artifact_id: str) -> DedupKey:
    """Pair the ids without joining them; message and artifact ids may contain hyphens."""
    return (message_id, artifact_id)


class InvocationDeduplicator:
    """Monotonic set of processed ``(message_id, artifact_id)`` keys for one session."""

    __slots__ = ("_keys",)

    def __init__(self) -> None:
        self._keys: set[DedupKey] = set()

    def should_process(self, message_id: str, artifact_id: str) -> bool:
        return dedup_key(message_id, artifact_id) not in self._keys

    def mark_processed(self, message_id: str, artifact_id: str) -> None:
        self._keys.add(dedup_key(message_id, artifact_id))

    def claim(self, message_id: str, artifact_id: str) -> bool:
        """Mark the key and return True only for its first occurrence."""
        key = dedup_key(message_id, artifact_id)
        if key in self._keys:
            LOGGER.debug("Skipping already processed artifact %s from message %s", artifact_id, message_id)
            return False
        self._keys.add(key)
        return True

    def reset(self) -> None:
        """Forget every key; only for session end, thread switch or teardown."""
        if self._keys:
            LOGGER.debug("Clearing %d dedup keys", len(self._keys))
        self._keys.clear()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[DedupKey]:
        return iter(tuple(self._keys))
