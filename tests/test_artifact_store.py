"""Tests for :mod:`chartdeck.workspace.store`."""

from __future__ import annotations

import pytest

from chartdeck.events import ArtifactCreated, ArtifactRemoved, ArtifactsCleared, ArtifactUpdated, EventBus
from chartdeck.memory.models import MIB
from chartdeck.workspace.models import Artifact, ArtifactMetadata
from chartdeck.workspace.store import ArtifactStore

from tests.helpers import sample


def _artifact(artifact_id: str, created_at: float = 0.0, *, chart_type: str = "bar", points: int = 100) -> Artifact:
    return Artifact(
        id=artifact_id,
        type="chart",
        title=f"Chart {artifact_id}",
        data={"data": []},
        metadata=ArtifactMetadata(chart_type=chart_type, data_points=points, tool_name="create_chart"),
        created_at=created_at,
    )


def _collect(bus: EventBus, event_type: type) -> list:
    received: list = []
    bus.subscribe(event_type, received.append)
    return received


class TestCreate:
    def test_admitted_artifact_is_stored(self, store: ArtifactStore, bus: EventBus, telemetry_sink) -> None:
        created = _collect(bus, ArtifactCreated)

        result = store.create(_artifact("a", chart_type="scatter"))

        assert result.ok and not result.updated
        assert result.decision is not None and result.decision.allowed
        assert store.get("a") is result.artifact
        assert result.artifact.metadata.memory_estimate_bytes == 10 * MIB
        assert [event.artifact_id for event in created] == ["a"]
        assert created[0].total == 1
        assert "artifact_created" in telemetry_sink.names()

    def test_hard_cap_is_never_exceeded(self, store: ArtifactStore) -> None:
        for index in range(25):
            assert store.create(_artifact(f"a{index}", float(index))).ok

        result = store.create(_artifact("overflow"))

        assert not result.ok
        assert result.artifact is None
        assert "limit" in (result.reason or "")
        assert len(store) == 25
        assert "overflow" not in store

    def test_existing_id_updates_in_place(self, store: ArtifactStore, bus: EventBus) -> None:
        updates = _collect(bus, ArtifactUpdated)
        store.create(_artifact("a"))
        replacement = _artifact("a", chart_type="line")
        replacement.title = "Replaced"

        result = store.create(replacement)

        assert result.ok and result.updated
        assert len(store) == 1
        assert store.get("a").title == "Replaced"
        assert store.get("a").metadata.chart_type == "line"
        assert len(updates) == 1

    def test_existing_id_skips_admission_when_full(self, store: ArtifactStore) -> None:
        for index in range(25):
            store.create(_artifact(f"a{index}"))

        assert store.create(_artifact("a3")).ok

    def test_critical_pressure_rejects(self, store: ArtifactStore, monitor) -> None:
        monitor.record(sample(95.0, limit_mb=100_000.0))

        result = store.create(_artifact("a"))

        assert not result.ok
        assert result.reason == "Critical memory usage detected"


class TestUpdate:
    def test_unknown_id_is_a_noop(self, store: ArtifactStore) -> None:
        assert store.update("missing", title="x") is False

    def test_unknown_field_raises(self, store: ArtifactStore) -> None:
        store.create(_artifact("a"))

        with pytest.raises(TypeError):
            store.update("a", colour="red")

    def test_metadata_is_merged(self, store: ArtifactStore) -> None:
        store.create(_artifact("a", points=100))
        before = store.get("a").metadata

        assert store.update("a", status="error", metadata={"data_points": 7})

        artifact = store.get("a")
        assert artifact.status == "error"
        assert artifact.metadata.data_points == 7
        assert artifact.metadata.chart_type == before.chart_type
        assert artifact.metadata.memory_estimate_bytes == before.memory_estimate_bytes


class TestRemoval:
    def test_remove_existing(self, store: ArtifactStore, bus: EventBus) -> None:
        removed = _collect(bus, ArtifactRemoved)
        store.create(_artifact("a"))

        assert store.remove("a") is True
        assert store.remove("a") is False
        assert [(event.artifact_id, event.reason, event.remaining) for event in removed] == [("a", "user", 0)]

    def test_remove_oldest_takes_exactly_n_by_creation_time(self, store: ArtifactStore) -> None:
        for artifact_id, created_at in [("c", 3.0), ("a", 1.0), ("d", 4.0), ("b", 2.0)]:
            store.create(_artifact(artifact_id, created_at))

        victims = store.remove_oldest(2)

        assert [artifact.id for artifact in victims] == ["a", "b"]
        assert [artifact.id for artifact in store.list()] == ["c", "d"]

    def test_remove_oldest_beyond_size_empties_store(self, store: ArtifactStore) -> None:
        store.create(_artifact("a"))

        assert len(store.remove_oldest(5)) == 1
        assert len(store) == 0
        assert store.remove_oldest(0) == []

    def test_clear_reports_count(self, store: ArtifactStore, bus: EventBus, monitor) -> None:
        cleared = _collect(bus, ArtifactsCleared)
        store.create(_artifact("a"))
        store.create(_artifact("b"))

        assert store.clear() == 2
        assert len(store) == 0
        assert cleared[0].count == 2
        assert monitor.artifact_count == 0

    def test_removal_frees_admission(self, store: ArtifactStore) -> None:
        for index in range(25):
            store.create(_artifact(f"a{index}", float(index)))
        store.remove_oldest(1)

        assert store.create(_artifact("fresh", 100.0)).ok


def test_occupancy_feeds_monitor_count(store: ArtifactStore, monitor) -> None:
    store.create(_artifact("a"))
    store.create(_artifact("b"))

    assert monitor.artifact_count == 2
    assert store.controller.artifact_count == 2


def test_stats_summarize_store(store: ArtifactStore) -> None:
    store.create(_artifact("a", 1.0, chart_type="bar"))
    store.create(_artifact("b", 2.0, chart_type="bar", points=50))
    store.create(_artifact("c", 3.0, chart_type="pie"))

    stats = store.stats()

    assert stats.total == 3
    assert stats.by_type == {"bar": 2, "pie": 1}
    assert stats.total_data_points == 250
    assert stats.estimated_memory_mb == 15
    assert (stats.oldest_created_at, stats.newest_created_at) == (1.0, 3.0)
