"""Tests for completion detection and the invocation deduplicator."""

from __future__ import annotations

import logging

import pytest

from chartdeck.workspace.dedup import (
    InvocationDeduplicator,
    dedup_key,
    is_completed_result,
    resolve_artifact_id,
    stable_artifact_id,
)


@pytest.mark.parametrize(
    "output",
    [
        {"shouldCreateArtifact": True, "status": "success"},
        {"success": True},
        {"isError": False, "structuredContent": {"result": [{"success": True}]}},
    ],
    ids=["should-create", "flat-success", "structured"],
)
def test_all_completion_envelopes_are_recognized(output) -> None:
    assert is_completed_result(output) is True


@pytest.mark.parametrize(
    "output",
    [
        None,
        "success",
        ["success"],
        {},
        {"shouldCreateArtifact": True, "status": "pending"},
        {"success": "true"},
        {"structuredContent": {"result": [{"success": True}]}},
        {"isError": True, "structuredContent": {"result": [{"success": True}]}},
        {"isError": False, "structuredContent": {"result": []}},
        {"isError": False, "structuredContent": {"result": ["x"]}},
    ],
)
def test_incomplete_or_malformed_outputs_are_rejected(output) -> None:
    assert is_completed_result(output) is False


class TestArtifactIdResolution:
    """chartId, then artifactId, then the structured result's artifactId."""

    def test_chart_id_wins(self) -> None:
        output = {
            "chartId": "c",
            "artifactId": "a",
            "structuredContent": {"result": [{"artifactId": "n"}]},
        }
        assert stable_artifact_id(output) == "c"

    def test_artifact_id_then_nested(self) -> None:
        assert stable_artifact_id({"artifactId": "a"}) == "a"
        assert stable_artifact_id({"structuredContent": {"result": [{"artifactId": "n"}]}}) == "n"

    def test_empty_ids_are_skipped(self) -> None:
        assert stable_artifact_id({"chartId": "", "artifactId": "a"}) == "a"

    def test_missing_id_mints_random_uuid_with_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="chartdeck.workspace.dedup"):
            first = resolve_artifact_id({"success": True}, tool_name="create_chart")
            second = resolve_artifact_id({"success": True}, tool_name="create_chart")

        assert first != second
        assert len(first) == 36
        assert "create_chart" in caplog.text

    def test_resolve_prefers_stable_id(self) -> None:
        assert resolve_artifact_id({"chartId": 17}) == "17"


class TestInvocationDeduplicator:
    def test_key_pairs_message_and_artifact(self) -> None:
        assert dedup_key("msg", "art") == ("msg", "art")

    def test_hyphenated_ids_do_not_collide(self) -> None:
        dedup = InvocationDeduplicator()

        assert dedup.claim("m-1", "x") is True
        assert dedup.claim("m", "1-x") is True
        assert len(dedup) == 2

    def test_claim_is_first_occurrence_only(self) -> None:
        dedup = InvocationDeduplicator()

        assert dedup.claim("m1", "a1") is True
        assert dedup.claim("m1", "a1") is False
        assert dedup.claim("m2", "a1") is True
        assert len(dedup) == 2
        assert ("m1", "a1") in dedup

    def test_should_process_and_mark(self) -> None:
        dedup = InvocationDeduplicator()

        assert dedup.should_process("m", "a")
        dedup.mark_processed("m", "a")
        assert not dedup.should_process("m", "a")

    def test_reset_forgets_everything(self) -> None:
        dedup = InvocationDeduplicator()
        dedup.claim("m", "a")

        dedup.reset()

        assert len(dedup) == 0
        assert dedup.claim("m", "a") is True

    def test_iteration_is_a_snapshot(self) -> None:
        dedup = InvocationDeduplicator()
        dedup.claim("m", "a")

        for _ in dedup:
            dedup.claim("m", "b")

        assert sorted(dedup) == [("m", "a"), ("m", "b")]
