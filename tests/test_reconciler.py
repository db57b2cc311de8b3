"""Tests for :mod:`chartdeck.stream.reconciler`."""

from __future__ import annotations

from types import SimpleNamespace

from chartdeck.stream import (
    ReconciledMessage,
    StepBoundaryPart,
    StreamReconciler,
    TextPart,
    ToolInvocationPart,
    build_response_message,
    ensure_renderable_parts,
)
from chartdeck.stream.models import StreamStep


def _call(call_id: str, name: str = "create_bar_chart", **kwargs):
    return {"toolCallId": call_id, "toolName": name, "input": kwargs}


def _result(call_id: str, output, name: str = "create_bar_chart", **extra):
    return {"toolCallId": call_id, "toolName": name, "output": output, **extra}


class TestReconcileOrdering:
    """Calls first, then results, then text, per step in input order."""

    def test_calls_results_and_text_keep_step_order(self) -> None:
        steps = [
            {"toolCalls": [_call("a")], "toolResults": [_result("a", {"ok": 1})], "text": "first"},
            {"toolCalls": [_call("b", "createTable")], "text": "second"},
        ]

        parts = StreamReconciler().reconcile(steps)

        assert [type(part) for part in parts] == [ToolInvocationPart, TextPart, ToolInvocationPart, TextPart]
        first, text_a, second, text_b = parts
        assert first.tool_call_id == "a" and first.is_resolved and first.output == {"ok": 1}
        assert text_a.text == "first"
        assert second.tool_name == "createTable" and second.state == "call"
        assert text_b.text == "second"

    def test_result_in_later_step_resolves_earlier_call(self) -> None:
        steps = [
            {"toolCalls": [_call("a", q="x")]},
            {"toolResults": [_result("a", {"success": True})]},
        ]

        parts = StreamReconciler().reconcile(steps)

        assert len(parts) == 1
        assert parts[0].is_resolved
        assert parts[0].input == {"q": "x"}

    def test_whitespace_text_is_dropped(self) -> None:
        parts = StreamReconciler().reconcile([{"text": "   \n"}])

        assert parts == []

    def test_snake_case_and_attribute_steps(self) -> None:
        step = SimpleNamespace(
            text="hi",
            tool_calls=[SimpleNamespace(tool_call_id="c", tool_name="create_pie_chart", args={"n": 2})],
            tool_results=None,
        )

        parts = StreamReconciler().reconcile([step])

        assert parts[0].tool_name == "create_pie_chart"
        assert parts[0].input == {"n": 2}
        assert parts[1] == TextPart(text="hi")

    def test_malformed_steps_are_skipped(self) -> None:
        parts = StreamReconciler().reconcile([None, 42, "text", {"text": "ok"}])

        assert parts == [TextPart(text="ok")]

    def test_non_sequence_steps_yield_nothing(self) -> None:
        assert StreamReconciler().reconcile({"text": "nope"}) == []
        assert StreamReconciler().reconcile(None) == []


class TestToolResultMatching:
    """Results bind by call id; unmatched results are orphans."""

    def test_orphan_result_is_appended_resolved(self) -> None:
        parts = StreamReconciler().reconcile([{"toolResults": [_result("ghost", {"v": 1}, input={"a": 1})]}])

        assert len(parts) == 1
        orphan = parts[0]
        assert orphan.tool_call_id == "ghost"
        assert orphan.state == "output-available"
        assert orphan.input == {"a": 1}

    def test_duplicate_ids_resolve_first_unresolved_call(self) -> None:
        steps = [
            {"toolCalls": [_call("dup"), _call("dup")]},
            {"toolResults": [_result("dup", "one")]},
            {"toolResults": [_result("dup", "two")]},
        ]

        parts = StreamReconciler().reconcile(steps)

        assert [part.output for part in parts] == ["one", "two"]

    def test_result_does_not_override_existing_input(self) -> None:
        steps = [{"toolCalls": [_call("a", q="orig")], "toolResults": [_result("a", 1, input={"q": "other"})]}]

        parts = StreamReconciler().reconcile(steps)

        assert parts[0].input == {"q": "orig"}

    def test_result_backfills_missing_input(self) -> None:
        steps = [
            {"toolCalls": [{"toolCallId": "a", "toolName": "create_chart"}]},
            {"toolResults": [_result("a", 1, name="create_chart", input={"q": "late"})]},
        ]

        parts = StreamReconciler().reconcile(steps)

        assert parts[0].input == {"q": "late"}

    def test_result_alias_field_is_read(self) -> None:
        parts = StreamReconciler().reconcile(
            [{"toolCalls": [_call("a")], "toolResults": [{"toolCallId": "a", "result": {"legacy": True}}]}]
        )

        assert parts[0].output == {"legacy": True}


class TestFallbackText:
    def test_fallback_used_when_no_text_parts(self) -> None:
        parts = StreamReconciler().reconcile([{"toolCalls": [_call("a")]}], fallback_text="Here you go")

        assert parts[-1] == TextPart(text="Here you go")

    def test_fallback_ignored_when_step_text_exists(self) -> None:
        parts = StreamReconciler().reconcile([{"text": "step text"}], fallback_text="cumulative")

        assert parts == [TextPart(text="step text")]

    def test_blank_fallback_is_ignored(self) -> None:
        assert StreamReconciler().reconcile([], fallback_text="  ") == []


class TestBuildMessage:
    def test_uses_result_id_and_text(self) -> None:
        message = build_response_message({"id": "msg-1", "text": "summary", "steps": []}, "fallback")

        assert message.id == "msg-1"
        assert message.role == "assistant"
        assert message.parts == [TextPart(text="summary")]

    def test_falls_back_to_supplied_id(self) -> None:
        message = build_response_message(SimpleNamespace(id=None, text=None, steps=None), "generated-7")

        assert message.id == "generated-7"
        assert message.parts == []

    def test_payload_shape(self) -> None:
        message = build_response_message(
            {"id": "m", "steps": [{"toolCalls": [_call("a")], "toolResults": [_result("a", {"ok": True})]}]},
            "x",
        )

        payload = message.as_payload()

        assert payload == {
            "id": "m",
            "role": "assistant",
            "parts": [
                {
                    "type": "tool-create_bar_chart",
                    "toolCallId": "a",
                    "input": {},
                    "state": "output-available",
                    "output": {"ok": True},
                }
            ],
        }

    def test_payload_roundtrip_restores_parts(self) -> None:
        original = ReconciledMessage(
            id="m",
            parts=[
                StepBoundaryPart(),
                ToolInvocationPart("createTable", "t1", {"a": 1}, "output-available", {"success": True}),
                TextPart("done"),
            ],
        )

        restored = ReconciledMessage.from_payload(original.as_payload())

        assert restored == original

    def test_from_payload_skips_unknown_parts(self) -> None:
        restored = ReconciledMessage.from_payload(
            {"id": "m", "role": "assistant", "parts": [{"type": "reasoning", "text": "..."}, "junk"]}
        )

        assert restored.parts == []


class TestEnsureRenderableParts:
    def test_empty_message_gets_fallback(self) -> None:
        message = ReconciledMessage(id="m", parts=[])

        result, applied = ensure_renderable_parts(message, "Sorry, nothing to show")

        assert applied is True
        assert result.parts == [TextPart(text="Sorry, nothing to show")]
        assert result.id == "m"

    def test_step_boundaries_do_not_count_as_content(self) -> None:
        message = ReconciledMessage(id="m", parts=[StepBoundaryPart(), StepBoundaryPart()])

        _, applied = ensure_renderable_parts(message, "fallback")

        assert applied is True

    def test_message_with_content_is_untouched(self) -> None:
        message = ReconciledMessage(id="m", parts=[TextPart(text="hi")])

        result, applied = ensure_renderable_parts(message, "fallback")

        assert applied is False
        assert result is message


def test_stream_step_coerce_rejects_scalars() -> None:
    assert StreamStep.coerce("text") is None
    assert StreamStep.coerce(None) is None
    assert StreamStep.coerce({}) == StreamStep()
