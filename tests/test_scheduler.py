"""Tests for :class:`chartdeck.workspace.scheduler.DebouncedTask`."""

from __future__ import annotations

import asyncio

import pytest

from chartdeck.workspace.scheduler import DebouncedTask


class _Token:
    def __init__(self) -> None:
        self.value = 0

    def __call__(self) -> int:
        return self.value


@pytest.mark.asyncio
async def test_rapid_schedules_coalesce_to_latest_call() -> None:
    calls: list[str] = []
    task = DebouncedTask(0.02, token=_Token())

    for label in ("first", "second", "third"):
        task.schedule(calls.append, label)
        await asyncio.sleep(0.005)
    await asyncio.sleep(0.05)

    assert calls == ["third"]
    assert task.fired_count == 1
    assert not task.pending


@pytest.mark.asyncio
async def test_stale_token_drops_callback() -> None:
    calls: list[int] = []
    token = _Token()
    task = DebouncedTask(0.01, token=token)

    task.schedule(calls.append, 1)
    token.value += 1
    await asyncio.sleep(0.03)

    assert calls == []
    assert task.dropped_count == 1


@pytest.mark.asyncio
async def test_cancel_prevents_firing() -> None:
    calls: list[int] = []
    task = DebouncedTask(0.01, token=_Token())

    task.schedule(calls.append, 1)
    assert task.pending
    assert task.cancel() is True
    assert task.cancel() is False
    await asyncio.sleep(0.03)

    assert calls == []


@pytest.mark.asyncio
async def test_callback_errors_are_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    def explode() -> None:
        raise RuntimeError("boom")

    task = DebouncedTask(0, token=_Token())

    task.schedule(explode)
    await asyncio.sleep(0.01)

    assert task.fired_count == 1
    assert "Debounced callback" in caplog.text


def test_negative_delay_is_clamped() -> None:
    assert DebouncedTask(-1, token=_Token()).delay == 0.0
