"""Unit tests for the global RateGate and the bounded task pool."""

from __future__ import annotations

import asyncio

import pytest

from src.utils import concurrency
from src.utils.concurrency import RateGate, get_rate_gate, run_bounded
from src.utils.errors import PoolCancelledError


# ======================================================================
# RateGate
# ======================================================================


class TestRateGate:
    @pytest.mark.asyncio
    async def test_spacing_between_calls(self) -> None:
        slept: list[float] = []

        async def _sleep(delay: float) -> None:
            slept.append(delay)

        gate = RateGate(max_concurrent=1, requests_per_minute=60, clock=lambda: 0.0, sleep=_sleep)
        for _ in range(3):
            async with gate.slot("primary"):
                pass

        assert gate.min_interval == 1.0
        assert slept == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_zero_rpm_disables_spacing(self) -> None:
        slept: list[float] = []

        async def _sleep(delay: float) -> None:
            slept.append(delay)

        gate = RateGate(requests_per_minute=0, sleep=_sleep)
        for _ in range(3):
            async with gate.slot("primary"):
                pass
        assert slept == []

    @pytest.mark.asyncio
    async def test_caps_in_flight_calls(self) -> None:
        gate = RateGate(max_concurrent=2, requests_per_minute=0)
        peak = 0

        async def _call() -> None:
            nonlocal peak
            async with gate.slot("primary", "shaving", "snap"):
                peak = max(peak, gate.in_flight)
                await asyncio.sleep(0.01)

        await asyncio.gather(*(_call() for _ in range(6)))

        assert peak == 2
        assert gate.in_flight == 0

    @pytest.mark.asyncio
    async def test_counts_calls_per_key_but_shares_budget(self) -> None:
        gate = RateGate(max_concurrent=1, requests_per_minute=0)
        async with gate.slot("primary", "shaving", "snap_a"):
            pass
        async with gate.slot("primary", "beard", "snap_b"):
            pass
        async with gate.slot("primary", "shaving", "snap_a"):
            pass

        assert gate.calls_for("primary", "shaving", "snap_a") == 2
        assert gate.calls_for("primary", "beard", "snap_b") == 1
        assert gate.calls_for("secondary", "shaving", "snap_a") == 0

    @pytest.mark.asyncio
    async def test_slot_released_on_error(self) -> None:
        gate = RateGate(max_concurrent=1, requests_per_minute=0)
        with pytest.raises(RuntimeError):
            async with gate.slot("primary"):
                raise RuntimeError("boom")
        assert gate.in_flight == 0
        async with gate.slot("primary"):
            assert gate.in_flight == 1

    def test_max_concurrent_clamped(self) -> None:
        assert RateGate(max_concurrent=0).max_concurrent == 1


class TestGetRateGate:
    def test_returns_process_wide_instance(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(concurrency, "_DEFAULT_GATE", None)
        first = get_rate_gate(max_concurrent=3, requests_per_minute=30)
        second = get_rate_gate(max_concurrent=9, requests_per_minute=600)

        assert first is second
        assert second.max_concurrent == 3
        assert second.min_interval == 2.0


# ======================================================================
# run_bounded
# ======================================================================


class TestRunBounded:
    @pytest.mark.asyncio
    async def test_results_in_input_order(self) -> None:
        async def _item(value: int, delay: float) -> int:
            await asyncio.sleep(delay)
            return value

        factories = [
            lambda: _item(0, 0.03),
            lambda: _item(1, 0.0),
            lambda: _item(2, 0.01),
        ]
        assert await run_bounded(factories, concurrency=3) == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_concurrency_limit(self) -> None:
        running = 0
        peak = 0

        async def _item() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await run_bounded([_item for _ in range(8)], concurrency=3)
        assert peak == 3

    @pytest.mark.asyncio
    async def test_empty(self) -> None:
        assert await run_bounded([], concurrency=3) == []

    @pytest.mark.asyncio
    async def test_first_error_stops_new_starts(self) -> None:
        started: list[int] = []

        async def _item(index: int) -> int:
            started.append(index)
            if index == 1:
                raise ValueError("item 1 failed")
            return index

        factories = [lambda i=i: _item(i) for i in range(5)]
        with pytest.raises(ValueError, match="item 1 failed"):
            await run_bounded(factories, concurrency=1)
        assert started == [0, 1]

    @pytest.mark.asyncio
    async def test_in_flight_items_drain_after_error(self) -> None:
        finished: list[str] = []

        async def _fail() -> None:
            raise ValueError("fast failure")

        async def _slow() -> None:
            await asyncio.sleep(0.02)
            finished.append("slow")

        with pytest.raises(ValueError):
            await run_bounded([_slow, _fail], concurrency=2)
        assert finished == ["slow"]

    @pytest.mark.asyncio
    async def test_cancel_before_start(self) -> None:
        cancel = asyncio.Event()
        cancel.set()
        invoked: list[int] = []

        async def _item() -> None:
            invoked.append(1)

        with pytest.raises(PoolCancelledError):
            await run_bounded([_item, _item], concurrency=2, cancel_event=cancel)
        assert invoked == []

    @pytest.mark.asyncio
    async def test_cancel_mid_run(self) -> None:
        cancel = asyncio.Event()
        invoked: list[int] = []

        async def _item(index: int) -> int:
            invoked.append(index)
            if index == 0:
                cancel.set()
            return index

        factories = [lambda i=i: _item(i) for i in range(4)]
        with pytest.raises(PoolCancelledError):
            await run_bounded(factories, concurrency=1, cancel_event=cancel)
        assert invoked == [0]

    @pytest.mark.asyncio
    async def test_cancel_after_every_item_started_returns_results(self) -> None:
        cancel = asyncio.Event()

        async def _item(index: int) -> int:
            if index == 1:
                cancel.set()
            return index

        factories = [lambda i=i: _item(i) for i in range(2)]
        assert await run_bounded(factories, concurrency=1, cancel_event=cancel) == [0, 1]
