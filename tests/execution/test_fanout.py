"""Tests for BoundedFanOut."""

import asyncio

import pytest

from tablespine.execution import BoundedFanOut


async def _echo(value):
    await asyncio.sleep(0)
    return value


async def _failing(message):
    raise RuntimeError(message)


class TestBoundedFanOut:
    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            BoundedFanOut(max_concurrency=0)

    def test_add_chains(self):
        fanout = BoundedFanOut().add("a", _echo, 1).add("b", _echo, 2)
        assert len(fanout) == 2

    @pytest.mark.asyncio
    async def test_results_in_enqueue_order(self):
        fanout = BoundedFanOut()
        for value in range(5):
            fanout.add(f"item-{value}", _echo, value)
        result = await fanout.run_all()
        assert result.results() == [0, 1, 2, 3, 4]
        assert result.succeeded == 5
        assert result.failed == 0

    @pytest.mark.asyncio
    async def test_waits_for_all_items_despite_failures(self):
        finished = []

        async def _slow(value):
            await asyncio.sleep(0.02)
            finished.append(value)
            return value

        fanout = BoundedFanOut()
        fanout.add("bad", _failing, "boom").add("slow", _slow, 1)
        result = await fanout.run_all()
        assert finished == [1]
        assert result.failed == 1
        assert result.results() == [None, 1]
        with pytest.raises(RuntimeError, match="boom"):
            result.raise_first_error()

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self):
        active = 0
        max_active = 0

        async def _track(value):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            active -= 1
            return value

        fanout = BoundedFanOut(max_concurrency=2)
        for value in range(6):
            fanout.add(str(value), _track, value)
        result = await fanout.run_all()
        assert max_active == 2
        assert result.peak_in_flight == 2
        assert result.max_concurrency == 2

    @pytest.mark.asyncio
    async def test_unbounded_runs_everything_at_once(self):
        fanout = BoundedFanOut()
        for value in range(4):
            fanout.add(str(value), asyncio.sleep, 0.01)
        result = await fanout.run_all()
        assert result.peak_in_flight == 4

    @pytest.mark.asyncio
    async def test_to_dict(self):
        result = await BoundedFanOut().add("x", _echo, 1).run_all()
        data = result.to_dict()
        assert data["total"] == 1
        assert data["succeeded"] == 1
        assert data["duration_seconds"] >= 0
