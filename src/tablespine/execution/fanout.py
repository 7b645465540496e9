"""Bounded fan-out: concurrent point-reads that all settle before returning.

ARCHITECTURE
────────────
::

    BoundedFanOut
      ├── .add(name, coroutine_fn, *args)  ─ enqueue one read
      ├── .run_all()                       ─ asyncio.gather + optional Semaphore
      └── FanOutResult                     ─ items / results / peak_in_flight

    max_concurrency=None   every read starts at once
    max_concurrency=N      at most N reads in flight

``run_all`` waits for every item to finish, successful or not. Callers use
:meth:`FanOutResult.raise_first_error` to surface the first failure (in
enqueue order) only after all reads have settled.

Example::

    fanout = BoundedFanOut(max_concurrency=8)
    fanout.add("Customer#1", store.get_item, "app", key)
    result = await fanout.run_all()
    result.raise_first_error()
    item = result.items[0].result
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from tablespine.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class FanOutItem:
    """A single unit of fan-out work."""

    name: str
    handler: Callable[..., Awaitable[Any]]
    args: tuple[Any, ...] = ()
    status: str = "pending"
    result: Any = None
    error: BaseException | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


@dataclass
class FanOutResult:
    """Aggregate result of one fan-out."""

    items: list[FanOutItem]
    started_at: datetime
    completed_at: datetime
    max_concurrency: int | None = None
    peak_in_flight: int = 0
    errors: list[BaseException] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for i in self.items if i.status == "completed")

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if i.status == "failed")

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    def results(self) -> list[Any]:
        """Results in enqueue order (``None`` for failed items)."""
        return [i.result for i in self.items]

    def raise_first_error(self) -> None:
        for item in self.items:
            if item.error is not None:
                raise item.error

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "max_concurrency": self.max_concurrency,
            "peak_in_flight": self.peak_in_flight,
            "duration_seconds": self.duration_seconds,
        }


class BoundedFanOut:
    """Run coroutines concurrently, optionally capped by ``max_concurrency``.

    Parameters
    ----------
    max_concurrency : int | None
        Maximum simultaneous coroutines. ``None`` leaves the fan-out unbounded.
    """

    def __init__(self, max_concurrency: int | None = None) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1 or None")
        self._max_concurrency = max_concurrency
        self._items: list[FanOutItem] = []

    @property
    def max_concurrency(self) -> int | None:
        return self._max_concurrency

    def __len__(self) -> int:
        return len(self._items)

    # ── Building ─────────────────────────────────────────────────────

    def add(
        self,
        name: str,
        handler: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> BoundedFanOut:
        """Enqueue ``handler(*args)``. Returns ``self`` for chaining."""
        self._items.append(FanOutItem(name=name, handler=handler, args=args))
        return self

    # ── Execution ────────────────────────────────────────────────────

    async def run_all(self) -> FanOutResult:
        """Run every item and wait until all of them have settled."""
        sem = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None
        started_at = datetime.now(UTC)
        in_flight = 0
        peak = 0

        logger.debug(
            "fanout.start",
            items=len(self._items),
            max_concurrency=self._max_concurrency,
        )

        async def _execute(item: FanOutItem) -> None:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            item.started_at = datetime.now(UTC)
            item.status = "running"
            try:
                item.result = await item.handler(*item.args)
                item.status = "completed"
            except Exception as e:
                item.status = "failed"
                item.error = e
                logger.warning("fanout.item_failed", name=item.name, error=str(e))
            finally:
                in_flight -= 1
                item.completed_at = datetime.now(UTC)

        async def _run_one(item: FanOutItem) -> None:
            if sem is None:
                await _execute(item)
                return
            async with sem:
                await _execute(item)

        await asyncio.gather(*(_run_one(item) for item in self._items))

        result = FanOutResult(
            items=list(self._items),
            started_at=started_at,
            completed_at=datetime.now(UTC),
            max_concurrency=self._max_concurrency,
            peak_in_flight=peak,
            errors=[i.error for i in self._items if i.error is not None],
        )

        logger.debug("fanout.complete", **result.to_dict())
        return result


__all__ = ["FanOutItem", "FanOutResult", "BoundedFanOut"]
