"""Runs every stream poller concurrently, then sleeps, forever."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


class Poller(Protocol):
    async def poll(self) -> Any: ...


@dataclass
class CycleReport:
    cycle_id: int
    duration_ms: int
    results: List[Any] = field(default_factory=list)
    failures: int = 0


class PollScheduler:
    """
    One cycle fires every poller at once and waits for all of them to settle.
    The sleep only starts after the slowest poller is done, so cycles never
    overlap and a slow API naturally slows the loop down.
    """

    def __init__(self, pollers: Sequence[Poller], interval_seconds: float):
        self.pollers = list(pollers)
        self.interval_seconds = interval_seconds
        self.cycle_id = 0
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return not self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    async def run_cycle(self) -> CycleReport:
        self.cycle_id += 1
        started = time.monotonic()
        results = await asyncio.gather(*(p.poll() for p in self.pollers), return_exceptions=True)

        failures = 0
        for poller, result in zip(self.pollers, results):
            # Pollers catch their own errors; anything landing here is a bug
            if isinstance(result, BaseException):
                failures += 1
                logger.error(
                    f"💥 Poller {type(poller).__name__} escaped its error boundary: {result!r}",
                    exc_info=result,
                )

        report = CycleReport(
            cycle_id=self.cycle_id,
            duration_ms=int((time.monotonic() - started) * 1000),
            results=list(results),
            failures=failures,
        )
        logger.debug(f"Cycle {report.cycle_id} finished in {report.duration_ms}ms")
        return report

    async def run_forever(self, max_cycles: Optional[int] = None) -> None:
        logger.info(f"🚀 Polling {len(self.pollers)} streams every {self.interval_seconds} seconds")
        while self.running:
            await self.run_cycle()
            if max_cycles is not None and self.cycle_id >= max_cycles:
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info(f"👋 Poll loop stopped after {self.cycle_id} cycles")
