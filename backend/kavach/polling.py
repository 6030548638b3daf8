# kavach/polling.py
# ------------------------------------------------------------
# Fixed-cadence polling controller.
#
# Fires a unit of work every `interval_sec` while `is_enabled()`
# holds. A failing tick is logged, counted and reported through
# on_error; the schedule itself never stops because of it.
#
# Overlap policy: fires are driven by wall clock. By default a fire
# that finds the previous tick still running is skipped
# (skip-if-busy); allow_overlap=True lets ticks pile up instead.
# ------------------------------------------------------------

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

logger = logging.getLogger(__name__)

Tick = Callable[[], Union[Any, Awaitable[Any]]]


class PollingController:
    def __init__(
        self,
        name: str,
        *,
        on_stop: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_success: Optional[Callable[[Any], None]] = None,
        allow_overlap: bool = False,
        tick_timeout_sec: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self.clock = clock
        self._on_stop = on_stop
        self._on_error = on_error
        self._on_success = on_success
        self.allow_overlap = allow_overlap
        self.tick_timeout_sec = tick_timeout_sec

        self._scheduler: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._running = False

        self.interval_sec: Optional[float] = None
        self.ticks = 0
        self.failures = 0
        self.skipped = 0
        self.last_error: Optional[str] = None
        self.last_tick_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def busy(self) -> bool:
        return bool(self._in_flight)

    def start(
        self,
        interval_sec: float,
        is_enabled: Callable[[], bool],
        tick: Tick,
        initial_delay_sec: Optional[float] = None,
    ) -> None:
        """
        Begin periodic execution on the running event loop.

        The first fire happens after initial_delay_sec (default: one
        interval).
        """
        if self._running:
            raise RuntimeError(f"controller {self.name!r} already running")
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")

        self.interval_sec = interval_sec
        self._running = True
        first = interval_sec if initial_delay_sec is None else initial_delay_sec
        self._scheduler = asyncio.get_running_loop().create_task(
            self._schedule(interval_sec, first, is_enabled, tick),
            name=f"poll:{self.name}",
        )
        logger.info("polling %s every %.1fs", self.name, interval_sec)

    def stop(self) -> None:
        """
        Cancel future and in-flight ticks, then release resources.

        Safe to call any number of times; on_stop runs once per start.
        """
        if not self._running:
            return
        self._running = False

        if self._scheduler is not None:
            self._scheduler.cancel()
            self._scheduler = None
        for task in list(self._in_flight):
            task.cancel()
        self._in_flight.clear()

        if self._on_stop is not None:
            self._on_stop()
        logger.info("polling %s stopped", self.name)

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "running": self._running,
            "interval_sec": self.interval_sec,
            "ticks": self.ticks,
            "failures": self.failures,
            "skipped": self.skipped,
            "busy": self.busy,
            "last_error": self.last_error,
            "last_tick_at": self.last_tick_at,
        }

    async def fire_now(self, tick: Tick) -> Any:
        """
        Run one tick outside the schedule, tracked like a scheduled one:
        skipped while another tick is in flight, cancelled by stop().

        Returns None when skipped or cancelled.
        """
        if self._in_flight and not self.allow_overlap:
            self.skipped += 1
            logger.debug("manual tick %s skipped, previous still running", self.name)
            return None

        task = asyncio.get_running_loop().create_task(self.run_once(tick))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        await asyncio.wait({task})
        if task.cancelled():
            return None
        return task.result()

    async def run_once(self, tick: Tick, fired_at: Optional[float] = None) -> Any:
        """
        Execute one tick with the controller's error handling.

        last_tick_at is the scheduled fire time when given, so ticks
        are stamped on the cadence regardless of how late they run.
        Errors are recorded and passed to on_error, not raised.
        """
        self.last_tick_at = self.clock() if fired_at is None else fired_at
        try:
            result = tick()
            if inspect.isawaitable(result):
                if self.tick_timeout_sec is not None:
                    result = await asyncio.wait_for(result, self.tick_timeout_sec)
                else:
                    result = await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failures += 1
            self.last_error = str(exc) or type(exc).__name__
            logger.warning("tick %s failed: %s", self.name, self.last_error)
            if self._on_error is not None:
                self._on_error(exc)
            return None

        self.ticks += 1
        self.last_error = None
        if self._on_success is not None:
            self._on_success(result)
        return result

    async def _schedule(
        self,
        interval_sec: float,
        first_delay: float,
        is_enabled: Callable[[], bool],
        tick: Tick,
    ) -> None:
        loop = asyncio.get_running_loop()
        start_loop = loop.time()
        start_wall = self.clock()
        fires = 0
        while True:
            # offsets from one origin, so fire times do not accumulate drift
            due = first_delay + fires * interval_sec
            await asyncio.sleep(max(0.0, start_loop + due - loop.time()))
            fires += 1

            if not is_enabled():
                continue
            if self._in_flight and not self.allow_overlap:
                self.skipped += 1
                logger.debug("tick %s skipped, previous still running", self.name)
                continue

            task = loop.create_task(self.run_once(tick, fired_at=start_wall + due))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
