# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Periodic sweep driver.

Runs ``LifecycleEngine.sweep`` once at startup and then on a fixed
period in a daemon thread.  At most one sweep runs at a time.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from bazaar.engine import LifecycleEngine, SweepReport


logger = logging.getLogger(__name__)


class SweepScheduler:
    """Background scheduler for the listing sweep.

    Args:
        engine: Lifecycle engine to sweep.
        interval_seconds: Period between sweeps.
        clock: Time source returning epoch seconds.
    """

    def __init__(
        self,
        engine: LifecycleEngine,
        interval_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._engine = engine
        self._interval = interval_seconds
        self._clock = clock
        self._shutdown_event = threading.Event()
        self._sweep_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self.last_report: SweepReport | None = None

    def start(self) -> None:
        """Start the scheduler thread.  The first sweep runs immediately."""
        if self._thread is not None:
            logger.warning("Sweep scheduler already started, ignoring")
            return
        self._shutdown_event.clear()
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="ListingSweep"
        )
        self._thread.start()
        logger.info(
            "Sweep scheduler started (interval: %.0f min)", self._interval / 60
        )

    def stop(self, timeout: float | None = 10.0) -> None:
        """Signal the scheduler to stop and wait for the thread."""
        self._shutdown_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Sweep thread did not stop within timeout")
            self._thread = None
        logger.info("Sweep scheduler stopped")

    def run_once(self, now: float | None = None) -> SweepReport | None:
        """Run a single sweep unless one is already in progress.

        Catastrophic failures (the store cannot be read) are logged and
        swallowed so the next tick retries.

        Args:
            now: Sweep time.  Defaults to the scheduler clock.

        Returns:
            The sweep report, or None if the sweep was skipped or failed.
        """
        if not self._sweep_lock.acquire(blocking=False):
            logger.warning("Previous sweep still running, skipping tick")
            return None
        try:
            report = self._engine.sweep(self._clock() if now is None else now)
        except Exception as e:
            logger.exception("Sweep failed: %s", e)
            return None
        finally:
            self._sweep_lock.release()
        self.last_report = report
        return report

    def _run(self) -> None:
        while not self._shutdown_event.is_set():
            self.run_once()
            if self._shutdown_event.wait(timeout=self._interval):
                break
