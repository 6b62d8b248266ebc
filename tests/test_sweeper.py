# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the sweep scheduler."""

import threading
from unittest.mock import MagicMock

from bazaar.engine import SweepReport
from bazaar.store import StoreError
from bazaar.sweeper import SweepScheduler


class TestRunOnce:
    def test_uses_clock(self) -> None:
        engine = MagicMock()
        engine.sweep.return_value = SweepReport(scanned=2)
        scheduler = SweepScheduler(engine, 60, clock=lambda: 1234.0)

        report = scheduler.run_once()

        engine.sweep.assert_called_once_with(1234.0)
        assert report == SweepReport(scanned=2)
        assert scheduler.last_report is report

    def test_explicit_now(self) -> None:
        engine = MagicMock()
        scheduler = SweepScheduler(engine, 60, clock=lambda: 1.0)
        scheduler.run_once(now=99.0)
        engine.sweep.assert_called_once_with(99.0)

    def test_failure_is_swallowed(self) -> None:
        engine = MagicMock()
        engine.sweep.side_effect = StoreError("unreadable")
        scheduler = SweepScheduler(engine, 60)

        assert scheduler.run_once() is None
        assert scheduler.last_report is None

    def test_skips_while_sweep_in_progress(self) -> None:
        entered = threading.Event()
        release = threading.Event()
        engine = MagicMock()

        def slow_sweep(now: float) -> SweepReport:
            entered.set()
            release.wait(timeout=5)
            return SweepReport()

        engine.sweep.side_effect = slow_sweep
        scheduler = SweepScheduler(engine, 60)

        worker = threading.Thread(target=scheduler.run_once)
        worker.start()
        assert entered.wait(timeout=5)

        assert scheduler.run_once() is None
        release.set()
        worker.join(timeout=5)
        assert engine.sweep.call_count == 1


class TestLifecycle:
    def test_start_runs_immediately_and_stops(self) -> None:
        swept = threading.Event()
        engine = MagicMock()
        engine.sweep.side_effect = lambda now: swept.set() or SweepReport()
        scheduler = SweepScheduler(engine, 3600)

        scheduler.start()
        assert swept.wait(timeout=5)
        scheduler.stop(timeout=5)

        assert engine.sweep.call_count == 1

    def test_start_twice_ignored(self) -> None:
        engine = MagicMock()
        engine.sweep.return_value = SweepReport()
        scheduler = SweepScheduler(engine, 3600)
        scheduler.start()
        first = scheduler._thread
        scheduler.start()
        assert scheduler._thread is first
        scheduler.stop(timeout=5)

    def test_stop_without_start(self) -> None:
        SweepScheduler(MagicMock(), 60).stop()
