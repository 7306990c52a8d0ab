"""
Unit tests for the bounded-concurrency phase runner.
"""

import threading
import time
import unittest

import runner
from cancellation import RunContext
from errors import AggregateError, CancelledError, MigrationError
from runner import Migrator, Phase


class RecordingMigrator(Migrator):
    """Migrator that records calls and tracks concurrency."""

    def __init__(self, name, tracker=None, delay=0.0, error=None):
        self.name = name
        self.tracker = tracker
        self.delay = delay
        self.error = error
        self.calls = []

    def resource_path(self):
        return f"projects/p/things/{self.name}"

    def _call(self, phase, ctx):
        self.calls.append(phase)
        if self.tracker is not None:
            self.tracker.enter()
        try:
            time.sleep(self.delay)
        finally:
            if self.tracker is not None:
                self.tracker.exit()
        if self.error is not None:
            raise self.error

    def complete(self, ctx):
        self._call("complete", ctx)

    def validate(self, ctx):
        self._call("validate", ctx)

    def migrate(self, ctx):
        self._call("migrate", ctx)


class ConcurrencyTracker:
    """Tracks the peak number of concurrently running calls."""

    def __init__(self):
        self.cond = threading.Condition()
        self.current = 0
        self.peak = 0

    def enter(self):
        with self.cond:
            self.current += 1
            self.peak = max(self.peak, self.current)
            self.cond.notify_all()

    def exit(self):
        with self.cond:
            self.current -= 1

    def wait_for_running(self, n, timeout):
        with self.cond:
            return self.cond.wait_for(lambda: self.current >= n, timeout)


class BlockingMigrator(RecordingMigrator):
    """Migrator whose migrate blocks until release is set."""

    def __init__(self, name, tracker, release):
        super().__init__(name, tracker)
        self.release = release

    def migrate(self, ctx):
        self.calls.append("migrate")
        self.tracker.enter()
        try:
            self.release.wait(5)
        finally:
            self.tracker.exit()


class TestRunner(unittest.TestCase):
    """Test phase dispatch, concurrency bounds and error aggregation."""

    def test_dispatches_phase(self):
        """Test each phase calls the matching migrator method."""
        m = RecordingMigrator("a")
        ctx = RunContext()
        runner.complete(ctx, 1, [m])
        runner.validate(ctx, 1, [m])
        runner.migrate(ctx, 1, [m])
        self.assertEqual(m.calls, ["complete", "validate", "migrate"])

    def test_empty(self):
        """Test running over no migrators is a no-op."""
        runner.run(RunContext(), 3, Phase.MIGRATE, [])

    def test_invalid_concurrency(self):
        """Test max_concurrent must be positive."""
        with self.assertRaises(ValueError):
            runner.run(RunContext(), 0, Phase.COMPLETE, [RecordingMigrator("a")])

    def test_concurrency_bound(self):
        """Test exactly max_concurrent migrators run while the rest wait for a slot."""
        tracker = ConcurrencyTracker()
        release = threading.Event()
        migrators = [BlockingMigrator(str(i), tracker, release) for i in range(5)]
        worker = threading.Thread(target=runner.migrate, args=(RunContext(), 3, migrators))
        worker.start()
        try:
            self.assertTrue(tracker.wait_for_running(3, timeout=5))
            started = [m for m in migrators if m.calls]
            self.assertEqual(len(started), 3)
        finally:
            release.set()
            worker.join(5)

        self.assertFalse(worker.is_alive())
        self.assertEqual(tracker.peak, 3)
        for m in migrators:
            self.assertEqual(m.calls, ["migrate"])

    def test_sequential(self):
        """Test max_concurrent=1 runs one migrator at a time."""
        tracker = ConcurrencyTracker()
        migrators = [RecordingMigrator(str(i), tracker, delay=0.005) for i in range(4)]
        runner.migrate(RunContext(), 1, migrators)
        self.assertEqual(tracker.peak, 1)

    def test_single_error_reraised(self):
        """Test a single failure is raised as is."""
        err = MigrationError("boom")
        migrators = [RecordingMigrator("a"), RecordingMigrator("b", error=err)]
        with self.assertRaises(MigrationError) as cm:
            runner.validate(RunContext(), 2, migrators)
        self.assertIs(cm.exception, err)

    def test_errors_aggregated(self):
        """Test sibling failures are all reported and siblings still run."""
        migrators = [
            RecordingMigrator("a", error=MigrationError("first")),
            RecordingMigrator("b"),
            RecordingMigrator("c", error=MigrationError("second")),
        ]
        with self.assertRaises(AggregateError) as cm:
            runner.migrate(RunContext(), 1, migrators)

        self.assertEqual(len(cm.exception.errors), 2)
        self.assertIn("first", str(cm.exception))
        self.assertIn("second", str(cm.exception))
        for m in migrators:
            self.assertEqual(m.calls, ["migrate"])

    def test_cancelled_before_start(self):
        """Test a cancelled context starts no migrators."""
        ctx = RunContext()
        ctx.cancel()
        migrators = [RecordingMigrator("a"), RecordingMigrator("b")]
        with self.assertRaises(CancelledError) as cm:
            runner.migrate(ctx, 2, migrators)

        self.assertIn("RecordingMigrator.Migrate", str(cm.exception))
        self.assertIn("projects/p/things/a", str(cm.exception))
        for m in migrators:
            self.assertEqual(m.calls, [])

    def test_cancel_stops_admission(self):
        """Test cancelling while blocked on a slot stops admitting siblings."""
        ctx = RunContext()

        class CancellingMigrator(RecordingMigrator):
            def migrate(self, ctx):
                super().migrate(ctx)
                ctx.cancel()

        first = CancellingMigrator("a", delay=0.02)
        rest = [RecordingMigrator(str(i)) for i in range(3)]
        with self.assertRaises(CancelledError):
            runner.migrate(ctx, 1, [first] + rest)

        self.assertEqual(first.calls, ["migrate"])
        for m in rest:
            self.assertEqual(m.calls, [])


if __name__ == "__main__":
    unittest.main()
