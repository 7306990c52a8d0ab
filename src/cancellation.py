"""
Cooperative cancellation shared by every migrator of a run.
"""

import threading
import time
from typing import Callable, List, Optional

from errors import CancelledError, DeadlineExceededError, MigrationError


class _CancelState:
    """Cancellation flag and wake-up callbacks shared by derived contexts."""

    def __init__(self):
        self.event = threading.Event()
        self.lock = threading.RLock()
        self.callbacks: List[Callable[[], None]] = []


class RunContext:
    """
    Cancellation token threaded through every Complete/Validate/Migrate call.

    A context may carry a deadline (see with_deadline). Cancelling any context
    cancels the whole run, since all contexts derived from the root share the
    same cancellation state.
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        _state: Optional[_CancelState] = None,
    ):
        self._deadline = deadline  # time.monotonic() value
        self._state = _state or _CancelState()

    def cancel(self) -> None:
        """Cancel the run and wake every blocked waiter."""
        state = self._state
        with state.lock:
            if state.event.is_set():
                return
            state.event.set()
            callbacks = list(state.callbacks)
        for callback in callbacks:
            callback()

    def is_cancelled(self) -> bool:
        return self._state.event.is_set()

    def with_deadline(self, seconds: float) -> "RunContext":
        """Derive a context that expires after seconds (or the parent's deadline)."""
        deadline = time.monotonic() + seconds
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return RunContext(deadline=deadline, _state=self._state)

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None if there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def error(self) -> Optional[MigrationError]:
        """Return the reason this context is done, or None if it is still live."""
        if self._state.event.is_set():
            return CancelledError("context cancelled")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DeadlineExceededError("context deadline exceeded")
        return None

    def sleep(self, seconds: float) -> Optional[MigrationError]:
        """
        Sleep for seconds, returning early if the context is done.

        Returns:
            The context error if the context is done after sleeping, else None
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._state.event.wait(seconds)
        return self.error()

    def add_cancel_callback(self, callback: Callable[[], None]) -> None:
        state = self._state
        with state.lock:
            already = state.event.is_set()
            if not already:
                state.callbacks.append(callback)
        if already:
            callback()

    def remove_cancel_callback(self, callback: Callable[[], None]) -> None:
        state = self._state
        with state.lock:
            if callback in state.callbacks:
                state.callbacks.remove(callback)
