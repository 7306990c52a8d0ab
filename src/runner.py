"""
Bounded-concurrency execution of a migration phase across sibling migrators.
"""

import abc
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import List, Sequence

from cancellation import RunContext
from errors import CancelledError, combine

logger = logging.getLogger(__name__)


class Phase(Enum):
    COMPLETE = "Complete"
    VALIDATE = "Validate"
    MIGRATE = "Migrate"

    def __str__(self) -> str:
        return self.value


class Migrator(abc.ABC):
    """A resource (network, cluster or node pool) taking part in the conversion."""

    @abc.abstractmethod
    def complete(self, ctx: RunContext) -> None:
        """Discover children and resolve desired state. Read-only."""

    @abc.abstractmethod
    def validate(self, ctx: RunContext) -> None:
        """Check resolved state is a valid upgrade. Read-only."""

    @abc.abstractmethod
    def migrate(self, ctx: RunContext) -> None:
        """Perform the conversion."""

    @abc.abstractmethod
    def resource_path(self) -> str:
        """Path identifying the resource."""


def _dispatch(migrator: Migrator, phase: Phase):
    if phase == Phase.COMPLETE:
        return migrator.complete
    if phase == Phase.VALIDATE:
        return migrator.validate
    if phase == Phase.MIGRATE:
        return migrator.migrate
    raise ValueError(f"Invalid phase {phase}")


def run(
    ctx: RunContext, max_concurrent: int, phase: Phase, migrators: Sequence[Migrator]
) -> None:
    """
    Run one phase on every migrator, at most max_concurrent at a time.

    Admission stops as soon as ctx is cancelled (already running migrators
    finish). Every error is collected; a single error is re-raised as is and
    several are raised as an AggregateError.
    """
    if max_concurrent < 1:
        raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")

    logger.debug(
        f"Running {phase} on {len(migrators)} migrator(s), {max_concurrent} at a time"
    )
    errors: List[BaseException] = []
    slots = threading.Condition()
    in_flight = 0

    def wake():
        with slots:
            slots.notify_all()

    def invoke(method):
        nonlocal in_flight
        try:
            method(ctx)
        finally:
            with slots:
                in_flight -= 1
                slots.notify_all()

    futures = []
    ctx.add_cancel_callback(wake)
    try:
        with ThreadPoolExecutor(
            max_workers=max_concurrent, thread_name_prefix=phase.value.lower()
        ) as executor:
            for m in migrators:
                with slots:
                    while in_flight >= max_concurrent and ctx.error() is None:
                        slots.wait(ctx.remaining())
                    err = ctx.error()
                    if err is not None:
                        errors.append(
                            CancelledError(
                                f"context closed during {type(m).__name__}.{phase} "
                                f"for {m.resource_path()}: {err}"
                            )
                        )
                        break
                    in_flight += 1
                futures.append(executor.submit(invoke, _dispatch(m, phase)))
    finally:
        ctx.remove_cancel_callback(wake)

    for future in futures:
        exc = future.exception()
        if exc is not None:
            errors.append(exc)

    err = combine(errors)
    if err is not None:
        raise err


def complete(ctx: RunContext, max_concurrent: int, migrators: Sequence[Migrator]) -> None:
    run(ctx, max_concurrent, Phase.COMPLETE, migrators)


def validate(ctx: RunContext, max_concurrent: int, migrators: Sequence[Migrator]) -> None:
    run(ctx, max_concurrent, Phase.VALIDATE, migrators)


def migrate(ctx: RunContext, max_concurrent: int, migrators: Sequence[Migrator]) -> None:
    run(ctx, max_concurrent, Phase.MIGRATE, migrators)
