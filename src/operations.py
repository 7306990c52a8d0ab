"""
Waiting on long-running Compute and Container operations.
"""

import abc
import logging
import re
from typing import Callable, Dict, Optional

from cancellation import RunContext
from errors import (
    ApiError,
    CancelledError,
    DeadlineExceededError,
    OperationFailedError,
)
from models import OperationStatus
from paths import trim_self_link

logger = logging.getLogger(__name__)

STATUS_DONE = "DONE"

OPERATION_ID_REGEX = re.compile(r"operation-\w+-\w+")


class Operation(abc.ABC):
    """A pollable GCE or GKE operation."""

    @abc.abstractmethod
    def is_finished(self, ctx: RunContext) -> bool:
        """
        Check whether the operation has terminated.

        Raises:
            OperationFailedError: the operation terminated with an error
        """

    @abc.abstractmethod
    def __str__(self) -> str:
        """Operation path, relative to its service."""


def is_finished(ctx: RunContext, poll: Callable[[RunContext], OperationStatus]) -> bool:
    """
    Evaluate one poll of an operation.

    Poll errors propagate. A DONE operation that carries an error message is
    finished but failed, and raises OperationFailedError.
    """
    status = poll(ctx)
    if status.status != STATUS_DONE:
        return False
    if status.error:
        raise OperationFailedError(status.error)
    return True


class OperationHandler:
    """Polls operations on a fixed interval until done, failed or out of time."""

    def __init__(self, interval: float, deadline: float):
        """
        Args:
            interval: Seconds between polls
            deadline: Seconds to wait for a single operation
        """
        self.interval = interval
        self.deadline = deadline

    def wait(self, ctx: RunContext, op: Operation) -> None:
        """
        Wait for op to finish.

        Polling errors are not retried here.

        Raises:
            CancelledError: the run was cancelled
            DeadlineExceededError: the operation did not finish within the deadline
            OperationFailedError: the operation finished with an error
        """
        op_ctx = ctx.with_deadline(self.deadline)
        while True:
            err = op_ctx.sleep(self.interval)
            if isinstance(err, CancelledError):
                raise CancelledError(f"cancelled while waiting on operation {op}")
            if isinstance(err, DeadlineExceededError):
                raise DeadlineExceededError(
                    f"operation {op} did not finish within {self.deadline}s"
                )
            logger.debug(f"Polling for {op}")
            try:
                done = op.is_finished(op_ctx)
            except OperationFailedError as e:
                raise OperationFailedError(f"operation {op} failed: {e}") from e
            if done:
                return


def obtain_id(err: BaseException) -> str:
    """Attempt to retrieve an operation name (operation-x-y) from an error."""
    match = OPERATION_ID_REGEX.search(str(err))
    return match.group(0) if match else ""


def in_flight_operation_id(err: BaseException) -> str:
    """
    Return the ID of the operation blocking a mutation, or "".

    Only errors phrased like GKE's "Operation operation-x-y is currently ..."
    count as an in-flight race.
    """
    op = obtain_id(err)
    if not op:
        return ""
    if f"Operation {op} is currently" not in str(err):
        return ""
    return op


def wait_for_operation_in_progress(
    ctx: RunContext,
    func: Callable[[RunContext], None],
    wait: Callable[[RunContext, str], None],
) -> None:
    """
    Run func; if it fails due to an in-flight operation, wait for it and retry once.
    """
    try:
        func(ctx)
        return
    except Exception as err:
        op = in_flight_operation_id(err)
        if not op:
            raise
        cause = err

    logger.info(f"Operation {op} is in progress; wait for operation to complete: {cause}")
    wait(ctx, op)
    logger.info(f"Operation {op} is complete; retrying. Retry due to: {cause}")
    func(ctx)


def container_operation_status(op: Dict) -> OperationStatus:
    """Convert a container.Operation to an OperationStatus."""
    error = op.get("error") or {}
    return OperationStatus(status=op.get("status", ""), error=error.get("message") or None)


def compute_operation_status(op: Dict) -> OperationStatus:
    """Convert a compute.Operation to an OperationStatus."""
    messages = [e.get("message", "") for e in (op.get("error") or {}).get("errors", [])]
    return OperationStatus(
        status=op.get("status", ""), error="\n".join(messages) or None
    )


class ContainerOperation(Operation):
    """GKE operation polled via operations.get."""

    def __init__(self, path: str, client):
        self.path = path
        self.client = client

    def __str__(self) -> str:
        return self.path

    def _poll(self, ctx: RunContext) -> OperationStatus:
        try:
            resp = self.client.get_operation(self.path)
        except ApiError as e:
            raise ApiError(
                f"error retrieving Operation {self.path}: {e}", e.status_code
            ) from e
        status = container_operation_status(resp)
        logger.debug(f"Operation {self.path} status: {status}")
        return status

    def is_finished(self, ctx: RunContext) -> bool:
        return is_finished(ctx, self._poll)


class ComputeOperation(Operation):
    """GCE operation polled via the server-side wait call."""

    def __init__(self, project_id: str, operation: Dict, client):
        self.project_id = project_id
        self.operation = operation
        self.client = client

    def __str__(self) -> str:
        return trim_self_link(self.operation.get("selfLink", "")) or self.operation.get(
            "name", ""
        )

    def _poll(self, ctx: RunContext) -> OperationStatus:
        logger.debug(f"Waiting for {self}")
        resp = self.client.wait_operation(self.project_id, self.operation)
        status = compute_operation_status(resp)
        logger.debug(f"Operation {self} status: {status}")
        return status

    def is_finished(self, ctx: RunContext) -> bool:
        return is_finished(ctx, self._poll)


def container_operation(op: Dict, client, fallback_path: Optional[str] = None) -> ContainerOperation:
    """Wrap a container.Operation response for polling."""
    path = trim_self_link(op.get("selfLink", "")) or fallback_path or op.get("name", "")
    return ContainerOperation(path=path, client=client)
