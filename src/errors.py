"""
Error types for the legacy network converter.
"""

from typing import Iterable, List, Optional


class MigrationError(Exception):
    """Base class for all conversion failures."""


class ConfigError(MigrationError):
    """Invalid command-line or configuration input."""


class VersionError(MigrationError):
    """Base class for version resolution and validation failures."""


class MalformedVersionError(VersionError):
    pass


class EmptyVersionListError(VersionError):
    pass


class MissingDefaultVersionError(VersionError):
    pass


class VersionNotFoundError(VersionError):
    pass


class NotNewerError(VersionError):
    pass


class NodeNewerThanControlPlaneError(VersionError):
    pass


class SkewExceededError(VersionError):
    pass


class NetworkNotFoundError(MigrationError):
    pass


class OperationFailedError(MigrationError):
    """An operation finished, but its status carries a failure message."""


class CancelledError(MigrationError):
    pass


class DeadlineExceededError(MigrationError):
    pass


class ConfirmationError(MigrationError):
    """A mutation reported success but the resource state did not change."""


class ConversionNotConfirmedError(ConfirmationError):
    pass


class PatchNotConfirmedError(ConfirmationError):
    pass


class PostUpgradeStateMismatchError(ConfirmationError):
    pass


class AggregateError(MigrationError):
    """Collection of errors raised by sibling migrators."""

    def __init__(self, errors: Iterable[BaseException]):
        flat: List[BaseException] = []
        for err in errors:
            if isinstance(err, AggregateError):
                flat.extend(err.errors)
            else:
                flat.append(err)
        self.errors = flat
        super().__init__("; ".join(str(e) for e in flat))

    def contains(self, kind: type) -> bool:
        """Return True if any collected error is an instance of kind."""
        return any(isinstance(e, kind) for e in self.errors)


class ApiError(RuntimeError):
    """A Compute or Container REST call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def wrap(err: BaseException, context: str) -> BaseException:
    """
    Prefix err with identifying context, keeping its kind.

    Cancellation and aggregate errors are returned unchanged. Errors from
    outside this module (e.g. ApiError) become a MigrationError.
    """
    if isinstance(err, (CancelledError, AggregateError)):
        return err
    if isinstance(err, MigrationError):
        wrapped = type(err)(f"{context}: {err}")
    else:
        wrapped = MigrationError(f"{context}: {err}")
    wrapped.__cause__ = err
    return wrapped


def combine(errors: List[BaseException]) -> Optional[BaseException]:
    """
    Combine errors into a single error.

    Returns None for no errors, the error itself for a single error and an
    AggregateError otherwise.
    """
    if not errors:
        return None
    if len(errors) == 1:
        return errors[0]
    return AggregateError(errors)
