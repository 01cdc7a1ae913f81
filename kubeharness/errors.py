"""
The harness's own errors, as seen by the tests.

The errors of the K8s API itself are in `kubeharness.clients.errors`.
When they are not tolerated by the harness, they are wrapped into
`OperationError` with the operation and the object's identity,
and the original API error is chained as the cause.

Timeouts and cancellations of the waits are two distinct kinds:
a timeout means that the deadline was reached with no success,
a cancellation means that the test asked to stop waiting.
"""
import contextlib
from typing import TYPE_CHECKING, Iterator, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from kubeharness.structs.identities import Identity


class HarnessError(Exception):
    """ The base class for all errors raised by the harness itself. """


class IdentityError(HarnessError, ValueError):
    """ Raised when an object cannot be identified (no kind or no name). """


class ConditionValidationError(HarnessError, ValueError):
    """ Raised when a status condition cannot be unambiguously queried. """


class ConditionMissingError(ConditionValidationError):
    """ Raised when there is no condition of the requested type. """


class ConditionAmbiguousError(ConditionValidationError):
    """ Raised when there are several conditions of the requested type. """


class OperationError(HarnessError):
    """
    An API operation on an object failed for an unexpected reason.

    The original error is available as ``__cause__``.
    """

    def __init__(
            self,
            operation: str,
            identity: Optional["Identity"],
            message: Optional[str] = None,
    ) -> None:
        what = identity if identity is not None else 'an unidentified object'
        super().__init__(f"Failed to {operation} {what}" + (f": {message}" if message else ""))
        self.operation = operation
        self.identity = identity


class WaitError(HarnessError):
    """ The base class for the waits which ended without reaching the goal. """

    def __init__(
            self,
            message: str,
            *,
            operation: str,
            identity: Optional["Identity"],
            last_seen: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.identity = identity
        self.last_seen = last_seen

    def __str__(self) -> str:
        message = super().__str__()
        if self.last_seen is not None:
            return f"{message}\nLast seen:\n{self.last_seen}"
        else:
            return message


class WaitTimeoutError(WaitError, TimeoutError):
    """ Raised when the deadline is reached before the goal of the wait. """


class WaitCancelledError(WaitError):
    """ Raised when the wait is aborted by the cancellation signal. """


class CleanupError(HarnessError):
    """
    Raised after the cleanup if any of the tracked objects was not cleaned up.

    The cleanup goes on after individual failures, so all the failures
    are accumulated and reported together, in the order of the walk.
    """

    def __init__(
            self,
            failures: Sequence[Tuple["Identity", BaseException]],
    ) -> None:
        lines = [f"  {identity}: {exc}" for identity, exc in failures]
        super().__init__(f"Cleanup failed for {len(failures)} object(s):\n" + "\n".join(lines))
        self.failures = list(failures)


@contextlib.contextmanager
def wrapped(operation: str, identity: Optional["Identity"]) -> Iterator[None]:
    """
    Convert the unexpected errors of an operation to `OperationError`.

    The harness's own errors are not wrapped: they are already descriptive.
    """
    try:
        yield
    except HarnessError:
        raise
    except Exception as e:
        raise OperationError(operation, identity, str(e)) from e
