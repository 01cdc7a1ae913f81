"""
Conflict-safe updates of the objects which are also changed by the controllers.

The controllers update the objects' status and metadata concurrently with
the tests, so a test's update can be based on an outdated resource version
and be rejected by the API with HTTP 409 Conflict. In that case, the whole
attempt is repeated from scratch: the fresh state is fetched, the mutation
is applied to it again, and the update is sent again.

The mutation function must therefore be idempotent and based only on
the object it receives, never on the state captured outside of it.
"""
import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional, Union

from kubeharness import errors
from kubeharness.clients import base
from kubeharness.clients import errors as api_errors
from kubeharness.engines import sleeping, waiting
from kubeharness.helpers import typedefs
from kubeharness.structs import bodies, configuration, identities

logger = logging.getLogger(__name__)

Mutation = Callable[[bodies.Object], Union[None, Awaitable[None]]]


async def update_object(
        client: base.ResourceClient,
        obj: bodies.Object,
        mutate: Mutation,
        options: Optional[waiting.WaitOptions] = None,
        *,
        settings: Optional[configuration.HarnessSettings] = None,
        logger: typedefs.Logger = logger,
) -> int:
    """
    Apply the mutation to the fresh state of the object and store it.

    Only the conflicts are retried, all other errors are escalated as is
    (or wrapped into `OperationError` if they are not the harness's own).
    Returns the number of attempts it took to store the mutated object.
    """
    settings = settings if settings is not None else configuration.HarnessSettings()
    options = options if options is not None else waiting.WaitOptions()
    options = options.with_defaults(poll_interval=settings.updating.poll_interval,
                                    timeout=settings.updating.timeout)
    poll_interval = options.poll_interval if options.poll_interval is not None else 0
    timeout = options.timeout if options.timeout is not None else math.inf
    identity = identities.identify(obj)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    state = waiting.WaitState.POLLING
    attempts = 0
    conflicts = 0
    while True:
        done = False
        cancelled = options.cancel is not None and options.cancel.is_set()
        if not cancelled:
            attempts += 1
            remaining = max(0.0, deadline - loop.time())
            fetch_options = waiting.WaitOptions(poll_interval=poll_interval,
                                                timeout=remaining,
                                                cancel=options.cancel)
            await waiting.wait_until_found(client, obj, fetch_options,
                                           settings=settings, logger=logger)

            result = mutate(obj)
            if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                await result

            with errors.wrapped('update', identity):
                try:
                    finished, _ = await waiting.interruptible(client.update(obj),
                                                              deadline=deadline,
                                                              cancel=options.cancel)
                except api_errors.APIConflictError as e:
                    conflicts += 1
                    logger.debug(f"Conflict while updating {identity} "
                                 f"(attempt {attempts}); retrying: {e}")
                else:
                    done = finished
            cancelled = options.cancel is not None and options.cancel.is_set()

        expired = loop.time() >= deadline
        state = waiting.transition(state, done=done, expired=expired, cancelled=cancelled)
        if state is waiting.WaitState.SUCCEEDED:
            logger.debug(f"Updated {identity} in {attempts} attempt(s).")
            return attempts
        elif state is waiting.WaitState.CANCELLED:
            raise errors.WaitCancelledError(
                f"Cancelled updating {identity} after {attempts} attempt(s).",
                operation='update', identity=identity, last_seen=obj.as_json())
        elif state is waiting.WaitState.TIMED_OUT:
            raise errors.WaitTimeoutError(
                f"Timed out updating {identity} after {timeout}s "
                f"and {conflicts} conflict(s).",
                operation='update', identity=identity, last_seen=obj.as_json())

        delay = min(poll_interval, max(0.0, deadline - loop.time()))
        await sleeping.sleep(delay, options.cancel)
