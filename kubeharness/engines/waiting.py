"""
Waiting for the objects to reach the expected observed state.

The controllers converge the objects asynchronously, so the tests cannot
check the state right after the changes: they must wait until the state
is reported as expected, but not forever.

All waits are built on the same polling routine (`poll`): it checks
the fresh state of the object immediately, and then after every poll
interval, until the check is satisfied, the deadline is reached,
or the wait is cancelled by the caller's signal. The routine is an explicit
state machine (`WaitState` & `transition`) with the terminal states for all
three endings, so that there is no accidental overlap between them.

If the client can watch the objects, a background watch-stream interrupts
the sleeps whenever the object changes, so that the checks happen sooner.
The watch-streams only give signals: the state is always fetched anew.
"""
import asyncio
import contextlib
import dataclasses
import enum
import logging
import math
from typing import Any, Callable, Coroutine, Optional, Set, Tuple, TypeVar

from kubeharness import errors
from kubeharness.clients import base
from kubeharness.clients import errors as api_errors
from kubeharness.engines import loggers, sleeping
from kubeharness.helpers import typedefs
from kubeharness.structs import bodies, conditions, configuration, identities

logger = logging.getLogger(__name__)

# One attempt of a wait: (is the goal reached?, was the object seen?)
Check = Callable[[], Coroutine[Any, Any, Tuple[bool, bool]]]

T = TypeVar('T')


class WaitState(enum.Enum):
    POLLING = enum.auto()
    SUCCEEDED = enum.auto()
    TIMED_OUT = enum.auto()
    CANCELLED = enum.auto()


def transition(
        state: WaitState,
        *,
        done: bool,
        expired: bool,
        cancelled: bool,
) -> WaitState:
    """
    Decide the next state of a wait after an attempt.

    The terminal states are never left. The cancellation has the priority
    over everything else: the caller is no longer interested in the result.
    The success has the priority over the expiry: if the goal is reached
    in the last attempt precisely at the deadline, it is a success.
    """
    if state is not WaitState.POLLING:
        return state
    elif cancelled:
        return WaitState.CANCELLED
    elif done:
        return WaitState.SUCCEEDED
    elif expired:
        return WaitState.TIMED_OUT
    else:
        return WaitState.POLLING


@dataclasses.dataclass(frozen=True)
class WaitOptions:
    """
    Per-call options of the waits. ``None`` means the settings' defaults.

    Use ``math.inf`` as a timeout to wait until success or cancellation.
    """
    poll_interval: Optional[float] = None
    timeout: Optional[float] = None
    cancel: Optional[asyncio.Event] = None

    def with_defaults(
            self,
            *,
            poll_interval: float,
            timeout: Optional[float],
    ) -> "WaitOptions":
        return dataclasses.replace(
            self,
            poll_interval=self.poll_interval if self.poll_interval is not None else poll_interval,
            timeout=(self.timeout if self.timeout is not None else
                     timeout if timeout is not None else math.inf),
        )


async def interruptible(
        coro: Coroutine[Any, Any, T],
        *,
        deadline: float,
        cancel: Optional[asyncio.Event],
) -> Tuple[bool, Optional[T]]:
    """
    Run one attempt of a wait, but not past the deadline or the cancellation.

    Returns whether the attempt has finished and its result. An unfinished
    attempt is cancelled. The errors of the attempt are escalated as is.
    """
    loop = asyncio.get_running_loop()
    task: typedefs.Task = asyncio.create_task(coro)
    waiters: Set[typedefs.Task] = {task}
    if cancel is not None:
        waiters.add(asyncio.create_task(cancel.wait()))
    timeout = None if math.isinf(deadline) else max(0.0, deadline - loop.time())
    try:
        await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()
        await asyncio.wait(waiters)

    if task.cancelled():
        return False, None
    return True, task.result()


async def poll(
        check: Check,
        *,
        what: str,
        obj: bodies.Object,
        client: base.ResourceClient,
        options: WaitOptions,
        watching: bool,
        logger: typedefs.Logger,
) -> int:
    """
    Check the object repeatedly until the check succeeds; return the attempts.

    The options must be fully defined (see `WaitOptions.with_defaults`).
    The deadline and the cancellation interrupt the checks in flight too.
    """
    identity = identities.identify(obj)
    poll_interval = options.poll_interval if options.poll_interval is not None else 0
    timeout = options.timeout if options.timeout is not None else math.inf
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    state = WaitState.POLLING
    attempts = 0
    last_seen: Optional[str] = None
    wakeup = asyncio.Event()
    watcher: Optional[typedefs.Task] = None
    try:
        while True:
            done = False
            cancelled = options.cancel is not None and options.cancel.is_set()
            if not cancelled:
                wakeup.clear()
                attempts += 1
                finished, outcome = await interruptible(check(), deadline=deadline,
                                                        cancel=options.cancel)
                if finished and outcome is not None:
                    done, seen = outcome
                    last_seen = obj.as_json() if seen else last_seen
                cancelled = options.cancel is not None and options.cancel.is_set()

            expired = loop.time() >= deadline
            state = transition(state, done=done, expired=expired, cancelled=cancelled)
            if state is WaitState.SUCCEEDED:
                logger.debug(f"Waited until {what} for {identity} in {attempts} attempt(s).")
                return attempts
            elif state is WaitState.CANCELLED:
                raise errors.WaitCancelledError(
                    f"Cancelled waiting until {what} for {identity} "
                    f"after {attempts} attempt(s).",
                    operation=f'wait until {what}', identity=identity, last_seen=last_seen)
            elif state is WaitState.TIMED_OUT:
                raise errors.WaitTimeoutError(
                    f"Timed out waiting until {what} for {identity} "
                    f"after {timeout}s and {attempts} attempt(s).",
                    operation=f'wait until {what}', identity=identity, last_seen=last_seen)

            # Only after the first check: so that the watch starts from the version just seen.
            if watcher is None and watching and client.watchable:
                watcher = asyncio.create_task(_watch_for_changes(client, obj, wakeup,
                                                                 logger=logger))

            delay = min(poll_interval, max(0.0, deadline - loop.time()))
            await sleeping.sleep(delay, wakeup, options.cancel)
    finally:
        if watcher is not None:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher


async def _watch_for_changes(
        client: base.ResourceClient,
        obj: bodies.Object,
        wakeup: asyncio.Event,
        *,
        logger: typedefs.Logger,
) -> None:
    """
    Signal the changes of the object via the event, as long as possible.

    Every (re)connection continues from the version of the latest check,
    since the object is refreshed in place by the checks.
    """
    try:
        while True:
            async for _ in client.watch(obj.copy()):
                wakeup.set()
            await asyncio.sleep(1.0)  # the server has closed the stream; reconnect.
    except Exception as e:
        logger.debug(f"Watching {obj!r} has failed, continuing with polling only: {e!r}")


def _resolve(
        options: Optional[WaitOptions],
        settings: Optional[configuration.HarnessSettings],
) -> Tuple[WaitOptions, configuration.HarnessSettings]:
    settings = settings if settings is not None else configuration.HarnessSettings()
    options = options if options is not None else WaitOptions()
    options = options.with_defaults(poll_interval=settings.waiting.poll_interval,
                                    timeout=settings.waiting.timeout)
    return options, settings


async def wait_until_found(
        client: base.ResourceClient,
        obj: bodies.Object,
        options: Optional[WaitOptions] = None,
        *,
        settings: Optional[configuration.HarnessSettings] = None,
        logger: typedefs.Logger = logger,
) -> bodies.Object:
    """
    Wait until the object exists; refresh it with its fresh state.

    All errors except the not-found ones are escalated immediately.
    """
    options, settings = _resolve(options, settings)
    identity = identities.identify(obj)

    async def check() -> Tuple[bool, bool]:
        with errors.wrapped('get', identity):
            try:
                await client.get(obj)
            except api_errors.APINotFoundError:
                return False, False
        return True, True

    await poll(check, what='found', obj=obj, client=client, options=options,
               watching=settings.waiting.watching, logger=logger)
    return obj


async def wait_until_not_found(
        client: base.ResourceClient,
        obj: bodies.Object,
        options: Optional[WaitOptions] = None,
        *,
        settings: Optional[configuration.HarnessSettings] = None,
        logger: typedefs.Logger = logger,
) -> None:
    """
    Wait until the object does not exist anymore.

    All errors except the not-found ones are escalated immediately.
    """
    options, settings = _resolve(options, settings)
    identity = identities.identify(obj)

    async def check() -> Tuple[bool, bool]:
        with errors.wrapped('get', identity):
            try:
                await client.get(obj)
            except api_errors.APINotFoundError:
                return True, False
        return False, True

    await poll(check, what='not found', obj=obj, client=client, options=options,
               watching=settings.waiting.watching, logger=logger)


async def wait_until_condition(
        client: base.ResourceClient,
        obj: bodies.Object,
        predicate: conditions.ConditionPredicate,
        options: Optional[WaitOptions] = None,
        *,
        settings: Optional[configuration.HarnessSettings] = None,
        logger: typedefs.Logger = logger,
) -> bodies.Object:
    """
    Wait until the predicate is satisfied by the fresh state of the object.

    The object is refreshed in place on every attempt, so that the caller
    sees the state that has satisfied the predicate (or the last seen one).

    If the object is absent, or the predicate fails (not just returns false),
    the wait is aborted immediately. On timeout, the error contains the last
    seen state of the object for the post-mortem investigation.
    """
    options, settings = _resolve(options, settings)
    identity = identities.identify(obj)
    what = getattr(predicate, '__name__', repr(predicate))

    async def check() -> Tuple[bool, bool]:
        with errors.wrapped('get', identity):
            await client.get(obj)
        return bool(predicate(obj)), True

    try:
        await poll(check, what=what, obj=obj, client=client, options=options,
                   watching=settings.waiting.watching, logger=logger)
    except errors.WaitError:
        loggers.log_object(loggers.ObjectLogger(logger, identity=identity), obj)
        raise
    return obj


async def wait_until_ready(
        client: base.ResourceClient,
        obj: bodies.Object,
        options: Optional[WaitOptions] = None,
        *,
        settings: Optional[configuration.HarnessSettings] = None,
        logger: typedefs.Logger = logger,
) -> bodies.Object:
    """ Wait until the condition ``Ready`` has the status ``True``. """
    return await wait_until_condition(client, obj, conditions.is_ready, options,
                                      settings=settings, logger=logger)
