"""
Tracking of the objects created by the tests, and their cleanup.

Every object created via the tracker is remembered by its identity,
in the order of creation. At the end of the test, the objects are deleted
in the reverse order, so that the dependent objects (e.g. the pods of
a deployment, or the objects in a namespace) go away before the objects
they depend on. Every deletion is awaited until the object disappears.

The bookkeeping is protected by a lock, since one tracker can be shared by
several tasks (or threads) of a test. The lock is never held across the API
calls or the waits: only the in-memory structures are guarded by it.
"""
import enum
import logging
import threading
import types
from typing import Dict, List, Optional, Set, Tuple, Type

from kubeharness import errors
from kubeharness.clients import base
from kubeharness.clients import errors as api_errors
from kubeharness.engines import loggers, updating, waiting
from kubeharness.helpers import typedefs
from kubeharness.structs import bodies, conditions, configuration, identities


class Outcome(enum.Enum):
    """ The outcome of a test, as relevant for the cleanup strategies. """
    PASSED = 'passed'
    FAILED = 'failed'
    UNKNOWN = 'unknown'


class Tracker:
    """
    A per-test registry of the created objects, with the cleanup on exit.

    Usage::

        async with Tracker(client, settings=settings, logger=logger) as tracker:
            await tracker.create(obj)
            await tracker.wait_until_ready(obj)

    The objects are refreshed in place by all operations, so the test can
    keep using its own references to them.
    """

    def __init__(
            self,
            client: base.ResourceClient,
            *,
            settings: Optional[configuration.HarnessSettings] = None,
            strategy: Optional[configuration.CleanupStrategy] = None,
            logger: Optional[typedefs.Logger] = None,
    ) -> None:
        super().__init__()
        self.client = client
        self.settings = settings if settings is not None else configuration.HarnessSettings()
        self.strategy = configuration.CleanupStrategy(
            strategy if strategy is not None else self.settings.cleanup.strategy)
        self.logger = logger if logger is not None else loggers.make_logger()
        self._lock = threading.Lock()
        self._objects: Dict[identities.Identity, bodies.Object] = {}
        self._order: List[identities.Identity] = []

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} {self.client!r} tracked={len(self._objects)}>'

    async def __aenter__(self) -> "Tracker":
        return self

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_val: Optional[BaseException],
            exc_tb: Optional[types.TracebackType],
    ) -> None:
        outcome = Outcome.PASSED if exc_val is None else Outcome.FAILED
        await self.cleanup(outcome)

    def _logger_for(self, obj: bodies.Object) -> typedefs.Logger:
        try:
            identity = identities.identify(obj)
        except errors.IdentityError:
            return self.logger
        return loggers.ObjectLogger(self.logger, identity=identity)

    @property
    def tracked(self) -> List[identities.Identity]:
        """ The identities currently tracked, in the order of their creation. """
        with self._lock:
            order = list(self._order)
            objects = set(self._objects)
        result: List[identities.Identity] = []
        seen: Set[identities.Identity] = set()
        for identity in reversed(order):
            if identity in objects and identity not in seen:
                seen.add(identity)
                result.append(identity)
        return list(reversed(result))

    def register_for_cleanup(self, obj: bodies.Object) -> None:
        """
        Remember the object for deletion at cleanup.

        Re-registering the same identity replaces the remembered object
        and moves the identity to the end of the order.
        """
        identity = identities.identify(obj)
        with self._lock:
            self._objects[identity] = obj
            self._order.append(identity)

    def unregister_for_cleanup(self, obj: bodies.Object) -> None:
        """ Forget the object, e.g. if the test deletes it itself. Idempotent. """
        identity = identities.identify(obj)
        with self._lock:
            self._objects.pop(identity, None)
            self._order[:] = [i for i in self._order if i != identity]

    async def create(self, obj: bodies.Object) -> bodies.Object:
        """ Create the object and track it for cleanup. """
        # The name can be assigned by the server (via ``generateName``).
        try:
            identity: Optional[identities.Identity] = identities.identify(obj)
        except errors.IdentityError:
            identity = None
        with errors.wrapped('create', identity):
            await self.client.create(obj)
        self.register_for_cleanup(obj)
        self._logger_for(obj).info("Created.")
        return obj

    async def ensure_created(self, obj: bodies.Object) -> bodies.Object:
        """
        Create the object, or replace the existing one with the desired state.

        The object's body is used as the desired state in both cases.
        The object is tracked for cleanup in both cases, too.
        """
        identity = identities.identify(obj)
        with errors.wrapped('create', identity):
            try:
                await self.client.create(obj)
            except api_errors.APIAlreadyExistsError:
                # It exists now regardless of whether the replacement succeeds.
                self.register_for_cleanup(obj)
                existing = obj.copy()
                await self.client.get(existing)
                desired = obj.copy()
                desired.metadata['resourceVersion'] = existing.resource_version
                await self.client.update(desired)
                obj.refresh(desired.raw)
                self._logger_for(obj).info("Already exists; replaced with the desired state.")
            else:
                self.register_for_cleanup(obj)
                self._logger_for(obj).info("Created.")
        return obj

    async def delete(self, obj: bodies.Object) -> None:
        """ Delete the object and stop tracking it. The absence is an error. """
        identity = identities.identify(obj)
        self.unregister_for_cleanup(obj)
        with errors.wrapped('delete', identity):
            await self.client.delete(obj)
        self._logger_for(obj).info("Deleted.")

    async def delete_and_wait(
            self,
            obj: bodies.Object,
            options: Optional[waiting.WaitOptions] = None,
    ) -> None:
        """
        Delete the object if it exists, and wait until it disappears.

        The object stays tracked if it could not be deleted.
        """
        identity = identities.identify(obj)
        with errors.wrapped('delete', identity):
            try:
                await self.client.delete(obj)
            except api_errors.APINotFoundError:
                self._logger_for(obj).debug("Already absent.")
        await waiting.wait_until_not_found(self.client, obj, options,
                                           settings=self.settings,
                                           logger=self._logger_for(obj))
        self.unregister_for_cleanup(obj)
        self._logger_for(obj).info("Deleted and gone.")

    async def cleanup(self, outcome: Outcome = Outcome.PASSED) -> None:
        """
        Delete all the tracked objects in the reverse order of their creation.

        The failures do not stop the cleanup: all objects are attempted,
        and all the failures are then reported together as `CleanupError`.
        """
        if self.strategy is configuration.CleanupStrategy.NEVER:
            self.logger.info(f"Keeping {len(self.tracked)} object(s): the cleanup is disabled.")
            return
        on_success = self.strategy is configuration.CleanupStrategy.ON_SUCCESS
        if on_success and outcome is not Outcome.PASSED:
            self.logger.warning(f"Keeping {len(self.tracked)} object(s) "
                                f"for investigation: the test has {outcome.value}.")
            return

        with self._lock:
            order = list(self._order)

        options = waiting.WaitOptions(timeout=self.settings.cleanup.timeout)
        failures: List[Tuple[identities.Identity, BaseException]] = []
        seen: Set[identities.Identity] = set()
        for identity in reversed(order):
            if identity in seen:
                continue
            seen.add(identity)
            with self._lock:
                obj = self._objects.get(identity)
            if obj is None:
                continue
            try:
                await self.delete_and_wait(obj, options)
            except Exception as e:
                self.logger.error(f"Failed to clean up {identity}: {e}")
                failures.append((identity, e))

        if failures:
            raise errors.CleanupError(failures)

    async def get(self, obj: bodies.Object) -> bodies.Object:
        """ Fetch the fresh state of the object. The absence is an error. """
        with errors.wrapped('get', identities.identify(obj)):
            await self.client.get(obj)
        return obj

    async def wait_until_found(
            self,
            obj: bodies.Object,
            options: Optional[waiting.WaitOptions] = None,
    ) -> bodies.Object:
        return await waiting.wait_until_found(self.client, obj, options,
                                              settings=self.settings,
                                              logger=self._logger_for(obj))

    async def wait_until_not_found(
            self,
            obj: bodies.Object,
            options: Optional[waiting.WaitOptions] = None,
    ) -> None:
        await waiting.wait_until_not_found(self.client, obj, options,
                                           settings=self.settings,
                                           logger=self._logger_for(obj))

    async def wait_until_condition(
            self,
            obj: bodies.Object,
            predicate: conditions.ConditionPredicate,
            options: Optional[waiting.WaitOptions] = None,
    ) -> bodies.Object:
        return await waiting.wait_until_condition(self.client, obj, predicate, options,
                                                  settings=self.settings,
                                                  logger=self._logger_for(obj))

    async def wait_until_ready(
            self,
            obj: bodies.Object,
            options: Optional[waiting.WaitOptions] = None,
    ) -> bodies.Object:
        return await waiting.wait_until_ready(self.client, obj, options,
                                              settings=self.settings,
                                              logger=self._logger_for(obj))

    async def update_object(
            self,
            obj: bodies.Object,
            mutate: updating.Mutation,
            options: Optional[waiting.WaitOptions] = None,
    ) -> int:
        return await updating.update_object(self.client, obj, mutate, options,
                                            settings=self.settings,
                                            logger=self._logger_for(obj))

    def log_object(self, obj: bodies.Object, *, level: int = logging.DEBUG) -> None:
        loggers.log_object(self._logger_for(obj), obj, level=level)
