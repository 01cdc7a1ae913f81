"""
The interface of the resource API clients, as consumed by the harness.

The harness only needs the basic verbs on the individual objects, plus
an optional watching capability. The objects are refreshed in place
from the server responses, so that the callers keep their references.

The errors are expected to be those of `kubeharness.clients.errors`:
at least `APINotFoundError` for absent objects, `APIAlreadyExistsError`
for duplicate creations, and `APIConflictError` for outdated updates.
"""
import abc
import types
from typing import AsyncIterator, List, Optional, Type

from kubeharness.structs import bodies, references


class ResourceClient(metaclass=abc.ABCMeta):

    watchable: bool = False
    """ Whether `watch` is supported; otherwise, the waits only poll. """

    async def __aenter__(self) -> "ResourceClient":
        return self

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_val: Optional[BaseException],
            exc_tb: Optional[types.TracebackType],
    ) -> None:
        await self.close()

    async def close(self) -> None:
        pass

    @abc.abstractmethod
    async def create(self, obj: bodies.Object) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def get(self, obj: bodies.Object) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def update(self, obj: bodies.Object) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, obj: bodies.Object) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def list(
            self,
            resource: references.Resource,
            namespace: Optional[str] = None,
    ) -> List[bodies.Object]:
        raise NotImplementedError

    def watch(self, obj: bodies.Object) -> AsyncIterator[bodies.RawEvent]:
        """
        Stream the changes of the object until the stream is closed.

        The stream can end at any time; the consumers re-open it if needed.
        """
        raise NotImplementedError(f"{self.__class__.__name__} does not support watching.")
