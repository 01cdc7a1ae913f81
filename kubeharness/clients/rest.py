import logging
from typing import AsyncIterator, List, Optional

from kubeharness.clients import auth, base, creating, deleting, fetching, logins, \
                                replacing, watching
from kubeharness.helpers import typedefs
from kubeharness.structs import bodies, configuration, credentials, references

default_logger = logging.getLogger(__name__)


class APIClient(base.ResourceClient):
    """
    A resource client for the real K8s API, via ``aiohttp``.

    The underlying HTTP session is created lazily on the first request,
    so that it belongs to the event loop where the client is actually used
    (e.g. the per-test loop in pytest), not where it was constructed.
    """

    watchable = True

    def __init__(
            self,
            info: credentials.ConnectionInfo,
            *,
            settings: Optional[configuration.HarnessSettings] = None,
            logger: Optional[typedefs.Logger] = None,
    ) -> None:
        super().__init__()
        self.info = info
        self.settings = settings if settings is not None else configuration.HarnessSettings()
        self.logger = logger if logger is not None else default_logger
        self._context: Optional[auth.APIContext] = None

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} {self.info.server}>'

    @classmethod
    def from_env(
            cls,
            *,
            settings: Optional[configuration.HarnessSettings] = None,
            logger: Optional[typedefs.Logger] = None,
    ) -> "APIClient":
        info = logins.login(logger=logger if logger is not None else default_logger)
        return cls(info, settings=settings, logger=logger)

    @property
    def context(self) -> auth.APIContext:
        if self._context is None:
            self._context = auth.APIContext(self.info)
        return self._context

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None

    def _namespace_of(self, obj: bodies.Object) -> references.Namespace:
        if not obj.resource.namespaced:
            return None
        if not obj.namespace:
            obj.metadata['namespace'] = self.info.default_namespace or 'default'
        return references.NamespaceName(obj.metadata['namespace'])

    def _name_of(self, obj: bodies.Object) -> str:
        if not obj.name:
            raise ValueError(f"The object has no name: {obj!r}")
        return obj.name

    async def create(self, obj: bodies.Object) -> None:
        body = await creating.create_obj(
            context=self.context,
            settings=self.settings,
            resource=obj.resource,
            namespace=self._namespace_of(obj),
            body=obj.raw,  # type: ignore
            logger=self.logger,
        )
        obj.refresh(body)

    async def get(self, obj: bodies.Object) -> None:
        body = await fetching.read_obj(
            context=self.context,
            settings=self.settings,
            resource=obj.resource,
            namespace=self._namespace_of(obj),
            name=self._name_of(obj),
            logger=self.logger,
        )
        obj.refresh(body)

    async def update(self, obj: bodies.Object) -> None:
        body = await replacing.replace_obj(
            context=self.context,
            settings=self.settings,
            resource=obj.resource,
            namespace=self._namespace_of(obj),
            name=self._name_of(obj),
            body=obj.raw,  # type: ignore
            logger=self.logger,
        )
        obj.refresh(body)

    async def delete(self, obj: bodies.Object) -> None:
        await deleting.delete_obj(
            context=self.context,
            settings=self.settings,
            resource=obj.resource,
            namespace=self._namespace_of(obj),
            name=self._name_of(obj),
            logger=self.logger,
        )

    async def list(
            self,
            resource: references.Resource,
            namespace: Optional[str] = None,
    ) -> List[bodies.Object]:
        items, _ = await fetching.list_objs(
            context=self.context,
            settings=self.settings,
            resource=resource,
            namespace=references.NamespaceName(namespace) if namespace else None,
            logger=self.logger,
        )
        return [bodies.Object(resource, item) for item in items]

    async def watch(self, obj: bodies.Object) -> AsyncIterator[bodies.RawEvent]:
        async for raw_event in watching.watch_objs(
            context=self.context,
            settings=self.settings,
            resource=obj.resource,
            namespace=self._namespace_of(obj),
            name=self._name_of(obj),
            since=obj.resource_version,
            logger=self.logger,
        ):
            yield raw_event
