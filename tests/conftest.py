import asyncio
import collections
import copy
import itertools
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

from kubeharness.clients import base
from kubeharness.clients.auth import APIContext
from kubeharness.clients.errors import APIAlreadyExistsError, APIConflictError, \
                                       APINotFoundError
from kubeharness.structs.bodies import Object
from kubeharness.structs.configuration import HarnessSettings
from kubeharness.structs.credentials import ConnectionInfo
from kubeharness.structs.identities import identify
from kubeharness.structs.references import Resource


@pytest.fixture()
def namespaced_resource():
    """ The resource used in the tests. Usually mocked, so it does not matter. """
    return Resource('kubeharness.dev', 'v1', 'kopfexamples', kind='KopfExample', namespaced=True)


@pytest.fixture()
def cluster_resource():
    """ The resource used in the tests. Usually mocked, so it does not matter. """
    return Resource('kubeharness.dev', 'v1', 'kopfclusters', kind='KopfCluster', namespaced=False)


@pytest.fixture(params=[True, False], ids=['namespaced', 'cluster'])
def resource(request, namespaced_resource, cluster_resource):
    return namespaced_resource if request.param else cluster_resource


@pytest.fixture()
def namespace(resource):
    return 'ns' if resource.namespaced else None


@pytest.fixture()
def settings():
    settings = HarnessSettings()
    settings.waiting.poll_interval = 1.0
    settings.waiting.timeout = 60
    settings.updating.poll_interval = 1.0
    settings.updating.timeout = 30
    settings.cleanup.timeout = 60
    settings.networking.error_backoffs = []
    return settings


@pytest.fixture()
def logger():
    return logging.getLogger('kubeharness.tests')


@pytest.fixture()
def obj(resource, namespace):
    return Object(resource, {'spec': {'field': 'value'}}, name='name1', namespace=namespace)


#
# An in-memory implementation of the resource API for the engine-level tests.
#

def _status(reason: str, code: int, message: str) -> Dict[str, Any]:
    return {'apiVersion': 'v1', 'kind': 'Status', 'status': 'Failure',
            'code': code, 'reason': reason, 'message': message}


class FakeClient(base.ResourceClient):
    """
    A fake API server in memory: enough to test the tracking, waiting, updating.

    All calls are recorded as ``(verb, identity)`` pairs in ``calls``.
    The errors can be injected per verb into ``errors`` (consumed in order).
    The conflicts can be injected for the updates into ``conflicts``
    (a number of the next updates to be rejected regardless of the versions).
    The deletions are instant, unless ``linger`` is set (in seconds).
    The calls can be slowed down per verb via ``delays`` (in seconds).
    The watches remember the versions they have started from in ``watched_versions``.
    """

    def __init__(self, *, watchable: bool = False) -> None:
        super().__init__()
        self.watchable = watchable
        self.storage: Dict[Tuple[Any, ...], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Any]] = []
        self.errors: Dict[str, List[BaseException]] = collections.defaultdict(list)
        self.conflicts = 0
        self.linger: Optional[float] = None
        self.delays: Dict[str, float] = {}
        self.watched_versions: List[Optional[str]] = []
        self._versions = itertools.count(1)
        self._watchers: List[asyncio.Queue] = []

    @staticmethod
    def _key(obj: Object) -> Tuple[Any, ...]:
        return (obj.resource, obj.namespace, obj.name)

    async def _record(self, verb: str, obj: Object) -> None:
        self.calls.append((verb, identify(obj)))
        if self.delays.get(verb):
            await asyncio.sleep(self.delays[verb])
        if self.errors[verb]:
            raise self.errors[verb].pop(0)

    def _store(self, key: Tuple[Any, ...], raw: Dict[str, Any], event: str) -> Dict[str, Any]:
        raw = copy.deepcopy(raw)
        raw.setdefault('metadata', {})['resourceVersion'] = str(next(self._versions))
        self.storage[key] = raw
        for queue in self._watchers:
            queue.put_nowait({'type': event, 'object': copy.deepcopy(raw)})
        return raw

    def put(self, obj: Object) -> None:
        """ Store the object directly, as if done by a controller. """
        self._store(self._key(obj), dict(obj.raw), 'ADDED')

    def modify(self, obj: Object, fn) -> None:
        """ Modify the stored object directly, as if done by a controller. """
        key = self._key(obj)
        raw = copy.deepcopy(self.storage[key])
        fn(raw)
        self._store(key, raw, 'MODIFIED')

    def set_condition(self, obj: Object, type: str, status: str) -> None:
        def fn(raw):
            conditions = raw.setdefault('status', {}).setdefault('conditions', [])
            conditions[:] = [c for c in conditions if c.get('type') != type]
            conditions.append({'type': type, 'status': status})
        self.modify(obj, fn)

    def remove(self, obj: Object) -> None:
        raw = self.storage.pop(self._key(obj))
        for queue in self._watchers:
            queue.put_nowait({'type': 'DELETED', 'object': raw})

    def verbs(self, verb: str) -> List[Any]:
        return [identity for called_verb, identity in self.calls if called_verb == verb]

    async def create(self, obj: Object) -> None:
        if not obj.name and obj.metadata.get('generateName'):
            obj.metadata['name'] = obj.metadata['generateName'] + 'abc12'
        await self._record('create', obj)
        key = self._key(obj)
        if key in self.storage:
            raise APIAlreadyExistsError(_status('AlreadyExists', 409, 'exists'), status=409)
        obj.refresh(self._store(key, dict(obj.raw), 'ADDED'))

    async def get(self, obj: Object) -> None:
        await self._record('get', obj)
        key = self._key(obj)
        if key not in self.storage:
            raise APINotFoundError(_status('NotFound', 404, 'not found'), status=404)
        obj.refresh(self.storage[key])

    async def update(self, obj: Object) -> None:
        await self._record('update', obj)
        key = self._key(obj)
        if key not in self.storage:
            raise APINotFoundError(_status('NotFound', 404, 'not found'), status=404)
        stored_version = self.storage[key]['metadata'].get('resourceVersion')
        if self.conflicts > 0 or obj.resource_version != stored_version:
            self.conflicts = max(0, self.conflicts - 1)
            raise APIConflictError(_status('Conflict', 409, 'conflict'), status=409)
        obj.refresh(self._store(key, dict(obj.raw), 'MODIFIED'))

    async def delete(self, obj: Object) -> None:
        await self._record('delete', obj)
        key = self._key(obj)
        if key not in self.storage:
            raise APINotFoundError(_status('NotFound', 404, 'not found'), status=404)
        if self.linger is None:
            self.remove(obj)
        else:
            loop = asyncio.get_running_loop()
            loop.call_later(self.linger, lambda: self.storage.pop(key, None))

    async def list(self, resource, namespace=None):
        return [Object(resource, raw) for (res, ns, _), raw in self.storage.items()
                if res == resource and (namespace is None or ns == namespace)]

    async def watch(self, obj: Object):
        self.watched_versions.append(obj.resource_version)
        queue: asyncio.Queue = asyncio.Queue()
        self._watchers.append(queue)
        try:
            while True:
                event = await queue.get()
                if event['object'].get('metadata', {}).get('name') == obj.name:
                    yield event
        finally:
            self._watchers.remove(queue)


@pytest.fixture()
def client():
    return FakeClient()


@pytest.fixture()
def watching_client():
    return FakeClient(watchable=True)


#
# Mocks for the real API client. Used in the client-level tests.
#

@pytest.fixture()
def hostname():
    """ A fake hostname to be used in all aiohttp/aresponses tests. """
    return 'fake-host'


@pytest.fixture()
def info(hostname):
    return ConnectionInfo(server=f'http://{hostname}', default_namespace='default-ns')


@pytest.fixture()
async def context(info):
    context = APIContext(info)
    try:
        yield context
    finally:
        await context.close()


@pytest.fixture()
def resp_mocker(aresponses):
    """
    A factory of server-side callbacks for `aresponses` with mocking/spying.

    The value of the fixture is a function, which return a coroutine mock.
    That coroutine mock should be passed to `aresponses.add` as a response
    callback function. When called, it calls the mock defined by the function's
    arguments (specifically, return_value or side_effects).

    Sample usage::

        def test_me(resp_mocker):
            response = aiohttp.web.json_response({'a': 'b'})
            callback = resp_mocker(return_value=response)
            aresponses.add(hostname, '/path/', 'get', callback)
            do_something()
            assert callback.called
            assert callback.call_count == 1
    """
    def resp_maker(*args, **kwargs):
        actual_response = MagicMock(*args, **kwargs)
        async def resp_mock_effect(request):
            nonlocal actual_response

            # The request's content can be read inside of the handler only. We preserve
            # the data into a conventional field, so that they could be asserted later.
            try:
                request.data = await request.json()
            except json.JSONDecodeError:
                request.data = await request.text()

            # Get a response/error as it was intended (via return_value/side_effect).
            response = actual_response()
            return response

        return AsyncMock(side_effect=resp_mock_effect)
    return resp_maker


#
# Helpers for the logging checks.
#

@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    def assert_logs_fn(patterns, prohibited=[]):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            if remaining_patterns and re.search(remaining_patterns[0], message):
                remaining_patterns[:1] = []
            for pattern in prohibited:
                if re.search(pattern, message):
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
