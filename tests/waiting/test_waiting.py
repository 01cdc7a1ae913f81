import asyncio
import json
import math

import pytest

from kubeharness.clients.errors import APIForbiddenError, APINotFoundError
from kubeharness.engines.waiting import WaitOptions, wait_until_condition, wait_until_found, \
                                        wait_until_not_found, wait_until_ready
from kubeharness.errors import ConditionAmbiguousError, OperationError, WaitCancelledError, \
                               WaitTimeoutError
from kubeharness.structs.conditions import condition_is

pytestmark = pytest.mark.looptime


async def test_found_immediately(client, obj, settings, looptime):
    client.put(obj)
    result = await wait_until_found(client, obj, settings=settings)
    assert result is obj
    assert obj.resource_version is not None
    assert looptime == 0


async def test_found_eventually(client, obj, settings, looptime):
    asyncio.get_running_loop().call_later(2.5, client.put, obj)
    await wait_until_found(client, obj, settings=settings)
    assert looptime == 3


async def test_found_never(client, obj, settings, looptime):
    options = WaitOptions(timeout=10)
    with pytest.raises(WaitTimeoutError) as err:
        await wait_until_found(client, obj, options, settings=settings)
    assert looptime == 10
    assert err.value.last_seen is None
    assert err.value.operation == 'wait until found'
    assert "Last seen" not in str(err.value)
    assert len(client.verbs('get')) == 11


async def test_found_with_unexpected_errors(client, obj, settings, looptime):
    error = APIForbiddenError(None, status=403)
    client.errors['get'].append(error)
    with pytest.raises(OperationError) as err:
        await wait_until_found(client, obj, settings=settings)
    assert err.value.__cause__ is error
    assert looptime == 0


async def test_not_found_immediately(client, obj, settings, looptime):
    await wait_until_not_found(client, obj, settings=settings)
    assert looptime == 0


async def test_not_found_eventually(client, obj, settings, looptime):
    client.put(obj)
    client.linger = 4.5
    await client.delete(obj)
    await wait_until_not_found(client, obj, settings=settings)
    assert looptime == 5


async def test_not_found_never(client, obj, settings, looptime):
    client.put(obj)
    options = WaitOptions(timeout=5, poll_interval=2)
    with pytest.raises(WaitTimeoutError) as err:
        await wait_until_not_found(client, obj, options, settings=settings)
    assert looptime == 5
    assert json.loads(err.value.last_seen)['metadata']['name'] == obj.name


async def test_condition_satisfied_immediately(client, obj, settings, looptime):
    client.put(obj)
    client.set_condition(obj, 'Ready', 'True')
    result = await wait_until_ready(client, obj, settings=settings)
    assert result is obj
    assert obj.conditions == [{'type': 'Ready', 'status': 'True'}]
    assert looptime == 0
    assert len(client.verbs('get')) == 1


async def test_condition_satisfied_mid_poll(client, obj, settings, looptime):
    client.put(obj)
    client.set_condition(obj, 'Ready', 'False')
    asyncio.get_running_loop().call_later(4.5, client.set_condition, obj, 'Ready', 'True')
    await wait_until_ready(client, obj, settings=settings)
    assert looptime == 5
    assert len(client.verbs('get')) == 6


async def test_condition_is_not_yet_reported(client, obj, settings, looptime):
    client.put(obj)
    asyncio.get_running_loop().call_later(1.5, client.set_condition, obj, 'Ready', 'True')
    await wait_until_ready(client, obj, settings=settings)
    assert looptime == 2


async def test_condition_timeout_carries_the_last_seen_state(client, obj, settings, looptime):
    client.put(obj)
    client.set_condition(obj, 'Ready', 'False')
    with pytest.raises(WaitTimeoutError) as err:
        await wait_until_ready(client, obj, WaitOptions(timeout=7), settings=settings)
    assert looptime == 7
    assert isinstance(err.value, TimeoutError)
    assert err.value.identity.name == obj.name
    assert json.loads(err.value.last_seen)['status']['conditions'] == [
        {'type': 'Ready', 'status': 'False'},
    ]
    assert "Last seen:" in str(err.value)
    assert "condition_Ready_is_True" in str(err.value)


async def test_condition_with_ambiguous_status(client, obj, settings, looptime):
    client.put(obj)
    client.modify(obj, lambda raw: raw.update(status={'conditions': [
        {'type': 'Ready', 'status': 'True'},
        {'type': 'Ready', 'status': 'True'},
    ]}))
    with pytest.raises(ConditionAmbiguousError):
        await wait_until_ready(client, obj, settings=settings)
    assert looptime == 0


async def test_condition_of_an_absent_object(client, obj, settings, looptime):
    with pytest.raises(OperationError) as err:
        await wait_until_condition(client, obj, condition_is('Ready'), settings=settings)
    assert isinstance(err.value.__cause__, APINotFoundError)
    assert looptime == 0


async def test_condition_with_arbitrary_predicates(client, obj, settings, looptime):
    client.put(obj)
    asyncio.get_running_loop().call_later(2.5, client.modify, obj,
                                          lambda raw: raw['spec'].update(field='other'))
    await wait_until_condition(client, obj, lambda o: o.spec.get('field') == 'other',
                               settings=settings)
    assert looptime == 3
    assert obj.spec['field'] == 'other'


async def test_cancellation_while_sleeping(client, obj, settings, looptime):
    client.put(obj)
    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(5.5, cancel.set)
    options = WaitOptions(poll_interval=10, cancel=cancel)
    with pytest.raises(WaitCancelledError) as err:
        await wait_until_ready(client, obj, options, settings=settings)
    assert not isinstance(err.value, WaitTimeoutError)
    assert looptime == 5.5
    assert err.value.last_seen is not None


async def test_cancellation_before_the_start(client, obj, settings, looptime):
    client.put(obj)
    cancel = asyncio.Event()
    cancel.set()
    with pytest.raises(WaitCancelledError):
        await wait_until_ready(client, obj, WaitOptions(cancel=cancel), settings=settings)
    assert client.verbs('get') == []


async def test_infinite_timeout_from_settings(client, obj, settings, looptime):
    settings.waiting.timeout = None
    client.put(obj)
    asyncio.get_running_loop().call_later(999.5, client.set_condition, obj, 'Ready', 'True')
    await wait_until_ready(client, obj, settings=settings)
    assert looptime == 1000


async def test_watching_wakes_up_the_polling(watching_client, obj, settings, looptime):
    client = watching_client
    client.put(obj)
    asyncio.get_running_loop().call_later(7, client.set_condition, obj, 'Ready', 'True')
    await wait_until_ready(client, obj, WaitOptions(poll_interval=100), settings=settings)
    assert looptime == 7
    assert len(client.verbs('get')) == 2


async def test_watching_is_disabled_in_settings(watching_client, obj, settings, looptime):
    client = watching_client
    settings.waiting.watching = False
    client.put(obj)
    asyncio.get_running_loop().call_later(7, client.set_condition, obj, 'Ready', 'True')
    options = WaitOptions(poll_interval=100, timeout=math.inf)
    await wait_until_ready(client, obj, options, settings=settings)
    assert looptime == 100
    assert len(client.verbs('get')) == 2


async def test_watching_starts_from_the_last_seen_version(watching_client, obj, settings, looptime):
    client = watching_client
    client.put(obj)
    asyncio.get_running_loop().call_later(3, client.set_condition, obj, 'Ready', 'True')
    await wait_until_ready(client, obj, WaitOptions(poll_interval=100), settings=settings)
    assert looptime == 3
    assert client.watched_versions == ['1']


async def test_watching_is_stopped_after_the_wait(watching_client, obj, settings, looptime):
    client = watching_client
    client.put(obj)
    asyncio.get_running_loop().call_later(3, client.set_condition, obj, 'Ready', 'True')
    await wait_until_ready(client, obj, WaitOptions(poll_interval=100), settings=settings)
    assert client._watchers == []


async def test_slow_check_is_interrupted_by_the_deadline(client, obj, settings, looptime):
    client.put(obj)
    client.delays['get'] = 100
    with pytest.raises(WaitTimeoutError) as err:
        await wait_until_ready(client, obj, WaitOptions(timeout=5), settings=settings)
    assert looptime == 5
    assert err.value.last_seen is None
    assert len(client.verbs('get')) == 1


async def test_slow_check_is_interrupted_by_the_cancellation(client, obj, settings, looptime):
    client.put(obj)
    client.delays['get'] = 100
    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(1, cancel.set)
    with pytest.raises(WaitCancelledError) as err:
        await wait_until_found(client, obj, WaitOptions(cancel=cancel), settings=settings)
    assert not isinstance(err.value, WaitTimeoutError)
    assert looptime == 1
    assert len(client.verbs('get')) == 1


async def test_slow_check_within_the_deadline_succeeds(client, obj, settings, looptime):
    client.put(obj)
    client.delays['get'] = 3
    await wait_until_found(client, obj, WaitOptions(timeout=5), settings=settings)
    assert looptime == 3
