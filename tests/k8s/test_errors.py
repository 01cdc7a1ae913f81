import aiohttp.web
import pytest

from kubeharness.clients import api
from kubeharness.clients.errors import APIAlreadyExistsError, APIClientError, \
                                       APIConflictError, APIError, APIForbiddenError, \
                                       APINotFoundError, APIServerError, APIUnauthorizedError, \
                                       check_response, select_error_class


def test_aiohttp_is_not_leaked_outside():
    assert not issubclass(APIError, aiohttp.ClientError)


def test_exception_without_payload():
    exc = APIError(None, status=456)
    assert exc.status == 456
    assert exc.code is None
    assert exc.reason is None
    assert exc.message is None
    assert exc.details is None
    assert str(exc) == "(456) no details"


def test_exception_with_payload():
    exc = APIError({"message": "msg", "code": 123, "reason": "Why", "details": {"a": "b"}},
                   status=456)
    assert exc.status == 456
    assert exc.code == 123
    assert exc.reason == "Why"
    assert exc.message == "msg"
    assert exc.details == {"a": "b"}
    assert str(exc) == "(456) msg"


@pytest.mark.parametrize('status, reason, exctype', [
    (400, None, APIClientError),
    (401, None, APIUnauthorizedError),
    (403, None, APIForbiddenError),
    (404, 'NotFound', APINotFoundError),
    (409, 'AlreadyExists', APIAlreadyExistsError),
    (409, 'Conflict', APIConflictError),
    (409, None, APIConflictError),
    (500, None, APIServerError),
    (503, None, APIServerError),
    (666, None, APIError),
])
def test_error_classes(status, reason, exctype):
    assert select_error_class(status, reason) is exctype


def test_already_exists_is_not_a_conflict():
    assert not issubclass(APIAlreadyExistsError, APIConflictError)
    assert issubclass(APIAlreadyExistsError, APIClientError)


@pytest.mark.parametrize('status', [200, 202, 300, 304])
async def test_no_error_on_success(context, resp_mocker, aresponses, hostname, status):
    resp = aresponses.Response(
        status=status,
        headers={'Content-Type': 'application/json'},
        text='{"kind": "Status", "code": "xxx", "message": "msg"}',
    )
    aresponses.add(hostname, '/', 'get', resp_mocker(return_value=resp))
    response = await context.session.get(f"http://{hostname}/")
    await check_response(response)


@pytest.mark.parametrize('status, reason, exctype', [
    (400, 'BadRequest', APIClientError),
    (404, 'NotFound', APINotFoundError),
    (409, 'AlreadyExists', APIAlreadyExistsError),
    (409, 'Conflict', APIConflictError),
    (500, 'InternalError', APIServerError),
])
async def test_error_with_payload(context, resp_mocker, aresponses, hostname,
                                  status, reason, exctype):
    resp = aiohttp.web.json_response(
        {"kind": "Status", "code": status, "reason": reason, "message": "msg"},
        status=status,
    )
    aresponses.add(hostname, '/', 'get', resp_mocker(return_value=resp))
    response = await context.session.get(f"http://{hostname}/")
    with pytest.raises(exctype) as err:
        await check_response(response)
    assert err.value.status == status
    assert err.value.reason == reason
    assert err.value.message == "msg"
    assert isinstance(err.value.__cause__, aiohttp.ClientResponseError)


async def test_error_with_nonstatus_payload(context, resp_mocker, aresponses, hostname):
    resp = aiohttp.web.json_response({"kind": "Secret", "data": "sensitive"}, status=409)
    aresponses.add(hostname, '/', 'get', resp_mocker(return_value=resp))
    response = await context.session.get(f"http://{hostname}/")
    with pytest.raises(APIConflictError) as err:
        await check_response(response)
    assert err.value.message is None
    assert 'sensitive' not in str(err.value)


async def test_server_errors_are_retried(context, settings, logger, resp_mocker,
                                         aresponses, hostname):
    settings.networking.error_backoffs = [0.01, 0.01]
    aresponses.add(hostname, '/', 'get', aiohttp.web.json_response({}, status=503))
    aresponses.add(hostname, '/', 'get', aiohttp.web.json_response({}, status=502))
    ok = resp_mocker(return_value=aiohttp.web.json_response({'fake': 'result'}))
    aresponses.add(hostname, '/', 'get', ok)
    result = await api.get('/', context=context, settings=settings, logger=logger)
    assert result == {'fake': 'result'}
    assert ok.call_count == 1


async def test_server_errors_escalate_when_retries_are_over(context, settings, logger,
                                                            aresponses, hostname):
    settings.networking.error_backoffs = [0.01]
    aresponses.add(hostname, '/', 'get', aiohttp.web.json_response({}, status=503))
    aresponses.add(hostname, '/', 'get', aiohttp.web.json_response({}, status=503))
    with pytest.raises(APIServerError):
        await api.get('/', context=context, settings=settings, logger=logger)


async def test_client_errors_are_not_retried(context, settings, logger, resp_mocker,
                                             aresponses, hostname):
    settings.networking.error_backoffs = [0.01, 0.01]
    bad = resp_mocker(return_value=aiohttp.web.json_response({}, status=409))
    aresponses.add(hostname, '/', 'get', bad)
    with pytest.raises(APIConflictError):
        await api.get('/', context=context, settings=settings, logger=logger)
    assert bad.call_count == 1


@pytest.mark.parametrize('method', ['post', 'put', 'delete'])
@pytest.mark.parametrize('status', [500, 503])
async def test_writes_are_sent_once_on_server_errors(context, settings, logger, resp_mocker,
                                                     aresponses, hostname, method, status):
    settings.networking.error_backoffs = [0, 0]
    failed = resp_mocker(return_value=aiohttp.web.json_response({}, status=status))
    succeeded = resp_mocker(return_value=aiohttp.web.json_response({}))
    aresponses.add(hostname, '/', method, failed)
    aresponses.add(hostname, '/', method, succeeded)
    with pytest.raises(APIServerError):
        await api.request(method, '/', payload={}, context=context, settings=settings,
                          logger=logger)
    assert failed.call_count == 1
    assert succeeded.call_count == 0


async def test_reads_are_not_repeated_without_backoffs(context, settings, logger, resp_mocker,
                                                       aresponses, hostname):
    settings.networking.error_backoffs = []
    failed = resp_mocker(return_value=aiohttp.web.json_response({}, status=503))
    aresponses.add(hostname, '/', 'get', failed)
    with pytest.raises(APIServerError):
        await api.get('/', context=context, settings=settings, logger=logger)
    assert failed.call_count == 1
