"""
The pytest plugin of the harness: options and fixtures for the tests.

The plugin is registered via the ``pytest11`` entry point, so the fixtures
are available in any project where the harness is installed::

    async def test_something(kube_tracker):
        obj = kubeharness.Object(kubeharness.CONFIGMAPS, name='x', namespace='default')
        await kube_tracker.create(obj)

The tracker of every test is cleaned up when the test is over,
according to the cleanup strategy and the test's outcome.

This module is a part of the harness's public interface.
"""
import logging
import os
from typing import AsyncIterator, Iterator, Optional

import pytest
import pytest_asyncio

from kubeharness.clients import rest
from kubeharness.engines import loggers, tracking
from kubeharness.helpers import typedefs
from kubeharness.structs import configuration


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup('kubeharness', "Kubernetes integration tests")
    group.addoption(
        '--kube-cleanup', dest='kube_cleanup',
        default=os.environ.get('KUBEHARNESS_CLEANUP'),
        choices=[strategy.value for strategy in configuration.CleanupStrategy],
        help="When to delete the objects created by the tests "
             "(default: always; env: KUBEHARNESS_CLEANUP).")
    group.addoption(
        '--kube-poll-interval', dest='kube_poll_interval', type=float,
        default=_float_or_none(os.environ.get('KUBEHARNESS_POLL_INTERVAL')),
        help="Seconds between the attempts of the waits "
             "(env: KUBEHARNESS_POLL_INTERVAL).")
    group.addoption(
        '--kube-wait-timeout', dest='kube_wait_timeout', type=float,
        default=_float_or_none(os.environ.get('KUBEHARNESS_WAIT_TIMEOUT')),
        help="Default timeout of the waits, in seconds "
             "(env: KUBEHARNESS_WAIT_TIMEOUT).")


def _float_or_none(value: Optional[str]) -> Optional[float]:
    return float(value) if value else None


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: "pytest.CallInfo[None]") -> Iterator[None]:
    # Remember the reports of all phases, so that the fixtures know the outcome.
    outcome = yield
    report = outcome.get_result()  # type: ignore
    setattr(item, f'kube_report_{report.when}', report)


def make_settings(config: pytest.Config) -> configuration.HarnessSettings:
    settings = configuration.HarnessSettings()
    cleanup = config.getoption('kube_cleanup', None)
    poll_interval = config.getoption('kube_poll_interval', None)
    wait_timeout = config.getoption('kube_wait_timeout', None)
    if cleanup is not None:
        settings.cleanup.strategy = configuration.CleanupStrategy(cleanup)
    if poll_interval is not None:
        settings.waiting.poll_interval = poll_interval
        settings.updating.poll_interval = poll_interval
    if wait_timeout is not None:
        settings.waiting.timeout = wait_timeout
    return settings


def get_outcome(item: pytest.Item) -> tracking.Outcome:
    setup = getattr(item, 'kube_report_setup', None)
    call = getattr(item, 'kube_report_call', None)
    if setup is not None and setup.failed:
        return tracking.Outcome.FAILED
    elif call is None:
        return tracking.Outcome.UNKNOWN
    elif call.failed:
        return tracking.Outcome.FAILED
    elif call.passed:
        return tracking.Outcome.PASSED
    else:
        return tracking.Outcome.UNKNOWN


@pytest.fixture(scope='session')
def kube_settings(pytestconfig: pytest.Config) -> configuration.HarnessSettings:
    return make_settings(pytestconfig)


@pytest.fixture(scope='session')
def kube_logger() -> Iterator[typedefs.Logger]:
    # Everything is logged; pytest decides what to show (see its --log-level).
    logger = loggers.make_logger('kubeharness.tests', level=logging.DEBUG)
    try:
        yield logger
    finally:
        loggers.close_logger(logger)


@pytest_asyncio.fixture()
async def kube_client(
        kube_settings: configuration.HarnessSettings,
        kube_logger: typedefs.Logger,
) -> AsyncIterator[rest.APIClient]:
    async with rest.APIClient.from_env(settings=kube_settings, logger=kube_logger) as client:
        yield client


@pytest_asyncio.fixture()
async def kube_tracker(
        request: pytest.FixtureRequest,
        kube_client: rest.APIClient,
        kube_settings: configuration.HarnessSettings,
        kube_logger: typedefs.Logger,
) -> AsyncIterator[tracking.Tracker]:
    tracker = tracking.Tracker(kube_client, settings=kube_settings, logger=kube_logger)
    yield tracker
    await tracker.cleanup(get_outcome(request.node))
