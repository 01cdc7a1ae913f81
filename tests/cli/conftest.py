import functools
import logging

import click.testing
import pytest

from kubeharness.cli import main


@pytest.fixture(autouse=True)
def _restore_root_logger():
    logger = logging.getLogger()
    handlers, level = list(logger.handlers), logger.level
    try:
        yield
    finally:
        logger.handlers[:] = handlers
        logger.setLevel(level)


@pytest.fixture()
def runner():
    runner = click.testing.CliRunner()
    return runner


@pytest.fixture()
def invoke(runner):
    return functools.partial(runner.invoke, main)


@pytest.fixture()
def from_env(mocker, client):
    return mocker.patch('kubeharness.clients.rest.APIClient.from_env', return_value=client)
