import pytest

from kubeharness.clients.rest import APIClient


@pytest.fixture(autouse=True)
def _prevent_retries_in_api_tests(settings):
    settings.networking.error_backoffs = []


@pytest.fixture()
async def api_client(info, settings, logger):
    client = APIClient(info, settings=settings, logger=logger)
    try:
        yield client
    finally:
        await client.close()
