import pytest

from kubeharness.engines.tracking import Tracker
from kubeharness.structs.bodies import Object


@pytest.fixture()
def tracker(client, settings, logger):
    return Tracker(client, settings=settings, logger=logger)


@pytest.fixture()
def make_obj(resource, namespace):
    def fn(name, **kwargs):
        return Object(resource, {'spec': kwargs}, name=name, namespace=namespace)
    return fn
