import httpx
import pytest

from tests.support import Router
from wanderlens.core.error_handlers import error_handler
from wanderlens.core.metrics import reset_metrics


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_metrics()
    error_handler.reset()
    yield
    reset_metrics()


@pytest.fixture
def router():
    return Router()


@pytest.fixture
def http_client(router):
    return httpx.AsyncClient(transport=httpx.MockTransport(router))
