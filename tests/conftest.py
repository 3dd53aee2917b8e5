import asyncio
import inspect
from typing import Callable, List

import httpx
import pytest

from modelrelay.observability.metrics import register_metric_listener, unregister_metric_listener


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Run async test functions without requiring external plugins."""
    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            # Filter funcargs to only include parameters the function expects
            sig = inspect.signature(test_function)
            filtered_args = {k: v for k, v in pyfuncitem.funcargs.items() if k in sig.parameters}
            loop.run_until_complete(test_function(**filtered_args))
        finally:
            loop.close()
            asyncio.set_event_loop(None)
        return True
    return None


def pytest_configure(config):
    """Register markers for pytest."""
    config.addinivalue_line("markers", "asyncio: mark async tests")
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture
def sent_requests() -> List[httpx.Request]:
    """Requests seen by clients built with ``mock_client``."""
    return []


@pytest.fixture
def mock_client(sent_requests):
    """Factory for AsyncClients whose transport is a plain handler function."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        def recording(request: httpx.Request) -> httpx.Response:
            sent_requests.append(request)
            return handler(request)

        return httpx.AsyncClient(transport=httpx.MockTransport(recording))

    return factory


@pytest.fixture
def captured_metrics():
    """Collect every metric emitted while the test runs."""
    events = []

    def listener(name, values, labels):
        events.append((name, values, labels))

    register_metric_listener(listener)
    yield events
    unregister_metric_listener(listener)
