import pytest


@pytest.fixture
def anyio_backend():
    # The webhook dispatcher schedules detached asyncio tasks; run async tests on asyncio.
    return "asyncio"
