import pytest

from memokit.core.config import get_settings
from memokit.core.scheduler import ManualScheduler


@pytest.fixture
def clock():
    return ManualScheduler()


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class Counter:
    """Callable that counts invocations and returns whatever ``value`` holds."""
    def __init__(self, value=5):
        self.value = value
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        return self.value


@pytest.fixture
def hit_server():
    return Counter()
