import pytest


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryStorage(dict):
    """dict with the ``set`` method diskcache exposes."""

    def set(self, key, value):
        self[key] = value
        return True


class BrokenStorage:
    def get(self, key, default=None):
        raise OSError("disk gone")

    def set(self, key, value):
        raise OSError("quota exceeded")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def broken_storage():
    return BrokenStorage()
