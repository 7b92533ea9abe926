import pytest

from fakes import FakeClock, FakeIdentityStore


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FakeIdentityStore()
