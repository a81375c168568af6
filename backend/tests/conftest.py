import pytest
from fastapi.testclient import TestClient

from fakes import FakeClock, FakeProvider, SpyCache, build_app


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider(chunks=["Ra says ", "{{QUO", "TE:1}}", " Seek within."])


@pytest.fixture
def cache():
    return SpyCache()


@pytest.fixture
def make_app():
    return build_app


@pytest.fixture
def client(provider, cache):
    app = build_app(provider=provider, cache=cache)
    with TestClient(app) as test_client:
        yield test_client
