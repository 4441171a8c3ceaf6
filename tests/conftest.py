import pytest

from fakes import FakeSession, make_context
from regman.registry import RegistryClient


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def context(session):
    return make_context(session)


@pytest.fixture
def client(context) -> RegistryClient:
    return RegistryClient(context)
