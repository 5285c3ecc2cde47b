import pytest
from fakes import Store


@pytest.fixture
def store() -> Store:
    return Store()
