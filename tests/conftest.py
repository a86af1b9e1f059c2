import pytest

from starlive.config import Environment, LiveConfig, set_config
from starlive.core.registry import SchemaRegistry


@pytest.fixture(autouse=True)
def testing_config():
    config = LiveConfig.for_environment(Environment.TESTING)
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def schema_registry():
    return SchemaRegistry()
