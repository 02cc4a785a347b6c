import pytest

from centri.features.integrations.providers.registry import (
    DEFAULT_ADAPTERS,
    ProviderRegistry,
    UnknownProviderError,
    build_default_registry,
)
from tests.conftest import FakeAdapter


def test_default_registry_covers_every_adapter():
    registry = build_default_registry()

    assert len(registry.names()) == len(DEFAULT_ADAPTERS)
    for name in ["google", "gmail", "slack", "github", "jira", "clickup", "notion", "zoom", "fathom"]:
        assert registry.has(name)
        assert registry.get(name).name == name


def test_adapter_names_are_unique():
    names = [adapter_cls.name for adapter_cls in DEFAULT_ADAPTERS]
    assert len(names) == len(set(names))


def test_unknown_provider():
    registry = ProviderRegistry([FakeAdapter("gmail")])

    assert registry.has("myspace") is False
    with pytest.raises(UnknownProviderError) as exc_info:
        registry.get("myspace")
    assert exc_info.value.provider == "myspace"
    assert str(exc_info.value) == "Unknown provider: myspace"
