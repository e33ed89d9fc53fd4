"""Tests for providers/registry.py."""

import pytest
from stacklayer.core.errors import ConfigurationError
from stacklayer.providers import InMemoryProvider, ProviderRegistry


class TestProviderRegistry:
    """Tests for kind -> provider mapping."""

    def test_registered_kind(self):
        provider = InMemoryProvider()
        registry = ProviderRegistry()
        registry.register("bucket", provider)

        assert registry.for_kind("bucket") is provider
        assert registry.kinds() == ["bucket"]

    def test_default_provider(self):
        default = InMemoryProvider()
        registry = ProviderRegistry(default=default)

        assert registry.for_kind("anything") is default

    def test_missing_kind(self):
        with pytest.raises(ConfigurationError, match="No provider registered for resource kind 'vpc'"):
            ProviderRegistry().for_kind("vpc")

    def test_empty_kind_rejected(self):
        with pytest.raises(ValueError):
            ProviderRegistry().register("", InMemoryProvider())

    def test_providers_are_distinct(self):
        shared = InMemoryProvider()
        default = InMemoryProvider()
        registry = ProviderRegistry(default=default)
        registry.register_many(["bucket", "vpc"], shared)

        assert registry.providers() == [shared, default]
