from __future__ import annotations

from typing import Dict, Iterable, List

from stacklayer.core.errors import ConfigurationError
from stacklayer.providers.base import ResourceProvider


class ProviderRegistry:
    """Maps resource kinds to the provider that realizes them."""

    def __init__(self, default: ResourceProvider | None = None) -> None:
        self._providers: Dict[str, ResourceProvider] = {}
        self._default = default

    def register(self, kind: str, provider: ResourceProvider) -> None:
        if not kind:
            raise ValueError("Resource kind is required")
        self._providers[kind] = provider

    def register_many(self, kinds: Iterable[str], provider: ResourceProvider) -> None:
        for kind in kinds:
            self.register(kind, provider)

    def for_kind(self, kind: str) -> ResourceProvider:
        provider = self._providers.get(kind, self._default)
        if provider is None:
            raise ConfigurationError(f"No provider registered for resource kind '{kind}'", {"kind": kind})
        return provider

    def providers(self) -> List[ResourceProvider]:
        """Distinct providers, registration order, default last."""
        seen: list[ResourceProvider] = []
        for provider in [*self._providers.values(), self._default]:
            if provider is not None and not any(p is provider for p in seen):
                seen.append(provider)
        return seen

    def kinds(self) -> List[str]:
        return list(self._providers.keys())
