"""Resource providers and the registry mapping resource kinds to them."""

from stacklayer.providers.base import Handle, PlanChange, ProviderHealth, ResourceProvider
from stacklayer.providers.memory import InMemoryProvider, intent_fingerprint
from stacklayer.providers.registry import ProviderRegistry
from stacklayer.providers.state import StateStore, load_state, save_state

__all__ = [
    "Handle",
    "InMemoryProvider",
    "PlanChange",
    "ProviderHealth",
    "ProviderRegistry",
    "ResourceProvider",
    "StateStore",
    "intent_fingerprint",
    "load_state",
    "save_state",
]
