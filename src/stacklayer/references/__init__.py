"""Cross-unit and cross-locality reference resolution."""

from stacklayer.references.parameters import InMemoryParameterStore, ParameterStore
from stacklayer.references.resolver import ReferenceRecord, ReferenceResolver, ResolveMode

__all__ = [
    "InMemoryParameterStore",
    "ParameterStore",
    "ReferenceRecord",
    "ReferenceResolver",
    "ResolveMode",
]
