"""Core modules for StackLayer - centralized error definitions."""

from stacklayer.core.errors import (
    ConfigurationError,
    CyclicDependencyError,
    DeploymentCancelled,
    DuplicateUnitError,
    ExitCode,
    LocalityMismatchError,
    PlanningError,
    ProviderApplyError,
    ProviderError,
    StackLayerError,
    UnresolvedReferenceError,
    ValidationError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "StackLayerError",
    "ConfigurationError",
    "ValidationError",
    "PlanningError",
    "DuplicateUnitError",
    "LocalityMismatchError",
    "CyclicDependencyError",
    "ProviderError",
    "ProviderApplyError",
    "UnresolvedReferenceError",
    "DeploymentCancelled",
    "main_with_error_handling",
    "format_error_message",
]
