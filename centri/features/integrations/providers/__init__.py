"""
Provider adapters, one module per external service.
"""

from .base import (
    ProviderAdapter,
    ProviderAuthError,
    ProviderConfigError,
    ProviderError,
    ProviderTransientError,
)
from .registry import ProviderRegistry, UnknownProviderError, build_default_registry

__all__ = [
    "ProviderAdapter",
    "ProviderAuthError",
    "ProviderConfigError",
    "ProviderError",
    "ProviderTransientError",
    "ProviderRegistry",
    "UnknownProviderError",
    "build_default_registry",
]
