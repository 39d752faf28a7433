"""Provider registry: keystore types and key factories in priority order."""
from __future__ import annotations

from apksign.providers.default import DEFAULT_PROVIDER_NAME, DefaultProvider
from apksign.providers.registry import (
    Provider,
    ProviderInstallSpec,
    ProviderRegistry,
    install_providers,
    load_provider_class,
    new_provider,
)

DEFAULT_KEYSTORE_TYPE = "PKCS12"

_default_registry: ProviderRegistry | None = None


def default_registry() -> ProviderRegistry:
    """Return the process-wide registry, creating it with :class:`DefaultProvider`."""
    global _default_registry
    if _default_registry is None:
        _default_registry = ProviderRegistry([DefaultProvider()])
    return _default_registry


__all__ = [
    "DEFAULT_KEYSTORE_TYPE",
    "DEFAULT_PROVIDER_NAME",
    "DefaultProvider",
    "Provider",
    "ProviderInstallSpec",
    "ProviderRegistry",
    "default_registry",
    "install_providers",
    "load_provider_class",
    "new_provider",
]
