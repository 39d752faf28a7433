"""Cryptographic provider registry.

A :class:`Provider` contributes keystore implementations (by type name)
and PKCS #8 key factories (by algorithm). The :class:`ProviderRegistry`
keeps providers in priority order: a lookup that does not name a provider
returns the first provider offering the requested type.

Additional providers are loaded by dotted class name, either
``package.module:ClassName`` or ``package.module.ClassName``, and
constructed with no arguments or with one string argument.
"""
from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from apksign.certificates.pkcs8 import KeyFactory
from apksign.errors import (
    ConfigurationError,
    KeyStoreError,
    ProviderError,
    UnsupportedKeyAlgorithmError,
)
from apksign.keystore.base import KeyStore

logger = logging.getLogger(__name__)

KeyStoreFactory = Callable[[], KeyStore]


class Provider:
    """A named source of keystore types and key factories.

    Subclasses register their services in ``__init__``.

    Parameters
    ----------
    name:
        Provider name used for lookups by name.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._keystores: dict[str, KeyStoreFactory] = {}
        self._key_factories: dict[str, KeyFactory] = {}

    def register_keystore(self, type_name: str, factory: KeyStoreFactory) -> None:
        self._keystores[type_name.upper()] = factory

    def register_key_factory(self, algorithm: str, factory: KeyFactory) -> None:
        self._key_factories[algorithm.upper()] = factory

    def new_keystore(self, type_name: str) -> KeyStore | None:
        """Return a fresh keystore of *type_name*, or None if not offered."""
        factory = self._keystores.get(type_name.upper())
        return factory() if factory is not None else None

    def key_factory(self, algorithm: str) -> KeyFactory | None:
        """Return the key factory for *algorithm*, or None if not offered."""
        return self._key_factories.get(algorithm.upper())

    def keystore_types(self) -> list[str]:
        return list(self._keystores)

    def key_algorithms(self) -> list[str]:
        return list(self._key_factories)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class ProviderRegistry:
    """Ordered set of installed providers, highest priority first."""

    def __init__(self, providers: Iterable[Provider] = ()) -> None:
        self._providers: list[Provider] = []
        for provider in providers:
            self.add_provider(provider)

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    def add_provider(self, provider: Provider) -> int:
        """Append *provider* at the lowest priority.

        Returns
        -------
        int
            The 1-based position it was installed at, or -1 if a provider
            with the same name is already installed.
        """
        return self.insert_provider_at(provider, len(self._providers) + 1)

    def insert_provider_at(self, provider: Provider, position: int) -> int:
        """Install *provider* at the 1-based *position*.

        Positions outside ``1..len+1`` are clamped to the nearest end.

        Returns
        -------
        int
            The position it was installed at, or -1 if a provider with the
            same name is already installed.
        """
        if self.get_provider(provider.name) is not None:
            logger.debug("Provider %s already installed", provider.name)
            return -1
        index = min(max(position, 1), len(self._providers) + 1) - 1
        self._providers.insert(index, provider)
        logger.debug("Installed provider %s at position %d", provider.name, index + 1)
        return index + 1

    def remove_provider(self, name: str) -> None:
        """Uninstall the provider called *name*. Unknown names are ignored."""
        self._providers = [p for p in self._providers if p.name != name]

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def providers(self) -> list[Provider]:
        return list(self._providers)

    def get_provider(self, name: str) -> Provider | None:
        return next((p for p in self._providers if p.name == name), None)

    def get_keystore(
        self,
        type_name: str,
        provider: str | Provider | None = None,
    ) -> KeyStore:
        """Return a new, empty keystore of *type_name*.

        Parameters
        ----------
        type_name:
            Keystore type, e.g. ``"PKCS12"``.
        provider:
            Installed provider name, an uninstalled provider instance, or
            None to search installed providers in priority order.

        Raises
        ------
        ProviderError
            If a named provider is not installed.
        KeyStoreError
            If no candidate provider offers *type_name*.
        """
        if isinstance(provider, str):
            found = self.get_provider(provider)
            if found is None:
                raise ProviderError(f"Provider {provider} not installed")
            candidates = [found]
        elif provider is not None:
            candidates = [provider]
        else:
            candidates = self._providers

        for candidate in candidates:
            keystore = candidate.new_keystore(type_name)
            if keystore is not None:
                logger.debug("Using %s keystore from provider %s", type_name, candidate.name)
                return keystore
        raise KeyStoreError(f"{type_name} not found")

    def get_key_factory(self, algorithm: str) -> KeyFactory:
        """Return the highest-priority key factory for *algorithm*.

        Raises
        ------
        UnsupportedKeyAlgorithmError
            If no installed provider offers *algorithm*.
        """
        for provider in self._providers:
            factory = provider.key_factory(algorithm)
            if factory is not None:
                return factory
        raise UnsupportedKeyAlgorithmError(f"{algorithm} KeyFactory not available")

    def __len__(self) -> int:
        return len(self._providers)

    def __repr__(self) -> str:
        return f"ProviderRegistry(providers={[p.name for p in self._providers]})"


# ------------------------------------------------------------------
# Loading providers by class name
# ------------------------------------------------------------------


def load_provider_class(class_name: str) -> type[Provider]:
    """Import the :class:`Provider` subclass named by *class_name*.

    Raises
    ------
    ProviderError
        If the class cannot be imported or is not a Provider subclass.
    """
    if ":" in class_name:
        module_name, _, attr = class_name.partition(":")
    else:
        module_name, _, attr = class_name.rpartition(".")
    if not module_name or not attr:
        raise ProviderError(f"Invalid provider class name: {class_name}")
    try:
        module = importlib.import_module(module_name)
        cls = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise ProviderError(f"Failed to load provider class {class_name}: {exc}") from exc
    if not (isinstance(cls, type) and issubclass(cls, Provider)):
        raise ProviderError(
            f"Provider class {class_name} not subclass of {Provider.__module__}.Provider"
        )
    return cls


def new_provider(class_name: str, constructor_arg: str | None = None) -> Provider:
    """Load *class_name* and construct it, passing *constructor_arg* if given."""
    cls = load_provider_class(class_name)
    try:
        if constructor_arg is not None:
            return cls(constructor_arg)  # type: ignore[call-arg]
        return cls()  # type: ignore[call-arg]
    except TypeError as exc:
        raise ProviderError(f"Failed to instantiate provider {class_name}: {exc}") from exc


@dataclass
class ProviderInstallSpec:
    """A provider to install before any credential is loaded.

    Parameters
    ----------
    class_name:
        Provider class name (``--provider-class``).
    constructor_arg:
        Optional single string constructor argument (``--provider-arg``).
    position:
        Optional 1-based install position (``--provider-pos``). Appended
        at the lowest priority when None.
    """

    class_name: str | None = None
    constructor_arg: str | None = None
    position: int | None = None

    def is_empty(self) -> bool:
        return self.class_name is None and self.constructor_arg is None and self.position is None

    def install(self, registry: ProviderRegistry) -> int:
        if self.class_name is None:
            raise ConfigurationError(
                "Provider class name (--provider-class) must be specified"
            )
        provider = new_provider(self.class_name, self.constructor_arg)
        if self.position is None:
            return registry.add_provider(provider)
        return registry.insert_provider_at(provider, self.position)


def install_providers(specs: Iterable[ProviderInstallSpec], registry: ProviderRegistry) -> None:
    """Install every spec in *specs* into *registry*, in order."""
    for spec in specs:
        position = spec.install(registry)
        logger.info("Installed provider %s (position %d)", spec.class_name, position)
