"""Generic, name-keyed registry of plugin classes.

A :class:`PluginRegistry` is bound to one abstract base class. Classes are
added with the :meth:`PluginRegistry.register` decorator, with
:meth:`PluginRegistry.register_class`, or discovered from an
``importlib.metadata`` entry-point group::

    engines: PluginRegistry[SigningEngine] = PluginRegistry(SigningEngine, "engines")

    @engines.register("fake")
    class FakeEngine(SigningEngine):
        ...

    engines.load_entrypoints("apksign.engines")
"""
from __future__ import annotations

import importlib.metadata
import logging
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PluginNotFoundError(KeyError):
    """Raised when no plugin is registered under the requested name."""

    def __init__(self, plugin_name: str, registry_name: str) -> None:
        self.plugin_name = plugin_name
        self.registry_name = registry_name
        super().__init__(f"No plugin {plugin_name!r} in registry {registry_name!r}")


class PluginAlreadyRegisteredError(ValueError):
    """Raised when a plugin name is registered twice."""

    def __init__(self, plugin_name: str, registry_name: str) -> None:
        self.plugin_name = plugin_name
        self.registry_name = registry_name
        super().__init__(
            f"Plugin {plugin_name!r} is already registered in registry {registry_name!r}"
        )


class PluginRegistry(Generic[T]):
    """Registry mapping plugin names to subclasses of *base_class*.

    Parameters
    ----------
    base_class:
        Every registered class must be a subclass of this type.
    registry_name:
        Human-readable name used in error messages.
    """

    def __init__(self, base_class: type[T], registry_name: str) -> None:
        self._base_class = base_class
        self._registry_name = registry_name
        self._plugins: dict[str, type[T]] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, name: str) -> Callable[[type[T]], type[T]]:
        """Return a class decorator registering the decorated class as *name*."""

        def decorator(cls: type[T]) -> type[T]:
            self.register_class(name, cls)
            return cls

        return decorator

    def register_class(self, name: str, cls: type[T]) -> None:
        """Register *cls* under *name*.

        Raises
        ------
        PluginAlreadyRegisteredError
            If *name* is already taken.
        TypeError
            If *cls* is not a subclass of the registry's base class.
        """
        if name in self._plugins:
            raise PluginAlreadyRegisteredError(name, self._registry_name)
        if not (isinstance(cls, type) and issubclass(cls, self._base_class)):
            raise TypeError(
                f"{cls!r} is not a subclass of {self._base_class.__name__}"
            )
        self._plugins[name] = cls
        logger.debug("Registered plugin %r in %s", name, self._registry_name)

    def deregister(self, name: str) -> None:
        """Remove the plugin registered under *name*."""
        if name not in self._plugins:
            raise PluginNotFoundError(name, self._registry_name)
        del self._plugins[name]

    def load_entrypoints(self, group: str) -> None:
        """Register every class advertised in the entry-point *group*.

        Names already registered are kept. Entry points that fail to import
        or do not subclass the base class are logged and skipped.
        """
        for entry_point in importlib.metadata.entry_points(group=group):
            if entry_point.name in self._plugins:
                continue
            try:
                cls = entry_point.load()
                self.register_class(entry_point.name, cls)
            except (ImportError, AttributeError, TypeError) as exc:
                logger.warning(
                    "Skipping plugin %r from %s: %s", entry_point.name, group, exc
                )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> type[T]:
        """Return the class registered under *name*."""
        try:
            return self._plugins[name]
        except KeyError:
            raise PluginNotFoundError(name, self._registry_name) from None

    def list_plugins(self) -> list[str]:
        """Return the registered plugin names, sorted."""
        return sorted(self._plugins)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins

    def __len__(self) -> int:
        return len(self._plugins)

    def __repr__(self) -> str:
        return (
            f"PluginRegistry(name={self._registry_name!r}, "
            f"base={self._base_class.__name__}, plugins={self.list_plugins()})"
        )
