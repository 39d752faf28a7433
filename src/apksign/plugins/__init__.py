"""Plugin subsystem for apksign.

Signing engines register through :class:`PluginRegistry`. Third-party
engines are discovered from ``importlib.metadata`` entry points in the
``apksign.engines`` group.

Example
-------
Declare an engine in pyproject.toml:

.. code-block:: toml

    [project.entry-points."apksign.engines"]
    my_engine = "my_package.engine:MyEngine"
"""
from __future__ import annotations

from apksign.plugins.registry import (
    PluginAlreadyRegisteredError,
    PluginNotFoundError,
    PluginRegistry,
)

__all__ = ["PluginAlreadyRegisteredError", "PluginNotFoundError", "PluginRegistry"]
