"""Tests for apksign.plugins.registry: engine registration and discovery."""
from __future__ import annotations

import importlib.metadata
from dataclasses import dataclass
from typing import Any

import pytest

from apksign.engine import SigningEngine, SignRequest, VerifyRequest, VerifyResult
from apksign.plugins.registry import (
    PluginAlreadyRegisteredError,
    PluginNotFoundError,
    PluginRegistry,
)


class EchoEngine(SigningEngine):
    def sign(self, request: SignRequest) -> None:
        request.output_apk.write_bytes(request.input_apk.read_bytes())

    def verify(self, request: VerifyRequest) -> VerifyResult:
        return VerifyResult(verified=True)


class RejectingEngine(EchoEngine):
    def verify(self, request: VerifyRequest) -> VerifyResult:
        return VerifyResult(verified=False, errors=["rejected"])


class NotAnEngine:
    pass


@dataclass
class StubEntryPoint:
    """Stands in for importlib.metadata.EntryPoint."""

    name: str
    target: Any = None
    failure: Exception | None = None

    def load(self) -> Any:
        if self.failure is not None:
            raise self.failure
        return self.target


@pytest.fixture()
def registry() -> PluginRegistry[SigningEngine]:
    return PluginRegistry(SigningEngine, "test-engines")


@pytest.fixture()
def advertise(monkeypatch: pytest.MonkeyPatch):
    """Make ``entry_points(group=...)`` return the given stubs."""

    def _advertise(*entry_points: StubEntryPoint) -> list[str]:
        groups: list[str] = []

        def fake_entry_points(group: str) -> list[StubEntryPoint]:
            groups.append(group)
            return list(entry_points)

        monkeypatch.setattr(importlib.metadata, "entry_points", fake_entry_points)
        return groups

    return _advertise


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_decorator_registers_and_returns_class(
        self, registry: PluginRegistry[SigningEngine]
    ) -> None:
        decorated = registry.register("echo")(EchoEngine)
        assert decorated is EchoEngine
        assert registry.get("echo") is EchoEngine

    def test_subclass_of_registered_engine_is_accepted(
        self, registry: PluginRegistry[SigningEngine]
    ) -> None:
        registry.register_class("rejecting", RejectingEngine)
        assert registry.get("rejecting") is RejectingEngine

    def test_name_taken(self, registry: PluginRegistry[SigningEngine]) -> None:
        registry.register_class("echo", EchoEngine)
        with pytest.raises(PluginAlreadyRegisteredError) as excinfo:
            registry.register_class("echo", RejectingEngine)
        assert excinfo.value.plugin_name == "echo"
        assert excinfo.value.registry_name == "test-engines"
        assert registry.get("echo") is EchoEngine

    @pytest.mark.parametrize("candidate", [NotAnEngine, EchoEngine(), "EchoEngine"])
    def test_rejects_non_engines(
        self, registry: PluginRegistry[SigningEngine], candidate: Any
    ) -> None:
        with pytest.raises(TypeError, match="not a subclass of SigningEngine"):
            registry.register_class("bad", candidate)
        assert "bad" not in registry

    def test_deregister(self, registry: PluginRegistry[SigningEngine]) -> None:
        registry.register_class("echo", EchoEngine)
        registry.deregister("echo")
        assert "echo" not in registry
        with pytest.raises(PluginNotFoundError):
            registry.get("echo")

    def test_deregister_unknown(self, registry: PluginRegistry[SigningEngine]) -> None:
        with pytest.raises(PluginNotFoundError) as excinfo:
            registry.deregister("ghost")
        assert isinstance(excinfo.value, KeyError)
        assert excinfo.value.plugin_name == "ghost"


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class TestLookup:
    def test_empty_registry(self, registry: PluginRegistry[SigningEngine]) -> None:
        assert len(registry) == 0
        assert registry.list_plugins() == []
        with pytest.raises(PluginNotFoundError):
            registry.get("echo")

    def test_names_are_sorted(self, registry: PluginRegistry[SigningEngine]) -> None:
        registry.register_class("rejecting", RejectingEngine)
        registry.register_class("echo", EchoEngine)
        assert registry.list_plugins() == ["echo", "rejecting"]
        assert len(registry) == 2

    def test_repr(self, registry: PluginRegistry[SigningEngine]) -> None:
        registry.register_class("echo", EchoEngine)
        text = repr(registry)
        assert "test-engines" in text
        assert "SigningEngine" in text
        assert "echo" in text


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


class TestLoadEntrypoints:
    def test_queries_group(self, registry: PluginRegistry[SigningEngine], advertise) -> None:
        groups = advertise()
        registry.load_entrypoints("apksign.engines")
        assert groups == ["apksign.engines"]
        assert len(registry) == 0

    def test_registers_advertised_engine(
        self, registry: PluginRegistry[SigningEngine], advertise
    ) -> None:
        advertise(StubEntryPoint("echo", EchoEngine))
        registry.load_entrypoints("apksign.engines")
        assert registry.get("echo") is EchoEngine

    def test_existing_name_wins(self, registry: PluginRegistry[SigningEngine], advertise) -> None:
        registry.register_class("echo", EchoEngine)
        advertise(StubEntryPoint("echo", RejectingEngine))
        registry.load_entrypoints("apksign.engines")
        assert registry.get("echo") is EchoEngine

    def test_broken_entry_points_are_skipped(
        self, registry: PluginRegistry[SigningEngine], advertise
    ) -> None:
        advertise(
            StubEntryPoint("missing", failure=ImportError("No module named 'ghost'")),
            StubEntryPoint("renamed", failure=AttributeError("GhostEngine")),
            StubEntryPoint("wrong-type", NotAnEngine),
            StubEntryPoint("echo", EchoEngine),
        )
        registry.load_entrypoints("apksign.engines")
        assert registry.list_plugins() == ["echo"]

    def test_repeated_loading(self, registry: PluginRegistry[SigningEngine], advertise) -> None:
        advertise(StubEntryPoint("echo", EchoEngine))
        registry.load_entrypoints("apksign.engines")
        registry.load_entrypoints("apksign.engines")
        assert len(registry) == 1
