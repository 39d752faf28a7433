"""Signing engine contract.

APK signing and signature verification are delegated to a pluggable
engine. Engines are registered in :data:`engines`, either directly or
through the ``apksign.engines`` entry-point group, and looked up by name
with :func:`load_engine`.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from cryptography import x509

from apksign.certificates.pkcs8 import PrivateKey
from apksign.errors import EngineError
from apksign.lineage import SigningCertificateLineage
from apksign.plugins import PluginNotFoundError, PluginRegistry

logger = logging.getLogger(__name__)

ENGINE_ENTRY_POINT_GROUP = "apksign.engines"
DEFAULT_ENGINE = "apksigtool"


@dataclass(frozen=True)
class SignerConfig:
    """A loaded signer handed to an engine.

    Parameters
    ----------
    name:
        JAR signature file basename for the signer.
    private_key:
        The signing key.
    certificates:
        Certificate chain, leaf first.
    """

    name: str
    private_key: PrivateKey = field(repr=False)
    certificates: list[x509.Certificate] = field(repr=False)


@dataclass
class SignRequest:
    """Everything an engine needs to sign one APK."""

    input_apk: Path
    output_apk: Path
    signers: list[SignerConfig]
    v1_signing_enabled: bool = True
    v2_signing_enabled: bool = True
    v3_signing_enabled: bool = True
    debuggable_apk_permitted: bool = True
    min_sdk_version: int | None = None
    lineage: SigningCertificateLineage | None = None


@dataclass
class VerifyRequest:
    """Parameters for verifying one APK."""

    input_apk: Path
    min_sdk_version: int | None = None
    max_sdk_version: int | None = None


@dataclass
class VerifyResult:
    """Outcome of verifying an APK.

    Parameters
    ----------
    verified:
        True if the APK verifies.
    signer_certificates:
        Certificates of the verified signers, in signer order.
    errors:
        Human-readable errors.
    warnings:
        Human-readable warnings.
    """

    verified: bool
    verified_v1: bool = False
    verified_v2: bool = False
    verified_v3: bool = False
    signer_certificates: list[x509.Certificate] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class SigningEngine(ABC):
    """Abstract base class for APK signing back ends."""

    @abstractmethod
    def sign(self, request: SignRequest) -> None:
        """Sign ``request.input_apk`` and write ``request.output_apk``.

        Raises
        ------
        EngineError
            If the APK cannot be signed.
        """

    @abstractmethod
    def verify(self, request: VerifyRequest) -> VerifyResult:
        """Verify the signatures of ``request.input_apk``."""


engines: PluginRegistry[SigningEngine] = PluginRegistry(SigningEngine, "signing-engines")


def load_engine(name: str = DEFAULT_ENGINE) -> SigningEngine:
    """Instantiate the engine registered as *name*.

    Raises
    ------
    EngineError
        If no engine with that name is registered or installed.
    """
    engines.load_entrypoints(ENGINE_ENTRY_POINT_GROUP)
    try:
        engine_cls = engines.get(name)
    except PluginNotFoundError:
        available = ", ".join(engines.list_plugins()) or "none"
        raise EngineError(f"Unknown signing engine: {name} (available: {available})") from None
    logger.debug("Using signing engine %s", name)
    return engine_cls()
