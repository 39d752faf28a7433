"""Signer capability grants carried across certificate rotations."""

from __future__ import annotations

from apksign.capabilities.capability import (
    CAPABILITY_NAMES,
    CapabilityFlag,
    SignerCapabilities,
    SignerCapabilitiesBuilder,
)

__all__ = [
    "CAPABILITY_NAMES",
    "CapabilityFlag",
    "SignerCapabilities",
    "SignerCapabilitiesBuilder",
]
