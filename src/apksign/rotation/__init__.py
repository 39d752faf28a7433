"""Signing key rotation and capability updates."""

from __future__ import annotations

from apksign.rotation.rotator import CapabilityUpdate, LineageRotator, lineage_signer

__all__ = ["CapabilityUpdate", "LineageRotator", "lineage_signer"]
