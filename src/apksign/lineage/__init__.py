"""Signing certificate lineage records and their file format."""
from __future__ import annotations

from apksign.lineage.algorithms import SignatureAlgorithm, suggest_signature_algorithm
from apksign.lineage.record import (
    DEFAULT_MIN_SDK_VERSION,
    LineageSigner,
    SigningCertificateLineage,
    SigningCertificateNode,
)

__all__ = [
    "DEFAULT_MIN_SDK_VERSION",
    "LineageSigner",
    "SignatureAlgorithm",
    "SigningCertificateLineage",
    "SigningCertificateNode",
    "suggest_signature_algorithm",
]
