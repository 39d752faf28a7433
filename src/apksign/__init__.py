"""apksign: APK signing credentials and signing certificate lineages.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import apksign
>>> apksign.__version__
'0.1.0'

Quick start
-----------
::

    from apksign import (
        PasswordRetriever, SignerParams, load_private_key_and_certs,
        LineageRotator, lineage_signer,
    )

    params = SignerParams(name="signer #1", key_file="key.pk8", cert_file="cert.pem")
    with PasswordRetriever() as retriever:
        load_private_key_and_certs(params, retriever)
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ------------------------------------------------------------------
# Credentials
# ------------------------------------------------------------------
from apksign.errors import ApkSignError, CredentialError
from apksign.passwords import CandidatePassword, PasswordRetriever
from apksign.signer import SignerParams, load_private_key_and_certs
from apksign.providers import Provider, ProviderRegistry, default_registry

# ------------------------------------------------------------------
# Lineage
# ------------------------------------------------------------------
from apksign.capabilities import SignerCapabilities, SignerCapabilitiesBuilder
from apksign.lineage import LineageSigner, SigningCertificateLineage
from apksign.rotation import CapabilityUpdate, LineageRotator, lineage_signer

__all__ = [
    "__version__",
    # Credentials
    "ApkSignError",
    "CandidatePassword",
    "CredentialError",
    "PasswordRetriever",
    "Provider",
    "ProviderRegistry",
    "SignerParams",
    "default_registry",
    "load_private_key_and_certs",
    # Lineage
    "CapabilityUpdate",
    "LineageRotator",
    "LineageSigner",
    "SignerCapabilities",
    "SignerCapabilitiesBuilder",
    "SigningCertificateLineage",
    "lineage_signer",
]
