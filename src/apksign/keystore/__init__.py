"""Keystore implementations.

Provides the abstract :class:`KeyStore` contract, a PKCS #12 store, and a
JSON store of PEM entries with per-key passwords.
"""
from __future__ import annotations

from apksign.keystore.base import KeyStore
from apksign.keystore.pem import PemKeyStore
from apksign.keystore.pkcs12 import PKCS12KeyStore

__all__ = ["KeyStore", "PKCS12KeyStore", "PemKeyStore"]
