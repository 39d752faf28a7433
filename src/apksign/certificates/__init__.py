"""Private key and certificate decoding.

Decodes PKCS #8 private keys (encrypted or not) and X.509 certificate
files into ``cryptography`` objects.
"""
from __future__ import annotations

from apksign.certificates.pkcs8 import (
    EncryptedPrivateKeyInfo,
    KeyFactory,
    PrivateKey,
    dsa_key_factory,
    ec_key_factory,
    rsa_key_factory,
    unarmor,
)
from apksign.certificates.reader import load_certificates, read_certificate_file

__all__ = [
    "EncryptedPrivateKeyInfo",
    "KeyFactory",
    "PrivateKey",
    "dsa_key_factory",
    "ec_key_factory",
    "load_certificates",
    "read_certificate_file",
    "rsa_key_factory",
    "unarmor",
]
