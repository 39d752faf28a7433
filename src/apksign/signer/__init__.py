"""Signer descriptors and credential loading."""
from __future__ import annotations

from apksign.signer.loader import (
    KEY_ALGORITHM_ORDER,
    decode_pkcs8_private_key,
    decrypt_pkcs8_encoded_key,
    load_private_key_and_certs,
)
from apksign.signer.params import KEYSTORE_FILE_NONE, SignerParams

__all__ = [
    "KEYSTORE_FILE_NONE",
    "KEY_ALGORITHM_ORDER",
    "SignerParams",
    "decode_pkcs8_private_key",
    "decrypt_pkcs8_encoded_key",
    "load_private_key_and_certs",
]
