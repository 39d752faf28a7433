"""Signature algorithms used to sign lineage nodes.

IDs are the APK Signature Scheme v2/v3 signature algorithm IDs. A rotation
record is signed with the algorithm suggested for the parent's public key.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Callable, Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, padding, rsa

from apksign.certificates.pkcs8 import PrivateKey
from apksign.errors import LineageError

PublicKey = Union[rsa.RSAPublicKey, ec.EllipticCurvePublicKey, dsa.DSAPublicKey]


class SignatureAlgorithm(IntEnum):
    RSA_PSS_WITH_SHA256 = 0x0101
    RSA_PSS_WITH_SHA512 = 0x0102
    RSA_PKCS1_V1_5_WITH_SHA256 = 0x0103
    RSA_PKCS1_V1_5_WITH_SHA512 = 0x0104
    ECDSA_WITH_SHA256 = 0x0201
    ECDSA_WITH_SHA512 = 0x0202
    DSA_WITH_SHA256 = 0x0301
    VERITY_RSA_PKCS1_V1_5_WITH_SHA256 = 0x0421
    VERITY_ECDSA_WITH_SHA256 = 0x0423
    VERITY_DSA_WITH_SHA256 = 0x0425


PadFun = Callable[[], padding.AsymmetricPadding]

# id -> (key kind, hash, padding)
_PARAMETERS: dict[int, tuple[str, type[hashes.HashAlgorithm], Optional[PadFun]]] = {
    0x0101: ("rsa", hashes.SHA256, lambda: padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=32)),
    0x0102: ("rsa", hashes.SHA512, lambda: padding.PSS(mgf=padding.MGF1(hashes.SHA512()), salt_length=64)),
    0x0103: ("rsa", hashes.SHA256, padding.PKCS1v15),
    0x0104: ("rsa", hashes.SHA512, padding.PKCS1v15),
    0x0201: ("ec", hashes.SHA256, None),
    0x0202: ("ec", hashes.SHA512, None),
    0x0301: ("dsa", hashes.SHA256, None),
    0x0421: ("rsa", hashes.SHA256, padding.PKCS1v15),
    0x0423: ("ec", hashes.SHA256, None),
    0x0425: ("dsa", hashes.SHA256, None),
}


def suggest_signature_algorithm(public_key: PublicKey) -> SignatureAlgorithm:
    """Return the algorithm used to sign with the key matching *public_key*."""
    if isinstance(public_key, rsa.RSAPublicKey):
        if public_key.key_size <= 3072:
            return SignatureAlgorithm.RSA_PKCS1_V1_5_WITH_SHA256
        return SignatureAlgorithm.RSA_PKCS1_V1_5_WITH_SHA512
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        if public_key.key_size <= 256:
            return SignatureAlgorithm.ECDSA_WITH_SHA256
        return SignatureAlgorithm.ECDSA_WITH_SHA512
    if isinstance(public_key, dsa.DSAPublicKey):
        return SignatureAlgorithm.DSA_WITH_SHA256
    raise LineageError(f"Unsupported key type: {type(public_key).__name__}")


def _parameters(algorithm_id: int) -> tuple[str, type[hashes.HashAlgorithm], Optional[PadFun]]:
    try:
        return _PARAMETERS[algorithm_id]
    except KeyError:
        raise LineageError(f"Unknown signature algorithm ID: {algorithm_id:#06x}") from None


def create_signature(private_key: PrivateKey, algorithm_id: int, data: bytes) -> bytes:
    """Sign *data* with *private_key* using *algorithm_id*."""
    kind, hash_cls, pad = _parameters(algorithm_id)
    if kind == "rsa" and pad is not None and isinstance(private_key, rsa.RSAPrivateKey):
        return private_key.sign(data, pad(), hash_cls())
    if kind == "ec" and isinstance(private_key, ec.EllipticCurvePrivateKey):
        return private_key.sign(data, ec.ECDSA(hash_cls()))
    if kind == "dsa" and isinstance(private_key, dsa.DSAPrivateKey):
        return private_key.sign(data, hash_cls())
    raise LineageError(
        f"Key type {type(private_key).__name__} cannot sign with {algorithm_id:#06x}"
    )


def verify_signature(public_key: PublicKey, algorithm_id: int, signature: bytes, data: bytes) -> bool:
    """Return True if *signature* over *data* verifies with *public_key*."""
    kind, hash_cls, pad = _parameters(algorithm_id)
    try:
        if kind == "rsa" and pad is not None and isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(signature, data, pad(), hash_cls())
        elif kind == "ec" and isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, data, ec.ECDSA(hash_cls()))
        elif kind == "dsa" and isinstance(public_key, dsa.DSAPublicKey):
            public_key.verify(signature, data, hash_cls())
        else:
            return False
    except InvalidSignature:
        return False
    return True
