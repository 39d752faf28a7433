"""PKCS #8 private key handling: encrypted wrappers and per-algorithm key factories.

:class:`EncryptedPrivateKeyInfo` parses the ``EncryptedPrivateKeyInfo``
structure and decrypts it with one candidate password at a time. PBES2 keys
using PBKDF2 and AES-CBC are decrypted here, by deriving the key and running
the cipher. Other schemes (legacy PKCS #12 PBE, DES-EDE3) are handed to the
``cryptography`` loader.

:class:`KeyFactory` decodes an unencrypted ``PrivateKeyInfo`` for one
algorithm only. The credential loader tries factories in a fixed order and
keeps the first one that accepts the encoding.
"""
from __future__ import annotations

import logging
from typing import Union

from asn1crypto import keys as asn1_keys
from asn1crypto import pem as asn1_pem
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, padding, serialization
from cryptography.hazmat.primitives.asymmetric.dsa import DSAPrivateKey
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePrivateKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from apksign.errors import (
    DecryptionError,
    InvalidKeySpecError,
    KeyParseError,
    UnsupportedKeyAlgorithmError,
)

logger = logging.getLogger(__name__)

PrivateKey = Union[RSAPrivateKey, EllipticCurvePrivateKey, DSAPrivateKey]

_PBKDF2_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


def unarmor(blob: bytes) -> bytes:
    """Return the DER payload of a PEM blob, or *blob* unchanged if it is not PEM."""
    if not asn1_pem.detect(blob):
        return blob
    try:
        _, _, der = asn1_pem.unarmor(blob)
    except ValueError as exc:
        raise KeyParseError(f"Malformed PEM armour: {exc}") from exc
    return der


def is_private_key_info(der: bytes) -> bool:
    """Return True if *der* parses as an unencrypted ``PrivateKeyInfo``."""
    try:
        info = asn1_keys.PrivateKeyInfo.load(der, strict=True)
        info["private_key_algorithm"]["algorithm"].native
        info["private_key"].contents
    except (ValueError, TypeError, KeyError):
        return False
    return True


class EncryptedPrivateKeyInfo:
    """An encrypted PKCS #8 private key.

    Parameters
    ----------
    encoded:
        DER encoding of the ``EncryptedPrivateKeyInfo`` structure.

    Raises
    ------
    KeyParseError
        If *encoded* is not an ``EncryptedPrivateKeyInfo`` structure.
    """

    def __init__(self, encoded: bytes) -> None:
        try:
            info = asn1_keys.EncryptedPrivateKeyInfo.load(encoded, strict=True)
            algorithm = info["encryption_algorithm"]
            self._algorithm_name: str = algorithm["algorithm"].native
            self._encrypted_data: bytes = info["encrypted_data"].native
            algorithm.native
        except (ValueError, TypeError, KeyError) as exc:
            raise KeyParseError("Not an encrypted PKCS #8 private key") from exc
        self._encoded = encoded
        self._algorithm = algorithm

    @property
    def algorithm_name(self) -> str:
        """Name of the password-based encryption scheme, e.g. ``"pbes2"``."""
        return self._algorithm_name

    def decrypt(self, password: bytes) -> bytes:
        """Decrypt with *password* and return the DER ``PrivateKeyInfo``.

        Raises
        ------
        DecryptionError
            If the derived key does not decrypt the payload (wrong password).
        InvalidKeySpecError
            If decryption succeeded but did not produce a ``PrivateKeyInfo``.
        UnsupportedKeyAlgorithmError
            If the encryption scheme is not supported at all.
        """
        if self._is_explicit_pbes2():
            plaintext = self._decrypt_pbes2(password)
            if not is_private_key_info(plaintext):
                raise InvalidKeySpecError("Decrypted data is not a PKCS #8 private key")
            return plaintext
        return self._decrypt_with_backend(password)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _is_explicit_pbes2(self) -> bool:
        if self._algorithm_name != "pbes2":
            return False
        return (
            self._algorithm.kdf == "pbkdf2"
            and self._algorithm.kdf_hmac in _PBKDF2_HASHES
            and self._algorithm.encryption_cipher == "aes"
            and self._algorithm.encryption_mode == "cbc"
        )

    def _derive_key(self, password: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=_PBKDF2_HASHES[self._algorithm.kdf_hmac](),
            length=self._algorithm.key_length,
            salt=self._algorithm.kdf_salt,
            iterations=self._algorithm.kdf_iterations,
        )
        return kdf.derive(password)

    def _decrypt_pbes2(self, password: bytes) -> bytes:
        key = self._derive_key(password)
        decryptor = Cipher(
            algorithms.AES(key), modes.CBC(self._algorithm.encryption_iv)
        ).decryptor()
        padded = decryptor.update(self._encrypted_data) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            raise DecryptionError("Bad decrypt. Wrong password?") from exc

    def _decrypt_with_backend(self, password: bytes) -> bytes:
        try:
            key = serialization.load_der_private_key(self._encoded, password=password)
        except UnsupportedAlgorithm as exc:
            raise UnsupportedKeyAlgorithmError(
                f"Unsupported private key encryption: {self._algorithm_name}"
            ) from exc
        except (ValueError, TypeError) as exc:
            raise DecryptionError("Bad decrypt. Wrong password?") from exc
        return key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )


class KeyFactory:
    """Decodes ``PrivateKeyInfo`` DER for a single key algorithm.

    Parameters
    ----------
    algorithm:
        Algorithm name (``"RSA"``, ``"EC"``, or ``"DSA"``).
    oid_names:
        asn1crypto names of the ``PrivateKeyInfo`` algorithm identifiers this
        factory accepts.
    key_type:
        The ``cryptography`` private key class the decoded key must be.
    """

    def __init__(
        self,
        algorithm: str,
        oid_names: tuple[str, ...],
        key_type: type,
    ) -> None:
        self.algorithm = algorithm
        self._oid_names = oid_names
        self._key_type = key_type

    def generate_private(self, pkcs8_der: bytes) -> PrivateKey:
        """Decode *pkcs8_der* as a private key of this factory's algorithm.

        Raises
        ------
        InvalidKeySpecError
            If the encoding is not a valid key for this algorithm.
        """
        try:
            info = asn1_keys.PrivateKeyInfo.load(pkcs8_der, strict=True)
            oid_name = info["private_key_algorithm"]["algorithm"].native
        except (ValueError, TypeError, KeyError) as exc:
            raise InvalidKeySpecError("Not a PKCS #8 encoded private key") from exc
        if oid_name not in self._oid_names:
            raise InvalidKeySpecError(f"Not an {self.algorithm} private key: {oid_name}")
        try:
            key = serialization.load_der_private_key(pkcs8_der, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise InvalidKeySpecError(f"Invalid {self.algorithm} private key: {exc}") from exc
        if not isinstance(key, self._key_type):
            raise InvalidKeySpecError(f"Not an {self.algorithm} private key")
        return key

    def __repr__(self) -> str:
        return f"KeyFactory(algorithm={self.algorithm!r})"


def rsa_key_factory() -> KeyFactory:
    return KeyFactory("RSA", ("rsa", "rsassa_pss"), RSAPrivateKey)


def ec_key_factory() -> KeyFactory:
    return KeyFactory("EC", ("ec",), EllipticCurvePrivateKey)


def dsa_key_factory() -> KeyFactory:
    return KeyFactory("DSA", ("dsa",), DSAPrivateKey)


__all__ = [
    "EncryptedPrivateKeyInfo",
    "KeyFactory",
    "PrivateKey",
    "dsa_key_factory",
    "ec_key_factory",
    "is_private_key_info",
    "rsa_key_factory",
    "unarmor",
]
