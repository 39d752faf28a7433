"""JSON keystore holding PEM-encoded entries.

Layout of a ``PEMKS`` store::

    {
      "format": "apksign-pemks",
      "version": 1,
      "entries": {
        "release": {"type": "key", "key": "<PKCS #8 PEM>", "chain": ["<cert PEM>", ...]},
        "ca": {"type": "certificate", "certificate": "<cert PEM>"}
      },
      "mac": {"salt": "<hex>", "iterations": 100000, "value": "<hex>"}
    }

Each key entry is a PKCS #8 PEM, encrypted with that entry's own key
password. ``mac`` is an HMAC-SHA256 over the canonical JSON of ``entries``,
keyed with PBKDF2 of the store password. A store loaded with no password
skips the integrity check.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from apksign.certificates.pkcs8 import PrivateKey
from apksign.errors import KeyStoreError, KeyStoreIntegrityError, UnrecoverableKeyError
from apksign.keystore.base import KeyStore

logger = logging.getLogger(__name__)

FORMAT_NAME = "apksign-pemks"
FORMAT_VERSION = 1
DEFAULT_MAC_ITERATIONS = 100_000


class PemKeyStore(KeyStore):
    """Keystore of PEM entries in a JSON document, with per-key passwords.

    Parameters
    ----------
    mac_iterations:
        PBKDF2 iteration count used by :meth:`dump`.
    """

    type_name = "PEMKS"

    def __init__(self, mac_iterations: int = DEFAULT_MAC_ITERATIONS) -> None:
        self._mac_iterations = mac_iterations
        self._entries: dict[str, dict[str, object]] = {}

    # ------------------------------------------------------------------
    # KeyStore interface
    # ------------------------------------------------------------------

    def load(self, data: bytes | None, password: bytes | None) -> None:
        self._entries = {}
        if data is None:
            return
        try:
            document = json.loads(data.decode("utf-8"))
            entries = document["entries"]
            mac = document["mac"]
            mac_salt = bytes.fromhex(mac["salt"])
            mac_iterations = int(mac["iterations"])
            mac_value = bytes.fromhex(mac["value"])
            if mac_iterations < 1:
                raise ValueError(f"invalid MAC iteration count {mac_iterations}")
        except (UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            raise KeyStoreError("Not a PEMKS keystore") from exc
        if document.get("format") != FORMAT_NAME or document.get("version") != FORMAT_VERSION:
            raise KeyStoreError("Unsupported PEMKS keystore format")

        if password is not None:
            expected = _mac(entries, password, mac_salt, mac_iterations)
            if not hmac.compare_digest(expected, mac_value):
                raise KeyStoreIntegrityError(
                    "Keystore was tampered with, or password was incorrect"
                )
        self._entries = dict(entries)
        logger.debug("Loaded PEMKS keystore with %d entries", len(self._entries))

    def aliases(self) -> list[str]:
        return list(self._entries)

    def is_key_entry(self, alias: str) -> bool:
        entry = self._entries.get(alias)
        return entry is not None and entry.get("type") == "key"

    def get_key(self, alias: str, password: bytes | None) -> PrivateKey | None:
        if not self.is_key_entry(alias):
            return None
        pem = str(self._entries[alias]["key"]).encode("ascii")
        if b"ENCRYPTED" not in pem:
            password = None
        try:
            key = serialization.load_pem_private_key(pem, password=password or None)
        except (ValueError, TypeError) as exc:
            raise UnrecoverableKeyError(f'Cannot recover key "{alias}"') from exc
        return key  # type: ignore[return-value]

    def get_certificate_chain(self, alias: str) -> list[x509.Certificate] | None:
        entry = self._entries.get(alias)
        if entry is None:
            return None
        if entry.get("type") == "certificate":
            return None
        chain = entry.get("chain") or []
        return [x509.load_pem_x509_certificate(str(c).encode("ascii")) for c in chain]  # type: ignore[union-attr]

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def set_key_entry(
        self,
        alias: str,
        key: PrivateKey,
        chain: list[x509.Certificate],
        password: bytes | None,
    ) -> None:
        """Store *key* and its *chain* under *alias*, encrypted with *password*."""
        encryption: serialization.KeySerializationEncryption
        if password:
            encryption = serialization.BestAvailableEncryption(password)
        else:
            encryption = serialization.NoEncryption()
        key_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        )
        self._entries[alias] = {
            "type": "key",
            "key": key_pem.decode("ascii"),
            "chain": [_cert_pem(c) for c in chain],
        }

    def set_certificate_entry(self, alias: str, certificate: x509.Certificate) -> None:
        """Store a trusted *certificate* under *alias*."""
        self._entries[alias] = {"type": "certificate", "certificate": _cert_pem(certificate)}

    def delete_entry(self, alias: str) -> None:
        """Remove *alias* from the store.

        Raises
        ------
        KeyError
            If no entry exists under *alias*.
        """
        if alias not in self._entries:
            raise KeyError(f"No keystore entry for alias={alias!r}")
        del self._entries[alias]

    def dump(self, password: bytes) -> bytes:
        """Serialise the store, protecting its integrity with *password*."""
        salt = os.urandom(16)
        document = {
            "format": FORMAT_NAME,
            "version": FORMAT_VERSION,
            "entries": self._entries,
            "mac": {
                "salt": salt.hex(),
                "iterations": self._mac_iterations,
                "value": _mac(self._entries, password, salt, self._mac_iterations).hex(),
            },
        }
        return json.dumps(document, indent=2).encode("utf-8")


def _cert_pem(certificate: x509.Certificate) -> str:
    return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")


def _mac(entries: object, password: bytes, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations)
    mac_key = kdf.derive(password)
    canonical = json.dumps(entries, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hmac.new(mac_key, canonical, hashlib.sha256).digest()
