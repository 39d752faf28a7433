"""Keystore storage contract.

A keystore holds named entries. Key entries pair a private key with its
certificate chain. Certificate entries hold a single trusted certificate.
The store body is protected by a store password, and each key entry may be
protected by a key password of its own.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from cryptography import x509

from apksign.certificates.pkcs8 import PrivateKey


class KeyStore(ABC):
    """Abstract base class for keystore implementations.

    Instances start empty and are populated by :meth:`load`.
    """

    type_name: ClassVar[str] = ""

    @abstractmethod
    def load(self, data: bytes | None, password: bytes | None) -> None:
        """Load the store body.

        Parameters
        ----------
        data:
            The raw store bytes, or None for a store with no backing file.
        password:
            Store password used to check integrity.

        Raises
        ------
        KeyStoreIntegrityError
            If the password does not match the store.
        KeyStoreError
            If *data* is not a store of this type.
        """

    @abstractmethod
    def aliases(self) -> list[str]:
        """Return every entry alias in store order."""

    @abstractmethod
    def is_key_entry(self, alias: str) -> bool:
        """Return True if *alias* names a key entry."""

    @abstractmethod
    def get_key(self, alias: str, password: bytes | None) -> PrivateKey | None:
        """Recover the private key stored under *alias*.

        Returns
        -------
        PrivateKey | None
            The key, or None if *alias* is not a key entry.

        Raises
        ------
        UnrecoverableKeyError
            If *password* cannot unlock the entry.
        """

    @abstractmethod
    def get_certificate_chain(self, alias: str) -> list[x509.Certificate] | None:
        """Return the certificate chain of the key entry *alias*, leaf first."""

    def __contains__(self, alias: object) -> bool:
        return alias in self.aliases()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(entries={len(self.aliases())})"
